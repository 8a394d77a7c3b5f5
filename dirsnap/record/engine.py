# Copyright Red Hat
#
# dirsnap/record/engine.py - Directory snapshot recorder diff engine
#
# This file is part of the dirsnap project.
#
# SPDX-License-Identifier: Apache-2.0
"""
Snapshot comparison engine and difference report.
"""
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Iterator, List, Optional, Tuple
from datetime import datetime
import logging
import json

from dirsnap import DIRSNAP_SUBSYSTEM_DIFF, format_timestamp
from dirsnap.progress import ProgressFactory, TermControl

from .difftypes import DifferenceKind
from .entry import Entry, EntryKind
from .snapshot import Snapshot, SNAPSHOT_DATETIME

_log = logging.getLogger(__name__)

_log_debug = _log.debug
_log_info = _log.info
_log_warn = _log.warning
_log_error = _log.error


def _log_debug_diff(msg, *args, **kwargs):
    """A wrapper for diff subsystem debug logs."""
    _log.debug(msg, *args, extra={"subsystem": DIRSNAP_SUBSYSTEM_DIFF}, **kwargs)


#: Persisted report key for the list of differences
REPORT_DIFFERENCES = "EntriesDifference"


@dataclass(frozen=True)
class EntryDifference:
    """
    The classification of one entry when two snapshots are compared.
    """

    #: The kind of the entry
    kind: EntryKind
    #: How the entry differs between the two snapshots
    difference_kind: DifferenceKind
    #: The entry path
    path: Optional[str]
    #: Absolute size change (``SIZE_CHANGE`` only, otherwise 0)
    size_delta: int = 0
    #: Size in the newer snapshot, or the former size for ``REMOVED``
    size: int = 0

    def __str__(self):
        delta = f" ({self.size_delta} bytes)" if self.size_delta else ""
        return (
            f"{self.difference_kind.value}: "
            f"{self.kind.value.upper()}: {self.path}{delta}"
        )

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert this ``EntryDifference`` into its persisted dictionary
        form. Zero sizes and a missing path are omitted.

        ``"Octets"`` (the entry size, or the former size for ``Removed``
        entries) is an addition to the ``EntriesDifference`` record, whose
        only other size field is ``"OctetsDifference"``. Readers that do not
        know the key can ignore it.

        :returns: A dictionary suitable for encoding as JSON.
        :rtype: ``Dict[str, Any]``
        """
        out: Dict[str, Any] = {
            "Type": self.kind.value,
            "DifferenceType": self.difference_kind.value,
        }
        if self.path is not None:
            out["Path"] = self.path
        if self.size:
            out["Octets"] = self.size
        if self.size_delta:
            out["OctetsDifference"] = self.size_delta
        return out


def _sort_key(difference: EntryDifference):
    return (
        difference.path or "",
        difference.kind.value,
        difference.difference_kind.value,
    )


class DifferenceReport:
    """Container for snapshot difference results with formatting methods."""

    def __init__(self, timestamp: str, differences: Iterable[EntryDifference]):
        """
        Initialise a new ``DifferenceReport``.

        :param timestamp: The time at which the report was computed.
        :type timestamp: ``str``
        :param differences: The classified entries.
        :type differences: ``Iterable[EntryDifference]``
        """
        self.timestamp: str = timestamp
        self._differences: List[EntryDifference] = sorted(differences, key=_sort_key)

    def __repr__(self) -> str:
        return f"DifferenceReport('{self.timestamp}', [...{len(self)} differences])"

    # List-like interface
    def __iter__(self) -> Iterator[EntryDifference]:
        return iter(self._differences)

    def __len__(self):
        return len(self._differences)

    def __getitem__(self, index: int) -> EntryDifference:
        return self._differences[index]

    def _of_kind(self, kind: DifferenceKind) -> List[EntryDifference]:
        return [d for d in self._differences if d.difference_kind == kind]

    @property
    def new(self) -> List[EntryDifference]:
        """
        Return entries present only in the newer snapshot.

        :returns: Differences with ``DifferenceKind.NEW`` type.
        :rtype: ``List[EntryDifference]``
        """
        return self._of_kind(DifferenceKind.NEW)

    @property
    def removed(self) -> List[EntryDifference]:
        """
        Return entries present only in the older snapshot.

        :returns: Differences with ``DifferenceKind.REMOVED`` type.
        :rtype: ``List[EntryDifference]``
        """
        return self._of_kind(DifferenceKind.REMOVED)

    @property
    def size_changed(self) -> List[EntryDifference]:
        """
        Return entries present in both snapshots with different sizes.

        :returns: Differences with ``DifferenceKind.SIZE_CHANGE`` type.
        :rtype: ``List[EntryDifference]``
        """
        return self._of_kind(DifferenceKind.SIZE_CHANGE)

    @property
    def unchanged(self) -> List[EntryDifference]:
        """
        Return entries identical in both snapshots.

        :returns: Differences with ``DifferenceKind.NO_CHANGE`` type.
        :rtype: ``List[EntryDifference]``
        """
        return self._of_kind(DifferenceKind.NO_CHANGE)

    @property
    def changes(self) -> List[EntryDifference]:
        """
        Return every difference that is not ``NO_CHANGE``.

        :returns: New, removed and resized entries.
        :rtype: ``List[EntryDifference]``
        """
        return [
            d for d in self._differences if d.difference_kind != DifferenceKind.NO_CHANGE
        ]

    def paths(self, changes_only: bool = False) -> List[str]:
        """
        Return the paths in this ``DifferenceReport``.

        :param changes_only: Omit ``NO_CHANGE`` entries.
        :type changes_only: ``bool``
        :returns: Path list.
        :rtype: ``List[str]``
        """
        differences = self.changes if changes_only else self._differences
        return [d.path for d in differences if d.path is not None]

    def to_dict(self, changes_only: bool = False) -> Dict[str, Any]:
        """
        Convert this ``DifferenceReport`` into its persisted dictionary form.

        :param changes_only: Omit ``NO_CHANGE`` entries.
        :type changes_only: ``bool``
        :returns: A dictionary suitable for encoding as JSON.
        :rtype: ``Dict[str, Any]``
        """
        differences = self.changes if changes_only else self._differences
        return {
            SNAPSHOT_DATETIME: self.timestamp,
            REPORT_DIFFERENCES: [d.to_dict() for d in differences],
        }

    def json(self, pretty: bool = False, changes_only: bool = False) -> str:
        """
        Return a JSON representation of this ``DifferenceReport``.

        :param pretty: Indent JSON to be human readable.
        :type pretty: ``bool``
        :param changes_only: Omit ``NO_CHANGE`` entries.
        :type changes_only: ``bool``
        :returns: A JSON string.
        :rtype: ``str``
        """
        return json.dumps(
            self.to_dict(changes_only=changes_only), indent=2 if pretty else None
        )

    def summary(
        self,
        color: str = "auto",
        term_control: Optional[TermControl] = None,
    ) -> str:
        """
        Return a summary of this ``DifferenceReport`` instance.

        :param color: A string to control color rendering: "auto", "always",
                      or "never".
        :type color: ``str``
        :param term_control: An optional ``TermControl`` instance to use for
                             formatting. The supplied instance overrides any
                             ``color`` argument if set.
        :type term_control: ``Optional[TermControl]``
        :returns: A string summarizing this instance.
        :rtype: ``str``
        """
        tc = term_control or TermControl(color=color)
        return (
            f"Total entries:     {len(self)}\n"
            f"  Paths {tc.GREEN + 'new:      ' + tc.NORMAL} {len(self.new)}\n"
            f"  Paths {tc.RED + 'removed:  ' + tc.NORMAL} {len(self.removed)}\n"
            f"  Paths {tc.YELLOW + 'resized:  ' + tc.NORMAL} {len(self.size_changed)}\n"
            f"  Paths {tc.BLUE + 'unchanged:' + tc.NORMAL} {len(self.unchanged)}"
        )


def _build_index(entries: Iterable[Entry]) -> Dict[Tuple[EntryKind, str], int]:
    """
    Map each ``(kind, path)`` to its size. When the same pair appears
    with several sizes the largest is kept.

    :param entries: The entries to index.
    :type entries: ``Iterable[Entry]``
    :returns: A dictionary of ``(kind, path)`` to size.
    :rtype: ``Dict[Tuple[EntryKind, str], int]``
    """
    index: Dict[Tuple[EntryKind, str], int] = {}
    for entry in entries:
        if entry.key in index:
            _log_debug_diff(
                "Duplicate key %s with sizes %d and %d",
                entry,
                index[entry.key],
                entry.size,
            )
            index[entry.key] = max(index[entry.key], entry.size)
        else:
            index[entry.key] = entry.size
    return index


class DiffEngine:
    """
    Core class for comparing two snapshots.
    """

    def compute_diff(
        self,
        before: Snapshot,
        after: Snapshot,
        quiet: bool = False,
        term_control: Optional[TermControl] = None,
    ) -> DifferenceReport:
        """
        Classify every entry of ``before`` and ``after``.

        Entries present unchanged in both snapshots are ``NO_CHANGE``.
        Entries only in ``after`` are ``NEW`` unless ``before`` holds the
        same kind and path, in which case they are ``SIZE_CHANGE`` with the
        absolute size difference. Kinds and paths of ``before`` missing
        from ``after`` are ``REMOVED``. The snapshots are not modified.

        :param before: The older snapshot.
        :type before: ``Snapshot``
        :param after: The newer snapshot.
        :type after: ``Snapshot``
        :param quiet: Do not output progress.
        :type quiet: ``bool``
        :param term_control: A ``TermControl`` instance for progress output.
        :type term_control: ``Optional[TermControl]``
        :returns: A new ``DifferenceReport``.
        :rtype: ``DifferenceReport``
        """
        if before == after:
            _log_info("Snapshots %s and %s: no changes", before.timestamp, after.timestamp)

        start_time = datetime.now()
        common = before.entries & after.entries
        added = after.entries - before.entries
        before_index = _build_index(before.entries)
        after_index = _build_index(after.entries)
        removed = [key for key in before_index if key not in after_index]

        _log_debug_diff(
            "Comparing %d -> %d entries: %d common, %d added, %d removed keys",
            before.entry_count,
            after.entry_count,
            len(common),
            len(added),
            len(removed),
        )

        differences = [
            EntryDifference(e.kind, DifferenceKind.NO_CHANGE, e.path, 0, e.size)
            for e in common
        ]

        total = len(added) + len(removed)
        progress = ProgressFactory.get_progress(
            "Comparing snapshots", quiet=quiet, term_control=term_control
        )
        if total:
            progress.start(total)

        done = 0
        for entry in sorted(added, key=lambda e: (e.path, e.kind.value, e.size)):
            old_size = before_index.get(entry.key)
            if old_size is None:
                difference = EntryDifference(
                    entry.kind, DifferenceKind.NEW, entry.path, 0, entry.size
                )
            else:
                difference = EntryDifference(
                    entry.kind,
                    DifferenceKind.SIZE_CHANGE,
                    entry.path,
                    abs(entry.size - old_size),
                    entry.size,
                )
            _log_debug_diff("Classified %s", difference)
            differences.append(difference)
            done += 1
            progress.progress(done, f"Compared '{entry.path}'")

        for kind, path in removed:
            difference = EntryDifference(
                kind, DifferenceKind.REMOVED, path, 0, before_index[(kind, path)]
            )
            _log_debug_diff("Classified %s", difference)
            differences.append(difference)
            done += 1
            progress.progress(done, f"Compared '{path}'")

        report = DifferenceReport(format_timestamp(), differences)
        end_time = datetime.now()
        if total:
            progress.end(
                f"Found {len(report.changes)} changes in {len(report)} entries "
                f"in {end_time - start_time}"
            )
        return report


__all__ = [
    "DiffEngine",
    "DifferenceReport",
    "EntryDifference",
    "REPORT_DIFFERENCES",
]
