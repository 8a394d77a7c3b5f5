# Copyright Red Hat
#
# dirsnap/record/snapshot.py - Directory snapshot recorder snapshots
#
# This file is part of the dirsnap project.
#
# SPDX-License-Identifier: Apache-2.0
"""
Snapshot data object and its persisted JSON form.
"""
from typing import Any, Dict, FrozenSet, Iterable, Iterator, List, Optional
import logging
import json

from dirsnap import TOOL_REVISION, DirsnapParseError, format_timestamp

from .entry import Entry, EntryKind

_log = logging.getLogger(__name__)

_log_debug = _log.debug
_log_info = _log.info
_log_warn = _log.warning
_log_error = _log.error

# Persisted snapshot keys
SNAPSHOT_DATETIME = "DateTime"
SNAPSHOT_TOOL_REVISION = "ToolRevision"
SNAPSHOT_ENTRY_COUNT = "EntryCount"
SNAPSHOT_ENTRIES = "Entries"

# Persisted entry keys
ENTRY_TYPE = "Type"
ENTRY_PATH = "Path"
ENTRY_OCTETS = "Octets"


def _sort_key(entry: Entry):
    return (entry.path, entry.kind.value, entry.size)


class Snapshot:
    """
    The result of one complete recording: a deduplicated set of entries
    plus metadata. Instances are immutable.
    """

    __slots__ = ("_timestamp", "_tool_revision", "_entries")

    def __init__(
        self,
        timestamp: str,
        entries: Iterable[Entry] = (),
        tool_revision: int = TOOL_REVISION,
    ):
        """
        Initialise a new ``Snapshot``.

        :param timestamp: The time at which recording completed.
        :type timestamp: ``str``
        :param entries: The recorded entries. Duplicates are collapsed.
        :type entries: ``Iterable[Entry]``
        :param tool_revision: The snapshot format revision.
        :type tool_revision: ``int``
        """
        self._timestamp: str = timestamp
        self._tool_revision: int = tool_revision
        self._entries: FrozenSet[Entry] = frozenset(entries)

    @classmethod
    def empty(cls, timestamp: Optional[str] = None) -> "Snapshot":
        """
        Return a new ``Snapshot`` with no entries.

        :param timestamp: Optional timestamp (default: now).
        :type timestamp: ``Optional[str]``
        :returns: An empty snapshot.
        :rtype: ``Snapshot``
        """
        return cls(timestamp or format_timestamp())

    @property
    def timestamp(self) -> str:
        """The time at which recording completed."""
        return self._timestamp

    @property
    def tool_revision(self) -> int:
        """The snapshot format revision."""
        return self._tool_revision

    @property
    def entries(self) -> FrozenSet[Entry]:
        """The set of recorded entries."""
        return self._entries

    @property
    def entry_count(self) -> int:
        """The number of distinct recorded entries."""
        return len(self._entries)

    def __eq__(self, other):
        """
        Compare two snapshots: the timestamp is informational only and is
        not compared.
        """
        if not isinstance(other, Snapshot):
            return NotImplemented
        return (
            self.tool_revision == other.tool_revision
            and self.entry_count == other.entry_count
            and self.entries == other.entries
        )

    def __hash__(self):
        return hash((self._tool_revision, self._entries))

    def __len__(self):
        return len(self._entries)

    def __iter__(self) -> Iterator[Entry]:
        return iter(self._entries)

    def __contains__(self, entry):
        return entry in self._entries

    def __repr__(self):
        return (
            f"Snapshot('{self.timestamp}', [...{self.entry_count} entries], "
            f"tool_revision={self.tool_revision})"
        )

    def __str__(self):
        return (
            f"{SNAPSHOT_DATETIME}: {self.timestamp}\n"
            f"{SNAPSHOT_TOOL_REVISION}: {self.tool_revision}\n"
            f"{SNAPSHOT_ENTRY_COUNT}: {self.entry_count}"
        )

    def sorted_entries(self) -> List[Entry]:
        """
        Return the entries of this snapshot ordered by path, then kind.

        :returns: A sorted list of entries.
        :rtype: ``List[Entry]``
        """
        return sorted(self._entries, key=_sort_key)

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert this ``Snapshot`` into its persisted dictionary form.

        :returns: A dictionary suitable for encoding as JSON.
        :rtype: ``Dict[str, Any]``
        """
        return {
            SNAPSHOT_DATETIME: self.timestamp,
            SNAPSHOT_TOOL_REVISION: self.tool_revision,
            SNAPSHOT_ENTRY_COUNT: self.entry_count,
            SNAPSHOT_ENTRIES: [entry.to_dict() for entry in self.sorted_entries()],
        }

    def json(self, pretty: bool = False) -> str:
        """
        Return a JSON representation of this ``Snapshot``.

        :param pretty: Indent JSON to be human readable.
        :type pretty: ``bool``
        :returns: A JSON string.
        :rtype: ``str``
        """
        return json.dumps(self.to_dict(), indent=2 if pretty else None)

    @classmethod
    def from_dict(cls, data: Any) -> "Snapshot":
        """
        Build a ``Snapshot`` from its persisted dictionary form.

        The document is validated completely before the snapshot is
        returned; any problem raises ``DirsnapParseError``.

        :param data: The decoded JSON document.
        :type data: ``Any``
        :returns: The decoded snapshot.
        :rtype: ``Snapshot``
        :raises: ``DirsnapParseError`` if ``data`` is not a valid snapshot.
        """
        if not isinstance(data, dict):
            raise DirsnapParseError("Snapshot document is not a JSON object")

        for key in (
            SNAPSHOT_DATETIME,
            SNAPSHOT_TOOL_REVISION,
            SNAPSHOT_ENTRY_COUNT,
            SNAPSHOT_ENTRIES,
        ):
            if key not in data:
                raise DirsnapParseError(f"Snapshot is missing required key '{key}'")

        timestamp = data[SNAPSHOT_DATETIME]
        if not isinstance(timestamp, str):
            raise DirsnapParseError(f"Invalid {SNAPSHOT_DATETIME} value: {timestamp!r}")

        revision = _parse_uint(data[SNAPSHOT_TOOL_REVISION], SNAPSHOT_TOOL_REVISION)
        if revision > TOOL_REVISION:
            raise DirsnapParseError(
                f"Unsupported {SNAPSHOT_TOOL_REVISION} {revision} "
                f"(newest supported: {TOOL_REVISION})"
            )

        count = _parse_uint(data[SNAPSHOT_ENTRY_COUNT], SNAPSHOT_ENTRY_COUNT)

        raw_entries = data[SNAPSHOT_ENTRIES]
        if not isinstance(raw_entries, list):
            raise DirsnapParseError(f"{SNAPSHOT_ENTRIES} is not a list")

        entries = {
            _entry_from_dict(raw, index) for index, raw in enumerate(raw_entries)
        }
        if len(entries) != count:
            raise DirsnapParseError(
                f"{SNAPSHOT_ENTRY_COUNT} {count} does not match the "
                f"{len(entries)} distinct entries present"
            )

        _log_debug("Decoded snapshot %s with %d entries", timestamp, count)
        return cls(timestamp, entries, tool_revision=revision)


def _parse_uint(value: Any, name: str) -> int:
    """
    Validate that ``value`` is a non-negative integer.

    :param value: The value to check.
    :param name: The name of the value for error messages.
    :returns: ``value``
    :rtype: ``int``
    """
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise DirsnapParseError(f"Invalid {name} value: {value!r}")
    return value


def _entry_from_dict(raw: Any, index: int) -> Entry:
    """
    Decode one persisted entry.

    :param raw: The decoded JSON object for the entry.
    :param index: The position of the entry, for error messages.
    :returns: The decoded ``Entry``.
    :rtype: ``Entry``
    """
    if not isinstance(raw, dict):
        raise DirsnapParseError(f"Entry {index} is not a JSON object")
    try:
        kind = EntryKind(raw[ENTRY_TYPE])
    except KeyError as err:
        raise DirsnapParseError(f"Entry {index} has no '{ENTRY_TYPE}'") from err
    except ValueError as err:
        raise DirsnapParseError(
            f"Entry {index} has unknown {ENTRY_TYPE} {raw[ENTRY_TYPE]!r}"
        ) from err

    path = raw.get(ENTRY_PATH)
    if not isinstance(path, str):
        raise DirsnapParseError(f"Entry {index} has invalid {ENTRY_PATH}: {path!r}")

    size = _parse_uint(raw.get(ENTRY_OCTETS, 0), f"{ENTRY_OCTETS} for entry {index}")
    return Entry(kind, path, size)


__all__ = [
    "Snapshot",
    "SNAPSHOT_DATETIME",
    "SNAPSHOT_TOOL_REVISION",
    "SNAPSHOT_ENTRY_COUNT",
    "SNAPSHOT_ENTRIES",
]
