# Copyright Red Hat
#
# dirsnap/record/recorder.py - Directory snapshot recorder
#
# This file is part of the dirsnap project.
#
# SPDX-License-Identifier: Apache-2.0
"""
Top-level record interface.
"""
from typing import Iterable, List, Optional
import logging

from dirsnap.progress import TermControl

from .dispatch import Dispatcher
from .engine import DiffEngine, DifferenceReport
from .enumerator import DirectoryEnumerator
from .options import RecordOptions
from .snapshot import Snapshot

_log = logging.getLogger(__name__)

_log_debug = _log.debug
_log_info = _log.info
_log_warn = _log.warning
_log_error = _log.error


class Recorder:
    """
    Top-level interface for recording and comparing directory snapshots.
    """

    def __init__(
        self,
        options: Optional[RecordOptions] = None,
        color: str = "auto",
        term_control: Optional[TermControl] = None,
    ):
        """
        Initialise a new ``Recorder``.

        :param options: Options to control this ``Recorder`` instance.
        :type options: ``RecordOptions``
        :param color: A string to control color rendering: "auto",
                      "always", or "never".
        :type color: ``str``
        :param term_control: An optional ``TermControl`` instance to use for
                             formatting. The supplied instance overrides any
                             ``color`` argument if set.
        :type term_control: ``Optional[TermControl]``
        """
        self.options: RecordOptions = options or RecordOptions()
        self.dispatcher: Dispatcher = Dispatcher(
            self.options, DirectoryEnumerator(self.options)
        )
        self.diff_engine: DiffEngine = DiffEngine()
        self._term_control: Optional[TermControl] = term_control or TermControl(
            color=color
        )
        #: Directories that could not be opened during the last ``record()``
        self.failed_paths: List[str] = []

    def record(self, paths: Iterable[str]) -> Snapshot:
        """
        Record a snapshot of the immediate children of ``paths``.

        :param paths: The directories to record.
        :type paths: ``Iterable[str]``
        :returns: The new snapshot.
        :rtype: ``Snapshot``
        """
        paths = sorted(set(paths))
        _log_debug("Recording %d directories with options:\n%s", len(paths), self.options)
        snapshot = self.dispatcher.dispatch(paths)
        self.failed_paths = list(self.dispatcher.aggregator.failed_paths)
        if self.failed_paths:
            _log_warn(
                "Could not read %d of %d directories", len(self.failed_paths), len(paths)
            )
        return snapshot

    def compare(
        self, before: Snapshot, after: Snapshot, reorder: bool = True
    ) -> DifferenceReport:
        """
        Compare two snapshots.

        :param before: The older snapshot.
        :type before: ``Snapshot``
        :param after: The newer snapshot.
        :type after: ``Snapshot``
        :param reorder: Swap the snapshots if ``before`` is newer than
                        ``after``.
        :type reorder: ``bool``
        :returns: The difference report.
        :rtype: ``DifferenceReport``
        """
        if reorder and before.timestamp > after.timestamp:
            _log_info(
                "Comparing snapshots oldest first: %s before %s",
                after.timestamp,
                before.timestamp,
            )
            before, after = after, before
        return self.diff_engine.compute_diff(
            before, after, quiet=self.options.quiet, term_control=self._term_control
        )


__all__ = [
    "Recorder",
]
