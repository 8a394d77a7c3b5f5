# Copyright Red Hat
#
# dirsnap/record/enumerator.py - Directory snapshot recorder enumerator
#
# This file is part of the dirsnap project.
#
# SPDX-License-Identifier: Apache-2.0
"""
Directory enumeration: list and classify the immediate children of one
target directory.
"""
from typing import Callable, List, Optional
import logging
import os

from dirsnap import DIRSNAP_SUBSYSTEM_RECORD

from .entry import Entry, make_entry
from .options import RecordOptions

_log = logging.getLogger(__name__)

_log_debug = _log.debug
_log_info = _log.info
_log_warn = _log.warning
_log_error = _log.error


def _log_debug_record(msg, *args, **kwargs):
    """A wrapper for record subsystem debug logs."""
    _log.debug(msg, *args, extra={"subsystem": DIRSNAP_SUBSYSTEM_RECORD}, **kwargs)


#: Callback type for directory-open failures: ``(path, error)``.
ErrorCallback = Callable[[str, OSError], None]


def _describe_error(path: str, err: OSError) -> str:
    """
    Return a short user facing description of a directory-open failure.

    :param path: The directory that could not be opened.
    :type path: ``str``
    :param err: The error raised.
    :type err: ``OSError``
    :returns: A message naming the failure and the path.
    :rtype: ``str``
    """
    if isinstance(err, PermissionError):
        return f"Permission denied: {path}"
    if isinstance(err, FileNotFoundError):
        return f"Not found: {path}"
    if isinstance(err, NotADirectoryError):
        return f"Not a directory: {path}"
    return f"Error {err.strerror or err}: {path}"


class DirectoryEnumerator:
    """
    Lists the immediate children of a directory as ``Entry`` objects.
    """

    def __init__(self, options: Optional[RecordOptions] = None):
        """
        Initialise a new ``DirectoryEnumerator``.

        :param options: Options to control this ``DirectoryEnumerator``.
        :type options: ``RecordOptions``
        """
        self.options: RecordOptions = options or RecordOptions()

    def _log_entry(self, entry: Entry):
        if self.options.log_entries:
            _log_info("%s", entry)
        else:
            _log_debug_record("Recorded %s (%d)", entry, entry.size)

    def enumerate(
        self, path: str, on_error: Optional[ErrorCallback] = None
    ) -> List[Entry]:
        """
        Enumerate the immediate children of ``path``.

        Never raises for file system errors. If the directory cannot be
        opened the error is passed to ``on_error`` and an empty list is
        returned. Children that vanish before they can be examined are
        skipped. Subdirectories are recorded but not descended
        into.

        :param path: The directory to enumerate.
        :type path: ``str``
        :param on_error: Optional callback for directory-open failures.
        :type on_error: ``Optional[ErrorCallback]``
        :returns: The entries found, in directory listing order.
        :rtype: ``List[Entry]``
        """
        _log_debug_record("Enumerating '%s'", path)
        try:
            listing = os.scandir(path)
        except OSError as err:
            _log_info("%s", _describe_error(path, err))
            if on_error:
                on_error(path, err)
            return []

        entries = []
        with listing:
            while True:
                try:
                    dir_entry = next(listing)
                except StopIteration:
                    break
                except OSError as err:
                    _log_info("Error listing %s: %s", path, err)
                    break

                child = dir_entry.path
                if not os.path.lexists(child):
                    _log_debug_record("Skipping vanished entry '%s'", child)
                    continue

                entry = make_entry(child)
                self._log_entry(entry)
                entries.append(entry)

        _log_debug_record("Found %d entries in '%s'", len(entries), path)
        return entries


__all__ = [
    "DirectoryEnumerator",
    "ErrorCallback",
]
