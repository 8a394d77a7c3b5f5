# Copyright Red Hat
#
# dirsnap/record/entry.py - Directory snapshot recorder entries
#
# This file is part of the dirsnap project.
#
# SPDX-License-Identifier: Apache-2.0
"""
Snapshot entries and entry classification.
"""
from dataclasses import dataclass
from typing import Any, Dict, Tuple
from enum import Enum
import logging
import stat
import os

from dirsnap import DIRSNAP_SUBSYSTEM_RECORD, INVALID_PATH

_log = logging.getLogger(__name__)

_log_debug = _log.debug
_log_info = _log.info
_log_warn = _log.warning
_log_error = _log.error


def _log_debug_record(msg, *args, **kwargs):
    """A wrapper for record subsystem debug logs."""
    _log.debug(msg, *args, extra={"subsystem": DIRSNAP_SUBSYSTEM_RECORD}, **kwargs)


class EntryKind(Enum):
    """
    Enum for the kinds of recorded file system entry. The value is the
    name used in persisted snapshots.
    """

    FILE = "File"
    DIRECTORY = "Directory"
    UNKNOWN = "Unknown"


@dataclass(frozen=True)
class Entry:
    """
    One file system entry observed at recording time.

    Two entries are equal, and hash equally, when kind, path and size are
    all equal: a file whose size changed is a different ``Entry``.
    """

    #: The kind of entry
    kind: EntryKind
    #: Absolute path of the entry, or ``INVALID_PATH``
    path: str
    #: Size in bytes: 0 for directories and unreadable entries
    size: int = 0

    def __str__(self):
        return f"{self.kind.value.upper()}: {self.path}"

    @property
    def key(self) -> Tuple[EntryKind, str]:
        """
        The ``(kind, path)`` pair identifying this entry irrespective of
        its size.

        :returns: A ``(kind, path)`` tuple.
        :rtype: ``Tuple[EntryKind, str]``
        """
        return (self.kind, self.path)

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert this ``Entry`` into its persisted dictionary form. The
        ``"Octets"`` key is omitted for zero sizes.

        :returns: A dictionary suitable for encoding as JSON.
        :rtype: ``Dict[str, Any]``
        """
        out = {"Type": self.kind.value, "Path": self.path}
        if self.size:
            out["Octets"] = self.size
        return out


def classify(path: str) -> Tuple[EntryKind, int]:
    """
    Determine the kind and size of the file system object at ``path``.

    Regular files and directories are recognised by following symbolic
    links; everything else (broken links, devices, sockets, FIFOs and
    objects that vanish or cannot be examined) is ``EntryKind.UNKNOWN``.
    Metadata errors never propagate: they produce a size of 0.

    :param path: The path to classify.
    :type path: ``str``
    :returns: A ``(kind, size)`` tuple.
    :rtype: ``Tuple[EntryKind, int]``
    """
    try:
        st = os.stat(path)
    except (OSError, ValueError) as err:
        _log_debug_record("Could not stat '%s': %s", path, err)
        st = None

    if st is not None and stat.S_ISREG(st.st_mode):
        return (EntryKind.FILE, st.st_size)
    if st is not None and stat.S_ISDIR(st.st_mode):
        return (EntryKind.DIRECTORY, 0)

    try:
        size = os.lstat(path).st_size
    except (OSError, ValueError) as err:
        _log_debug_record("Could not lstat '%s': %s", path, err)
        size = 0
    return (EntryKind.UNKNOWN, size)


def display_path(path: str) -> str:
    """
    Return the absolute form of ``path`` as text, or ``INVALID_PATH`` if
    the path contains bytes that cannot be represented as UTF-8 text.

    :param path: The path to convert.
    :type path: ``str``
    :returns: The displayable absolute path.
    :rtype: ``str``
    """
    try:
        abs_path = os.path.abspath(path)
        abs_path.encode("utf-8")
    except (UnicodeEncodeError, ValueError):
        _log_debug_record("Path %r cannot be displayed", path)
        return INVALID_PATH
    return abs_path


def make_entry(path: str) -> Entry:
    """
    Inspect ``path`` and return a new ``Entry`` describing it.

    :param path: The path of the file system object.
    :type path: ``str``
    :returns: The classified entry.
    :rtype: ``Entry``
    """
    kind, size = classify(path)
    return Entry(kind, display_path(path), size)


__all__ = [
    "Entry",
    "EntryKind",
    "classify",
    "display_path",
    "make_entry",
]
