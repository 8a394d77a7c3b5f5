# Copyright Red Hat
#
# dirsnap/_dirsnap.py - Directory snapshot recorder global definitions
#
# This file is part of the dirsnap project.
#
# SPDX-License-Identifier: Apache-2.0
"""
Global definitions for the top-level dirsnap package.
"""
from typing import Optional, TextIO, TYPE_CHECKING
from datetime import datetime
import logging
import weakref
import sys

if TYPE_CHECKING:
    from .progress import ProgressBase

_log = logging.getLogger("dirsnap")

_log_debug = _log.debug
_log_info = _log.info
_log_warn = _log.warning
_log_error = _log.error

# Dirsnap debugging subsystem mask
DIRSNAP_DEBUG_COMMAND = 1
DIRSNAP_DEBUG_RECORD = 2
DIRSNAP_DEBUG_DISPATCH = 4
DIRSNAP_DEBUG_DIFF = 8
DIRSNAP_DEBUG_ALL = (
    DIRSNAP_DEBUG_COMMAND
    | DIRSNAP_DEBUG_RECORD
    | DIRSNAP_DEBUG_DISPATCH
    | DIRSNAP_DEBUG_DIFF
)

# Dirsnap debugging subsystem names
DIRSNAP_SUBSYSTEM_COMMAND = "dirsnap.command"
DIRSNAP_SUBSYSTEM_RECORD = "dirsnap.record"
DIRSNAP_SUBSYSTEM_DISPATCH = "dirsnap.dispatch"
DIRSNAP_SUBSYSTEM_DIFF = "dirsnap.diff"

_DEBUG_MASK_TO_SUBSYSTEM = {
    DIRSNAP_DEBUG_COMMAND: DIRSNAP_SUBSYSTEM_COMMAND,
    DIRSNAP_DEBUG_RECORD: DIRSNAP_SUBSYSTEM_RECORD,
    DIRSNAP_DEBUG_DISPATCH: DIRSNAP_SUBSYSTEM_DISPATCH,
    DIRSNAP_DEBUG_DIFF: DIRSNAP_SUBSYSTEM_DIFF,
}

_debug_subsystems = set()

# Registry of active progress instances: a WeakSet so that registration
# does not keep finished progress bars alive.
_active_progress: weakref.WeakSet = weakref.WeakSet()

#: Snapshot format revision written to new snapshots.
TOOL_REVISION = 1

#: Format used for snapshot and report timestamps and file names.
TIMESTAMP_FORMAT = "%Y-%m-%d_%H-%M-%S"

#: Placeholder recorded for paths that cannot be represented as text.
INVALID_PATH = "Invalid path"


def format_timestamp(when: Optional[datetime] = None) -> str:
    """
    Format ``when`` (default: now, local time) as a snapshot timestamp.

    :param when: The time to format.
    :type when: ``Optional[datetime]``
    :returns: A string such as ``2021-11-07_01-47-59``.
    :rtype: ``str``
    """
    when = when or datetime.now()
    return when.strftime(TIMESTAMP_FORMAT)


class SubsystemFilter(logging.Filter):
    """
    Filters DEBUG records based on a set of enabled subsystem names.
    Non-DEBUG records or DEBUG records without a 'subsystem' attribute
    are always passed through.
    """

    def __init__(self, name=""):
        super().__init__(name)
        self.enabled_subsystems = set(_debug_subsystems)

    def filter(self, record):
        if record.levelno != logging.DEBUG:
            return True

        if not hasattr(record, "subsystem"):
            return True

        return record.subsystem in self.enabled_subsystems

    def set_debug_subsystems(self, subsystems):
        """Sets the collection of subsystems to allow."""
        self.enabled_subsystems = set(subsystems)


def get_debug_mask():
    """
    Return the current debug mask for the ``dirsnap`` package.

    :returns: The current debug mask value
    :rtype: int
    """
    enabled_subsystems = set(_debug_subsystems)
    dirsnap_log = logging.getLogger("dirsnap")

    for handler in dirsnap_log.handlers:
        for f in handler.filters:
            if isinstance(f, SubsystemFilter):
                enabled_subsystems.update(f.enabled_subsystems)

    mask_map = {v: k for k, v in _DEBUG_MASK_TO_SUBSYSTEM.items()}
    mask = 0
    for subsystem_name in enabled_subsystems:
        mask |= mask_map.get(subsystem_name, 0)
    return mask


def set_debug_mask(mask):
    """
    Set the debug mask for the ``dirsnap`` package.

    :param mask: the logical OR of the ``DIRSNAP_DEBUG_*``
                 values to log.
    :rtype: None
    """
    # pylint: disable=global-statement
    global _debug_subsystems

    if mask < 0 or mask > DIRSNAP_DEBUG_ALL:
        raise ValueError(f"Invalid dirsnap debug mask: {mask}")

    enabled_subsystems = [
        subsystem_name
        for flag, subsystem_name in _DEBUG_MASK_TO_SUBSYSTEM.items()
        if mask & flag
    ]

    dirsnap_log = logging.getLogger("dirsnap")
    for handler in dirsnap_log.handlers:
        for f in handler.filters:
            if isinstance(f, SubsystemFilter):
                f.set_debug_subsystems(enabled_subsystems)

    _debug_subsystems = set(enabled_subsystems)


def register_progress(progress: "ProgressBase"):
    """Register a progress instance for log coordination."""
    _active_progress.add(progress)
    progress.registered = True


def unregister_progress(progress: "ProgressBase"):
    """Unregister a progress instance."""
    _active_progress.discard(progress)
    progress.registered = False


def notify_log_output(stream: TextIO):
    """
    Notify progress instances that log output occurred on stream.

    Called by ProgressAwareHandler after emitting a record.

    :param stream: The stream that received output.
    :type stream: ``TextIO``
    """
    if stream not in (sys.stdout, sys.stderr):
        return
    for progress in list(_active_progress):
        if hasattr(progress, "reset_position"):
            progress.reset_position()


class ProgressAwareHandler(logging.StreamHandler):
    """
    A logging handler that coordinates with active Progress instances.

    After emitting a log record, notifies any Progress instances writing
    to the same stream so they can avoid erasing the log message.
    """

    def __init__(self, stream: Optional[TextIO] = None, **kwargs):
        super().__init__(stream=stream or sys.stderr, **kwargs)

    def emit(self, record):
        try:
            msg = self.format(record)
            self.stream.write(msg + "\n")
            self.stream.flush()
            notify_log_output(self.stream)
        except Exception:  # pylint: disable=broad-exception-caught
            self.handleError(record)


#
# Dirsnap exception types
#


class DirsnapError(Exception):
    """
    Base class for dirsnap errors.
    """


class DirsnapSystemError(DirsnapError):
    """
    An error when calling the operating system.
    """


class DirsnapNotFoundError(DirsnapError):
    """
    The requested object does not exist.
    """


class DirsnapParseError(DirsnapError):
    """
    An error parsing user input or a persisted snapshot.
    """


class DirsnapPathError(DirsnapError):
    """
    An invalid path was supplied.
    """


class DirsnapArgumentError(DirsnapError):
    """
    An invalid argument was passed to a dirsnap API.
    """


class DirsnapStateError(DirsnapError):
    """
    An object is in the wrong state for the requested operation.
    """


class DirsnapChannelError(DirsnapError):
    """
    A message could not be delivered to the snapshot aggregator.
    """


class DirsnapTimeoutError(DirsnapError):
    """
    Timed out waiting for enumeration results.
    """


__all__ = [
    "DIRSNAP_DEBUG_COMMAND",
    "DIRSNAP_DEBUG_RECORD",
    "DIRSNAP_DEBUG_DISPATCH",
    "DIRSNAP_DEBUG_DIFF",
    "DIRSNAP_DEBUG_ALL",
    "DIRSNAP_SUBSYSTEM_COMMAND",
    "DIRSNAP_SUBSYSTEM_RECORD",
    "DIRSNAP_SUBSYSTEM_DISPATCH",
    "DIRSNAP_SUBSYSTEM_DIFF",
    "TOOL_REVISION",
    "TIMESTAMP_FORMAT",
    "INVALID_PATH",
    "format_timestamp",
    "SubsystemFilter",
    "get_debug_mask",
    "set_debug_mask",
    "register_progress",
    "unregister_progress",
    "notify_log_output",
    "ProgressAwareHandler",
    "DirsnapError",
    "DirsnapSystemError",
    "DirsnapNotFoundError",
    "DirsnapParseError",
    "DirsnapPathError",
    "DirsnapArgumentError",
    "DirsnapStateError",
    "DirsnapChannelError",
    "DirsnapTimeoutError",
]
