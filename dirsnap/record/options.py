# Copyright Red Hat
#
# dirsnap/record/options.py - Directory snapshot recorder options
#
# This file is part of the dirsnap project.
#
# SPDX-License-Identifier: Apache-2.0
"""
Snapshot recording options.
"""
from dataclasses import dataclass, fields
from typing import Optional
from argparse import Namespace
import logging

_log = logging.getLogger(__name__)

_log_debug = _log.debug
_log_info = _log.info
_log_warn = _log.warning
_log_error = _log.error


@dataclass(frozen=True)
class RecordOptions:
    """
    Snapshot recording options, built once per run and passed to the
    dispatcher, aggregator and enumerator.
    """

    #: Enumerate target directories one at a time ("slow mode")
    sequential: bool = False
    #: Log job dispatch and completion
    trace: bool = False
    #: Log every recorded entry
    log_entries: bool = False
    #: Do not output progress or status updates
    quiet: bool = False
    #: Seconds to wait for each enumeration result (``None``: wait forever)
    timeout: Optional[float] = None

    def __post_init__(self):
        if self.timeout is not None and self.timeout <= 0:
            raise ValueError(f"timeout must be positive: {self.timeout}")

    def __str__(self):
        """
        Return a human readable string representation of this
        ``RecordOptions`` instance.

        :returns: A human readable string.
        :rtype: ``str``
        """
        return "\n".join(f"{key}={val}" for key, val in self.__dict__.items())

    @classmethod
    def from_cmd_args(cls, cmd_args: Namespace) -> "RecordOptions":
        """
        Initialise RecordOptions from command line arguments.

        Arguments missing from ``cmd_args`` take their default values.

        :param cmd_args: The command line arguments.
        :type cmd_args: ``Namespace``
        :returns: A new ``RecordOptions`` instance
        :rtype: ``RecordOptions``
        """
        field_names = {f.name for f in fields(cls)}
        kwargs = {
            name: getattr(cmd_args, name)
            for name in field_names
            if getattr(cmd_args, name, None) is not None
        }
        options = cls(**kwargs)
        _log_debug("Initialised RecordOptions from arguments: %s", repr(options))
        return options
