# Copyright Red Hat
#
# dirsnap/record/__init__.py - Directory snapshot recorder package
#
# This file is part of the dirsnap project.
#
# SPDX-License-Identifier: Apache-2.0
"""
Directory snapshot record package.

Provides concurrent recording of the immediate children of a set of
directories and comparison of two recorded snapshots. The main entry points
are ``Recorder`` and ``RecordOptions``.
"""
from .difftypes import DifferenceKind
from .engine import DiffEngine, DifferenceReport, EntryDifference
from .entry import Entry, EntryKind
from .options import RecordOptions
from .recorder import Recorder
from .snapshot import Snapshot
from .store import load_snapshot, save_report, save_snapshot
from .targets import auto_targets, explicit_targets, manual_targets

__all__ = [
    "DiffEngine",
    "DifferenceKind",
    "DifferenceReport",
    "Entry",
    "EntryDifference",
    "EntryKind",
    "Recorder",
    "RecordOptions",
    "Snapshot",
    "auto_targets",
    "explicit_targets",
    "load_snapshot",
    "manual_targets",
    "save_report",
    "save_snapshot",
]
