# Copyright Red Hat
#
# dirsnap/record/difftypes.py - Directory snapshot recorder diff types
#
# This file is part of the dirsnap project.
#
# SPDX-License-Identifier: Apache-2.0
"""
Snapshot difference types
"""
from enum import Enum


class DifferenceKind(Enum):
    """
    Enum for the classification of an entry when two snapshots are
    compared. The value is the name used in persisted reports.
    """

    NEW = "New"
    REMOVED = "Removed"
    SIZE_CHANGE = "SizeChange"
    NO_CHANGE = "NoChange"
