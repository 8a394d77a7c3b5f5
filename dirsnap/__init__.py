# Copyright Red Hat
#
# dirsnap/__init__.py - Directory snapshot recorder package initialisation
#
# This file is part of the dirsnap project.
#
# SPDX-License-Identifier: Apache-2.0
"""
Dirsnap top-level package.
"""
from ._dirsnap import *  # noqa: F401, F403
from ._dirsnap import __all__  # noqa: F401

__version__ = "0.1.0"
