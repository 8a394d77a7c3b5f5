# Copyright Red Hat
#
# dirsnap/record/targets.py - Directory snapshot recorder target selection
#
# This file is part of the dirsnap project.
#
# SPDX-License-Identifier: Apache-2.0
"""
Selection of the directories to record: a built-in list of well known
system and user locations, or a user supplied ``folders.json`` file.
"""
from typing import Iterable, List, Mapping, Optional, Set, Tuple
import logging
import json
import sys
import os

from dirsnap import DirsnapNotFoundError, DirsnapParseError, DirsnapSystemError

_log = logging.getLogger(__name__)

_log_debug = _log.debug
_log_info = _log.info
_log_warn = _log.warning
_log_error = _log.error

#: Default manual target list file
DEFAULT_FOLDERS_FILE = "folders.json"

#: Key holding the directory list in a folders file
FOLDERS_KEY = "folders"

# Each auto target is (environment variable or None, path suffix).
_WINDOWS_TARGETS: Tuple[Tuple[str, str], ...] = (
    ("SYSTEMDRIVE", "\\"),
    ("ProgramData", ""),
    ("ProgramFiles", ""),
    ("ProgramFiles(x86)", ""),
    ("USERPROFILE", ""),
    ("APPDATA", ""),
    ("LOCALAPPDATA", ""),
    ("USERPROFILE", "\\AppData\\LocalLow"),
)

_POSIX_SYSTEM_TARGETS: Tuple[str, ...] = (
    "/",
    "/etc",
    "/opt",
    "/usr/local",
    "/usr/local/bin",
    "/var/lib",
)

# (environment variable, fallback relative to $HOME)
_POSIX_USER_TARGETS: Tuple[Tuple[str, Optional[str]], ...] = (
    ("HOME", None),
    ("XDG_CONFIG_HOME", ".config"),
    ("XDG_DATA_HOME", ".local/share"),
    ("XDG_CACHE_HOME", ".cache"),
)


def _windows_targets(environ: Mapping[str, str]) -> Set[str]:
    targets = set()
    for var, suffix in _WINDOWS_TARGETS:
        value = environ.get(var)
        if not value:
            _log_warn("Environment variable %s is not set: skipping", var)
            continue
        targets.add(value + suffix)
    return targets


def _posix_targets(environ: Mapping[str, str]) -> Set[str]:
    targets = set(_POSIX_SYSTEM_TARGETS)
    home = environ.get("HOME")
    for var, fallback in _POSIX_USER_TARGETS:
        value = environ.get(var)
        if not value and fallback and home:
            value = os.path.join(home, fallback)
        if not value:
            _log_warn("Environment variable %s is not set: skipping", var)
            continue
        targets.add(value)
    if home:
        targets.add(os.path.join(home, ".local/bin"))
    return targets


def auto_targets(
    environ: Optional[Mapping[str, str]] = None, platform: Optional[str] = None
) -> Set[str]:
    """
    Return the built-in set of directories to record for this platform.

    :param environ: The environment to resolve locations from (default:
                    ``os.environ``).
    :type environ: ``Optional[Mapping[str, str]]``
    :param platform: The platform name (default: ``sys.platform``).
    :type platform: ``Optional[str]``
    :returns: A set of directory paths.
    :rtype: ``Set[str]``
    """
    environ = os.environ if environ is None else environ
    platform = platform or sys.platform
    if platform.startswith("win"):
        targets = _windows_targets(environ)
    else:
        targets = _posix_targets(environ)
    _log_debug("Auto targets for %s: %s", platform, ", ".join(sorted(targets)))
    return targets


def _normalize_targets(folders: Iterable[str]) -> Set[str]:
    return {os.path.abspath(os.path.expanduser(folder)) for folder in folders}


def manual_targets(path: str = DEFAULT_FOLDERS_FILE) -> Set[str]:
    """
    Read the set of directories to record from a JSON file of the form
    ``{"folders": ["/path/one", "~/path/two"]}``.

    :param path: The folders file to read.
    :type path: ``str``
    :returns: A set of absolute directory paths, possibly empty.
    :rtype: ``Set[str]``
    :raises: ``DirsnapNotFoundError`` if ``path`` does not exist,
             ``DirsnapParseError`` if it is malformed.
    """
    try:
        with open(path, "r", encoding="utf8") as fp:
            data = json.load(fp)
    except FileNotFoundError as err:
        raise DirsnapNotFoundError(f"Folders file not found: {path}") from err
    except (json.JSONDecodeError, UnicodeDecodeError) as err:
        raise DirsnapParseError(f"Could not parse folders file {path}: {err}") from err
    except OSError as err:
        raise DirsnapSystemError(f"Could not read folders file {path}: {err}") from err

    if not isinstance(data, dict) or FOLDERS_KEY not in data:
        raise DirsnapParseError(f"Folders file {path} has no '{FOLDERS_KEY}' list")

    folders: List[str] = data[FOLDERS_KEY]
    if not isinstance(folders, list):
        raise DirsnapParseError(f"'{FOLDERS_KEY}' in {path} is not a list")

    for folder in folders:
        if not isinstance(folder, str):
            raise DirsnapParseError(
                f"Invalid folder in {path}: {folder!r} is not a string"
            )

    targets = _normalize_targets(folders)
    _log_debug("Read %d manual targets from %s", len(targets), path)
    return targets


def explicit_targets(paths: Iterable[str]) -> Set[str]:
    """
    Normalize a list of directories given on the command line.

    :param paths: The directories to record.
    :type paths: ``Iterable[str]``
    :returns: A set of absolute directory paths.
    :rtype: ``Set[str]``
    """
    return _normalize_targets(paths)


__all__ = [
    "DEFAULT_FOLDERS_FILE",
    "auto_targets",
    "explicit_targets",
    "manual_targets",
]
