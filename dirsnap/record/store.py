# Copyright Red Hat
#
# dirsnap/record/store.py - Directory snapshot recorder persistence
#
# This file is part of the dirsnap project.
#
# SPDX-License-Identifier: Apache-2.0
"""
Snapshot and difference report files.

Snapshots are written as ``record_<DateTime>.json`` and reports as
``analysis_<DateTime>.json``, optionally compressed with lzma (``.xz``) or
zstd (``.zst``).
"""
from typing import Any, Dict, Optional, Tuple
import logging
import json
import lzma
import os

try:
    import zstandard as zstd

    _HAVE_ZSTD = True
except ModuleNotFoundError:
    _HAVE_ZSTD = False

from dirsnap import (
    DirsnapArgumentError,
    DirsnapNotFoundError,
    DirsnapParseError,
    DirsnapPathError,
    DirsnapSystemError,
)

from .engine import DifferenceReport
from .snapshot import Snapshot

_log = logging.getLogger(__name__)

_log_debug = _log.debug
_log_info = _log.info
_log_warn = _log.warning
_log_error = _log.error

#: Snapshot file name prefix
RECORD_PREFIX = "record_"

#: Difference report file name prefix
ANALYSIS_PREFIX = "analysis_"

#: Compression types
_COMPRESSION_EXTENSIONS: Dict[Optional[str], str] = {
    None: "json",
    "lzma": "json.xz",
    "zstd": "json.zst",
}

#: Supported values for the ``compress`` argument
COMPRESSION_TYPES = ("lzma", "zstd")


def _compress_type(compress: Optional[str]) -> Tuple[Any, ...]:
    """
    Validate ``compress`` and return the matching decoder error types.

    :param compress: ``None``, ``"lzma"`` or ``"zstd"``.
    :type compress: ``Optional[str]``
    :returns: A tuple of compression exception classes.
    :rtype: ``Tuple[Exception, ...]``
    """
    if compress is None:
        return ()
    if compress == "lzma":
        return (lzma.LZMAError,)
    if compress == "zstd":
        if not _HAVE_ZSTD:
            raise DirsnapArgumentError(
                "zstd compression requested but zstandard is not available"
            )
        return (zstd.ZstdError,)
    raise DirsnapArgumentError(f"Unknown compression type: {compress}")


def _file_name(prefix: str, timestamp: str, compress: Optional[str]) -> str:
    return f"{prefix}{timestamp}.{_COMPRESSION_EXTENSIONS[compress]}"


def _write_document(
    data: Dict[str, Any],
    prefix: str,
    timestamp: str,
    output_dir: str,
    compress: Optional[str],
) -> str:
    """
    Encode ``data`` as pretty printed JSON and write it to a new file.

    :returns: The path of the file written.
    :rtype: ``str``
    """
    if not os.path.isdir(output_dir):
        raise DirsnapPathError(f"Output directory does not exist: {output_dir}")

    compress_errors = _compress_type(compress)
    path = os.path.join(output_dir, _file_name(prefix, timestamp, compress))
    payload = json.dumps(data, indent=2).encode("utf-8")

    try:
        if compress == "zstd":
            cctx = zstd.ZstdCompressor()
            with open(path, "wb") as fc:
                with cctx.stream_writer(fc) as compressor:
                    compressor.write(payload)
        elif compress == "lzma":
            with lzma.LZMAFile(filename=path, mode="wb") as compressor:
                compressor.write(payload)
        else:
            with open(path, "wb") as fp:
                fp.write(payload)
    except (OSError, *compress_errors) as err:
        _log_error("Error writing %s: %s", path, err)
        raise DirsnapSystemError(f"Could not write {path}: {err}") from err

    _log_debug("Wrote %d bytes (uncompressed) to %s", len(payload), path)
    return path


def save_snapshot(
    snapshot: Snapshot, output_dir: str = ".", compress: Optional[str] = None
) -> str:
    """
    Write ``snapshot`` to ``record_<DateTime>.json`` in ``output_dir``.

    :param snapshot: The snapshot to save.
    :type snapshot: ``Snapshot``
    :param output_dir: The directory to write to.
    :type output_dir: ``str``
    :param compress: Optional compression: ``"lzma"`` or ``"zstd"``.
    :type compress: ``Optional[str]``
    :returns: The path of the file written.
    :rtype: ``str``
    :raises: ``DirsnapPathError`` if ``output_dir`` is not a directory,
             ``DirsnapSystemError`` if the file cannot be written.
    """
    return _write_document(
        snapshot.to_dict(), RECORD_PREFIX, snapshot.timestamp, output_dir, compress
    )


def save_report(
    report: DifferenceReport,
    output_dir: str = ".",
    compress: Optional[str] = None,
    changes_only: bool = False,
) -> str:
    """
    Write ``report`` to ``analysis_<DateTime>.json`` in ``output_dir``.

    :param report: The difference report to save.
    :type report: ``DifferenceReport``
    :param output_dir: The directory to write to.
    :type output_dir: ``str``
    :param compress: Optional compression: ``"lzma"`` or ``"zstd"``.
    :type compress: ``Optional[str]``
    :param changes_only: Omit ``NoChange`` entries.
    :type changes_only: ``bool``
    :returns: The path of the file written.
    :rtype: ``str``
    :raises: ``DirsnapPathError`` if ``output_dir`` is not a directory,
             ``DirsnapSystemError`` if the file cannot be written.
    """
    return _write_document(
        report.to_dict(changes_only=changes_only),
        ANALYSIS_PREFIX,
        report.timestamp,
        output_dir,
        compress,
    )


def _read_bytes(path: str) -> bytes:
    """
    Read the content of ``path``, decompressing ``.xz`` and ``.zst`` files.
    """
    if path.endswith(".zst"):
        compress = "zstd"
    elif path.endswith(".xz"):
        compress = "lzma"
    else:
        compress = None
    compress_errors = _compress_type(compress)

    try:
        if compress == "zstd":
            dctx = zstd.ZstdDecompressor()
            with open(path, "rb") as fp:
                with dctx.stream_reader(fp) as reader:
                    return reader.read()
        if compress == "lzma":
            with lzma.LZMAFile(filename=path, mode="rb") as reader:
                return reader.read()
        with open(path, "rb") as fp:
            return fp.read()
    except FileNotFoundError as err:
        raise DirsnapNotFoundError(f"Snapshot file not found: {path}") from err
    except (EOFError, *compress_errors) as err:
        raise DirsnapParseError(f"Could not decompress {path}: {err}") from err
    except OSError as err:
        raise DirsnapSystemError(f"Could not read {path}: {err}") from err


def load_snapshot(path: str) -> Snapshot:
    """
    Read and validate a snapshot file.

    :param path: The path of a ``record_*.json`` file (optionally ``.xz``
                 or ``.zst`` compressed).
    :type path: ``str``
    :returns: The decoded snapshot.
    :rtype: ``Snapshot``
    :raises: ``DirsnapNotFoundError`` if ``path`` does not exist,
             ``DirsnapParseError`` if it is not a valid snapshot and
             ``DirsnapSystemError`` for other I/O failures.
    """
    raw = _read_bytes(path)
    try:
        data = json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as err:
        raise DirsnapParseError(f"Could not parse {path}: {err}") from err

    try:
        snapshot = Snapshot.from_dict(data)
    except DirsnapParseError as err:
        raise DirsnapParseError(f"Invalid snapshot {path}: {err}") from err

    _log_debug("Loaded snapshot %s from %s", snapshot.timestamp, path)
    return snapshot


__all__ = [
    "ANALYSIS_PREFIX",
    "COMPRESSION_TYPES",
    "RECORD_PREFIX",
    "load_snapshot",
    "save_report",
    "save_snapshot",
]
