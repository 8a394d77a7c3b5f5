# Copyright Red Hat
#
# dirsnap/command.py - Directory snapshot recorder command interface
#
# This file is part of the dirsnap project.
#
# SPDX-License-Identifier: Apache-2.0
"""The ``dirsnap.command`` module provides both the dirsnap command line
interface infrastructure, and a simple procedural interface to the
``dirsnap`` library modules.

The procedural interface is used by the ``dirsnap`` command line tool,
and may be used by application programs, or interactively in the
Python shell by users who do not require all the features present
in the dirsnap object API.
"""
from argparse import ArgumentParser
from typing import Iterable, Optional, Union
from os.path import basename
import logging
import sys

from dirsnap import (
    DIRSNAP_DEBUG_COMMAND,
    DIRSNAP_DEBUG_RECORD,
    DIRSNAP_DEBUG_DISPATCH,
    DIRSNAP_DEBUG_DIFF,
    DIRSNAP_DEBUG_ALL,
    DIRSNAP_SUBSYSTEM_COMMAND,
    DirsnapArgumentError,
    SubsystemFilter,
    set_debug_mask,
    ProgressAwareHandler,
    __version__,
)
from dirsnap.record import (
    DifferenceReport,
    Recorder,
    RecordOptions,
    Snapshot,
    auto_targets,
    explicit_targets,
    load_snapshot,
    manual_targets,
    save_report,
    save_snapshot,
)
from dirsnap.record.store import COMPRESSION_TYPES
from dirsnap.record.targets import DEFAULT_FOLDERS_FILE

_log = logging.getLogger(__name__)

_log_debug = _log.debug
_log_info = _log.info
_log_warn = _log.warning
_log_error = _log.error


def _log_debug_command(msg, *args, **kwargs):
    """A wrapper for command subsystem debug logs."""
    _log.debug(msg, *args, extra={"subsystem": DIRSNAP_SUBSYSTEM_COMMAND}, **kwargs)


_DEFAULT_LOG_LEVEL = logging.WARNING
_CONSOLE_HANDLER = None

RECORD_CMD = "record"
DIFF_CMD = "diff"


def record_snapshot(
    paths: Iterable[str], options: Optional[RecordOptions] = None
) -> Snapshot:
    """
    Record a snapshot of the immediate children of each directory in
    ``paths``.

    :param paths: The directories to record.
    :type paths: ``Iterable[str]``
    :param options: Options controlling the recording.
    :type options: ``Optional[RecordOptions]``
    :returns: The new snapshot.
    :rtype: ``Snapshot``
    """
    recorder = Recorder(options)
    return recorder.record(paths)


def diff_snapshots(
    before: Union[Snapshot, str],
    after: Union[Snapshot, str],
    options: Optional[RecordOptions] = None,
    reorder: bool = True,
) -> DifferenceReport:
    """
    Find differences between two snapshots.

    Either argument may be a ``Snapshot`` or the path of a snapshot file.

    :param before: The older snapshot.
    :type before: ``Union[Snapshot, str]``
    :param after: The newer snapshot.
    :type after: ``Union[Snapshot, str]``
    :param options: Options controlling the comparison.
    :type options: ``Optional[RecordOptions]``
    :param reorder: Compare the snapshots oldest first regardless of the
                    argument order.
    :type reorder: ``bool``
    :returns: The difference report.
    :rtype: ``DifferenceReport``
    """
    if isinstance(before, str):
        before = load_snapshot(before)
    if isinstance(after, str):
        after = load_snapshot(after)
    recorder = Recorder(options)
    return recorder.compare(before, after, reorder=reorder)


def _select_targets(cmd_args):
    """
    Return the set of directories selected by ``cmd_args``: explicit
    paths, the manual folders file, or the built-in list.
    """
    if cmd_args.paths:
        if cmd_args.manual:
            raise DirsnapArgumentError("Cannot use --manual with explicit PATHs")
        return explicit_targets(cmd_args.paths)
    if cmd_args.manual:
        _log_info("Manual mode: reading %s", cmd_args.folders)
        return manual_targets(cmd_args.folders)
    _log_info("Auto mode")
    return auto_targets()


def _record_cmd(cmd_args):
    """
    Record snapshot command handler.

    :param cmd_args: Command line arguments for the command
    :returns: integer status code returned from ``main()``
    """
    options = RecordOptions.from_cmd_args(cmd_args)
    targets = _select_targets(cmd_args)
    if not targets:
        if cmd_args.manual:
            _log_error("No folders specified in %s", cmd_args.folders)
        else:
            _log_error("No directories to record")
        return 1

    _log_debug_command("Recording targets: %s", ", ".join(sorted(targets)))
    snapshot = record_snapshot(targets, options)
    path = save_snapshot(
        snapshot, output_dir=cmd_args.output_dir, compress=cmd_args.compress
    )
    print(path)
    return 0


def _diff_cmd(cmd_args):
    """
    Diff snapshots command handler.

    :param cmd_args: Command line arguments for the command
    :returns: integer status code returned from ``main()``
    """
    if cmd_args.json and cmd_args.summary:
        _log_error("Options --json and --summary are mutually exclusive")
        return 1

    options = RecordOptions.from_cmd_args(cmd_args)
    report = diff_snapshots(
        cmd_args.before,
        cmd_args.after,
        options=options,
        reorder=not cmd_args.no_reorder,
    )
    path = save_report(
        report,
        output_dir=cmd_args.output_dir,
        compress=cmd_args.compress,
        changes_only=cmd_args.changes_only,
    )

    if cmd_args.json:
        print(report.json(pretty=True, changes_only=cmd_args.changes_only))
    elif cmd_args.summary:
        print(report.summary())
    else:
        print(path)
    return 0


def setup_logging(cmd_args):
    """
    Set up dirsnap logging.
    """
    # pylint: disable=global-statement
    global _CONSOLE_HANDLER
    level = _DEFAULT_LOG_LEVEL
    if cmd_args.verbose and cmd_args.verbose > 1:
        level = logging.DEBUG
    elif cmd_args.verbose and cmd_args.verbose > 0:
        level = logging.INFO
    elif getattr(cmd_args, "trace", False) or getattr(cmd_args, "log_entries", False):
        level = logging.INFO

    dirsnap_log = logging.getLogger("dirsnap")
    formatter = logging.Formatter("%(levelname)s - %(message)s")
    dirsnap_log.setLevel(level)
    if dirsnap_log.hasHandlers():
        dirsnap_log.handlers.clear()

    # Subsystem log filtering
    _dirsnap_subsystem_filter = SubsystemFilter("dirsnap")

    # Main console handler
    _CONSOLE_HANDLER = ProgressAwareHandler()

    _CONSOLE_HANDLER.setLevel(level)
    _CONSOLE_HANDLER.setFormatter(formatter)
    _CONSOLE_HANDLER.addFilter(_dirsnap_subsystem_filter)

    dirsnap_log.addHandler(_CONSOLE_HANDLER)


def shutdown_logging():
    """
    Shut down dirsnap logging.
    """
    logging.shutdown()


def set_debug(debug_arg):
    """
    Set debugging mask from command line argument.
    """
    if not debug_arg:
        return

    mask_map = {
        "command": DIRSNAP_DEBUG_COMMAND,
        "record": DIRSNAP_DEBUG_RECORD,
        "dispatch": DIRSNAP_DEBUG_DISPATCH,
        "diff": DIRSNAP_DEBUG_DIFF,
        "all": DIRSNAP_DEBUG_ALL,
    }

    mask = 0
    for name in debug_arg.split(","):
        if name not in mask_map:
            raise ValueError(f"Unknown debug option: {name}")
        mask |= mask_map[name]
    set_debug_mask(mask)


def _add_output_args(parser):
    """
    Add arguments controlling output files to ``parser``.
    """
    parser.add_argument(
        "-o",
        "--output-dir",
        metavar="DIR",
        type=str,
        default=".",
        help="The directory to write output files to (default: current directory)",
    )
    parser.add_argument(
        "-z",
        "--compress",
        choices=COMPRESSION_TYPES,
        default=None,
        help="Compress output files",
    )
    parser.add_argument(
        "-q",
        "--quiet",
        action="store_true",
        help="Do not output progress or status updates",
    )


def _add_record_subparser(type_subparser):
    """
    Add subparser for the 'record' command.

    :param type_subparser: Command type subparser
    """
    record_parser = type_subparser.add_parser(
        RECORD_CMD, help="Record a directory snapshot"
    )
    record_parser.add_argument(
        "-m",
        "--manual",
        action="store_true",
        help="Record the directories listed in the folders file",
    )
    record_parser.add_argument(
        "-f",
        "--folders",
        metavar="FILE",
        type=str,
        default=DEFAULT_FOLDERS_FILE,
        help=f"The folders file for --manual (default: {DEFAULT_FOLDERS_FILE})",
    )
    record_parser.add_argument(
        "-s",
        "--slow-mode",
        dest="sequential",
        action="store_true",
        help="Enumerate directories one at a time",
    )
    record_parser.add_argument(
        "-t",
        "--trace",
        action="store_true",
        help="Log job dispatch and completion",
    )
    record_parser.add_argument(
        "-l",
        "--log",
        dest="log_entries",
        action="store_true",
        help="Log every recorded entry",
    )
    record_parser.add_argument(
        "--timeout",
        metavar="SECONDS",
        type=float,
        default=None,
        help="Give up if no directory finishes within SECONDS",
    )
    _add_output_args(record_parser)
    record_parser.add_argument(
        "paths",
        metavar="PATH",
        type=str,
        nargs="*",
        help="A directory to record (default: built-in directory list)",
    )
    record_parser.set_defaults(func=_record_cmd)


def _add_diff_subparser(type_subparser):
    """
    Add subparser for the 'diff' command.

    :param type_subparser: Command type subparser
    """
    diff_parser = type_subparser.add_parser(
        DIFF_CMD, help="Compare two directory snapshots"
    )
    _add_output_args(diff_parser)
    diff_parser.add_argument(
        "--json",
        action="store_true",
        help="Print the difference report as JSON",
    )
    diff_parser.add_argument(
        "--summary",
        action="store_true",
        help="Print a summary of the difference report",
    )
    diff_parser.add_argument(
        "--changes-only",
        action="store_true",
        help="Omit unchanged entries from the report",
    )
    diff_parser.add_argument(
        "--no-reorder",
        action="store_true",
        help="Compare BEFORE to AFTER even if BEFORE is newer",
    )
    diff_parser.add_argument(
        "before",
        metavar="BEFORE",
        type=str,
        help="The older snapshot file",
    )
    diff_parser.add_argument(
        "after",
        metavar="AFTER",
        type=str,
        help="The newer snapshot file",
    )
    diff_parser.set_defaults(func=_diff_cmd)


def main(args):
    """
    Main entry point for dirsnap.
    """
    parser = ArgumentParser(
        description="Directory Snapshot Recorder", prog=basename(args[0])
    )

    # Global arguments
    parser.add_argument(
        "-d",
        "--debug",
        metavar="DEBUGOPTS",
        type=str,
        help="A list of debug options to enable",
    )
    parser.add_argument("-v", "--verbose", help="Enable verbose output", action="count")
    parser.add_argument(
        "-V",
        "--version",
        action="version",
        help="Report the version number of dirsnap",
        version=__version__,
    )
    # Subparser for command type
    type_subparser = parser.add_subparsers(dest="type", help="Command type")

    _add_record_subparser(type_subparser)

    _add_diff_subparser(type_subparser)

    cmd_args = parser.parse_args(args[1:])

    status = 1

    try:
        set_debug(cmd_args.debug)
    except ValueError as err:
        print(err)
        parser.print_help()
        return status

    setup_logging(cmd_args)

    _log_debug_command("Parsed %s", " ".join(args[1:]))

    if "func" not in cmd_args:
        parser.print_help()
        return status

    if cmd_args.debug:
        status = cmd_args.func(cmd_args)
    else:
        try:
            status = cmd_args.func(cmd_args)
        # pylint: disable=broad-except
        except KeyboardInterrupt:  # pragma: no cover
            _log_info("Exiting on user cancel")
        except Exception as err:
            _log_error("Command failed: %s", err)

    shutdown_logging()
    return status


def console_main():
    """
    Console script entry point.
    """
    return main(sys.argv)


# vim: set et ts=4 sw=4 :
