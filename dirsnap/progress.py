# Copyright Red Hat
#
# dirsnap/progress.py - Directory snapshot recorder progress indicator
#
# This file is part of the dirsnap project.
#
# SPDX-License-Identifier: Apache-2.0
"""
Terminal control and progress indicator
"""
from typing import List, Optional, TextIO
from datetime import datetime, timedelta
from abc import ABC, abstractmethod
import curses
import sys
import os

from dirsnap import register_progress, unregister_progress

#: Default number of columns if not detected from terminal.
DEFAULT_COLUMNS = 80

#: Minimum width of a progress bar.
PROGRESS_MIN_WIDTH = 10

#: Minimum budget to reserve for status messages
MIN_BUDGET = 10

#: Default width of a progress bar as a fraction of the terminal size.
DEFAULT_WIDTH_FRAC = 0.5

#: Default frames-per-second for terminal redraws
DEFAULT_FPS = 10

#: Microseconds per second
_USECS_PER_SEC = 1000000


class TermControl:
    """
    Terminal control sequences for the current terminal, looked up with
    the curses terminfo interface.

    Each capability attribute holds the control string for that action,
    or the empty string if the terminal does not support it (or is not a
    terminal at all), so that output built from these attributes is
    always safe to print:

        >>> term = TermControl()
        >>> print("Paths " + term.GREEN + "added" + term.NORMAL)

    The terminal width, if known, is stored in ``columns``.
    """

    # Cursor movement:
    BOL: str = ""  #: Move the cursor to the beginning of the line
    UP: str = ""  #: Move the cursor up one line

    # Deletion:
    CLEAR_EOL: str = ""  #: Clear to the end of the line.

    # Output modes:
    BOLD: str = ""  #: Turn on bold mode
    NORMAL: str = ""  #: Turn off all modes

    # Cursor display:
    HIDE_CURSOR: str = ""  #: Make the cursor invisible
    SHOW_CURSOR: str = ""  #: Make the cursor visible

    # Foreground colors:
    BLUE: str = ""  #: Blue foreground color
    GREEN: str = ""  #: Green foreground color
    CYAN: str = ""  #: Cyan foreground color
    RED: str = ""  #: Red foreground color
    YELLOW: str = ""  #: Yellow foreground color
    WHITE: str = ""  #: White foreground color

    # Terminal size:
    columns: Optional[int] = None  #: Terminal width

    _STRING_CAPABILITIES: List[str] = (
        """
    BOL:cr UP:cuu1 CLEAR_EOL:el BOLD:bold NORMAL:sgr0
    HIDE_CURSOR:civis SHOW_CURSOR:cnorm""".split()
    )
    _ANSI_COLORS: List[str] = "BLACK RED GREEN YELLOW BLUE MAGENTA CYAN WHITE".split()
    _USED_COLORS = ("BLUE", "GREEN", "CYAN", "RED", "YELLOW", "WHITE")

    def _force_ansi(self):
        ansi_codes = {
            "RED": "\033[0;31m",
            "GREEN": "\033[0;32m",
            "YELLOW": "\033[0;33m",
            "BLUE": "\033[0;34m",
            "CYAN": "\033[0;36m",
            "WHITE": "\033[0;37m",
        }
        for color, code in ansi_codes.items():
            setattr(self, color, code)

        # Work around `less -R` not liking "\033[0m" (ANSI reset)
        setattr(self, "NORMAL", ansi_codes["WHITE"])

    def _init_colors(self):
        """
        Initialize terminal color codes.
        """
        set_fg_ansi = self._tigetstr("setaf")
        if not set_fg_ansi:
            return
        set_fg_ansi = set_fg_ansi.encode("utf8")
        for i, color in enumerate(self._ANSI_COLORS):
            if color in self._USED_COLORS:
                setattr(self, color, curses.tparm(set_fg_ansi, i).decode("utf8") or "")

    def __init__(self, term_stream: Optional[TextIO] = None, color: str = "auto"):
        """
        Initialize terminal capabilities and size information.

        :param term_stream: Output stream to probe for capabilities.
        :type term_stream: ``Optional[TextIO]``
        :param color: A string to control color rendering: "auto", "always", or
                      "never".
        :type color: ``str``
        """
        if term_stream is None:
            term_stream = sys.stdout

        self.term_stream = term_stream

        if color != "always":
            if not hasattr(term_stream, "isatty") or not term_stream.isatty():
                return

        # curses.error cannot be named in an except clause on all builds,
        # so catch broadly and re-raise interruption.
        try:
            curses.setupterm()
        except BaseException as err:  # pylint: disable=broad-exception-caught
            if isinstance(err, (KeyboardInterrupt, SystemExit)):  # pragma: no cover
                raise
            if color == "always":
                self._force_ansi()
            return

        self.columns = curses.tigetnum("cols")

        for capability in self._STRING_CAPABILITIES:
            (attr, cap_name) = capability.split(":")
            setattr(self, attr, self._tigetstr(cap_name) or "")

        if color != "never":
            self._init_colors()

    def _tigetstr(self, cap_name):
        # Strip terminfo padding delays of the form "$<2>".
        cap = curses.tigetstr(cap_name)
        cap = cap.decode(encoding="utf8") if cap else ""
        return cap.split("$", maxsplit=1)[0]


def _flush_with_broken_pipe_guard(stream: TextIO) -> None:
    """
    Handle ``BrokenPipeError`` when attempting to flush output streams.

    :param stream: The stream to flush.
    :type stream: TextIO
    """
    if stream is None or not hasattr(stream, "flush"):
        return
    try:
        stream.flush()
    except BrokenPipeError as err:
        devnull = os.open(os.devnull, os.O_WRONLY)
        try:
            if hasattr(stream, "fileno"):
                os.dup2(devnull, stream.fileno())
        finally:
            os.close(devnull)
        raise SystemExit() from err


class ProgressBase(ABC):
    """
    An abstract progress reporting class.
    """

    FIXED = -1

    def __init__(self, register: bool = True):
        """
        Initialize base progress state.

        :param register: Register this ``ProgressBase`` for log callbacks.
        :type register: ``bool``
        """
        self.total: int = 0
        self.header: Optional[str] = None
        self.term: Optional[TermControl] = None
        self.stream: Optional[TextIO] = None
        self.width: int = -1
        self.first_update: bool = True
        self.registered: bool = False
        self.register: bool = register

    def reset_position(self):
        """Mark progress bar as displaced by external output."""
        self.first_update = True

    def _calculate_width(self, width: Optional[int] = None) -> int:
        """
        Calculate the progress bar width. ``header`` (and ``term``, for
        classes that use it) must be set before calling this method.

        :param width: An optional fixed width in characters. If unset, half
                      of the terminal width remaining after the header and
                      fixed characters is used.
        :type width: ``Optional[int]``
        :returns: The calculated progress bar width in characters.
        :rtype: ``int``
        :raises ``ValueError``: If FIXED is negative or header is unset.
        """
        if self.FIXED < 0:
            raise ValueError(
                f"{self.__class__.__name__}: self.FIXED must be initialised "
                "before calling self._calculate_width()"
            )

        if self.header is None:
            raise ValueError(
                f"{self.__class__.__name__}: self.header must be initialised "
                "before calling self._calculate_width()"
            )

        if width is not None:
            return width

        columns = getattr(self.term, "columns", None) or DEFAULT_COLUMNS
        fixed = self.FIXED + len(self.header)
        return max(PROGRESS_MIN_WIDTH, round((columns - fixed) * DEFAULT_WIDTH_FRAC))

    def start(self, total: int):
        """
        Begin a progress run with the specified ``total``.

        :param total: The total number of expected progress items.
        :type total: ``int``
        """
        if total <= 0:
            raise ValueError("total must be positive.")

        self.total = total

        if self.register:
            register_progress(self)

        self._do_start()

    @abstractmethod
    def _do_start(self):
        """
        Hook invoked when progress begins.
        """

    def _check_in_progress(self, done: int, step: str):
        """
        Validate that progress is active and ``done`` is in range.

        :param done: The number of completed progress items.
        :type done: ``int``
        :param step: The progress step (method name) that is active.
        :type step: ``str``
        """
        theclass = self.__class__.__name__
        if self.total == 0:
            raise ValueError(f"{theclass}.{step}() called before start()")

        if done < 0:
            raise ValueError(f"{theclass}.{step}() done cannot be negative.")

        if done > self.total:
            raise ValueError(f"{theclass}.{step}() done cannot be > total.")

    def progress(self, done: int, message: Optional[str] = None):
        """
        Advance the progress indicator to the specified ``done`` count.

        :param done: The number of completed progress items.
        :type done: ``int``
        :param message: An optional progress message.
        :type message: ``Optional[str]``
        """
        self._check_in_progress(done, "progress")
        self._do_progress(done, message)

    @abstractmethod
    def _do_progress(self, done: int, message: Optional[str] = None):
        """
        Hook for subclasses to update the progress display.
        """

    def end(self, message: Optional[str] = None):
        """
        End the progress run and finalize the display.

        :param message: An optional completion message.
        :type message: ``Optional[str]``
        """
        self._check_in_progress(self.total, "end")
        self.progress(self.total, "")
        self._do_end(message)
        self.total = 0
        if self.registered:
            unregister_progress(self)

    @abstractmethod
    def _do_end(self, message: Optional[str] = None):
        """
        Perform final end-of-progress handling, for both ``end()`` and
        ``cancel()``.
        """

    def cancel(self, message: Optional[str] = None):
        """
        End the progress run with error and finalize the display.

        :param message: An optional error message.
        :type message: ``Optional[str]``
        """
        self._check_in_progress(self.total, "cancel")
        self._do_end(message=message)
        self.total = 0
        if self.registered:
            unregister_progress(self)


class Progress(ProgressBase):
    """
    A 2-line progress bar for terminals, which looks like:

        Header: 20% [███████████░░░░░░░░░░░░░░░░░░░░░░░░░░░░░░░░░░]
                           progress message

    The bar is redrawn in place at most ``DEFAULT_FPS`` times a second.
    """

    BAR = "%s%s%s%s: %3d%% %s[%s%s%s%s]%s\n"  #: Progress bar format string

    FIXED = 9  #: Length of fixed characters in BAR.

    def __init__(
        self,
        header,
        register: bool = True,
        width: Optional[int] = None,
        tc: Optional[TermControl] = None,
    ):
        """
        Initialise a two-line terminal progress renderer.

        :param header: The progress header to display.
        :type header: ``str``
        :param register: Register this ``Progress`` for log callbacks.
        :type register: ``bool``
        :param width: An optional fixed bar width in characters.
        :type width: ``Optional[int]``
        :param tc: A ``TermControl`` for the output stream.
        :type tc: ``Optional[TermControl]``
        :raises ValueError: If terminal lacks required capabilities.
        """
        super().__init__(register=register)

        self.header: Optional[str] = header
        self.term: Optional[TermControl] = tc or TermControl()
        self.stream: Optional[TextIO] = self.term.term_stream

        if not (self.term.CLEAR_EOL and self.term.UP and self.term.BOL):
            raise ValueError("Terminal does not support required control characters.")

        self.width: int = self._calculate_width(width=width)
        columns = self.term.columns or DEFAULT_COLUMNS
        self.budget: int = max(MIN_BUDGET, columns - 10)
        self._interval_us: int = round((1.0 / DEFAULT_FPS) * _USECS_PER_SEC)
        self._last: Optional[datetime] = None

        encoding = getattr(self.stream, "encoding", None)
        try:
            "█░".encode(encoding or "ascii")
            self.did, self.todo = "█", "░"
        except (UnicodeEncodeError, LookupError):
            self.did, self.todo = "=", "-"

    def _do_start(self):
        self.first_update = True
        self._last = datetime.now() - timedelta(microseconds=self._interval_us)

    def _do_progress(self, done: int, message: Optional[str] = None):
        message = message or ""
        percent = float(done) / float(self.total)
        n = int(self.width * percent)

        if self.first_update:
            prefix = self.term.HIDE_CURSOR + self.term.BOL
            self.first_update = False
        else:
            prefix = 2 * (self.term.BOL + self.term.UP + self.term.CLEAR_EOL)

        if len(message) > self.budget:
            message = message[0 : self.budget - 3] + "..."

        now = datetime.now()
        if done != self.total and (
            (now - self._last).total_seconds() * _USECS_PER_SEC < self._interval_us
        ):
            return
        self._last = now

        term = self.term
        bar = self.BAR % (
            term.BOLD,
            term.CYAN,
            self.header,
            term.NORMAL,
            percent * 100,
            term.GREEN,
            term.BOLD,
            self.did * n,
            self.todo * (self.width - n),
            term.NORMAL + term.GREEN,
            term.NORMAL,
        )
        print(prefix + bar + term.CLEAR_EOL + message + "\n", file=self.stream, end="")
        _flush_with_broken_pipe_guard(self.stream)

    def _do_end(self, message: Optional[str] = None):
        print(
            2 * (self.term.BOL + self.term.UP + self.term.CLEAR_EOL)
            + self.term.SHOW_CURSOR
            + self.term.NORMAL,
            file=self.stream,
            end="",
        )
        if message:
            print(message, file=self.stream)
        _flush_with_broken_pipe_guard(self.stream)


class SimpleProgress(ProgressBase):
    """
    A simple progress bar that does not rely on terminal capabilities.
    """

    BAR = "%s: %3d%% [%s%s] (%s)"  #: Progress bar format string
    DID = "="  #: Bar character for completed work.
    TODO = "-"  #: Bar character for uncompleted work.
    FIXED = 12  #: Length of fixed characters in BAR.

    def __init__(
        self,
        header,
        register: bool = True,
        term_stream: Optional[TextIO] = None,
        width: Optional[int] = None,
    ):
        """
        Initialise a new ``SimpleProgress`` object.

        :param header: The progress header to display.
        :type header: ``str``
        :param register: Register this ``SimpleProgress`` for log callbacks.
        :type register: ``bool``
        :param term_stream: The stream to write to.
        :type term_stream: ``Optional[TextIO]``
        :param width: An optional fixed bar width in characters.
        :type width: ``Optional[int]``
        """
        super().__init__(register=register)
        self.header: Optional[str] = header
        self.stream: Optional[TextIO] = term_stream or sys.stdout
        self.width: int = self._calculate_width(width=width)

    def _do_start(self):
        return

    def _do_progress(self, done: int, message: Optional[str] = None):
        message = message or ""

        percent = float(done) / float(self.total)
        n = int(self.width * percent)

        print(
            self.BAR
            % (
                self.header,
                percent * 100,
                self.DID * n,
                self.TODO * (self.width - n),
                message,
            ),
            file=self.stream,
        )
        _flush_with_broken_pipe_guard(self.stream)

    def _do_end(self, message: Optional[str] = None):
        if message:
            print(message, file=self.stream)

        _flush_with_broken_pipe_guard(self.stream)


class NullProgress(ProgressBase):
    """
    A progress class that produces no output.
    """

    def _do_start(self):
        return  # pragma: no cover

    # pylint: disable=unused-argument
    def _do_progress(self, done: int, message: Optional[str] = None):
        return  # pragma: no cover

    # pylint: disable=unused-argument
    def _do_end(self, message: Optional[str] = None):
        return  # pragma: no cover


class ProgressFactory:
    """
    A factory for constructing progress objects.
    """

    @staticmethod
    def get_progress(
        header: str,
        quiet: bool = False,
        term_stream: Optional[TextIO] = None,
        term_control: Optional[TermControl] = None,
        width: Optional[int] = None,
        register: bool = True,
    ) -> ProgressBase:
        """
        Return an appropriate ProgressBase implementation: ``NullProgress``
        if ``quiet`` is set, ``SimpleProgress`` if the output stream is not
        a terminal, and ``Progress`` otherwise.

        :param header: The progress report header.
        :type header: ``str``
        :param quiet: Suppress all output.
        :type quiet: ``bool``
        :param term_stream: An optional ``TextIO`` output object.
                            Defaults to ``sys.stdout`` if unspecified.
        :type term_stream: ``Optional[TextIO]``
        :param term_control: An optional ``TermControl`` object to use
                             for the progress report. Overrides
                             ``term_stream``.
        :type term_control: ``Optional[TermControl]``
        :param width: An optional fixed bar width in characters.
        :type width: ``Optional[int]``
        :param register: Register the new object with the log system for
                         notification callbacks.
        :type register: ``bool``
        :returns: An appropriate progress implementation.
        :rtype: ``ProgressBase``
        """
        if term_control:
            term_stream = term_control.term_stream

        term_stream = term_stream or sys.stdout
        if quiet:
            return NullProgress(register=register)
        if not hasattr(term_stream, "isatty") or not term_stream.isatty():
            return SimpleProgress(
                header, register=register, term_stream=term_stream, width=width
            )
        try:
            return Progress(
                header,
                register=register,
                width=width,
                tc=term_control or TermControl(term_stream=term_stream),
            )
        except ValueError:
            return SimpleProgress(
                header, register=register, term_stream=term_stream, width=width
            )


__all__ = [
    "TermControl",
    "ProgressBase",
    "Progress",
    "SimpleProgress",
    "NullProgress",
    "ProgressFactory",
]
