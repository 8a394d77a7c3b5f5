# Copyright Red Hat
#
# tests/test_progress.py - Progress and TermControl tests
#
# This file is part of the dirsnap project.
#
# SPDX-License-Identifier: Apache-2.0
import unittest
from typing import Optional
from unittest.mock import MagicMock, patch
from io import StringIO
import curses
import time

from dirsnap.progress import (
    DEFAULT_FPS,
    NullProgress,
    Progress,
    ProgressBase,
    ProgressFactory,
    SimpleProgress,
    TermControl,
    _flush_with_broken_pipe_guard,
)


def _mock_term_control(stream=None):
    """
    Return a ``TermControl`` stand-in with printable capability strings.
    """
    tc = MagicMock(spec=TermControl)
    tc.CLEAR_EOL = "<CE>"
    tc.UP = "<UP>"
    tc.BOL = "<BOL>"
    tc.BOLD = ""
    tc.NORMAL = ""
    tc.GREEN = ""
    tc.CYAN = ""
    tc.HIDE_CURSOR = "<HIDE_CURSOR>"
    tc.SHOW_CURSOR = "<SHOW_CURSOR>"
    tc.columns = 100
    tc.term_stream = stream if stream is not None else StringIO()
    return tc


class TestTermControl(unittest.TestCase):
    def test_term_control_default_stdout(self):
        """Test TermControl when stream is None"""
        tc = TermControl()
        self.assertIsNotNone(tc)

    def test_term_control_no_tty(self):
        """Test TermControl when stream is not a TTY."""
        mock_stream = MagicMock()
        mock_stream.isatty.return_value = False

        tc = TermControl(term_stream=mock_stream)

        # attributes should be empty strings
        self.assertEqual(tc.BOL, "")
        self.assertEqual(tc.GREEN, "")
        self.assertIsNone(tc.columns)

    def test_term_control_curses_error(self):
        """Test TermControl handles curses setup errors gracefully."""
        mock_stream = MagicMock()
        mock_stream.isatty.return_value = True

        with patch("dirsnap.progress.curses") as mock_curses:
            mock_curses.setupterm.side_effect = curses.error("Curses error")

            tc = TermControl(term_stream=mock_stream)
            self.assertEqual(tc.BOL, "")

    def test_term_control_curses_error_color_always(self):
        """Test forced ANSI colors when curses is unavailable."""
        mock_stream = MagicMock()
        mock_stream.isatty.return_value = False

        with patch("dirsnap.progress.curses") as mock_curses:
            mock_curses.setupterm.side_effect = curses.error("Curses error")

            tc = TermControl(term_stream=mock_stream, color="always")
            self.assertEqual(tc.GREEN, "\033[0;32m")


class TestFlushGuard(unittest.TestCase):
    def test_flush_guard_broken_pipe(self):
        """Test broken pipe handling redirects to devnull and exits."""
        mock_stream = MagicMock()
        mock_stream.flush.side_effect = BrokenPipeError()
        mock_stream.fileno.return_value = 10

        with patch("dirsnap.progress.os") as mock_os:
            mock_os.open.return_value = 999
            mock_os.devnull = "/dev/null"
            mock_os.O_WRONLY = 1

            with self.assertRaises(SystemExit):
                _flush_with_broken_pipe_guard(mock_stream)

            mock_os.open.assert_called_with("/dev/null", 1)
            mock_os.dup2.assert_called_with(999, 10)
            mock_os.close.assert_called_with(999)

    def test_flush_guard_no_flush_attr(self):
        """Test flush guard with stream lacking flush method."""
        mock_stream = MagicMock()
        del mock_stream.flush
        # Should not raise
        _flush_with_broken_pipe_guard(mock_stream)


class TestProgressBase(unittest.TestCase):
    def test_bad_child_no_FIXED(self):
        class BadProgress(ProgressBase):
            FIXED = -1

            def __init__(self):
                super().__init__(register=False)
                self.header = "Header"
                self.width = self._calculate_width(width=20)

            def _do_start(self):
                pass

            def _do_progress(self, done: int, message: Optional[str] = None):
                pass

            def _do_end(self, message: Optional[str] = None):
                pass

        with self.assertRaisesRegex(ValueError, r"self\.FIXED must be"):
            BadProgress()

    def test_start_zero_total(self):
        with self.assertRaises(ValueError):
            NullProgress().start(0)

    def test_progress_before_start(self):
        with self.assertRaisesRegex(ValueError, "before start"):
            NullProgress().progress(1)

    def test_progress_out_of_range(self):
        p = NullProgress(register=False)
        p.start(2)
        with self.assertRaises(ValueError):
            p.progress(3)
        with self.assertRaises(ValueError):
            p.progress(-1)

    def test_register_unregister(self):
        p = NullProgress()
        p.start(1)
        self.assertTrue(p.registered)
        p.end()
        self.assertFalse(p.registered)
        self.assertEqual(p.total, 0)


class TestProgress(unittest.TestCase):
    def test_init_missing_capabilities(self):
        """Test error when terminal lacks capabilities."""
        bad_tc = _mock_term_control()
        bad_tc.CLEAR_EOL = ""  # Missing capability

        with self.assertRaisesRegex(ValueError, "Terminal does not support"):
            Progress("H", tc=bad_tc)

    def test_unicode_fallback(self):
        """Test fallback characters on encoding error."""
        mock_stream = MagicMock()
        mock_stream.encoding = "ascii"
        p = Progress("H", tc=_mock_term_control(stream=mock_stream))
        self.assertEqual(p.did, "=")
        self.assertEqual(p.todo, "-")

    def test_lifecycle(self):
        """Test start, progress, and end flow."""
        tc = _mock_term_control()
        stream = tc.term_stream
        p = Progress("Test", tc=tc, width=20, register=False)

        p.start(total=10)
        self.assertEqual(stream.getvalue(), "")

        p.progress(5, "Halfway")
        output = stream.getvalue()
        self.assertIn("<HIDE_CURSOR>", output)
        self.assertIn("Test", output)
        self.assertIn("Halfway", output)

        time.sleep(1 / DEFAULT_FPS)

        stream.truncate(0)
        stream.seek(0)
        p.progress(9, "Nearly Done " + 100 * "X")
        output = stream.getvalue()
        self.assertIn("<UP>", output)
        self.assertIn("Nearly Done", output)
        self.assertIn("...", output)

        stream.truncate(0)
        stream.seek(0)
        p.end("Done!")
        output = stream.getvalue()
        self.assertIn("<SHOW_CURSOR>", output)
        self.assertIn("Done!", output)
        self.assertEqual(p.total, 0)

    def test_cancel(self):
        tc = _mock_term_control()
        p = Progress("Test", tc=tc, width=20, register=False)
        p.start(total=4)
        p.progress(1)
        p.cancel("Cancelled.")
        self.assertIn("Cancelled.", tc.term_stream.getvalue())
        self.assertEqual(p.total, 0)


class TestSimpleProgress(unittest.TestCase):
    def test_lifecycle(self):
        stream = StringIO()
        p = SimpleProgress("Recording", term_stream=stream, width=10, register=False)
        p.start(2)
        p.progress(1, "one")
        self.assertIn("Recording:  50% [=====-----] (one)", stream.getvalue())
        p.end("Finished")
        self.assertIn("Recording: 100% [==========] ()", stream.getvalue())
        self.assertTrue(stream.getvalue().endswith("Finished\n"))


class TestProgressFactory(unittest.TestCase):
    def test_quiet(self):
        self.assertIsInstance(
            ProgressFactory.get_progress("H", quiet=True), NullProgress
        )

    def test_not_a_tty(self):
        stream = StringIO()
        self.assertIsInstance(
            ProgressFactory.get_progress("H", term_stream=stream), SimpleProgress
        )

    def test_tty_with_capabilities(self):
        stream = MagicMock()
        stream.isatty.return_value = True
        stream.encoding = "utf8"
        tc = _mock_term_control(stream=stream)
        self.assertIsInstance(
            ProgressFactory.get_progress("H", term_control=tc), Progress
        )

    def test_tty_without_capabilities(self):
        stream = MagicMock()
        stream.isatty.return_value = True
        tc = _mock_term_control(stream=stream)
        tc.UP = ""
        self.assertIsInstance(
            ProgressFactory.get_progress("H", term_control=tc), SimpleProgress
        )
