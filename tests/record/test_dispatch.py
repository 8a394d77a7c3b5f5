# Copyright Red Hat
#
# tests/record/test_dispatch.py - Dispatcher, Aggregator and Channel tests.
#
# This file is part of the dirsnap project.
#
# SPDX-License-Identifier: Apache-2.0
import unittest
import tempfile
import threading
import time
import os
from unittest.mock import MagicMock

from dirsnap import (
    DirsnapChannelError,
    DirsnapStateError,
    DirsnapTimeoutError,
    TOOL_REVISION,
)
from dirsnap.record.dispatch import Aggregator, Batch, Channel, Dispatcher, Done
from dirsnap.record.entry import Entry, EntryKind
from dirsnap.record.enumerator import DirectoryEnumerator
from dirsnap.record.options import RecordOptions

from tests import have_root

from ._util import file_entry, make_tree


class TestChannel(unittest.TestCase):
    def test_send_receive(self):
        channel = Channel()
        channel.send(Done())
        self.assertIsInstance(channel.receive(), Done)

    def test_send_after_close(self):
        channel = Channel()
        channel.close()
        self.assertTrue(channel.closed)
        with self.assertRaises(DirsnapChannelError):
            channel.send(Batch("/x"))

    def test_receive_timeout(self):
        channel = Channel()
        with self.assertRaises(DirsnapTimeoutError):
            channel.receive(timeout=0.01)


class TestAggregator(unittest.TestCase):
    def test_zero_jobs_finalises_immediately(self):
        channel = Channel()
        aggregator = Aggregator(0, channel, RecordOptions(quiet=True))
        snapshot = aggregator.run()
        self.assertEqual(snapshot.entry_count, 0)
        self.assertEqual(snapshot.tool_revision, TOOL_REVISION)
        self.assertTrue(channel.closed)

    def test_negative_jobs(self):
        with self.assertRaises(ValueError):
            Aggregator(-1, Channel())

    def test_deduplicates_batches(self):
        channel = Channel()
        shared = file_entry("/a/x", 1)
        channel.send(Batch("/a", (shared, file_entry("/a/y", 2))))
        channel.send(Batch("/b", (shared,)))
        aggregator = Aggregator(2, channel, RecordOptions(quiet=True))
        snapshot = aggregator.run()
        self.assertEqual(snapshot.entry_count, 2)
        self.assertEqual(len(snapshot.entries), snapshot.entry_count)
        self.assertEqual(aggregator.completed, 2)

    def test_records_failed_paths(self):
        channel = Channel()
        channel.send(Batch("/denied", (), PermissionError(13, "denied")))
        aggregator = Aggregator(1, channel, RecordOptions(quiet=True))
        snapshot = aggregator.run()
        self.assertEqual(snapshot.entry_count, 0)
        self.assertEqual(aggregator.failed_paths, ["/denied"])

    def test_run_twice_raises(self):
        aggregator = Aggregator(0, Channel(), RecordOptions(quiet=True))
        aggregator.run()
        with self.assertRaises(DirsnapStateError):
            aggregator.run()

    def test_done_before_all_batches(self):
        channel = Channel()
        channel.send(Batch("/a", (file_entry("/a/x", 1),)))
        channel.send(Done())
        aggregator = Aggregator(3, channel, RecordOptions(quiet=True))
        with self.assertLogs("dirsnap.record.dispatch", level="WARNING") as cm:
            snapshot = aggregator.run()
        self.assertEqual(snapshot.entry_count, 1)
        self.assertEqual(aggregator.completed, 1)
        self.assertTrue(any("2 of 3 jobs" in line for line in cm.output))

    def test_timeout(self):
        channel = Channel()
        aggregator = Aggregator(1, channel, RecordOptions(quiet=True, timeout=0.01))
        with self.assertRaises(DirsnapTimeoutError):
            aggregator.run()
        self.assertTrue(channel.closed)

    def test_trace_logs_progress(self):
        channel = Channel()
        channel.send(Batch("/a"))
        aggregator = Aggregator(1, channel, RecordOptions(quiet=True, trace=True))
        with self.assertLogs("dirsnap.record.dispatch", level="INFO") as cm:
            aggregator.run()
        self.assertTrue(any("1 out of 1 jobs done" in line for line in cm.output))


class TestDispatcher(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.root = self._tmp.name
        make_tree(
            self.root,
            files={
                "one/a": b"a",
                "one/b": b"bb",
                "two/c": b"ccc",
                "three/d": b"dddd",
            },
            dirs=["one/sub"],
        )
        self.targets = [
            os.path.join(self.root, "one"),
            os.path.join(self.root, "two"),
            os.path.join(self.root, "three"),
        ]

    def tearDown(self):
        self._tmp.cleanup()

    def test_dispatch_parallel(self):
        snapshot = Dispatcher(RecordOptions(quiet=True)).dispatch(self.targets)
        self.assertEqual(snapshot.entry_count, 5)
        self.assertIn(
            Entry(EntryKind.FILE, os.path.join(self.root, "two", "c"), 3), snapshot
        )
        self.assertIn(
            Entry(EntryKind.DIRECTORY, os.path.join(self.root, "one", "sub"), 0),
            snapshot,
        )

    def test_dispatch_sequential_matches_parallel(self):
        parallel = Dispatcher(RecordOptions(quiet=True)).dispatch(self.targets)
        sequential = Dispatcher(RecordOptions(quiet=True, sequential=True)).dispatch(
            self.targets
        )
        self.assertEqual(parallel, sequential)

    def test_dispatch_no_targets(self):
        snapshot = Dispatcher(RecordOptions(quiet=True)).dispatch([])
        self.assertEqual(snapshot.entry_count, 0)

    def test_dispatch_overlapping_targets(self):
        # The root lists "one"; "one" lists its own children. Repeating a
        # target must not duplicate entries.
        targets = [self.root, os.path.join(self.root, "one"), self.root]
        snapshot = Dispatcher(RecordOptions(quiet=True)).dispatch(targets)
        single = Dispatcher(RecordOptions(quiet=True)).dispatch(
            [self.root, os.path.join(self.root, "one")]
        )
        self.assertEqual(snapshot, single)
        self.assertEqual(snapshot.entry_count, len(snapshot.entries))

    def test_dispatch_missing_target(self):
        missing = os.path.join(self.root, "missing")
        dispatcher = Dispatcher(RecordOptions(quiet=True))
        snapshot = dispatcher.dispatch([missing, self.targets[1]])
        self.assertEqual(snapshot.entry_count, 1)
        self.assertEqual(dispatcher.aggregator.failed_paths, [missing])

    def test_dispatch_failing_unit_still_reports(self):
        enumerator = MagicMock(spec=DirectoryEnumerator)
        enumerator.enumerate.side_effect = RuntimeError("boom")
        dispatcher = Dispatcher(RecordOptions(quiet=True), enumerator=enumerator)
        with self.assertLogs("dirsnap.record.dispatch", level="ERROR"):
            snapshot = dispatcher.dispatch(self.targets)
        self.assertEqual(snapshot.entry_count, 0)
        self.assertEqual(dispatcher.aggregator.completed, len(self.targets))

    def _blocked_dispatcher(self, release, sequential=False):
        def _slow_enumerate(path, on_error=None):
            release.wait(10)
            return []

        enumerator = MagicMock(spec=DirectoryEnumerator)
        enumerator.enumerate.side_effect = _slow_enumerate
        return Dispatcher(
            RecordOptions(quiet=True, timeout=0.05, sequential=sequential),
            enumerator=enumerator,
        )

    def test_dispatch_timeout_does_not_wait_for_jobs(self):
        release = threading.Event()
        dispatcher = self._blocked_dispatcher(release)
        start = time.monotonic()
        try:
            with self.assertRaises(DirsnapTimeoutError):
                dispatcher.dispatch(self.targets)
            elapsed = time.monotonic() - start
            self.assertFalse(release.is_set())
        finally:
            release.set()
        self.assertLess(elapsed, 2.0)

    def test_dispatch_sequential_timeout_does_not_wait_for_jobs(self):
        release = threading.Event()
        dispatcher = self._blocked_dispatcher(release, sequential=True)
        start = time.monotonic()
        try:
            with self.assertRaises(DirsnapTimeoutError):
                dispatcher.dispatch(self.targets)
            elapsed = time.monotonic() - start
            self.assertFalse(release.is_set())
        finally:
            release.set()
        self.assertLess(elapsed, 2.0)

    @unittest.skipIf(have_root(), "root ignores directory permissions")
    def test_dispatch_unreadable_target(self):
        locked = os.path.join(self.root, "locked")
        os.mkdir(locked)
        with open(os.path.join(locked, "hidden"), "wb") as fp:
            fp.write(b"x")
        os.chmod(locked, 0)
        try:
            dispatcher = Dispatcher(RecordOptions(quiet=True))
            snapshot = dispatcher.dispatch([locked, self.targets[1]])
        finally:
            os.chmod(locked, 0o755)
        self.assertEqual(snapshot.entry_count, 1)
        self.assertIn(
            Entry(EntryKind.FILE, os.path.join(self.root, "two", "c"), 3), snapshot
        )
        self.assertEqual(dispatcher.aggregator.failed_paths, [locked])

    def test_dispatch_is_repeatable(self):
        dispatcher = Dispatcher(RecordOptions(quiet=True))
        first = dispatcher.dispatch(self.targets)
        second = dispatcher.dispatch(self.targets)
        self.assertEqual(first, second)
