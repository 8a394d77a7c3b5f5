# Copyright Red Hat
#
# tests/record/test_store.py - Snapshot and report file tests.
#
# This file is part of the dirsnap project.
#
# SPDX-License-Identifier: Apache-2.0
import unittest
import tempfile
import json
import lzma
import os

from dirsnap import (
    DirsnapArgumentError,
    DirsnapNotFoundError,
    DirsnapParseError,
    DirsnapPathError,
)
from dirsnap.record.difftypes import DifferenceKind
from dirsnap.record.engine import DifferenceReport, EntryDifference
from dirsnap.record.entry import EntryKind
from dirsnap.record.store import load_snapshot, save_report, save_snapshot

from ._util import dir_entry, file_entry, make_snapshot


class TestStore(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.out = self._tmp.name
        self.snapshot = make_snapshot([file_entry("/a", 12), dir_entry("/d")])

    def tearDown(self):
        self._tmp.cleanup()

    def test_save_snapshot_name_and_format(self):
        path = save_snapshot(self.snapshot, output_dir=self.out)
        self.assertEqual(
            os.path.basename(path), "record_2021-11-07_01-47-59.json"
        )
        with open(path, "r", encoding="utf8") as fp:
            text = fp.read()
        self.assertIn('\n  "ToolRevision": 1', text)
        self.assertEqual(json.loads(text), self.snapshot.to_dict())

    def test_save_load_plain(self):
        path = save_snapshot(self.snapshot, output_dir=self.out)
        loaded = load_snapshot(path)
        self.assertEqual(loaded, self.snapshot)
        self.assertEqual(loaded.timestamp, self.snapshot.timestamp)

    def test_save_load_lzma(self):
        path = save_snapshot(self.snapshot, output_dir=self.out, compress="lzma")
        self.assertTrue(path.endswith(".json.xz"))
        self.assertEqual(load_snapshot(path), self.snapshot)

    def test_save_load_zstd(self):
        try:
            import zstandard  # noqa: F401 pylint: disable=import-outside-toplevel,unused-import
        except ModuleNotFoundError:
            self.skipTest("zstandard not available")
        path = save_snapshot(self.snapshot, output_dir=self.out, compress="zstd")
        self.assertTrue(path.endswith(".json.zst"))
        self.assertEqual(load_snapshot(path), self.snapshot)

    def test_unknown_compression(self):
        with self.assertRaises(DirsnapArgumentError):
            save_snapshot(self.snapshot, output_dir=self.out, compress="gzip")

    def test_save_to_missing_dir(self):
        with self.assertRaises(DirsnapPathError):
            save_snapshot(self.snapshot, output_dir=os.path.join(self.out, "nope"))

    def test_load_missing(self):
        with self.assertRaises(DirsnapNotFoundError):
            load_snapshot(os.path.join(self.out, "record_missing.json"))

    def test_load_bad_json(self):
        path = os.path.join(self.out, "record_bad.json")
        with open(path, "w", encoding="utf8") as fp:
            fp.write("{not json")
        with self.assertRaises(DirsnapParseError):
            load_snapshot(path)

    def test_load_bad_document(self):
        path = os.path.join(self.out, "record_bad.json")
        with open(path, "w", encoding="utf8") as fp:
            json.dump({"DateTime": "x"}, fp)
        with self.assertRaisesRegex(DirsnapParseError, "record_bad.json"):
            load_snapshot(path)

    def test_load_corrupt_lzma(self):
        path = os.path.join(self.out, "record_bad.json.xz")
        with open(path, "wb") as fp:
            fp.write(b"definitely not xz data")
        with self.assertRaises(DirsnapParseError):
            load_snapshot(path)

    def test_load_lzma_written_elsewhere(self):
        path = os.path.join(self.out, "record_ext.json.xz")
        with lzma.open(path, "wb") as fp:
            fp.write(self.snapshot.json().encode("utf-8"))
        self.assertEqual(load_snapshot(path), self.snapshot)

    def test_save_report(self):
        report = DifferenceReport(
            "2021-11-08_10-00-00",
            [
                EntryDifference(EntryKind.FILE, DifferenceKind.NEW, "/b", 0, 3),
                EntryDifference(EntryKind.FILE, DifferenceKind.NO_CHANGE, "/a", 0, 1),
            ],
        )
        path = save_report(report, output_dir=self.out)
        self.assertEqual(
            os.path.basename(path), "analysis_2021-11-08_10-00-00.json"
        )
        with open(path, "r", encoding="utf8") as fp:
            data = json.load(fp)
        self.assertEqual(len(data["EntriesDifference"]), 2)

        path = save_report(report, output_dir=self.out, changes_only=True)
        with open(path, "r", encoding="utf8") as fp:
            data = json.load(fp)
        self.assertEqual(
            data["EntriesDifference"],
            [{"Type": "File", "DifferenceType": "New", "Path": "/b", "Octets": 3}],
        )
