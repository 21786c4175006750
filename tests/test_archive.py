"""Unit tests for archiving and timestamp naming."""

import tempfile
import unittest
from datetime import datetime
from pathlib import Path
from unittest.mock import patch

from dock.storage.archive import archive_session, timestamp_name, unique_target


class TestTimestampName(unittest.TestCase):
    """Test timestamp_name."""

    def test_format(self):
        self.assertEqual(timestamp_name(datetime(2026, 1, 17, 14, 23, 5)), "20260117_142305")

    def test_now_matches_pattern(self):
        self.assertRegex(timestamp_name(), r"^\d{8}_\d{6}$")

    def test_sorts_chronologically(self):
        earlier = timestamp_name(datetime(2025, 12, 31, 23, 59, 59))
        later = timestamp_name(datetime(2026, 1, 1, 0, 0, 0))
        self.assertLess(earlier, later)


class TestArchive(unittest.TestCase):
    """Test unique_target and archive_session."""

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.base = Path(self.tmp.name)
        self.archive_dir = self.base / "archive"

    def tearDown(self):
        self.tmp.cleanup()

    def test_unique_target_suffixes(self):
        self.archive_dir.mkdir()
        self.assertEqual(unique_target(self.archive_dir, "a", ".bin"), self.archive_dir / "a.bin")
        (self.archive_dir / "a.bin").touch()
        (self.archive_dir / "a_1.bin").touch()
        self.assertEqual(unique_target(self.archive_dir, "a", ".bin"), self.archive_dir / "a_2.bin")

    def test_archive_moves_directory(self):
        session = self.base / "20260117_142305"
        session.mkdir()
        (session / "imu_log.bin").write_bytes(b"\x00" * 16)

        target = archive_session(session, self.archive_dir)

        self.assertEqual(target, self.archive_dir / "20260117_142305")
        self.assertFalse(session.exists())
        self.assertTrue((target / "imu_log.bin").is_file())

    def test_existing_target_leaves_session(self):
        session = self.base / "20260117_142305"
        session.mkdir()
        (self.archive_dir / "20260117_142305").mkdir(parents=True)

        self.assertIsNone(archive_session(session, self.archive_dir))
        self.assertTrue(session.is_dir())

    def test_rename_failure_is_not_raised(self):
        session = self.base / "20260117_142305"
        session.mkdir()
        with patch("dock.storage.archive.os.rename", side_effect=OSError("cross-device link")):
            self.assertIsNone(archive_session(session, self.archive_dir))
        self.assertTrue(session.is_dir())


if __name__ == "__main__":
    unittest.main()
