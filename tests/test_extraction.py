"""Unit tests for copy_tree and wipe_tree."""

import os
import tempfile
import unittest
from pathlib import Path

from dock.errors import ExtractionError
from dock.storage.extraction import copy_tree, wipe_tree


def _snapshot(root):
    """Map of relative path -> file bytes (None for directories)."""
    result = {}
    for dirpath, dirnames, filenames in os.walk(root):
        for name in dirnames:
            result[os.path.relpath(os.path.join(dirpath, name), root)] = None
        for name in filenames:
            path = os.path.join(dirpath, name)
            with open(path, "rb") as fh:
                result[os.path.relpath(path, root)] = fh.read()
    return result


class ExtractionTestCase(unittest.TestCase):

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.base = Path(self.tmp.name)
        self.source = self.base / "mount"
        self.dest = self.base / "session"
        self.source.mkdir()

    def tearDown(self):
        self.tmp.cleanup()

    def _populate(self):
        (self.source / "imu_log.bin").write_bytes(bytes(range(256)) * 10)
        (self.source / "logs").mkdir()
        (self.source / "logs" / "boot.txt").write_text("booted\n")
        (self.source / "logs" / "empty").mkdir()
        (self.source / "config.json").write_text("{}")


class TestCopyTree(ExtractionTestCase):
    """Test copy_tree."""

    def test_copies_isomorphic_tree(self):
        self._populate()
        stats = copy_tree(self.source, self.dest)

        self.assertEqual(_snapshot(self.dest), _snapshot(self.source))
        self.assertEqual(stats.files, 3)
        self.assertEqual(stats.directories, 2)
        self.assertEqual(stats.bytes_copied, 2560 + 7 + 2)

    def test_second_copy_overwrites(self):
        self._populate()
        copy_tree(self.source, self.dest)
        (self.source / "config.json").write_text("{")
        copy_tree(self.source, self.dest)

        self.assertEqual((self.dest / "config.json").read_text(), "{")
        self.assertEqual(_snapshot(self.dest), _snapshot(self.source))

    def test_small_buffer(self):
        self._populate()
        copy_tree(self.source, self.dest, buffer_size=7)
        self.assertEqual(_snapshot(self.dest), _snapshot(self.source))

    def test_empty_tree(self):
        stats = copy_tree(self.source, self.dest)
        self.assertTrue(self.dest.is_dir())
        self.assertEqual(stats.files, 0)
        self.assertEqual(stats.directories, 0)

    def test_symlink_rejected_rest_copied(self):
        self._populate()
        outside = self.base / "outside.txt"
        outside.write_text("secret")
        os.symlink(outside, self.source / "link.txt")

        with self.assertRaises(ExtractionError) as ctx:
            copy_tree(self.source, self.dest)

        self.assertEqual(ctx.exception.rejected, [self.source / "link.txt"])
        self.assertFalse(os.path.lexists(self.dest / "link.txt"))
        self.assertTrue((self.dest / "logs" / "boot.txt").is_file())

    def test_special_file_rejected(self):
        os.mkfifo(self.source / "fifo")
        with self.assertRaises(ExtractionError) as ctx:
            copy_tree(self.source, self.dest)
        self.assertEqual(len(ctx.exception.rejected), 1)

    def test_source_must_be_directory(self):
        with self.assertRaises(ExtractionError):
            copy_tree(self.base / "missing", self.dest)


class TestWipeTree(ExtractionTestCase):
    """Test wipe_tree."""

    def test_removes_descendants_keeps_root(self):
        self._populate()
        stats = wipe_tree(self.source)

        self.assertTrue(self.source.is_dir())
        self.assertEqual(os.listdir(self.source), [])
        self.assertEqual(stats.files, 3)
        self.assertEqual(stats.directories, 2)

    def test_empty_tree_is_noop(self):
        stats = wipe_tree(self.source)
        self.assertTrue(self.source.is_dir())
        self.assertEqual(stats.files, 0)

        # Wiping twice is fine too
        wipe_tree(self.source)
        self.assertTrue(self.source.is_dir())

    def test_symlinks_unlinked_not_followed(self):
        target_dir = self.base / "keep"
        target_dir.mkdir()
        (target_dir / "precious.bin").write_bytes(b"\x01")
        os.symlink(target_dir, self.source / "dirlink")
        os.symlink(target_dir / "precious.bin", self.source / "filelink")

        wipe_tree(self.source)

        self.assertEqual(os.listdir(self.source), [])
        self.assertTrue((target_dir / "precious.bin").is_file())

    def test_missing_root(self):
        with self.assertRaises(ExtractionError):
            wipe_tree(self.base / "missing")

    def test_copy_then_wipe_preserves_data(self):
        self._populate()
        before = _snapshot(self.source)
        copy_tree(self.source, self.dest)
        wipe_tree(self.source)
        self.assertEqual(_snapshot(self.dest), before)


if __name__ == "__main__":
    unittest.main()
