"""Unit tests for the Session model."""

import tempfile
import unittest
from datetime import datetime
from pathlib import Path

from dock.errors import SessionCollisionError
from dock.pipeline.session import Session, SessionStage


class TestSession(unittest.TestCase):
    """Test Session naming, directory creation and stage progression."""

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.base = Path(self.tmp.name) / "extracted"
        self.now = datetime(2026, 1, 17, 14, 23, 5)

    def tearDown(self):
        self.tmp.cleanup()

    def test_id_and_directory(self):
        session = Session(self.base, now=self.now)
        self.assertEqual(session.id, "20260117_142305")
        self.assertEqual(session.directory, self.base / "20260117_142305")
        self.assertIs(session.stage, SessionStage.CREATED)

    def test_sessions_sort_in_creation_order(self):
        first = Session(self.base, now=datetime(2026, 1, 17, 14, 23, 5))
        second = Session(self.base, now=datetime(2026, 1, 17, 14, 23, 6))
        self.assertLess(first.id, second.id)

    def test_create_directory(self):
        session = Session(self.base, now=self.now)
        session.create_directory()
        self.assertTrue(session.directory.is_dir())

    def test_collision_is_defined_failure(self):
        Session(self.base, now=self.now).create_directory()
        with self.assertRaises(SessionCollisionError):
            Session(self.base, now=self.now).create_directory()

    def test_stage_only_moves_forward(self):
        session = Session(self.base, now=self.now)
        session.advance(SessionStage.MOUNTED)
        session.advance(SessionStage.EXTRACTED)
        with self.assertRaises(ValueError):
            session.advance(SessionStage.MOUNTED)

    def test_abort_is_terminal(self):
        session = Session(self.base, now=self.now)
        session.advance(SessionStage.MOUNTED)
        session.abort("marker timeout")
        self.assertIs(session.stage, SessionStage.ABORTED)
        self.assertEqual(session.reason, "marker timeout")
        with self.assertRaises(ValueError):
            session.advance(SessionStage.EXTRACTED)

        # A second abort keeps the first reason
        session.abort("other")
        self.assertEqual(session.reason, "marker timeout")

    def test_archived_is_terminal(self):
        session = Session(self.base, now=self.now)
        for stage in (SessionStage.MOUNTED, SessionStage.EXTRACTED,
                      SessionStage.DECODED, SessionStage.ARCHIVED):
            session.advance(stage)
        self.assertTrue(session.stage.terminal)
        with self.assertRaises(ValueError):
            session.advance(SessionStage.ABORTED)


if __name__ == "__main__":
    unittest.main()
