"""Unit tests for CancellationToken."""

import signal
import time
import unittest

from dock.cancellation import CancellationToken


class TestCancellationToken(unittest.TestCase):

    def test_initial_state(self):
        token = CancellationToken()
        self.assertFalse(token.cancelled)
        self.assertEqual(token.signum, 0)

    def test_cancel_records_signal(self):
        token = CancellationToken()
        token.cancel(signal.SIGTERM)
        self.assertTrue(token.cancelled)
        self.assertEqual(token.signum, signal.SIGTERM)

    def test_manual_cancel(self):
        token = CancellationToken()
        token.cancel()
        self.assertEqual(token.signum, -1)

    def test_sleep_full_duration(self):
        token = CancellationToken()
        start = time.monotonic()
        self.assertTrue(token.sleep(0.05))
        self.assertGreaterEqual(time.monotonic() - start, 0.05)

    def test_sleep_returns_early_when_cancelled(self):
        token = CancellationToken()
        token.cancel()
        start = time.monotonic()
        self.assertFalse(token.sleep(5.0))
        self.assertLess(time.monotonic() - start, 1.0)


if __name__ == "__main__":
    unittest.main()
