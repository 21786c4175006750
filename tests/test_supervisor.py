"""Unit tests for ProcessSupervisor, using short-lived Python children."""

import signal
import sys
import time
import unittest

from dock.cancellation import CancellationToken
from dock.errors import ProcessSpawnError
from dock.process.supervisor import ProcessSupervisor


def child(code):
    return [sys.executable, "-c", code]


SLEEPER = child("import time; time.sleep(30)")


class TestProcessSupervisor(unittest.TestCase):
    """Test spawn / wait / signal / reap."""

    def setUp(self):
        self.token = CancellationToken()
        self.supervisor = ProcessSupervisor(self.token)

    def tearDown(self):
        for handle in self.supervisor.active:
            self.supervisor.terminate(handle, grace=0.5)

    def test_wait_success(self):
        handle = self.supervisor.spawn(child("pass"), name="noop")
        result = self.supervisor.wait(handle)
        self.assertTrue(result.ok)
        self.assertEqual(self.supervisor.active, [])

    def test_wait_failure(self):
        result = self.supervisor.run(child("import sys; sys.exit(3)"))
        self.assertFalse(result.ok)
        self.assertEqual(result.returncode, 3)

    def test_capture_output(self):
        result = self.supervisor.run(child("print('serial=\"ABC\"')"), timeout=10.0, capture_output=True)
        self.assertTrue(result.ok)
        self.assertIn('serial="ABC"', result.output)

    def test_spawn_missing_program(self):
        with self.assertRaises(ProcessSpawnError) as ctx:
            self.supervisor.spawn(["/nonexistent/helper", "-x"])
        self.assertEqual(ctx.exception.command, ["/nonexistent/helper", "-x"])

    def test_wait_with_timeout_expires(self):
        handle = self.supervisor.spawn(SLEEPER)
        result = self.supervisor.wait_with_timeout(handle, 0.3)

        self.assertTrue(result.timed_out)
        self.assertFalse(result.ok)
        self.assertIn(handle, self.supervisor.active)

        stopped = self.supervisor.terminate(handle)
        self.assertEqual(stopped.returncode, -signal.SIGTERM)
        self.assertEqual(self.supervisor.active, [])

    def test_run_terminates_on_timeout(self):
        result = self.supervisor.run(SLEEPER, timeout=0.3)
        self.assertTrue(result.timed_out)
        self.assertEqual(self.supervisor.active, [])

    def test_wait_interrupted_by_cancellation(self):
        handle = self.supervisor.spawn(SLEEPER)
        self.token.cancel(signal.SIGTERM)
        result = self.supervisor.wait_with_timeout(handle, 10.0)
        self.assertTrue(result.cancelled)

    def test_non_cancellable_wait_ignores_latch(self):
        handle = self.supervisor.spawn(child("import time; time.sleep(0.2)"))
        self.token.cancel(signal.SIGTERM)
        result = self.supervisor.wait_with_timeout(handle, 10.0, cancellable=False)
        self.assertTrue(result.ok)

    def test_forward_signal(self):
        handle = self.supervisor.spawn(SLEEPER)
        time.sleep(0.1)
        self.supervisor.forward_signal(signal.SIGTERM)
        result = self.supervisor.wait(handle)
        self.assertEqual(result.returncode, -signal.SIGTERM)

    def test_signal_finished_process(self):
        handle = self.supervisor.spawn(child("pass"))
        self.supervisor.wait(handle)
        self.assertFalse(self.supervisor.signal(handle, signal.SIGTERM))

    def test_reap_collects_unawaited_children(self):
        self.supervisor.spawn(child("pass"))
        self.supervisor.spawn(child("pass"))

        reaped = 0
        deadline = time.monotonic() + 10.0
        while self.supervisor.active and time.monotonic() < deadline:
            reaped += self.supervisor.reap()
            time.sleep(0.05)

        self.assertEqual(reaped, 2)
        self.assertEqual(self.supervisor.active, [])

    def test_reap_leaves_running_children(self):
        handle = self.supervisor.spawn(SLEEPER)
        self.assertEqual(self.supervisor.reap(), 0)
        self.assertEqual(self.supervisor.active, [handle])


if __name__ == "__main__":
    unittest.main()
