"""Supervision of external helper processes.

The flasher (dfu-util), the mount helper (littlefs-fuse) and the unmount
helper (umount) all go through the same spawn / wait / signal interface.

This module handles:
- Starting helpers and tracking every child until it is collected
- Blocking and bounded waits, both honouring the shutdown latch
- Forwarding termination signals to in-flight helpers
- Non-blocking collection of helpers nobody waits for
"""
from __future__ import annotations

import logging
import os
import signal as signal_module
import subprocess
import time
from typing import List, Optional, Sequence

from ..cancellation import CancellationToken
from ..errors import ProcessSpawnError
from ..models import ProcessResult

logger = logging.getLogger(__name__)

WAIT_SLICE = 0.1        # seconds between cancellation checks
TERMINATE_GRACE = 2.0   # seconds between SIGTERM and SIGKILL


class HelperProcess:
    """Handle for one spawned helper.

    Owned by the ProcessSupervisor until the process has been collected
    by a wait, a terminate or the reaper.
    """

    def __init__(self, name: str, command: Sequence[str], popen: subprocess.Popen):
        self.name = name
        self.command = list(command)
        self.popen = popen
        self.started_at = time.monotonic()

    @property
    def pid(self) -> int:
        return self.popen.pid

    @property
    def returncode(self) -> Optional[int]:
        """Exit status once collected, None while running."""
        return self.popen.returncode

    def poll(self) -> Optional[int]:
        """Collect the exit status without blocking."""
        return self.popen.poll()

    def __repr__(self) -> str:
        return f"HelperProcess(name={self.name!r}, pid={self.pid})"


class ProcessSupervisor:
    """Uniform spawn/wait/signal capability for helper programs.

    Example:
        >>> supervisor = ProcessSupervisor(token)
        >>> handle = supervisor.spawn(["umount", "/mnt/wearable"], name="umount")
        >>> supervisor.wait_with_timeout(handle, 10.0).ok
        True
    """

    def __init__(self, token: Optional[CancellationToken] = None):
        """Initialize supervisor.

        Args:
            token: Shutdown latch checked by bounded waits.
        """
        self._token = token or CancellationToken()
        self._handles: List[HelperProcess] = []

    @property
    def active(self) -> List[HelperProcess]:
        """Helpers spawned and not yet collected."""
        return list(self._handles)

    def spawn(self, command: Sequence[str], name: Optional[str] = None,
              capture_output: bool = False) -> HelperProcess:
        """Start a helper process.

        Args:
            command: Program and arguments.
            name: Label for logging, defaults to the program basename.
            capture_output: Collect stdout as text (for listing commands).

        Returns:
            Handle of the running process.

        Raises:
            ProcessSpawnError: If the program cannot be executed.
        """
        command = [str(part) for part in command]
        name = name or os.path.basename(command[0])
        try:
            popen = subprocess.Popen(
                command,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE if capture_output else None,
                stderr=subprocess.STDOUT if capture_output else None,
                text=capture_output,
            )
        except OSError as e:
            raise ProcessSpawnError(f"Cannot start {name}: {e}", command) from e

        handle = HelperProcess(name, command, popen)
        self._handles.append(handle)
        logger.debug(f"Spawned {name} (pid {handle.pid}): {' '.join(command)}")
        return handle

    def wait(self, handle: HelperProcess) -> ProcessResult:
        """Block until the helper exits.

        Not interrupted by the shutdown latch: the forwarded signal is what
        makes the child exit, and the exit status is still collected.
        """
        output = self._communicate(handle, timeout=None)
        return self._collect(handle, output)

    def wait_with_timeout(self, handle: HelperProcess, timeout: float,
                          cancellable: bool = True) -> ProcessResult:
        """Wait at most `timeout` seconds for the helper to exit.

        Checks the shutdown latch every WAIT_SLICE seconds unless
        `cancellable` is False (teardown waits that must finish during
        shutdown). On timeout or cancellation the helper keeps running and
        stays tracked; callers decide whether to signal or terminate it.

        Returns:
            ProcessResult; `timed_out`/`cancelled` set if it did not exit.
        """
        deadline = time.monotonic() + timeout
        while True:
            remaining = deadline - time.monotonic()
            try:
                output = self._communicate(handle, timeout=max(0.0, min(WAIT_SLICE, remaining)))
                return self._collect(handle, output)
            except subprocess.TimeoutExpired:
                pass

            if cancellable and self._token.cancelled:
                logger.info(f"Wait for {handle.name} (pid {handle.pid}) interrupted by shutdown")
                return ProcessResult(returncode=None, cancelled=True)
            if time.monotonic() >= deadline:
                logger.warning(f"{handle.name} (pid {handle.pid}) still running after {timeout:.1f}s")
                return ProcessResult(returncode=None, timed_out=True)

    def run(self, command: Sequence[str], timeout: Optional[float] = None,
            name: Optional[str] = None, capture_output: bool = False,
            cancellable: bool = True) -> ProcessResult:
        """Spawn a helper and wait for it, terminating it if the wait gives up."""
        handle = self.spawn(command, name=name, capture_output=capture_output)
        if timeout is None:
            return self.wait(handle)

        result = self.wait_with_timeout(handle, timeout, cancellable=cancellable)
        if result.timed_out or result.cancelled:
            self.terminate(handle)
        return result

    def signal(self, handle: HelperProcess, sig: int) -> bool:
        """Send a signal to a running helper.

        Returns:
            True if the signal was delivered.
        """
        if handle.returncode is not None:
            return False
        try:
            handle.popen.send_signal(sig)
            return True
        except ProcessLookupError:
            return False

    def forward_signal(self, sig: int) -> None:
        """Relay a termination signal to every tracked helper.

        Called from the daemon's signal handler: only reads the handle list
        and calls os.kill, so that helpers such as the mount helper can
        release the device before the daemon exits.
        """
        for handle in tuple(self._handles):
            if handle.popen.returncode is None:
                try:
                    os.kill(handle.pid, sig)
                except (ProcessLookupError, PermissionError):
                    pass

    def terminate(self, handle: HelperProcess, grace: float = TERMINATE_GRACE) -> ProcessResult:
        """Stop a helper: SIGTERM, then SIGKILL after `grace` seconds."""
        if self.signal(handle, signal_module.SIGTERM):
            logger.info(f"Sent SIGTERM to {handle.name} (pid {handle.pid})")
        try:
            output = self._communicate(handle, timeout=grace)
        except subprocess.TimeoutExpired:
            logger.warning(f"{handle.name} (pid {handle.pid}) ignored SIGTERM, killing")
            handle.popen.kill()
            output = self._communicate(handle, timeout=None)
        return self._collect(handle, output)

    def reap(self) -> int:
        """Collect helpers that exited without anyone waiting on them.

        Non-blocking; runs on every monitor tick so finished children never
        linger as zombies.

        Returns:
            Number of helpers collected.
        """
        reaped = 0
        for handle in list(self._handles):
            if handle.poll() is not None:
                logger.debug(f"Reaped {handle.name} (pid {handle.pid}, status {handle.returncode})")
                self._forget(handle)
                reaped += 1
        return reaped

    # Internal methods

    def _communicate(self, handle: HelperProcess, timeout: Optional[float]) -> Optional[str]:
        """Wait for exit, draining captured output so the pipe never fills."""
        if handle.popen.stdout is None:
            handle.popen.wait(timeout=timeout)
            return None
        stdout, _ = handle.popen.communicate(timeout=timeout)
        return stdout

    def _collect(self, handle: HelperProcess, output: Optional[str]) -> ProcessResult:
        self._forget(handle)
        returncode = handle.returncode
        if returncode is None or returncode != 0:
            logger.warning(f"{handle.name} (pid {handle.pid}) exited with status {returncode}")
        else:
            logger.debug(f"{handle.name} (pid {handle.pid}) exited cleanly")
        return ProcessResult(returncode=returncode, output=output)

    def _forget(self, handle: HelperProcess) -> None:
        if handle in self._handles:
            self._handles.remove(handle)
