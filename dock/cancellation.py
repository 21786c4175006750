"""Shutdown latch shared by the event loop and signal handlers."""
from __future__ import annotations

import time

DEFAULT_SLEEP_SLICE = 0.1  # seconds


class CancellationToken:
    """Process-wide cancellation flag.

    The only field written from a signal handler is a plain int holding the
    signal number, so setting it never takes a lock. Every bounded wait in
    the dock polls the token between retries; an in-progress byte copy or
    publish is never interrupted mid-operation.
    """

    def __init__(self):
        self._signum = 0

    def cancel(self, signum: int = -1) -> None:
        """Latch a shutdown request. Safe to call from a signal handler."""
        self._signum = signum

    @property
    def cancelled(self) -> bool:
        return self._signum != 0

    @property
    def signum(self) -> int:
        """Signal that requested shutdown, 0 if none, -1 for a manual cancel."""
        return self._signum

    def sleep(self, seconds: float, slice_: float = DEFAULT_SLEEP_SLICE) -> bool:
        """Sleep up to `seconds`, waking early on cancellation.

        Returns:
            True if the full duration elapsed, False if cancelled.
        """
        deadline = time.monotonic() + seconds
        while not self.cancelled:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return True
            time.sleep(min(slice_, remaining))
        return False
