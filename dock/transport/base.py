"""Abstract base class for the publish transport.

The pipeline only needs three things from a broker connection: start it,
know whether it is up, and fire-and-forget one payload at a time. Keeping
this behind an interface lets tests swap in a recording publisher.
"""
from __future__ import annotations

import time
from abc import ABC, abstractmethod
from typing import Optional

from ..cancellation import CancellationToken

CONNECT_POLL_INTERVAL = 0.1  # seconds


class Publisher(ABC):
    """Long-lived publish session to one fixed topic.

    Publishers are responsible for:
    1. Managing the connection for the lifetime of the daemon
    2. Delivering payloads at the lowest delivery guarantee, not retained
    """

    @abstractmethod
    def start(self) -> None:
        """Begin connecting in the background. Must not block on the broker."""
        pass

    @abstractmethod
    def stop(self) -> None:
        """Close the session. Safe to call multiple times."""
        pass

    @abstractmethod
    def is_connected(self) -> bool:
        pass

    @abstractmethod
    def publish(self, payload: str) -> bool:
        """Send one payload.

        Args:
            payload: Single-line message body.

        Returns:
            True if the transport accepted the message for delivery.
        """
        pass

    def wait_until_connected(self, timeout: float,
                             token: Optional[CancellationToken] = None) -> bool:
        """Poll the connection state for up to `timeout` seconds.

        Returns:
            True once connected; False on timeout or shutdown.
        """
        token = token or CancellationToken()
        deadline = time.monotonic() + timeout
        while not self.is_connected():
            if time.monotonic() >= deadline:
                return False
            if not token.sleep(CONNECT_POLL_INTERVAL):
                return False
        return True
