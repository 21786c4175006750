"""Decode-and-publish stage: every record of a session becomes one message."""
from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import Callable, List, Optional, Sequence

from ..cancellation import CancellationToken
from ..errors import PublishError
from ..models import PublishStats
from ..storage.paths import PathLike, safe_join
from ..transport.base import Publisher
from .decoder import RecordDecoder, iter_file_records
from .formatter import format_record

logger = logging.getLogger(__name__)

DEFAULT_PUBLISH_INTERVAL = 0.001  # seconds between publishes
DEFAULT_CONNECT_TIMEOUT = 5.0  # seconds


def find_log_files(session_dir: PathLike, names: Sequence[str], logs_subdir: str = "logs") -> List[Path]:
    """Locate known log files in a session directory.

    Each name is looked up directly in the session directory and in its
    logs subdirectory, in that order.
    """
    found = []
    for name in names:
        for candidate in (safe_join(session_dir, name), safe_join(session_dir, logs_subdir, name)):
            if candidate.is_file() and not candidate.is_symlink():
                found.append(candidate)
    return found


class RecordPublisher:
    """Decodes log files and publishes one payload per record."""

    def __init__(
        self,
        publisher: Publisher,
        *,
        log_file_names: Sequence[str] = ("imu_log.bin",),
        logs_subdir: str = "logs",
        record_format: str = "imu",
        publish_interval: float = DEFAULT_PUBLISH_INTERVAL,
        connect_timeout: float = DEFAULT_CONNECT_TIMEOUT,
        token: Optional[CancellationToken] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """Initialize record publisher.

        Args:
            publisher: Broker session to publish on.
            log_file_names: File names of the binary logs to decode.
            logs_subdir: Subdirectory that may hold the logs.
            record_format: 'imu' or 'imu_pressure'.
            publish_interval: Pacing delay between two publishes.
            connect_timeout: How long to wait for the broker connection.
            token: Shutdown latch, checked between files.
            sleep: Pacing function (injectable for tests).
        """
        self._publisher = publisher
        self._log_file_names = tuple(log_file_names)
        self._logs_subdir = logs_subdir
        self._record_format = record_format
        self._publish_interval = publish_interval
        self._connect_timeout = connect_timeout
        self._token = token or CancellationToken()
        self._sleep = sleep

    def publish_session(self, session_dir: PathLike) -> PublishStats:
        """Decode and publish every known log file of a session.

        Returns:
            PublishStats summarising the stage.

        Raises:
            PublishError: If there is nothing to publish, the broker is not
                reachable, or any publish was rejected.
        """
        paths = find_log_files(session_dir, self._log_file_names, self._logs_subdir)
        if not paths:
            raise PublishError(f"No log file ({', '.join(self._log_file_names)}) in {session_dir}")

        if not self._publisher.wait_until_connected(self._connect_timeout, self._token):
            raise PublishError(f"Broker not connected after {self._connect_timeout:.1f}s")

        records = 0
        failures = 0
        truncated = 0
        processed: List[Path] = []

        for path in paths:
            if self._token.cancelled:
                break
            decoder = RecordDecoder.for_file(path, self._record_format)
            for record in iter_file_records(path, decoder=decoder):
                payload = format_record(record)
                logger.debug(payload)
                if self._publisher.publish(payload):
                    records += 1
                else:
                    failures += 1
                if self._publish_interval > 0:
                    self._sleep(self._publish_interval)
            truncated += decoder.truncated_bytes
            processed.append(path)

        stats = PublishStats(
            files=len(processed),
            records=records,
            failures=failures,
            truncated_bytes=truncated,
            paths=tuple(processed),
        )
        logger.info(
            f"Published {stats.records} records from {stats.files} file(s) "
            f"({stats.failures} failed, {stats.truncated_bytes} trailing bytes ignored)"
        )

        if stats.failures:
            raise PublishError(f"{stats.failures} publish(es) failed for {session_dir}")
        if len(processed) < len(paths):
            raise PublishError("Publishing interrupted by shutdown")
        return stats
