"""Mounting the wearable's littlefs storage through the FUSE helper.

The mount helper runs in the foreground for as long as the filesystem is
mounted; it is owned by the ProcessSupervisor from mount until unmount.
"""
from __future__ import annotations

import logging
import os
import re
import time
from pathlib import Path
from typing import List, Optional

from ..cancellation import CancellationToken
from ..config import DockConfig
from ..errors import ProcessSpawnError
from ..process.supervisor import HelperProcess, ProcessSupervisor
from .paths import safe_join

logger = logging.getLogger(__name__)

DIRECTORY_MODE = 0o755

_OCTAL_ESCAPE = re.compile(r"\\([0-7]{3})")


def _unescape_mount_field(field: str) -> str:
    r"""Decode the octal escapes the kernel uses in mount tables ('\040' is a space)."""
    return _OCTAL_ESCAPE.sub(lambda m: chr(int(m.group(1), 8)), field)


def read_mount_targets(mounts_file: Path) -> List[str]:
    """List every mount target in a /proc/mounts style table."""
    targets = []
    with open(mounts_file, "r", encoding="utf-8", errors="replace") as fh:
        for line in fh:
            parts = line.split()
            if len(parts) >= 2:
                targets.append(_unescape_mount_field(parts[1]))
    return targets


class MountManager:
    """Prepares, mounts, watches and tears down the device mount point.

    Example:
        >>> mounts = MountManager(config, supervisor, token)
        >>> mounts.prepare_mount_point()
        >>> mounts.clear_stale_mount()
        >>> mounts.mount("/dev/sda")
        >>> if mounts.wait_for_marker():
        ...     copy_tree(config.mount_point, session.directory)
        >>> mounts.unmount()
    """

    def __init__(self, config: DockConfig, supervisor: ProcessSupervisor,
                 token: Optional[CancellationToken] = None):
        self._config = config
        self._supervisor = supervisor
        self._token = token or CancellationToken()
        self._helper: Optional[HelperProcess] = None

    @property
    def mount_point(self) -> Path:
        return self._config.mount_point

    @property
    def helper(self) -> Optional[HelperProcess]:
        """The running mount helper, if any."""
        return self._helper

    def prepare_mount_point(self) -> Path:
        """Make sure the mount point is a directory.

        A stale regular file or symlink occupying the path is removed first.
        """
        mount_point = self.mount_point
        if os.path.lexists(mount_point) and (mount_point.is_symlink() or not mount_point.is_dir()):
            logger.warning(f"Removing stale non-directory entry at {mount_point}")
            mount_point.unlink()
        mount_point.mkdir(mode=DIRECTORY_MODE, parents=True, exist_ok=True)
        return mount_point

    def is_mounted(self) -> bool:
        """Check the mount table for the mount point."""
        wanted = os.path.normpath(str(self.mount_point))
        try:
            targets = read_mount_targets(self._config.mounts_file)
        except OSError as e:
            logger.warning(f"Cannot read {self._config.mounts_file}: {e}")
            return False
        return any(os.path.normpath(target) == wanted for target in targets)

    def clear_stale_mount(self) -> bool:
        """Unmount a leftover mount from an earlier session.

        Returns:
            True if the mount point is free afterwards.
        """
        if not self.is_mounted():
            return True
        logger.warning(f"Stale mount found at {self.mount_point}, unmounting")
        return self.unmount()

    def build_mount_command(self, devnode: str) -> List[str]:
        command = [str(self._config.lfs_binary), "-f"]
        if self._config.read_only_mount:
            command += ["-o", "ro"]
        command += list(self._config.lfs_args)
        command += [devnode, str(self.mount_point)]
        return command

    def mount(self, devnode: str) -> HelperProcess:
        """Start the mount helper for `devnode`.

        Raises:
            ProcessSpawnError: If the helper cannot be started.
        """
        logger.info(f"Mounting {devnode} at {self.mount_point}")
        self._helper = self._supervisor.spawn(self.build_mount_command(devnode), name="lfs")
        return self._helper

    def wait_for_marker(self) -> bool:
        """Wait until the marker confirms the filesystem is live.

        A regular-file marker must be non-empty and keep the same size over
        two consecutive polls; a directory marker only has to exist.

        Returns:
            True once the marker is ready; False on timeout, shutdown, or if
            the mount helper exited first.
        """
        marker = safe_join(self.mount_point, self._config.mount_marker)
        timeout = self._config.marker_timeout
        deadline = time.monotonic() + timeout
        last_size: Optional[int] = None

        while True:
            if self._helper is not None and self._helper.poll() is not None:
                logger.error(
                    f"Mount helper exited with status {self._helper.returncode} "
                    f"before {marker.name} appeared"
                )
                return False

            if marker.is_dir():
                logger.info(f"Mount ready: {marker} present")
                return True
            if marker.is_file():
                size = marker.stat().st_size
                if size > 0 and size == last_size:
                    logger.info(f"Mount ready: {marker} stable at {size} bytes")
                    return True
                last_size = size

            if time.monotonic() >= deadline:
                logger.error(f"Marker {marker} not ready after {timeout:.1f}s")
                return False
            if not self._token.sleep(self._config.marker_poll_interval):
                logger.info("Marker wait interrupted by shutdown")
                return False

    def unmount(self) -> bool:
        """Unmount and wait (bounded) until the mount is really gone.

        Runs `umount`, waits for the mount helper to exit (terminating it if
        it lingers), then polls the mount table. These waits are not cut
        short by shutdown requests, so the device is released on exit too.

        Returns:
            True if the mount point no longer shows up as mounted.
        """
        config = self._config
        logger.info(f"Unmounting {self.mount_point}")
        try:
            result = self._supervisor.run(
                [config.umount_binary, str(self.mount_point)],
                timeout=config.unmount_timeout,
                name="umount",
                cancellable=False,
            )
            if not result.ok:
                logger.warning(f"umount {self.mount_point} failed (status {result.returncode})")
        except ProcessSpawnError as e:
            logger.warning(str(e))

        helper = self._helper
        if helper is not None:
            outcome = self._supervisor.wait_with_timeout(helper, config.unmount_timeout, cancellable=False)
            if outcome.timed_out:
                self._supervisor.terminate(helper)
            self._helper = None

        for _ in range(config.unmount_settle_attempts):
            if not self.is_mounted():
                logger.info(f"{self.mount_point} unmounted")
                return True
            time.sleep(config.unmount_settle_interval)

        logger.error(f"{self.mount_point} still mounted after unmount")
        return False
