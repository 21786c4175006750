"""Firmware update through the external dfu-util flasher.

A pending image is any `*.bin` file in the firmware watch directory. At
most one image is flashed per plug event. Only a confirmed successful flash
consumes the image (it is moved into the archive subdirectory under a
timestamped name); a failed image stays where it is so the failure keeps
being reported.
"""
from __future__ import annotations

import logging
import os
import re
from pathlib import Path
from typing import List, Optional

from ..cancellation import CancellationToken
from ..config import DockConfig
from ..errors import DockError, ProcessSpawnError
from ..models import DeviceIdentity, FirmwarePackage
from ..process.supervisor import ProcessSupervisor
from ..storage.archive import timestamp_name, unique_target
from ..storage.paths import PathLike

logger = logging.getLogger(__name__)

FIRMWARE_SUFFIX = ".bin"
DONE_SUFFIX = ".bin.done"
LISTING_TIMEOUT = 10.0  # seconds

_DFU_ID = re.compile(r"\[([0-9A-Fa-f]{1,4}):([0-9A-Fa-f]{1,4})\]")
_DFU_SERIAL = re.compile(r'serial="([^"]*)"')


def find_pending_firmware(directory: PathLike) -> Optional[FirmwarePackage]:
    """Return the first pending image (by name) in `directory`, if any."""
    directory = Path(directory)
    if not directory.is_dir():
        return None

    candidates: List[Path] = []
    for entry in directory.iterdir():
        name = entry.name
        if not name.endswith(FIRMWARE_SUFFIX) or name.endswith(DONE_SUFFIX):
            continue
        if entry.is_symlink() or not entry.is_file():
            continue
        candidates.append(entry)

    if not candidates:
        return None
    return FirmwarePackage(path=sorted(candidates)[0])


def parse_dfu_serial(listing: str, identity: DeviceIdentity) -> Optional[str]:
    """Find the serial number of our device in `dfu-util -l` output.

    Example line:
        Found Runtime: [0001:0001] ver=0100, devnum=7, cfg=1, intf=0,
        path="1-1", alt=0, name="UNKNOWN", serial="E6616407E3496A2C"
    """
    for line in listing.splitlines():
        ids = _DFU_ID.search(line)
        if ids is None or not identity.matches(ids.group(1), ids.group(2)):
            continue
        serial = _DFU_SERIAL.search(line)
        if serial and serial.group(1) and serial.group(1) != "UNKNOWN":
            return serial.group(1)
    return None


class FirmwareUpdater:
    """Flashes pending firmware images and applies the archival policy."""

    def __init__(self, config: DockConfig, supervisor: ProcessSupervisor,
                 token: Optional[CancellationToken] = None):
        self._config = config
        self._supervisor = supervisor
        self._token = token or CancellationToken()

    def pending(self) -> Optional[FirmwarePackage]:
        return find_pending_firmware(self._config.firmware_dir)

    def update_if_pending(self) -> Optional[bool]:
        """Flash the next pending image, if there is one.

        Returns:
            None if no image was waiting, otherwise whether the flash succeeded.
        """
        package = self.pending()
        if package is None:
            logger.info(f"No firmware pending in {self._config.firmware_dir}")
            return None
        return self.flash(package)

    def flash(self, package: FirmwarePackage) -> bool:
        """Flash one image and archive it on success.

        Returns:
            True if dfu-util reported success.
        """
        config = self._config
        logger.info(f"Flashing firmware {package.name}")

        try:
            if config.dfu_detach and not self._detach():
                logger.error(f"Firmware {package.name} not flashed: detach failed; left in place")
                return False

            result = self._supervisor.run(
                self.build_download_command(package),
                timeout=config.dfu_timeout,
                name="dfu-util",
            )
        except ProcessSpawnError as e:
            logger.error(f"Firmware {package.name} not flashed: {e}; left in place")
            return False

        if not result.ok:
            logger.error(
                f"Firmware {package.name} flash failed (status {result.returncode}, "
                f"timed out: {result.timed_out}); left in place"
            )
            return False

        logger.info(f"Firmware {package.name} flashed")
        self.archive(package)
        return True

    def build_download_command(self, package: FirmwarePackage) -> List[str]:
        config = self._config
        return [
            str(config.dfu_util),
            "-a", str(config.dfu_alt_setting),
            "-t", str(config.dfu_transfer_size),
            "-D", str(package.path),
        ]

    def archive(self, package: FirmwarePackage) -> Optional[Path]:
        """Move a flashed image into the archive, deleting it if that fails.

        Either way the image is gone from the watch directory, so it is never
        flashed a second time.
        """
        archive_dir = self._config.firmware_archive_dir
        try:
            archive_dir.mkdir(parents=True, exist_ok=True)
            target = unique_target(archive_dir, timestamp_name(), FIRMWARE_SUFFIX)
            os.rename(package.path, target)
        except (OSError, DockError) as e:
            logger.error(f"Cannot archive firmware {package.name}: {e}; deleting it")
            try:
                package.path.unlink()
            except FileNotFoundError:
                pass
            except OSError as unlink_error:
                logger.error(f"Cannot delete firmware {package.name}: {unlink_error}")
            return None

        logger.info(f"Firmware {package.name} archived as {target.name}")
        return target

    def _detach(self) -> bool:
        """Switch the device from runtime mode into DFU mode."""
        config = self._config
        identity = config.identity
        listing = self._supervisor.run(
            [str(config.dfu_util), "-l"],
            timeout=LISTING_TIMEOUT,
            name="dfu-util",
            capture_output=True,
        )
        serial = parse_dfu_serial(listing.output or "", identity)
        if serial is None:
            logger.error(f"No DFU device [{identity}] with a serial number found")
            return False

        logger.info(f"Detaching DFU device {serial}")
        result = self._supervisor.run(
            [str(config.dfu_util), "-s", serial, "-e"],
            timeout=LISTING_TIMEOUT,
            name="dfu-util",
        )
        if not result.ok:
            return False
        return self._token.sleep(config.dfu_detach_settle)
