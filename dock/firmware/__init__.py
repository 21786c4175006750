"""Firmware update through dfu-util."""

from .updater import FirmwareUpdater, find_pending_firmware, parse_dfu_serial

__all__ = ["FirmwareUpdater", "find_pending_firmware", "parse_dfu_serial"]
