"""Immutable data models shared across the dock layers.

All models are frozen dataclasses. They are the contract between the
hotplug monitor, the processing pipeline and the helpers it drives.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional, Tuple, Union


def normalize_usb_id(value: Union[str, int, None]) -> Optional[str]:
    """Normalize a USB vendor/product id for comparison.

    udev exposes ids as lower-case hex strings ("0a1b") while dfu-util and
    hand-written configuration may use upper case or integers. Every
    identity comparison goes through this function on both sides.

    Args:
        value: Hex string, integer id, or None.

    Returns:
        Lower-case 4-digit hex string, or None if value is None/empty.
    """
    if value is None:
        return None
    if isinstance(value, int):
        return f"{value:04x}"
    text = value.strip().lower()
    if text.startswith("0x"):
        text = text[2:]
    if not text:
        return None
    return text.zfill(4)


@dataclass(frozen=True)
class DeviceIdentity:
    """Vendor/product pair used as the hotplug and block-device filter.

    Attributes:
        vendor_id: USB idVendor as hex string (e.g. '0001').
        product_id: USB idProduct as hex string (e.g. '0001').
    """
    vendor_id: str
    product_id: str

    def matches(self, vendor_id: Union[str, int, None], product_id: Union[str, int, None]) -> bool:
        """Check whether the given ids describe this device (case-insensitive)."""
        vid = normalize_usb_id(vendor_id)
        pid = normalize_usb_id(product_id)
        if vid is None or pid is None:
            return False
        return vid == normalize_usb_id(self.vendor_id) and pid == normalize_usb_id(self.product_id)

    def __str__(self) -> str:
        return f"{normalize_usb_id(self.vendor_id)}:{normalize_usb_id(self.product_id)}"


class HotplugAction(Enum):
    """Kind of hotplug notification."""
    PRESENT = "add"
    ABSENT = "remove"
    OTHER = "other"

    @classmethod
    def from_udev(cls, action: Optional[str]) -> HotplugAction:
        if action == "add":
            return cls.PRESENT
        if action == "remove":
            return cls.ABSENT
        return cls.OTHER


@dataclass(frozen=True)
class HotplugEvent:
    """One hotplug notification for a USB device.

    Attributes:
        action: PRESENT, ABSENT or OTHER.
        bus_path: sysfs path of the usb_device; stable for one physical
            plug and used to pair a removal with its insertion.
        vendor_id: idVendor attribute, or None (removals often lack it).
        product_id: idProduct attribute, or None.
    """
    action: HotplugAction
    bus_path: str
    vendor_id: Optional[str] = None
    product_id: Optional[str] = None


@dataclass(frozen=True)
class Record:
    """One decoded sensor sample in physical units.

    Attributes:
        timestamp_ms: Device timestamp in milliseconds (uint32).
        acceleration: (x, y, z) acceleration.
        gyroscope: (x, y, z) angular rate.
        pressure_pa: Pressure, present only for the pressure record layout.
    """
    timestamp_ms: int
    acceleration: Tuple[float, float, float]
    gyroscope: Tuple[float, float, float]
    pressure_pa: Optional[float] = None


@dataclass(frozen=True)
class ProcessResult:
    """Outcome of one helper process.

    Attributes:
        returncode: Exit status; negative for death by signal, None if the
            process was still running when the wait gave up.
        timed_out: True if a bounded wait expired before the process exited.
        cancelled: True if the wait was interrupted by a shutdown request.
        output: Captured stdout, if the process was spawned with capture.
    """
    returncode: Optional[int]
    timed_out: bool = False
    cancelled: bool = False
    output: Optional[str] = None

    @property
    def ok(self) -> bool:
        """True only for a normal exit with status 0."""
        return self.returncode == 0 and not self.timed_out and not self.cancelled


@dataclass(frozen=True)
class FirmwarePackage:
    """A pending firmware image waiting in the watch directory."""
    path: Path

    @property
    def name(self) -> str:
        return self.path.name


@dataclass(frozen=True)
class CopyStats:
    """Counters from one copy_tree run."""
    files: int = 0
    directories: int = 0
    bytes_copied: int = 0


@dataclass(frozen=True)
class WipeStats:
    """Counters from one wipe_tree run."""
    files: int = 0
    directories: int = 0


@dataclass(frozen=True)
class PublishStats:
    """Summary of one decode/publish stage.

    Attributes:
        files: Log files decoded.
        records: Records published successfully.
        failures: Publishes rejected by the transport.
        truncated_bytes: Trailing bytes that did not form a whole record.
        paths: Log files that were processed, in order.
    """
    files: int = 0
    records: int = 0
    failures: int = 0
    truncated_bytes: int = 0
    paths: Tuple[Path, ...] = ()
