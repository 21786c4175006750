from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, List, Optional

import pyudev

from ...cancellation import CancellationToken
from ...models import DeviceIdentity
from .errors import DeviceNotFoundError, MultipleDevicesError

logger = logging.getLogger(__name__)

DEFAULT_ATTEMPTS = 60
DEFAULT_INTERVAL = 0.25  # seconds


@dataclass(frozen=True)
class BlockDeviceInfo:
    """
    Representation of the wearable's block storage as seen by udev.

    Attributes:
        devnode: Device node to hand to the mount helper (e.g. '/dev/sda').
        sys_path: sysfs path of the block device.
        usb_path: sysfs path of the parent usb_device, or None.
        vendor_id: idVendor of the parent USB device, or None if unknown.
        product_id: idProduct of the parent USB device, or None if unknown.
        serial_number: USB serial string, if available.
    """
    devnode: str
    sys_path: str
    usb_path: Optional[str]
    vendor_id: Optional[str]
    product_id: Optional[str]
    serial_number: Optional[str]


def _attribute(device, name: str) -> Optional[str]:
    """Read a sysfs attribute as text, None if it is absent."""
    if device is None:
        return None
    try:
        return device.attributes.asstring(name)
    except (KeyError, UnicodeDecodeError):
        return None


def _device_to_info(device) -> Optional[BlockDeviceInfo]:
    """Convert a pyudev block Device to BlockDeviceInfo (None without a node)."""
    if not device.device_node:
        return None
    usb = device.find_parent("usb", "usb_device")
    return BlockDeviceInfo(
        devnode=device.device_node,
        sys_path=device.sys_path,
        usb_path=usb.sys_path if usb is not None else None,
        vendor_id=_attribute(usb, "idVendor"),
        product_id=_attribute(usb, "idProduct"),
        serial_number=_attribute(usb, "serial"),
    )


def is_matching_device(info: BlockDeviceInfo, identity: DeviceIdentity) -> bool:
    """
    Decide whether a given BlockDeviceInfo is storage of our wearable.

    The ids read from the USB layer are compared case-insensitively against
    the identity, the same way hotplug events are filtered.
    """
    return identity.matches(info.vendor_id, info.product_id)


def find_block_devices(
    identity: DeviceIdentity,
    *,
    context: Optional[pyudev.Context] = None,
    matcher: Optional[Callable[[BlockDeviceInfo], bool]] = None,
) -> List[BlockDeviceInfo]:
    """
    Find all whole-disk block devices whose USB parent matches `identity`.

    Args:
        identity: Vendor/product filter.
        context: pyudev context to enumerate with (a new one if None).
        matcher: Optional custom predicate replacing the identity match.

    Returns:
        List of BlockDeviceInfo objects.
    """
    context = context or pyudev.Context()
    results: List[BlockDeviceInfo] = []

    for device in context.list_devices(subsystem="block", DEVTYPE="disk"):
        info = _device_to_info(device)
        if info is None:
            continue
        if matcher is not None:
            if matcher(info):
                results.append(info)
        elif is_matching_device(info, identity):
            results.append(info)

    return results


def find_single_block_device(
    identity: DeviceIdentity,
    *,
    context: Optional[pyudev.Context] = None,
    matcher: Optional[Callable[[BlockDeviceInfo], bool]] = None,
) -> BlockDeviceInfo:
    """
    Find exactly one block device.

    Behaviour:
        - 0 matches  -> DeviceNotFoundError
        - 1 match    -> return it
        - >1 matches -> log error and raise MultipleDevicesError

    The dock serves a single device slot, so it never guesses between two
    plugged wearables.
    """
    matches = find_block_devices(identity, context=context, matcher=matcher)

    if not matches:
        raise DeviceNotFoundError(f"No block device for {identity} found")

    if len(matches) > 1:
        logger.error(
            "Multiple matching block devices found; refusing to choose automatically. "
            "Devices: %s",
            matches,
        )
        raise MultipleDevicesError(
            f"Multiple matching block devices found ({len(matches)} devices)",
            devices=matches,
        )

    return matches[0]


def wait_for_block_device(
    identity: DeviceIdentity,
    *,
    attempts: int = DEFAULT_ATTEMPTS,
    interval: float = DEFAULT_INTERVAL,
    token: Optional[CancellationToken] = None,
    context: Optional[pyudev.Context] = None,
) -> Optional[BlockDeviceInfo]:
    """
    Poll until the wearable's block storage (re)appears.

    After a firmware flash the device re-enumerates and its storage shows
    up again only after a while; the lookup is retried a fixed number of
    times at a fixed interval.

    Returns:
        BlockDeviceInfo, or None if it did not appear or shutdown was requested.
    """
    token = token or CancellationToken()
    context = context or pyudev.Context()

    for attempt in range(1, attempts + 1):
        if token.cancelled:
            return None
        try:
            info = find_single_block_device(identity, context=context)
            logger.info(f"Block device {info.devnode} found (attempt {attempt}/{attempts})")
            return info
        except MultipleDevicesError:
            return None
        except DeviceNotFoundError:
            pass

        if attempt < attempts and not token.sleep(interval):
            return None

    logger.error(f"No block device for {identity} after {attempts} attempts")
    return None
