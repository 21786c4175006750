from .core import (
    BlockDeviceInfo,
    find_block_devices,
    find_single_block_device,
    is_matching_device,
    wait_for_block_device,
)
from .errors import DeviceNotFoundError, MultipleDevicesError

__all__ = [
    "BlockDeviceInfo",
    "find_block_devices",
    "find_single_block_device",
    "is_matching_device",
    "wait_for_block_device",
    "DeviceNotFoundError",
    "MultipleDevicesError",
]
