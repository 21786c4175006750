"""Device layer for the docked wearable.

This module provides:
- Hotplug notifications from udev and the debounce state machine (HotplugMonitor)
- Block-device discovery utilities (find_single_block_device, wait_for_block_device)
"""

from .hotplug import HotplugMonitor, MonitorState, UdevEventSource
from .device_finder import (
    BlockDeviceInfo,
    DeviceNotFoundError,
    MultipleDevicesError,
    find_block_devices,
    find_single_block_device,
    wait_for_block_device,
)

__all__ = [
    # Hotplug
    'HotplugMonitor',
    'MonitorState',
    'UdevEventSource',

    # Finder
    'BlockDeviceInfo',
    'DeviceNotFoundError',
    'MultipleDevicesError',
    'find_block_devices',
    'find_single_block_device',
    'wait_for_block_device',
]
