"""Wearable dock - flash, extract and publish data from docked wearables."""

from .models import (
    DeviceIdentity,
    HotplugAction,
    HotplugEvent,
    Record,
    ProcessResult,
    FirmwarePackage,
    CopyStats,
    WipeStats,
    PublishStats,
)
from .config import DockConfig, load_config
from .errors import DockError

__all__ = [
    "DeviceIdentity",
    "HotplugAction",
    "HotplugEvent",
    "Record",
    "ProcessResult",
    "FirmwarePackage",
    "CopyStats",
    "WipeStats",
    "PublishStats",
    "DockConfig",
    "load_config",
    "DockError",
]
