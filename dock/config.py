"""Daemon configuration.

Defaults mirror the deployed dock; any field can be overridden from a
YAML file whose top level is a flat mapping of field names to values.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple, Union

import yaml

from .errors import ConfigError
from .models import DeviceIdentity

logger = logging.getLogger(__name__)

DEFAULT_LFS_ARGS = (
    "--block_count=1760",
    "--block_size=4096",
    "--read_size=16",
    "--prog_size=16",
    "--cache_size=64",
    "--lookahead_size=32",
)

RECORD_FORMAT_CHOICES = ("imu", "imu_pressure")

_PATH_FIELDS = {"lfs_binary", "mount_point", "extract_base", "dfu_util", "firmware_dir", "mounts_file"}
_TUPLE_FIELDS = {"lfs_args", "log_file_names"}
_OPTIONAL_STR_FIELDS = {"username", "password"}


@dataclass(frozen=True)
class DockConfig:
    """Every tunable of the dock daemon.

    Paths, helper binaries, broker settings and the timing of each bounded
    wait. Instances are immutable; use `with_overrides` to derive variants.
    """
    # Device identity
    vendor_id: str = "0001"
    product_id: str = "0001"

    # Mount helper (littlefs-fuse) and unmount helper
    lfs_binary: Path = Path("/usr/local/bin/lfs")
    lfs_args: Tuple[str, ...] = DEFAULT_LFS_ARGS
    mount_point: Path = Path("/mnt/wearable")
    read_only_mount: bool = False
    umount_binary: str = "umount"
    mounts_file: Path = Path("/proc/self/mounts")

    # Extraction
    extract_base: Path = Path("/var/lib/wearable_dock/extracted")
    archive_subdir: str = "archive"
    copy_buffer_size: int = 256 * 1024

    # Firmware update
    dfu_util: Path = Path("/usr/bin/dfu-util")
    firmware_dir: Path = Path("/var/lib/wearable_dock/new_firmware")
    firmware_archive_subdir: str = "archive"
    dfu_alt_setting: int = 1
    dfu_transfer_size: int = 1024
    dfu_detach: bool = False
    dfu_detach_settle: float = 2.0
    dfu_timeout: float = 120.0

    # Sensor logs
    log_file_names: Tuple[str, ...] = ("imu_log.bin",)
    logs_subdir: str = "logs"
    record_format: str = "imu"
    mount_marker: str = "imu_log.bin"

    # Broker
    broker_host: str = "localhost"
    broker_port: int = 1883
    broker_keepalive: int = 60
    topic: str = "BORUS/extf"
    client_id: str = "wearable-dock"
    username: Optional[str] = None
    password: Optional[str] = None
    publish_interval: float = 0.001
    broker_connect_timeout: float = 5.0

    # Timing
    event_poll_timeout: float = 1.0
    quiescence_window: float = 0.5
    block_device_attempts: int = 60
    block_device_interval: float = 0.25
    marker_timeout: float = 5.0
    marker_poll_interval: float = 0.2
    unmount_timeout: float = 10.0
    unmount_settle_attempts: int = 50
    unmount_settle_interval: float = 0.1

    def __post_init__(self):
        if self.record_format not in RECORD_FORMAT_CHOICES:
            raise ConfigError(
                f"record_format must be one of {RECORD_FORMAT_CHOICES}, got {self.record_format!r}"
            )
        if self.quiescence_window <= 0:
            raise ConfigError("quiescence_window must be positive")
        if self.copy_buffer_size <= 0:
            raise ConfigError("copy_buffer_size must be positive")
        if self.block_device_attempts < 1:
            raise ConfigError("block_device_attempts must be at least 1")

    @property
    def identity(self) -> DeviceIdentity:
        return DeviceIdentity(vendor_id=self.vendor_id, product_id=self.product_id)

    @property
    def extract_archive_dir(self) -> Path:
        """Sibling archive directory receiving processed sessions."""
        return self.extract_base / self.archive_subdir

    @property
    def firmware_archive_dir(self) -> Path:
        return self.firmware_dir / self.firmware_archive_subdir

    def with_overrides(self, **overrides: Any) -> DockConfig:
        """Return a copy with the given fields replaced (values are coerced)."""
        return replace(self, **_coerce_mapping(overrides))

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> DockConfig:
        """Build a config from a flat mapping, validating keys and types."""
        return cls(**_coerce_mapping(data))


def _field_defaults() -> Dict[str, Any]:
    defaults = {}
    for f in fields(DockConfig):
        defaults[f.name] = f.default
    return defaults


def _coerce_mapping(data: Mapping[str, Any]) -> Dict[str, Any]:
    defaults = _field_defaults()
    unknown = sorted(set(data) - set(defaults))
    if unknown:
        raise ConfigError(f"Unknown configuration keys: {', '.join(unknown)}")
    return {key: _coerce_value(key, value, defaults[key]) for key, value in data.items()}


def _coerce_value(key: str, value: Any, default: Any) -> Any:
    """Convert a raw YAML value to the type of the field it configures."""
    if key in _OPTIONAL_STR_FIELDS:
        if value is None:
            return None
        if not isinstance(value, str):
            raise ConfigError(f"{key} must be a string")
        return value

    if key in _PATH_FIELDS:
        if not isinstance(value, (str, Path)):
            raise ConfigError(f"{key} must be a path string")
        return Path(value).expanduser()

    if key in _TUPLE_FIELDS:
        if isinstance(value, str):
            return tuple(value.split())
        if not isinstance(value, (list, tuple)) or not all(isinstance(v, str) for v in value):
            raise ConfigError(f"{key} must be a list of strings")
        return tuple(value)

    # bool must be checked before int: bool is an int subclass
    if isinstance(default, bool):
        if not isinstance(value, bool):
            raise ConfigError(f"{key} must be true or false")
        return value

    if isinstance(default, int):
        if isinstance(value, bool) or not isinstance(value, int):
            raise ConfigError(f"{key} must be an integer")
        return value

    if isinstance(default, float):
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ConfigError(f"{key} must be a number")
        return float(value)

    if isinstance(default, str):
        if isinstance(value, int) and not isinstance(value, bool) and key in {"vendor_id", "product_id"}:
            return f"{value:04x}"
        if not isinstance(value, str):
            raise ConfigError(f"{key} must be a string")
        return value

    return value


def load_config(path: Union[str, Path, None]) -> DockConfig:
    """Load configuration from a YAML file.

    Args:
        path: YAML file, or None for the built-in defaults.

    Returns:
        DockConfig with file values applied over the defaults. A missing
        file is not an error; the defaults are returned and a warning logged.

    Raises:
        ConfigError: If the file cannot be parsed or contains invalid keys.
    """
    if path is None:
        return DockConfig()

    path = Path(path).expanduser()
    if not path.exists():
        logger.warning(f"Config file {path} not found, using defaults")
        return DockConfig()

    try:
        with path.open("r", encoding="utf-8") as fh:
            raw = yaml.safe_load(fh)
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(f"Cannot read config file {path}: {e}") from e

    if raw is None:
        return DockConfig()
    if not isinstance(raw, dict):
        raise ConfigError(f"Config file {path} must contain a mapping")

    config = DockConfig.from_mapping(raw)
    logger.info(f"Loaded configuration from {path}")
    return config
