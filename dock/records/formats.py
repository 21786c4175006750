"""Binary layouts of the wearable's sensor log records.

All fields are little-endian. Raw counts are divided by SCALE_FACTOR to get
physical units.

    imu           uint32 timestamp_ms, int16 acc[3], int16 gyro[3]          16 bytes
    imu_pressure  uint32 timestamp_ms, uint32 pressure, int16 acc[3], gyro[3] 20 bytes
"""
from __future__ import annotations

import struct
from dataclasses import dataclass
from typing import Dict

from ..models import Record

SCALE_FACTOR = 100.0


@dataclass(frozen=True)
class RecordFormat:
    """One fixed-size record layout.

    Attributes:
        name: Identifier used in configuration ('imu', 'imu_pressure').
        layout: struct format string.
        has_pressure: True if a pressure word follows the timestamp.
    """
    name: str
    layout: str
    has_pressure: bool

    @property
    def size(self) -> int:
        return struct.calcsize(self.layout)

    def decode(self, data: bytes) -> Record:
        """Decode exactly one record worth of bytes.

        Raises:
            struct.error: If `data` is not exactly `size` bytes long.
        """
        fields = struct.unpack(self.layout, data)
        timestamp_ms = fields[0]
        pressure_pa = None
        raw = fields[1:]
        if self.has_pressure:
            pressure_pa = raw[0] / SCALE_FACTOR
            raw = raw[1:]
        return Record(
            timestamp_ms=timestamp_ms,
            acceleration=(raw[0] / SCALE_FACTOR, raw[1] / SCALE_FACTOR, raw[2] / SCALE_FACTOR),
            gyroscope=(raw[3] / SCALE_FACTOR, raw[4] / SCALE_FACTOR, raw[5] / SCALE_FACTOR),
            pressure_pa=pressure_pa,
        )


IMU_FORMAT = RecordFormat(name="imu", layout="<Ihhhhhh", has_pressure=False)
IMU_PRESSURE_FORMAT = RecordFormat(name="imu_pressure", layout="<IIhhhhhh", has_pressure=True)

FORMATS: Dict[str, RecordFormat] = {
    IMU_FORMAT.name: IMU_FORMAT,
    IMU_PRESSURE_FORMAT.name: IMU_PRESSURE_FORMAT,
}


def resolve_format(name: str) -> RecordFormat:
    """Map a configured format name to a RecordFormat.

    The layout cannot be told from the file size alone: a truncated IMU log
    can be a whole multiple of the pressure record size.
    """
    try:
        return FORMATS[name]
    except KeyError:
        raise ValueError(f"Unknown record format: {name}") from None
