"""Record layer: binary log formats, decoding, formatting and publishing."""

from .formats import RecordFormat, IMU_FORMAT, IMU_PRESSURE_FORMAT, SCALE_FACTOR
from .decoder import RecordDecoder
from .formatter import format_record
from .publisher import RecordPublisher, find_log_files

__all__ = [
    "RecordFormat",
    "IMU_FORMAT",
    "IMU_PRESSURE_FORMAT",
    "SCALE_FACTOR",
    "RecordDecoder",
    "format_record",
    "RecordPublisher",
    "find_log_files",
]
