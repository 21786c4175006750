"""Streaming decoder for sensor log files."""
from __future__ import annotations

import logging
from pathlib import Path
from typing import BinaryIO, Iterator, Optional

from ..models import Record
from .formats import RecordFormat, resolve_format

logger = logging.getLogger(__name__)


class RecordDecoder:
    """Reads whole records from a binary stream, one record size at a time.

    A trailing partial record is never emitted; its length is kept in
    `truncated_bytes` after iteration.

    Example:
        >>> decoder = RecordDecoder(IMU_FORMAT)
        >>> with open("imu_log.bin", "rb") as fh:
        ...     for record in decoder.iter_records(fh):
        ...         print(record.timestamp_ms)
    """

    def __init__(self, record_format: RecordFormat):
        self.record_format = record_format
        self.records = 0
        self.truncated_bytes = 0

    def iter_records(self, stream: BinaryIO) -> Iterator[Record]:
        size = self.record_format.size
        while True:
            chunk = stream.read(size)
            if len(chunk) < size:
                if chunk:
                    self.truncated_bytes += len(chunk)
                return
            self.records += 1
            yield self.record_format.decode(chunk)

    @classmethod
    def for_file(cls, path: Path, format_name: str = "imu") -> RecordDecoder:
        """Decoder with the configured layout for `path`."""
        record_format = resolve_format(format_name)
        logger.debug(f"Decoding {path} as {record_format.name} ({record_format.size}-byte records)")
        return cls(record_format)


def iter_file_records(path: Path, format_name: str = "imu",
                      decoder: Optional[RecordDecoder] = None) -> Iterator[Record]:
    """Decode every whole record of one log file."""
    decoder = decoder or RecordDecoder.for_file(path, format_name)
    with open(path, "rb") as fh:
        yield from decoder.iter_records(fh)
    if decoder.truncated_bytes:
        logger.warning(f"{path}: ignoring {decoder.truncated_bytes} trailing bytes of a partial record")
