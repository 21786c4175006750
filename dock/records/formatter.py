"""Message formatting for decoded records.

Pure functions with no side effects. The payload is assembled by hand so
that every float carries exactly two decimals and the key order is fixed:

    {"timestamp_ms":1000,"pressure_pa":1013.25,"acceleration":[2.50,-1.00,0.00],"gyroscope":[0.50,0.00,-0.50]}

`pressure_pa` is only present for records that carry pressure.
"""
from __future__ import annotations

from typing import Sequence

from ..models import Record


def _vector(values: Sequence[float]) -> str:
    return "[" + ",".join(f"{value:.2f}" for value in values) + "]"


def format_record(record: Record) -> str:
    """Render one record as a single-line JSON payload.

    Examples:
        >>> format_record(Record(1000, (2.5, -1.0, 0.0), (0.5, 0.0, -0.5)))
        '{"timestamp_ms":1000,"acceleration":[2.50,-1.00,0.00],"gyroscope":[0.50,0.00,-0.50]}'
    """
    parts = [f'"timestamp_ms":{record.timestamp_ms}']
    if record.pressure_pa is not None:
        parts.append(f'"pressure_pa":{record.pressure_pa:.2f}')
    parts.append(f'"acceleration":{_vector(record.acceleration)}')
    parts.append(f'"gyroscope":{_vector(record.gyroscope)}')
    return "{" + ",".join(parts) + "}"
