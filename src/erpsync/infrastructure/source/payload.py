"""
Serialization of source rows into the replica payload column.

Values are rendered the way the source driver renders them in "date
strings" mode, so the payload is a faithful, JSON-safe copy of the row.
"""

from datetime import date, datetime, time, timedelta
from decimal import Decimal
from typing import Any, Mapping

from erpsync.domain.models import TIMESTAMP_FORMAT


def payload_value(value: Any) -> Any:
    """Convert one column value to a JSON-compatible value."""
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if isinstance(value, datetime):
        return value.strftime(TIMESTAMP_FORMAT)
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (time, timedelta)):
        return str(value)
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value).decode("utf-8", errors="replace")
    return str(value)


def to_payload(row: Mapping[str, Any]) -> dict[str, Any]:
    """Copy a source row into a JSON-safe dict, keeping every column."""
    return {str(key): payload_value(value) for key, value in row.items()}
