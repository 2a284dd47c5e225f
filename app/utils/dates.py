"""
Date helpers shared by models and the CRUD layer.
"""

from datetime import datetime, timezone
from typing import Any


def to_naive_utc(value: Any) -> Any:
    """
    Convert timezone-aware datetimes to naive UTC, recursing into dicts and lists.

    Firestore returns aware timestamps while models compare against
    ``datetime.utcnow()``.
    """
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value
        aware = value.astimezone(timezone.utc)
        return datetime(
            aware.year, aware.month, aware.day,
            aware.hour, aware.minute, aware.second, aware.microsecond,
        )
    if isinstance(value, dict):
        return {key: to_naive_utc(item) for key, item in value.items()}
    if isinstance(value, list):
        return [to_naive_utc(item) for item in value]
    return value
