"""
Timestamp helpers.

Timestamps are stored as naive UTC so comparisons behave the same on
PostgreSQL ``timestamp`` columns and on SQLite.
"""

from datetime import datetime, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def isoformat_z(value: datetime) -> str:
    """ISO-8601 string with a trailing Z, as sent to the identity providers."""
    return value.replace(microsecond=0).isoformat() + "Z"
