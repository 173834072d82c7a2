# app/utils/dates.py

from datetime import datetime, timezone
from typing import Optional

UTC = timezone.utc


def to_utc(dt: datetime) -> datetime:
    # Naive datetimes are taken as UTC
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def parse_datetime(value: Optional[str]) -> Optional[datetime]:
    """Parse an ISO-8601 date or datetime to UTC; None when missing or malformed."""
    if not value:
        return None
    try:
        return to_utc(datetime.fromisoformat(value.strip()))
    except (ValueError, OverflowError):
        return None
