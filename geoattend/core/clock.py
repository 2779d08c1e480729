"""Wall-clock source for the scan pipeline."""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timedelta, timezone

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(dt: datetime) -> datetime:
    """Normalise a potentially-naive timestamp (SQLite) to UTC-aware."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


def parse_offset(tz_offset: str) -> timezone:
    """Turn ``+05:00`` / ``-03`` into a fixed-offset ``timezone``.

    Raises ``ValueError`` for anything else.
    """
    if len(tz_offset) < 2 or tz_offset[0] not in "+-":
        raise ValueError(f"Invalid timezone offset {tz_offset!r}")
    sign = 1 if tz_offset[0] == "+" else -1
    offset_parts = tz_offset[1:].split(":")
    if len(offset_parts) > 2 or not all(p.isdigit() and len(p) <= 2 for p in offset_parts):
        raise ValueError(f"Invalid timezone offset {tz_offset!r}")
    offset_hours = int(offset_parts[0])
    offset_mins = int(offset_parts[1]) if len(offset_parts) > 1 else 0
    if offset_hours > 23 or offset_mins > 59:
        raise ValueError(f"Timezone offset out of range: {tz_offset!r}")
    return timezone(timedelta(hours=sign * offset_hours, minutes=sign * offset_mins))


def to_utc(dt: datetime) -> datetime:
    return ensure_utc(dt).astimezone(timezone.utc)
