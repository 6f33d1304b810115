# backend/deposito/time_utils.py
from __future__ import annotations

from datetime import datetime, time, timedelta, timezone
from typing import Optional

# All timestamps are stored as naive UTC.


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def parse_iso_datetime(value: Optional[str]) -> Optional[datetime]:
    """
    ISO-8601 string -> naive UTC datetime, or None for empty input.

    Offsets (including a trailing "Z") are converted to UTC; values without
    an offset are taken as UTC already. Raises ValueError on bad input.
    """
    if value is None:
        return None
    text = value.strip()
    if not text:
        return None
    if text.endswith("Z"):
        text = f"{text[:-1]}+00:00"

    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def parse_period_bound(value: Optional[str], *, end: bool = False) -> Optional[datetime]:
    """
    Report period bound. A bare date ("2024-03-01") as the end bound covers
    the whole day, so start=end=<day> selects that day's activity.
    """
    parsed = parse_iso_datetime(value)
    if parsed is None:
        return None
    if end and len(value.strip()) == 10:
        return datetime.combine(parsed.date(), time.min) + timedelta(days=1, microseconds=-1)
    return parsed


def to_utc_z(dt: Optional[datetime]) -> Optional[str]:
    """Serialize to second precision with a trailing 'Z'; naive values are UTC."""
    if dt is None:
        return None
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt.replace(microsecond=0).isoformat() + "Z"
