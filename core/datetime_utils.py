from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional
from zoneinfo import ZoneInfo

__all__ = ["REFERENCE_TIMEZONE", "parse_iso_datetime", "start_of_day_utc", "utc_now_iso"]

REFERENCE_TIMEZONE = "Europe/London"


def parse_iso_datetime(value: Optional[str]) -> Optional[datetime]:
    """Parse an ISO 8601 timestamp into an aware datetime if possible."""

    if not value or not isinstance(value, str):
        return None

    candidate = value.strip()
    if not candidate:
        return None

    try:
        parsed = datetime.fromisoformat(candidate)
    except ValueError:
        parsed = None

    if parsed is None:
        for fmt in ("%Y-%m-%dT%H:%M:%S.%fZ", "%Y-%m-%dT%H:%M:%SZ", "%Y-%m-%d"):
            try:
                parsed = datetime.strptime(candidate, fmt)
                break
            except ValueError:
                continue

    if parsed is None:
        return None

    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)

    return parsed.astimezone(timezone.utc)


def start_of_day_utc(now: Optional[datetime] = None, tz_name: str = REFERENCE_TIMEZONE) -> datetime:
    """Return midnight of the current wall-clock day in *tz_name* as a UTC instant.

    ``now`` defaults to the current time; naive values are treated as UTC.
    During British Summer Time the result lands on 23:00 UTC of the previous
    calendar day.
    """

    zone = ZoneInfo(tz_name)
    if now is None:
        now = datetime.now(timezone.utc)
    elif now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)

    local_today = now.astimezone(zone).date()
    local_midnight = datetime(local_today.year, local_today.month, local_today.day, tzinfo=zone)
    return local_midnight.astimezone(timezone.utc)


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")
