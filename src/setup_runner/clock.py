"""Timestamps for log lines and state records.

Never raises: an unknown or unavailable timezone falls back to system local time.
"""

from datetime import datetime, tzinfo
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from setup_runner.constants import STAMP_FORMAT


def resolve_zone(name: Optional[str]) -> Optional[tzinfo]:
    """Return the named zone, or None for system local time."""
    if not name:
        return None
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError, TypeError, OSError):
        return None


def _now(zone: Optional[str]) -> datetime:
    tz = resolve_zone(zone)
    if tz is None:
        return datetime.now().astimezone()
    return datetime.now(tz)


def now_stamp(zone: Optional[str] = None) -> str:
    """Human-readable stamp, e.g. 'IST 18-10-2026 14:03:59'."""
    now = _now(zone)
    stamp = now.strftime(STAMP_FORMAT).strip()
    if not now.tzname():
        # Some platforms render %Z empty; keep the UTC offset so lines stay zoned
        stamp = f"{now.strftime('%z')} {stamp}"
    return stamp


def iso_now(zone: Optional[str] = None) -> str:
    """ISO-8601 timestamp with offset, seconds precision."""
    return _now(zone).isoformat(timespec="seconds")
