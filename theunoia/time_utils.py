"""Timestamp helpers shared across THEUNOiA pages and services."""

from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Any, Optional

from dateutil import parser
from zoneinfo import ZoneInfo

UTC = ZoneInfo("UTC")
DEFAULT_TZ = "Asia/Kolkata"


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def parse_iso(value: Any) -> Optional[datetime]:
    """Parse an ISO timestamp (or pass a datetime through) as an aware UTC-or-offset value."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, date):
        dt = datetime(value.year, value.month, value.day)
    else:
        try:
            dt = parser.isoparse(str(value))
        except (TypeError, ValueError):
            return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return dt


def to_tz(value: Any, tz: str = DEFAULT_TZ) -> Optional[datetime]:
    """Parse ``value`` and convert to timezone ``tz`` (IANA name)."""

    dt = parse_iso(value)
    if dt is None:
        return None
    return dt.astimezone(ZoneInfo(tz))


def local_date(value: Any, tz: str = DEFAULT_TZ) -> Optional[date]:
    dt = to_tz(value, tz)
    return dt.date() if dt else None


def utc_iso(dt: datetime | None) -> str | None:
    """Return an ISO 8601 string in UTC for ``dt`` (tolerates naive input)."""

    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC).isoformat()


def format_date(value: Any, fmt: str = "%d %b %Y", tz: str = DEFAULT_TZ) -> str:
    dt = to_tz(value, tz)
    return dt.strftime(fmt) if dt else "—"


def time_ago(value: Any, now: datetime | None = None) -> str:
    dt = parse_iso(value)
    if dt is None:
        return ""
    seconds = int(((now or now_utc()) - dt).total_seconds())
    if seconds < 60:
        return "just now"
    if seconds < 3600:
        return f"{seconds // 60}m ago"
    if seconds < 86400:
        return f"{seconds // 3600}h ago"
    return f"{seconds // 86400}d ago"


__all__ = [
    "DEFAULT_TZ",
    "now_utc",
    "parse_iso",
    "to_tz",
    "local_date",
    "utc_iso",
    "format_date",
    "time_ago",
]
