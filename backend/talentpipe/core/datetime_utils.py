from __future__ import annotations

from datetime import datetime, timezone
from zoneinfo import ZoneInfo

from talentpipe.core.config import settings


def utcnow() -> datetime:
    """Return current UTC time as naive datetime for DATETIME columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_utc_naive(value: datetime) -> datetime:
    """Normalize a datetime to UTC and strip tzinfo. Naive values are taken as UTC already."""
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def display_zone() -> ZoneInfo:
    return ZoneInfo(settings.display_timezone or "UTC")


def format_local_time(value: datetime, tz: ZoneInfo | None = None) -> str:
    local = value.replace(tzinfo=timezone.utc).astimezone(tz or display_zone())
    return local.strftime("%H:%M")


def format_local_datetime(value: datetime, tz: ZoneInfo | None = None) -> str:
    local = value.replace(tzinfo=timezone.utc).astimezone(tz or display_zone())
    return local.strftime("%d %b %Y, %H:%M %Z")
