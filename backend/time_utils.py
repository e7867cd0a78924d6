import os
from datetime import datetime
from typing import Optional
from zoneinfo import ZoneInfo


def _timezone() -> ZoneInfo:
    name = os.environ.get("APP_TIMEZONE", "UTC")
    return ZoneInfo(name)


def now_tz() -> datetime:
    return datetime.now(_timezone())


def ensure_timezone(dt: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands back naive datetimes; treat them as app-local.
    if dt is None:
        return None
    tz = _timezone()
    if dt.tzinfo is None:
        return dt.replace(tzinfo=tz)
    return dt.astimezone(tz)


def has_passed(deadline: Optional[datetime], now: Optional[datetime] = None) -> bool:
    if deadline is None:
        return False
    current = ensure_timezone(now or now_tz())
    return current > ensure_timezone(deadline)


def date_stamp(now: Optional[datetime] = None) -> str:
    return ensure_timezone(now or now_tz()).strftime("%Y%m%d")
