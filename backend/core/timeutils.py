"""
Restaurant civil time <-> stored UTC instants
"""
from datetime import datetime, timedelta, timezone
from typing import Tuple

import pytz

from .config import settings

RESTAURANT_TZ = pytz.timezone(settings.RESTAURANT_TIMEZONE)


def to_utc_iso(dt: datetime) -> str:
    """
    Stored instant format. Always UTC, no microseconds, so plain string
    comparison orders instants chronologically.
    """
    return dt.astimezone(timezone.utc).replace(microsecond=0).isoformat()


def local_to_utc(date_str: str, time_str: str) -> datetime:
    """Interpret date + HH:MM in the restaurant's time zone"""
    naive = datetime.strptime(f"{date_str} {time_str}", "%Y-%m-%d %H:%M")
    return RESTAURANT_TZ.localize(naive).astimezone(timezone.utc)


def reservation_window(date_str: str, time_str: str, duration_minutes: int) -> Tuple[str, str]:
    """[start_at, end_at) as stored UTC ISO strings"""
    start = local_to_utc(date_str, time_str)
    end = start + timedelta(minutes=duration_minutes)
    return to_utc_iso(start), to_utc_iso(end)


def utc_now_iso() -> str:
    return to_utc_iso(datetime.now(timezone.utc))


def time_to_minutes(time_str: str) -> int:
    """Convert HH:MM to minutes since midnight"""
    h, m = map(int, time_str.split(":")[:2])
    return h * 60 + m


def minutes_to_time(minutes: int) -> str:
    """Convert minutes since midnight to HH:MM"""
    h = (minutes // 60) % 24
    m = minutes % 60
    return f"{h:02d}:{m:02d}"
