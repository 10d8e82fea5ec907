"""Shared utility functions."""
import re
from datetime import date, datetime
from typing import Optional

from dateutil import tz

BEIJING = tz.gettz("Asia/Shanghai")

_DURATION_MULTIPLIERS = {"s": 1, "m": 60, "h": 3600, "d": 86400, "w": 604800, "M": 2592000, "y": 31536000}


def parse_since_seconds(value: str) -> int:
    """Parse a relative time string like '12h', '7d' into total seconds.

    Raises ValueError on invalid input.
    """
    match = re.match(r"^(\d+)\s*([smhdwMy])$", str(value).strip())
    if not match:
        raise ValueError(f"Invalid time value '{value}'. Use e.g. 30s, 30m, 2h, 1d, 1w, 3M, 1y")
    amount, unit = int(match.group(1)), match.group(2)
    return amount * _DURATION_MULTIPLIERS[unit]


def beijing_now(now: Optional[datetime] = None) -> datetime:
    """Current time (or ``now``) in Asia/Shanghai."""
    if now is None:
        return datetime.now(tz=BEIJING)
    if now.tzinfo is None:
        now = now.replace(tzinfo=tz.UTC)
    return now.astimezone(BEIJING)


def date_key(d: Optional[date] = None) -> str:
    """YYYYMMDD storage key for a Beijing calendar day."""
    d = d or beijing_now()
    return d.strftime("%Y%m%d")


def date_key_from_ms(ts_ms: int) -> str:
    return date_key(datetime.fromtimestamp(ts_ms / 1000, tz=BEIJING))


def format_date(dt: datetime) -> str:
    return dt.strftime("%Y年%m月%d日")


def format_time(dt: datetime) -> str:
    return dt.strftime("%H时%M分")
