"""Holiday-aware scheduling.

On holidays and weekends the pipeline only runs at a few fixed hours.
Day status comes from the juhe.cn calendar API, cached for a day, and falls
back to a plain Saturday/Sunday check whenever the API is unavailable.
"""
import logging
from datetime import date, datetime
from typing import Iterable, Optional

import requests

from trendradar.http import get_session
from trendradar.storage import DAY, KVStore

logger = logging.getLogger(__name__)

HOLIDAY_API_URL = "https://apis.juhe.cn/fapig/calendar/day.php"
DEFAULT_SCHEDULE_HOURS = (10, 12, 16, 20)


def is_weekend(d: date) -> bool:
    return d.weekday() >= 5


class HolidayService:
    def __init__(self, kv: KVStore, api_key: Optional[str] = None,
                 session: Optional[requests.Session] = None, timeout: int = 10):
        self.kv = kv
        self.api_key = api_key
        self.timeout = timeout
        self._session = session

    def is_holiday_or_weekend(self, d: date) -> bool:
        date_str = d.strftime("%Y-%m-%d")
        cache_key = f"holiday:{date_str}"

        try:
            cached = self.kv.get(cache_key)
        except Exception as e:
            logger.warning(f"[Holiday] Cache read failed: {e}")
            cached = None
        if cached is not None:
            logger.debug(f"[Holiday] Cache hit {date_str} = {cached}")
            return cached == "true"

        if not self.api_key:
            logger.info("[Holiday] No API key configured, using weekend rule")
            return is_weekend(d)

        try:
            status = self._fetch(date_str, d)
        except (requests.RequestException, ValueError, KeyError, TypeError) as e:
            logger.warning(f"[Holiday] Lookup failed for {date_str}, using weekend rule: {e}")
            return is_weekend(d)

        try:
            self.kv.put(cache_key, "true" if status else "false", expiration_ttl=DAY)
        except Exception as e:
            logger.warning(f"[Holiday] Cache write failed: {e}")
        logger.info(f"[Holiday] {date_str} holiday={status}")
        return status

    def _fetch(self, date_str: str, d: date) -> bool:
        session = self._session or get_session()
        resp = session.get(
            HOLIDAY_API_URL,
            params={"date": date_str, "key": self.api_key},
            timeout=self.timeout,
        )
        resp.raise_for_status()
        data = resp.json()
        if data.get("error_code") != 0:
            raise ValueError(f"API error: {data.get('reason')} ({data.get('error_code')})")

        # status "1" holiday, "2" working day (including make-up weekends), otherwise unset
        status = (data.get("result") or {}).get("status")
        if status == "1":
            return True
        if status == "2":
            return False
        return is_weekend(d)


def should_run(now: datetime, is_holiday: bool, schedule_hours: Optional[Iterable[int]] = None) -> bool:
    """Workdays always run; holidays only at the scheduled hours."""
    if not is_holiday:
        return True
    hours = DEFAULT_SCHEDULE_HOURS if schedule_hours is None else tuple(schedule_hours)
    return now.hour in hours
