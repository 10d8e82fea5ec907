"""Hot-list fetcher: one GET per platform, titles aggregated with their ranks."""
import logging
import time
from typing import Dict, List, Optional, Tuple

import requests

from trendradar.http import get_session
from trendradar.models import RawItem

logger = logging.getLogger(__name__)

DEFAULT_API_BASE = "https://newsnow.busiyi.world"

HEADERS = {
    "User-Agent": "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36",
    "Accept": "application/json, text/plain, */*",
    "Cache-Control": "no-cache",
}

_OK_STATUSES = ("success", "cache")


class DataFetcher:
    """Fetch ranked title lists from the hot-list API."""

    def __init__(
        self,
        api_base: str = DEFAULT_API_BASE,
        request_interval: int = 1000,
        max_retries: int = 2,
        timeout: int = 15,
        session: Optional[requests.Session] = None,
    ):
        self.api_base = api_base.rstrip("/")
        self.request_interval = request_interval
        self.max_retries = max_retries
        self.timeout = timeout
        self._session = session

    def fetch(self, source_id: str) -> Optional[dict]:
        """Fetch one platform. Returns the response payload or None after the last retry."""
        url = f"{self.api_base}/api/s?id={source_id}&latest"
        session = self._session or get_session()
        for attempt in range(self.max_retries + 1):
            try:
                resp = session.get(url, headers=HEADERS, timeout=self.timeout)
                resp.raise_for_status()
                data = resp.json()
                status = data.get("status")
                if status not in _OK_STATUSES:
                    raise ValueError(f"unexpected status: {status}")
                logger.info(f"[Fetcher] {source_id} ok ({status})")
                return data
            except (requests.RequestException, ValueError, AttributeError) as e:
                if attempt < self.max_retries:
                    wait = 3 + attempt * 2
                    logger.info(f"[Fetcher] {source_id} failed: {e}, retry {attempt + 1}/{self.max_retries} in {wait}s")
                    time.sleep(wait)
                else:
                    logger.warning(f"[Fetcher] {source_id} failed after {self.max_retries + 1} attempts: {e}")
        return None

    @staticmethod
    def collect(source_id: str, items: List[dict]) -> Dict[str, RawItem]:
        """Aggregate items by stripped title; rank is the 1-based list position."""
        titles: Dict[str, RawItem] = {}
        for rank, item in enumerate(items, 1):
            title = item.get("title") if isinstance(item, dict) else None
            if not isinstance(title, str) or not title.strip():
                continue
            title = title.strip()
            if title in titles:
                titles[title].add_rank(rank)
            else:
                titles[title] = RawItem(
                    title=title,
                    source_id=source_id,
                    ranks=[rank],
                    url=item.get("url") or "",
                    mobile_url=item.get("mobileUrl") or "",
                )
        return titles

    def crawl(self, platforms: List[dict]) -> Tuple[Dict[str, Dict[str, RawItem]], Dict[str, str], List[str]]:
        """Fetch every platform in order. Returns (results, id_to_name, failed_ids)."""
        results: Dict[str, Dict[str, RawItem]] = {}
        id_to_name: Dict[str, str] = {}
        failed: List[str] = []

        for i, platform in enumerate(platforms):
            source_id = platform["id"]
            id_to_name[source_id] = platform.get("name", source_id)
            data = self.fetch(source_id)
            if data and isinstance(data.get("items"), list):
                results[source_id] = self.collect(source_id, data["items"])
            else:
                failed.append(source_id)
            if i < len(platforms) - 1 and self.request_interval:
                time.sleep(self.request_interval / 1000)

        logger.info(f"[Fetcher] {len(results)} platforms ok, {len(failed)} failed")
        return results, id_to_name, failed
