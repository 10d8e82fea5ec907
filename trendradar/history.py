"""Rolling history of pushed titles for incremental reports.

Each save appends one entry ``{epoch_ms: [titles]}`` and prunes entries
older than the window; lookups union every live entry. The KV record itself
lives longer (30 days) than the application window (7 days) so a missed
run never loses history early.

Storage: KV key ``history_titles_7days``.
"""
from __future__ import annotations

import json
import logging
import time
from typing import Callable, Dict, Iterable, List, Set, Tuple

from trendradar.models import HistoryEntry, ScoredItem
from trendradar.storage import DAY, KVStore
from trendradar.text import normalize
from trendradar.utils import date_key_from_ms

logger = logging.getLogger(__name__)

HISTORY_KEY = "history_titles_7days"
DEFAULT_WINDOW = 7 * DAY
DEFAULT_TTL = 30 * DAY


class HistoryWindow:
    def __init__(
        self,
        kv: KVStore,
        window: int = DEFAULT_WINDOW,
        ttl: int = DEFAULT_TTL,
        clock: Callable[[], float] = time.time,
    ):
        self.kv = kv
        self.window = window
        self.ttl = ttl
        self._clock = clock

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    def _load_raw(self) -> Dict[str, List[str]]:
        """Load raw history data. Returns {timestamp_ms: [titles], ...}."""
        try:
            raw = self.kv.get(HISTORY_KEY)
            if not raw:
                return {}
            data = json.loads(raw)
            return data if isinstance(data, dict) else {}
        except Exception as e:
            logger.warning(f"[History] Failed to load, treating as empty: {e}")
            return {}

    def _live(self, data: Dict[str, List[str]]) -> Dict[int, List[str]]:
        cutoff = self._now_ms() - self.window * 1000
        live = {}
        for ts, titles in data.items():
            try:
                ts_ms = int(ts)
            except ValueError:
                continue
            if ts_ms > cutoff and isinstance(titles, list):
                live[ts_ms] = titles
        return live

    def entries(self) -> List[HistoryEntry]:
        live = self._live(self._load_raw())
        return [HistoryEntry(timestamp=ts, titles=frozenset(t)) for ts, t in sorted(live.items())]

    def titles(self, exclude_today: bool = False) -> Set[str]:
        """Union of all titles saved inside the window."""
        today = date_key_from_ms(self._now_ms())
        result: Set[str] = set()
        for entry in self.entries():
            if exclude_today and date_key_from_ms(entry.timestamp) == today:
                continue
            result.update(entry.titles)
        logger.info(f"[History] {len(result)} titles in window (exclude_today={exclude_today})")
        return result

    def save(self, titles: Iterable[str]) -> None:
        """Append a new entry and drop expired ones. Failures are logged, not raised."""
        live = self._live(self._load_raw())
        now = self._now_ms()
        live[now] = sorted(set(live.get(now, [])) | set(titles))
        payload = {str(ts): t for ts, t in live.items()}
        try:
            self.kv.put(HISTORY_KEY, json.dumps(payload, ensure_ascii=False), expiration_ttl=self.ttl)
        except Exception as e:
            logger.warning(f"[History] Failed to save: {e}")
            return
        logger.info(f"[History] Saved {len(live[now])} titles ({len(live)} entries in window)")

    def clear(self) -> None:
        self.kv.delete(HISTORY_KEY)

    def stats(self) -> dict:
        raw = self._load_raw()
        live = self._live(raw)
        oldest = min(live) if live else None
        return {
            "total_entries": len(raw),
            "active_entries": len(live),
            "expired_entries": len(raw) - len(live),
            "active_titles": len({t for titles in live.values() for t in titles}),
            "oldest_age_hours": round((self._now_ms() - oldest) / 3600000, 1) if oldest is not None else None,
        }


def filter_new(
    matched: Dict[str, List[ScoredItem]],
    history_titles: Set[str],
) -> Tuple[Dict[str, List[ScoredItem]], int, Set[str], List[str]]:
    """Keep items whose title is unseen both verbatim and normalized.

    Returns (filtered groups, new item count, all current titles, new titles).
    """
    normalized_history = {normalize(t) for t in history_titles}
    filtered: Dict[str, List[ScoredItem]] = {}
    current: Set[str] = set()
    new_titles: List[str] = []
    new_count = 0

    for group, items in matched.items():
        fresh = []
        for item in items:
            current.add(item.title)
            if item.title in history_titles or normalize(item.title) in normalized_history:
                continue
            fresh.append(item)
            new_titles.append(item.title)
        if fresh:
            filtered[group] = fresh
            new_count += len(fresh)

    return filtered, new_count, current, new_titles
