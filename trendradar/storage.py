"""Key-value storage for TrendRadar.

All persistent state (today's snapshot, the rolling title history, keyword
configuration, push records and the token-usage ledger) goes through a tiny
``get`` / ``put`` / ``delete`` interface with optional per-key TTL.

Two backends ship:
  - MemoryKVStore: process-local, used by tests and ``--dry-run``
  - FileKVStore:   one JSON file, default ~/.cache/trendradar/kv.json
"""
from __future__ import annotations

import json
import logging
import threading
import time
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from trendradar.utils import beijing_now, date_key

logger = logging.getLogger(__name__)

DEFAULT_STORE_PATH = Path.home() / ".cache" / "trendradar" / "kv.json"
DAY = 86400

NEWS_TTL = 7 * DAY
PUSH_TTL = 7 * DAY
TOKEN_USAGE_TTL = 30 * DAY


class KVStore:
    """Interface: string values, optional expiration TTL in seconds."""

    def get(self, key: str) -> Optional[str]:
        raise NotImplementedError

    def put(self, key: str, value: str, expiration_ttl: Optional[int] = None) -> None:
        raise NotImplementedError

    def delete(self, key: str) -> None:
        raise NotImplementedError


class MemoryKVStore(KVStore):
    def __init__(self, clock: Callable[[], float] = time.time):
        self._data: Dict[str, tuple] = {}
        self._clock = clock
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            entry = self._data.get(key)
            if entry is None:
                return None
            value, expires_at = entry
            if expires_at is not None and self._clock() >= expires_at:
                del self._data[key]
                return None
            return value

    def put(self, key: str, value: str, expiration_ttl: Optional[int] = None) -> None:
        expires_at = self._clock() + expiration_ttl if expiration_ttl else None
        with self._lock:
            self._data[key] = (value, expires_at)

    def delete(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)


class FileKVStore(KVStore):
    """Single JSON file: ``{key: {"value": str, "expires_at": float|null}}``."""

    def __init__(self, path: Path = DEFAULT_STORE_PATH, clock: Callable[[], float] = time.time):
        self.path = Path(path)
        self._clock = clock
        self._lock = threading.Lock()

    def _load(self) -> Dict[str, dict]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning(f"[Storage] Unreadable store {self.path}, starting empty: {e}")
            return {}
        if not isinstance(data, dict):
            logger.warning(f"[Storage] Store {self.path} is not a JSON object, starting empty")
            return {}
        return {k: v for k, v in data.items() if isinstance(v, dict)}

    def _save(self, data: Dict[str, dict]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(".tmp")
        tmp.write_text(json.dumps(data, ensure_ascii=False), encoding="utf-8")
        tmp.replace(self.path)

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            entry = self._load().get(key)
        if not entry:
            return None
        expires_at = entry.get("expires_at")
        if expires_at is not None and self._clock() >= expires_at:
            return None
        return entry.get("value")

    def put(self, key: str, value: str, expiration_ttl: Optional[int] = None) -> None:
        with self._lock:
            data = self._load()
            now = self._clock()
            # drop expired keys while we are rewriting the file anyway
            data = {k: v for k, v in data.items()
                    if v.get("expires_at") is None or v["expires_at"] > now}
            data[key] = {"value": value, "expires_at": now + expiration_ttl if expiration_ttl else None}
            self._save(data)

    def delete(self, key: str) -> None:
        with self._lock:
            data = self._load()
            if data.pop(key, None) is not None:
                self._save(data)


def _default_keywords() -> str:
    return (Path(__file__).parent / "keywords.txt").read_text(encoding="utf-8")


class StorageManager:
    """Typed accessors over a KVStore, keyed by Beijing calendar day."""

    def __init__(self, kv: KVStore, now: Callable[[], datetime] = beijing_now):
        self.kv = kv
        self._now = now

    def _today(self) -> str:
        return date_key(self._now())

    def _get_json(self, key: str, default: Any = None) -> Any:
        try:
            raw = self.kv.get(key)
            return json.loads(raw) if raw else default
        except Exception as e:
            logger.warning(f"[Storage] Failed to read {key}: {e}")
            return default

    # -- today's snapshot ------------------------------------------------

    def save_today_news(self, snapshot: dict) -> None:
        self.kv.put(f"news:{self._today()}", json.dumps(snapshot, ensure_ascii=False), expiration_ttl=NEWS_TTL)

    def get_today_news(self) -> Optional[dict]:
        return self._get_json(f"news:{self._today()}")

    # -- keywords --------------------------------------------------------

    def save_keywords(self, text: str) -> None:
        self.kv.put("keywords", text)

    def get_keywords(self) -> str:
        try:
            text = self.kv.get("keywords")
        except Exception as e:
            logger.warning(f"[Storage] Failed to read keywords: {e}")
            text = None
        return text or _default_keywords()

    # -- push records ----------------------------------------------------

    def save_push_record(self, report_type: str) -> None:
        record = {
            "pushed": True,
            "push_time": self._now().isoformat(),
            "report_type": report_type,
        }
        self.kv.put(f"push:{self._today()}", json.dumps(record), expiration_ttl=PUSH_TTL)

    def has_pushed_today(self) -> bool:
        record = self._get_json(f"push:{self._today()}") or {}
        return record.get("pushed") is True

    def push_logs(self, days: int = 7) -> List[dict]:
        logs = []
        today = self._now()
        for i in range(days):
            key = date_key(today - timedelta(days=i))
            record = self._get_json(f"push:{key}")
            if record:
                logs.append({"date": key, **record})
        return logs

    # -- token usage ledger ---------------------------------------------

    def log_token_usage(self, module: str, model: str, tokens: dict, extra: Optional[dict] = None) -> None:
        key = f"token_usage:{self._today()}"
        logs = self._get_json(key, [])
        logs.append({
            "timestamp": self._now().isoformat(),
            "module": module,
            "model": model,
            "tokens": tokens,
            **(extra or {}),
        })
        self.kv.put(key, json.dumps(logs, ensure_ascii=False), expiration_ttl=TOKEN_USAGE_TTL)

    def token_usage_logs(self, days: int = 7) -> List[dict]:
        result = []
        today = self._now()
        for i in range(days):
            key = date_key(today - timedelta(days=i))
            records = self._get_json(f"token_usage:{key}")
            if not records:
                continue
            total = sum((r.get("tokens") or {}).get("total_tokens", 0) for r in records)
            result.append({
                "date": key,
                "summary": {
                    "total_tokens": total,
                    "count": len(records),
                    "modules": sorted({r.get("module", "") for r in records}),
                },
                "records": records,
            })
        return result
