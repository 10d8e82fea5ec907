"""English-title translation with a KV cache and a per-run memory cache."""
import hashlib
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Dict, Iterable, Optional

from trendradar.llm import ChatClient, LLMError
from trendradar.models import ScoredItem
from trendradar.storage import DAY, KVStore
from trendradar.text import is_english

logger = logging.getLogger(__name__)

CACHE_TTL = 30 * DAY

SYSTEM_PROMPT = (
    "你是一个专业的科技新闻翻译助手。请将用户提供的英文新闻标题翻译成中文。要求：\n"
    "1. 翻译准确，符合中文阅读习惯。\n"
    "2. 专有名词(如 AI, LLM, GPU 等)保留英文。\n"
    "3. 仅返回翻译结果，不要包含任何解释。\n"
    "4. 如果原文已经是中文，原样返回。"
)


class TranslationCache:
    """In-memory translations for one pipeline run. Safe to share across worker threads."""

    def __init__(self):
        self._data: Dict[str, str] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        with self._lock:
            self._data[key] = value

    def __len__(self) -> int:
        return len(self._data)


def digest(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


class TranslationService:
    def __init__(
        self,
        client: ChatClient,
        kv: KVStore,
        usage_ledger: Optional[Callable[..., object]] = None,
        max_workers: int = 6,
    ):
        self.client = client
        self.kv = kv
        self.usage_ledger = usage_ledger
        self.max_workers = max_workers

    def translate(self, text: str, cache: TranslationCache) -> str:
        """Translate an English title; any failure returns the original text."""
        if not text or not is_english(text) or not self.client.configured:
            return text

        key = digest(text)
        hit = cache.get(key)
        if hit is not None:
            return hit

        try:
            stored = self.kv.get(f"trans:{key}")
        except Exception as e:
            logger.warning(f"[Translate] Cache read failed: {e}")
            stored = None
        if stored:
            cache.set(key, stored)
            return stored

        try:
            result = self.client.complete(
                [{"role": "system", "content": SYSTEM_PROMPT}, {"role": "user", "content": text}],
                temperature=0.1,
            )
        except LLMError as e:
            logger.warning(f"[Translate] Failed for {text[:40]!r}: {e}")
            return text

        self._record_usage(result.model, result.usage, len(text))

        translated = result.content
        if len(translated) >= 2 and translated.startswith('"') and translated.endswith('"'):
            translated = translated[1:-1]
        if not translated:
            return text

        try:
            self.kv.put(f"trans:{key}", translated, expiration_ttl=CACHE_TTL)
        except Exception as e:
            logger.warning(f"[Translate] Cache write failed: {e}")
        cache.set(key, translated)
        return translated

    def translate_items(self, items: Iterable[ScoredItem], cache: Optional[TranslationCache] = None) -> int:
        """Translate titles in place, each distinct title once, in parallel. Returns the count changed."""
        items = list(items)
        cache = cache if cache is not None else TranslationCache()
        titles = sorted({it.title for it in items if is_english(it.title)})
        if not titles:
            return 0

        with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
            translated = dict(zip(titles, pool.map(lambda t: self.translate(t, cache), titles)))

        changed = 0
        for item in items:
            new_title = translated.get(item.title)
            if new_title and new_title != item.title:
                item.title = new_title
                changed += 1
        logger.info(f"[Translate] {len(titles)} distinct English titles, {changed} items retitled")
        return changed

    def _record_usage(self, model: str, usage: dict, text_length: int) -> None:
        if not self.usage_ledger or not usage:
            return
        try:
            self.usage_ledger("translator", model, usage, {"text_length": text_length})
        except Exception as e:
            logger.warning(f"[Translate] Failed to record token usage: {e}")
