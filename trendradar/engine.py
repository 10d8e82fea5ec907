"""Core pipeline engine: crawl, score, translate, deduplicate, push."""
import logging
import time
from datetime import datetime
from typing import Callable, Dict, List, Optional

from trendradar.dedup import DedupStats, Deduplicator
from trendradar.fetcher import DataFetcher
from trendradar.history import HistoryWindow, filter_new
from trendradar.holiday import HolidayService, should_run
from trendradar.keywords import KeywordMatcher, parse_keywords
from trendradar.llm import ChatClient
from trendradar.models import ScoredItem
from trendradar.platforms import resolve_platforms
from trendradar.report import Report, build_report, format_text, merge_groups
from trendradar.semantic import SemanticDeduplicator
from trendradar.storage import FileKVStore, KVStore, StorageManager
from trendradar.translator import TranslationCache, TranslationService
from trendradar.utils import beijing_now, format_date, format_time, parse_since_seconds

logger = logging.getLogger(__name__)

HOT_COUNT = 3

# notifier(text, report) delivers one push; raising aborts the push record
Notifier = Callable[[str, Report], object]


class TrendEngine:
    """Orchestrates one pipeline invocation end to end."""

    def __init__(
        self,
        config: dict,
        storage: StorageManager,
        history: HistoryWindow,
        fetcher: DataFetcher,
        deduplicator: Deduplicator,
        translator: Optional[TranslationService] = None,
        holiday: Optional[HolidayService] = None,
        notifier: Optional[Notifier] = None,
        now: Callable[[], datetime] = beijing_now,
    ):
        self.config = config
        self.storage = storage
        self.history = history
        self.fetcher = fetcher
        self.deduplicator = deduplicator
        self.translator = translator
        self.holiday = holiday
        self.notifier = notifier
        self.matcher = KeywordMatcher(config)
        self._now = now
        self.last_dedup_stats: Optional[DedupStats] = None

    @classmethod
    def from_config(cls, config: dict, kv: Optional[KVStore] = None,
                    notifier: Optional[Notifier] = None) -> "TrendEngine":
        """Wire the default collaborators from a resolved config."""
        if kv is None:
            kv = FileKVStore(config["store_path"]) if config.get("store_path") else FileKVStore()
        storage = StorageManager(kv)
        client = ChatClient(
            api_key=config.get("llm_api_key") or "",
            base_url=config["llm_base_url"],
            model=config["llm_model"],
            timeout=config.get("llm_timeout", 60),
        )
        semantic = SemanticDeduplicator(client, usage_ledger=storage.log_token_usage)
        return cls(
            config=config,
            storage=storage,
            history=HistoryWindow(
                kv,
                window=parse_since_seconds(config["history_window"]),
                ttl=parse_since_seconds(config["history_ttl"]),
            ),
            fetcher=DataFetcher(
                request_interval=config["request_interval"],
                max_retries=config["request_retries"],
                timeout=config["request_timeout"],
            ),
            deduplicator=Deduplicator.from_config(config, semantic),
            translator=TranslationService(client, kv, usage_ledger=storage.log_token_usage),
            holiday=HolidayService(kv, api_key=config.get("holiday_api_key")),
            notifier=notifier,
        )

    @property
    def mode(self) -> str:
        return self.config.get("report_mode", "incremental")

    def _holiday_skip(self) -> bool:
        if self.holiday is None:
            return False
        now = self._now()
        is_holiday = self.holiday.is_holiday_or_weekend(now.date())
        if should_run(now, is_holiday, self.config.get("holiday_schedule_hours")):
            logger.info(f"[Engine] Schedule ok (holiday={is_holiday}, hour={now.hour})")
            return False
        logger.info(f"[Engine] Holiday outside schedule hours ({now.hour}h), skipping run")
        return True

    def _dedup(self, items: List[ScoredItem], history_titles) -> List[ScoredItem]:
        stats = DedupStats()
        result = self.deduplicator.deduplicate(items, sorted(history_titles), stats=stats)
        self.last_dedup_stats = stats
        return result

    def _deliver(self, items: List[ScoredItem], report_type: str) -> Report:
        report = build_report(items, generated_at=self._now())
        text = format_text(report, self.mode)
        logger.info(f"[Engine] Report: {report.count} entries, {len(text)} chars")
        if self.notifier is not None:
            self.notifier(text, report)
        try:
            self.storage.save_push_record(report_type)
        except Exception as e:
            logger.warning(f"[Engine] Failed to save push record: {e}")
        return report

    def _save_history(self, titles) -> None:
        self.history.save(sorted(titles))

    def run(self, force: bool = False) -> dict:
        t0 = time.monotonic()
        enable_notification = self.config.get("enable_notification", True)

        if not force and enable_notification and self._holiday_skip():
            return {"success": True, "message": "holiday outside schedule hours, skipped"}

        if not self.config.get("enable_crawler", True):
            logger.warning("[Engine] Crawler disabled")
            return {"success": False, "message": "crawler disabled"}

        platforms = resolve_platforms(self.config.get("platforms"))
        results, id_to_name, failed = self.fetcher.crawl(platforms)
        if not results:
            logger.error("[Engine] No platform returned data")
            return {"success": False, "message": "no data fetched"}

        groups, filter_words = parse_keywords(self.storage.get_keywords())
        matched = self.matcher.process(results, id_to_name, groups, filter_words)

        if self.translator is not None:
            self.translator.translate_items(merge_groups(matched), TranslationCache())

        total_news = sum(len(v) for v in matched.values())
        hot_news = sum(1 for v in matched.values() for n in v if n.count >= HOT_COUNT)
        now = self._now()
        report_info = {
            "report_mode": self.mode,
            "total_news": total_news,
            "hot_news": hot_news,
            "generate_time": format_time(now),
            "generate_date": format_date(now),
        }
        try:
            self.storage.save_today_news({
                "matched_news": {k: [n.to_dict() for n in v] for k, v in matched.items()},
                "report_info": report_info,
            })
        except Exception as e:
            logger.warning(f"[Engine] Failed to save today's snapshot: {e}")

        notification_sent = False
        push_reason = ""
        if enable_notification:
            current_titles = None
            try:
                if self.mode == "incremental":
                    history_titles = self.history.titles()
                    filtered, new_count, current_titles, new_titles = filter_new(matched, history_titles)
                    final = self._dedup(merge_groups(filtered), history_titles) if new_count else []
                    should_push = bool(final)
                    push_reason = f"{len(final)} new items" if should_push else "nothing new"
                    logger.info(f"[Engine] Incremental: {len(history_titles)} history, "
                                f"{len(current_titles)} current, {new_count} unseen, {len(final)} after dedup")
                else:
                    final = self._dedup(merge_groups(matched), [])
                    should_push = True
                    push_reason = f"{self.mode} mode always pushes"

                if should_push:
                    self._deliver(final, self.mode)
                    notification_sent = True
                else:
                    logger.info(f"[Engine] Skipping push: {push_reason}")
            finally:
                # history is written once per run, whether or not anything was pushed
                if current_titles is not None:
                    self._save_history(current_titles)
        else:
            logger.info("[Engine] Notifications disabled")

        duration = time.monotonic() - t0
        logger.info(f"[Engine] Run finished in {duration:.2f}s")
        return {
            "success": True,
            "message": "ok",
            "data": {
                "total_news": total_news,
                "hot_news": hot_news,
                "platforms": len(results),
                "failed_platforms": len(failed),
                "notification_sent": notification_sent,
                "push_reason": push_reason,
                "duration": round(duration, 2),
            },
        }

    def push(self, force: bool = False) -> dict:
        """Push today's stored snapshot. ``force`` skips the incremental check."""
        snapshot = self.storage.get_today_news()
        if not snapshot:
            return {"success": False, "message": "no snapshot for today, run the crawler first"}
        if not self.config.get("enable_notification", True):
            return {"success": False, "message": "notifications disabled"}

        matched: Dict[str, List[ScoredItem]] = {
            k: [ScoredItem.from_dict(d) for d in v]
            for k, v in (snapshot.get("matched_news") or {}).items()
        }

        if self.mode == "incremental" and not force:
            history_titles = self.history.titles()
            filtered, new_count, current_titles, _ = filter_new(matched, history_titles)
            if not new_count:
                return {"success": False, "message": "nothing new in the history window"}
            final = self._dedup(merge_groups(filtered), history_titles)
            self._save_history(current_titles)
            if not final:
                logger.info(f"[Engine] Manual push skipped: {new_count} unseen, none left after dedup")
                return {"success": False, "message": "nothing new after dedup"}
        else:
            final = self._dedup(merge_groups(matched), [])

        report = self._deliver(final, "manual")
        info = snapshot.get("report_info") or {}
        return {
            "success": True,
            "message": "pushed",
            "data": {
                "total_news": info.get("total_news", 0),
                "hot_news": info.get("hot_news", 0),
                "pushed": report.count,
            },
        }
