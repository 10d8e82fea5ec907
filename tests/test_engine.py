"""Tests for the pipeline engine."""
from unittest.mock import MagicMock

import pytest

from trendradar.config import merge_config
from trendradar.dedup import Deduplicator
from trendradar.engine import TrendEngine
from trendradar.fetcher import DataFetcher
from trendradar.history import HistoryWindow
from trendradar.models import RawItem
from trendradar.semantic import SemanticDeduplicator
from trendradar.storage import DAY, StorageManager
from trendradar.translator import TranslationService

TESLA = "特斯拉涨停"
APPLE = "苹果发布iPhone16"
APPLE_SPACED = "苹果 发布 iPhone 16"


def _results(extra_weibo=()):
    weibo = {
        TESLA: RawItem(TESLA, "weibo", [1], url="https://weibo/1"),
        APPLE: RawItem(APPLE, "weibo", [2], url="https://weibo/2"),
    }
    for i, title in enumerate(extra_weibo, 3):
        weibo[title] = RawItem(title, "weibo", [i])
    return {
        "weibo": weibo,
        "ithome": {APPLE_SPACED: RawItem(APPLE_SPACED, "ithome", [1], url="https://ithome/1")},
    }


def _engine(kv, clock, mode="incremental", results=None, notifier=None, holiday=None,
            translator=None, **overrides):
    config = merge_config({"report_mode": mode, **overrides})
    storage = StorageManager(kv, now=clock.beijing)
    storage.save_keywords("特斯拉\n\n苹果")
    fetcher = MagicMock()
    fetcher.crawl.return_value = (
        results if results is not None else _results(),
        {"weibo": "微博", "ithome": "IT之家"},
        [],
    )
    return TrendEngine(
        config=config,
        storage=storage,
        history=HistoryWindow(kv, clock=clock),
        fetcher=fetcher,
        deduplicator=Deduplicator(),
        translator=translator,
        holiday=holiday,
        notifier=notifier if notifier is not None else MagicMock(),
        now=clock.beijing,
    )


class TestIncrementalRun:
    def test_first_run_pushes_deduplicated_report(self, kv, clock):
        engine = _engine(kv, clock)
        result = engine.run()

        assert result["success"]
        data = result["data"]
        assert data["notification_sent"]
        assert data["total_news"] == 3
        assert data["platforms"] == 2

        text, report = engine.notifier.call_args[0]
        assert report.count == 2
        assert [e.title for e in report.entries] == [TESLA, APPLE_SPACED]
        assert text.startswith("🔥 热点新闻推送")
        assert engine.storage.has_pushed_today()

    def test_history_holds_all_current_titles(self, kv, clock):
        engine = _engine(kv, clock)
        engine.run()
        assert engine.history.titles() == {TESLA, APPLE, APPLE_SPACED}

    def test_snapshot_saved(self, kv, clock):
        engine = _engine(kv, clock)
        engine.run()
        snapshot = engine.storage.get_today_news()
        assert snapshot["report_info"]["report_mode"] == "incremental"
        assert snapshot["report_info"]["total_news"] == 3
        assert set(snapshot["matched_news"]) == {"特斯拉", "苹果"}

    def test_second_run_has_nothing_new(self, kv, clock):
        engine = _engine(kv, clock)
        engine.run()
        clock.advance(3600)
        result = engine.run()
        assert not result["data"]["notification_sent"]
        assert result["data"]["push_reason"] == "nothing new"
        assert engine.notifier.call_count == 1

    def test_near_duplicate_of_history_not_pushed(self, kv, clock):
        _engine(kv, clock).run()
        clock.advance(3600)
        engine = _engine(kv, clock, results=_results(extra_weibo=["苹果发布iPhone16了"]))
        result = engine.run()
        assert not result["data"]["notification_sent"]
        engine.notifier.assert_not_called()
        assert engine.last_dedup_stats.algorithmic_removed == 1
        assert "苹果发布iPhone16了" in engine.history.titles()

    def test_history_expires_after_window(self, kv, clock):
        _engine(kv, clock).run()
        clock.advance(8 * DAY)
        engine = _engine(kv, clock)
        assert engine.run()["data"]["notification_sent"]

    def test_notifier_failure_still_writes_history(self, kv, clock):
        engine = _engine(kv, clock, notifier=MagicMock(side_effect=RuntimeError("webhook down")))
        with pytest.raises(RuntimeError):
            engine.run()
        assert engine.history.titles() == {TESLA, APPLE, APPLE_SPACED}
        assert not engine.storage.has_pushed_today()


class TestOtherModes:
    def test_daily_always_pushes(self, kv, clock):
        engine = _engine(kv, clock, mode="daily")
        engine.run()
        clock.advance(3600)
        result = engine.run()
        assert result["data"]["notification_sent"]
        assert engine.notifier.call_count == 2
        assert engine.history.titles() == set()

    def test_notifications_disabled(self, kv, clock):
        engine = _engine(kv, clock, enable_notification=False)
        result = engine.run()
        assert result["success"]
        assert not result["data"]["notification_sent"]
        engine.notifier.assert_not_called()
        assert engine.history.titles() == set()
        assert engine.storage.get_today_news() is not None

    def test_crawler_disabled(self, kv, clock):
        engine = _engine(kv, clock, enable_crawler=False)
        assert not engine.run()["success"]
        engine.fetcher.crawl.assert_not_called()

    def test_no_data(self, kv, clock):
        engine = _engine(kv, clock, results={})
        result = engine.run()
        assert not result["success"]
        engine.notifier.assert_not_called()


class TestHolidayGate:
    def _holiday(self, is_holiday=True):
        holiday = MagicMock()
        holiday.is_holiday_or_weekend.return_value = is_holiday
        return holiday

    def test_scheduled_hour_runs(self, kv, clock):
        # clock starts at 10:00 Beijing
        engine = _engine(kv, clock, holiday=self._holiday())
        assert engine.run()["data"]["notification_sent"]

    def test_off_hour_skips(self, kv, clock):
        clock.advance(3600)
        engine = _engine(kv, clock, holiday=self._holiday())
        result = engine.run()
        assert result["success"]
        assert "skipped" in result["message"]
        engine.fetcher.crawl.assert_not_called()

    def test_force_ignores_schedule(self, kv, clock):
        clock.advance(3600)
        engine = _engine(kv, clock, holiday=self._holiday())
        assert engine.run(force=True)["data"]["notification_sent"]
        engine.holiday.is_holiday_or_weekend.assert_not_called()

    def test_workday_runs_any_hour(self, kv, clock):
        clock.advance(3600)
        engine = _engine(kv, clock, holiday=self._holiday(False))
        assert engine.run()["data"]["notification_sent"]


class TestTranslation:
    def test_matched_items_translated_before_snapshot(self, kv, clock):
        translator = MagicMock()

        def retitle(items, cache):
            for item in items:
                if item.title == TESLA:
                    item.title = "Tesla hits limit up"
            return 1

        translator.translate_items.side_effect = retitle
        engine = _engine(kv, clock, translator=translator)
        engine.run()
        snapshot = engine.storage.get_today_news()
        titles = [n["title"] for n in snapshot["matched_news"]["特斯拉"]]
        assert titles == ["Tesla hits limit up"]


class TestManualPush:
    def test_no_snapshot(self, kv, clock):
        assert not _engine(kv, clock).push()["success"]

    def test_incremental_nothing_new(self, kv, clock):
        engine = _engine(kv, clock)
        engine.run()
        assert not engine.push()["success"]
        assert engine.notifier.call_count == 1

    def test_forced_push_from_snapshot(self, kv, clock):
        engine = _engine(kv, clock)
        engine.run()
        result = engine.push(force=True)
        assert result["success"]
        assert result["data"]["pushed"] == 2
        assert engine.notifier.call_count == 2

    def test_incremental_push_with_new_items(self, kv, clock):
        engine = _engine(kv, clock, enable_notification=False)
        engine.run()
        engine.config["enable_notification"] = True
        result = engine.push()
        assert result["success"]
        assert engine.history.titles() == {TESLA, APPLE, APPLE_SPACED}

    def test_incremental_push_with_only_near_duplicates(self, kv, clock):
        engine = _engine(kv, clock, enable_notification=False)
        engine.run()
        engine.history.save(["特斯拉涨停了", "苹果发布iPhone16了"])
        clock.advance(60)
        engine.config["enable_notification"] = True
        result = engine.push()
        assert not result["success"]
        assert result["message"] == "nothing new after dedup"
        engine.notifier.assert_not_called()
        assert not engine.storage.has_pushed_today()
        assert {TESLA, APPLE, APPLE_SPACED} <= engine.history.titles()


def test_from_config_wires_collaborators(kv):
    config = merge_config({"history_window": "3d", "llm_api_key": "sk-x"})
    engine = TrendEngine.from_config(config, kv=kv)
    assert isinstance(engine.fetcher, DataFetcher)
    assert isinstance(engine.translator, TranslationService)
    assert isinstance(engine.deduplicator.semantic, SemanticDeduplicator)
    assert engine.deduplicator.semantic.configured
    assert engine.history.window == 3 * DAY
    assert engine.storage.kv is kv
