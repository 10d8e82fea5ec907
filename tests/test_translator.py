"""Tests for the title translator."""
from unittest.mock import MagicMock

from conftest import make_item

from trendradar.llm import ChatResult, LLMError
from trendradar.translator import CACHE_TTL, TranslationCache, TranslationService, digest

TITLE = "OpenAI releases GPT-5"


def _client(content='"OpenAI 发布 GPT-5"', side_effect=None):
    client = MagicMock()
    client.configured = True
    client.complete.return_value = ChatResult(content=content, model="m", usage={"total_tokens": 7})
    if side_effect is not None:
        client.complete.side_effect = side_effect
    return client


class TestTranslate:
    def test_translates_and_strips_quotes(self, kv):
        service = TranslationService(_client(), kv)
        assert service.translate(TITLE, TranslationCache()) == "OpenAI 发布 GPT-5"

    def test_writes_kv_cache(self, kv, clock):
        service = TranslationService(_client(), kv)
        service.translate(TITLE, TranslationCache())
        assert kv.get(f"trans:{digest(TITLE)}") == "OpenAI 发布 GPT-5"
        clock.advance(CACHE_TTL)
        assert kv.get(f"trans:{digest(TITLE)}") is None

    def test_kv_cache_hit_skips_call(self, kv):
        kv.put(f"trans:{digest(TITLE)}", "缓存译文")
        client = _client()
        assert TranslationService(client, kv).translate(TITLE, TranslationCache()) == "缓存译文"
        client.complete.assert_not_called()

    def test_run_cache_hit_skips_kv(self):
        kv = MagicMock()
        cache = TranslationCache()
        cache.set(digest(TITLE), "内存译文")
        assert TranslationService(_client(), kv).translate(TITLE, cache) == "内存译文"
        kv.get.assert_not_called()

    def test_chinese_untouched(self, kv):
        client = _client()
        assert TranslationService(client, kv).translate("特斯拉涨停", TranslationCache()) == "特斯拉涨停"
        client.complete.assert_not_called()

    def test_failure_returns_original(self, kv):
        service = TranslationService(_client(side_effect=LLMError("boom")), kv)
        assert service.translate(TITLE, TranslationCache()) == TITLE

    def test_unconfigured_returns_original(self, kv):
        client = _client()
        client.configured = False
        assert TranslationService(client, kv).translate(TITLE, TranslationCache()) == TITLE

    def test_usage_ledger(self, kv):
        ledger = MagicMock()
        TranslationService(_client(), kv, usage_ledger=ledger).translate(TITLE, TranslationCache())
        ledger.assert_called_once_with("translator", "m", {"total_tokens": 7}, {"text_length": len(TITLE)})


class TestTranslateItems:
    def test_each_distinct_title_once(self, kv):
        client = _client()
        items = [make_item(TITLE), make_item(TITLE), make_item("特斯拉涨停")]
        changed = TranslationService(client, kv, max_workers=4).translate_items(items, TranslationCache())
        assert changed == 2
        assert client.complete.call_count == 1
        assert [i.title for i in items] == ["OpenAI 发布 GPT-5", "OpenAI 发布 GPT-5", "特斯拉涨停"]

    def test_nothing_english(self, kv):
        client = _client()
        assert TranslationService(client, kv).translate_items([make_item("苹果")]) == 0
        client.complete.assert_not_called()
