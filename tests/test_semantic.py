"""Tests for the chat-model semantic deduplicator."""
import json
from unittest.mock import MagicMock

import pytest
from conftest import make_item

from trendradar.llm import ChatResult, LLMError
from trendradar.semantic import (
    MalformedResponseError,
    SemanticDedupError,
    SemanticDeduplicator,
    build_candidate_manifest,
    build_history_manifest,
    parse_remove_ids,
)


def _client(content='{"remove_ids": []}', usage=None, side_effect=None):
    client = MagicMock()
    client.configured = True
    client.complete.return_value = ChatResult(content=content, model="deepseek-v3.2",
                                              usage=usage or {"total_tokens": 42})
    if side_effect is not None:
        client.complete.side_effect = side_effect
    return client


class TestParseRemoveIds:
    def test_valid(self):
        assert parse_remove_ids('{"remove_ids": [0, 2], "analysis": "dupes"}') == [0, 2]

    def test_numeric_strings_accepted(self):
        assert parse_remove_ids('{"remove_ids": ["1", 3]}') == [1, 3]

    def test_empty_list_is_valid(self):
        assert parse_remove_ids('{"remove_ids": []}') == []

    @pytest.mark.parametrize("content", [
        "not json at all",
        "[0, 1]",
        "{}",
        '{"remove_ids": "0,1"}',
        '{"remove_ids": null}',
        '{"remove_ids": [true]}',
        '{"remove_ids": ["first"]}',
        '{"remove_ids": [[1]]}',
        '{"remove_ids": [1.5]}',
        '{"remove_ids": [1.0]}',
        '{"remove_ids": ["-1"]}',
    ])
    def test_malformed(self, content):
        with pytest.raises(MalformedResponseError):
            parse_remove_ids(content)


class TestManifests:
    def test_candidate_ids_are_positions(self):
        items = [make_item("A", source="微博"), make_item("B", source="IT之家")]
        assert build_candidate_manifest(items) == [
            {"id": 0, "title": "A", "source": "微博"},
            {"id": 1, "title": "B", "source": "IT之家"},
        ]

    def test_history_ids_are_synthetic(self):
        assert build_history_manifest(["x", "y"]) == [{"id": "h_0", "title": "x"}, {"id": "h_1", "title": "y"}]

    def test_prompt_embeds_both_manifests(self):
        sd = SemanticDeduplicator(_client())
        prompt = sd.build_prompt([make_item("英伟达财报超预期")], ["英伟达发布财报"])
        assert '"h_0"' in prompt
        assert "英伟达发布财报" in prompt
        assert "英伟达财报超预期" in prompt
        assert '{"remove_ids"' in prompt


class TestResolve:
    def test_removes_flagged_ids_in_order(self):
        items = [make_item("A"), make_item("B"), make_item("C")]
        sd = SemanticDeduplicator(_client('{"remove_ids": [1]}'))
        assert sd.resolve(items, []) == [items[0], items[2]]

    def test_request_is_json_mode(self):
        client = _client()
        SemanticDeduplicator(client).resolve([make_item("A")], ["h"])
        _, kwargs = client.complete.call_args
        assert kwargs["json_mode"] is True
        messages = client.complete.call_args[0][0]
        assert messages[0]["role"] == "system"
        user = messages[1]["content"]
        assert json.dumps([{"id": 0, "title": "A", "source": "微博"}], ensure_ascii=False) in user

    def test_unknown_ids_ignored(self):
        items = [make_item("A"), make_item("B")]
        sd = SemanticDeduplicator(_client('{"remove_ids": [7, -1]}'))
        assert sd.resolve(items, []) == items

    def test_empty_input_makes_no_call(self):
        client = _client()
        assert SemanticDeduplicator(client).resolve([], ["h"]) == []
        client.complete.assert_not_called()

    def test_transport_error_wrapped(self):
        sd = SemanticDeduplicator(_client(side_effect=LLMError("502")))
        with pytest.raises(SemanticDedupError):
            sd.resolve([make_item("A")], [])

    def test_malformed_response_raises(self, caplog):
        sd = SemanticDeduplicator(_client("Sure! Here are the duplicates: 1, 2"))
        with pytest.raises(MalformedResponseError):
            sd.resolve([make_item("A")], [])
        assert "Malformed classifier response" in caplog.text

    def test_usage_recorded(self):
        ledger = MagicMock()
        sd = SemanticDeduplicator(_client(usage={"total_tokens": 99}), usage_ledger=ledger)
        sd.resolve([make_item("A"), make_item("B")], ["h1"])
        ledger.assert_called_once_with(
            "deduplicator", "deepseek-v3.2", {"total_tokens": 99},
            {"item_count": 2, "history_count": 1},
        )

    def test_ledger_failure_does_not_fail_resolve(self):
        ledger = MagicMock(side_effect=OSError("disk full"))
        items = [make_item("A")]
        sd = SemanticDeduplicator(_client(), usage_ledger=ledger)
        assert sd.resolve(items, []) == items

    def test_configured_follows_client(self):
        client = _client()
        client.configured = False
        assert not SemanticDeduplicator(client).configured
