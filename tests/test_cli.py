"""Tests for the CLI."""
import json
from unittest.mock import patch

import pytest

from trendradar.cli import build_parser, main


def _run(argv, tmp_path):
    store = tmp_path / "kv.json"
    return main(["--no-config", "--store", str(store), "-q", *argv])


class TestParser:
    def test_defaults(self):
        args = build_parser().parse_args([])
        assert args.mode is None
        assert not args.force
        assert args.token_usage is None

    def test_token_usage_optional_days(self):
        assert build_parser().parse_args(["--token-usage"]).token_usage == 7
        assert build_parser().parse_args(["--token-usage", "3"]).token_usage == 3

    def test_invalid_mode_rejected(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["--mode", "hourly"])

    def test_version(self, capsys):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["-V"])
        assert "trendradar" in capsys.readouterr().out


class TestCommands:
    def test_set_and_show_keywords(self, tmp_path, capsys):
        kw = tmp_path / "kw.txt"
        kw.write_text("特斯拉\n+涨停", encoding="utf-8")
        _run(["--set-keywords", str(kw)], tmp_path)
        capsys.readouterr()
        _run(["--show-keywords"], tmp_path)
        assert capsys.readouterr().out.strip() == "特斯拉\n+涨停"

    def test_missing_keyword_file(self, tmp_path):
        with pytest.raises(SystemExit) as exc:
            _run(["--set-keywords", str(tmp_path / "nope.txt")], tmp_path)
        assert exc.value.code == 1

    def test_history_stats_and_clear(self, tmp_path, capsys):
        _run(["--history-stats"], tmp_path)
        assert "active_entries: 0" in capsys.readouterr().out
        _run(["--clear-history"], tmp_path)
        assert "Cleared" in capsys.readouterr().out

    def test_token_usage_empty(self, tmp_path, capsys):
        _run(["--token-usage", "2"], tmp_path)
        assert json.loads(capsys.readouterr().out) == []

    def test_push_without_snapshot_fails(self, tmp_path):
        with pytest.raises(SystemExit) as exc:
            _run(["--push"], tmp_path)
        assert exc.value.code == 1

    def test_run_invokes_engine(self, tmp_path):
        with patch("trendradar.cli.TrendEngine") as engine_cls:
            engine_cls.from_config.return_value.run.return_value = {"success": True}
            _run(["--force", "--mode", "daily"], tmp_path)
        config = engine_cls.from_config.call_args[0][0]
        assert config["report_mode"] == "daily"
        engine_cls.from_config.return_value.run.assert_called_once_with(force=True)
