"""CLI entry point for TrendRadar."""
import argparse
import json
import logging
import sys
from pathlib import Path

from trendradar import __version__
from trendradar.config import REPORT_MODES, build_config
from trendradar.engine import TrendEngine
from trendradar.history import HistoryWindow
from trendradar.report import render_console
from trendradar.storage import FileKVStore, MemoryKVStore, StorageManager
from trendradar.utils import parse_since_seconds


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="trendradar",
        description="🔥 TrendRadar: hot-list monitor with multi-stage news deduplication",
    )
    parser.add_argument("-V", "--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--force", action="store_true",
                        help="Ignore the holiday schedule (and the incremental check with --push)")
    parser.add_argument("--mode", choices=REPORT_MODES, default=None,
                        help="Report mode (default from config: incremental)")
    parser.add_argument("-f", "--format", choices=["console", "text"], default="console",
                        help="How pushed reports are printed (default: console)")
    parser.add_argument("--store", type=str, default=None, metavar="PATH",
                        help="Key-value store file (default: ~/.cache/trendradar/kv.json)")
    parser.add_argument("--dry-run", action="store_true", dest="dry_run",
                        help="Use an in-memory store; nothing is persisted")
    parser.add_argument("--no-config", action="store_true",
                        help="Ignore config files (~/.trendradar.yaml, ./trendradar.yaml)")
    parser.add_argument("--push", action="store_true",
                        help="Push today's stored snapshot instead of crawling")
    parser.add_argument("--show-keywords", action="store_true", dest="show_keywords",
                        help="Print the active keyword configuration and exit")
    parser.add_argument("--set-keywords", type=str, default=None, metavar="FILE", dest="set_keywords",
                        help="Store keyword configuration from FILE and exit")
    parser.add_argument("--history-stats", action="store_true", dest="history_stats",
                        help="Show rolling history window statistics and exit")
    parser.add_argument("--clear-history", action="store_true", dest="clear_history",
                        help="Delete the rolling history window and exit")
    parser.add_argument("--token-usage", type=int, nargs="?", const=7, default=None, metavar="DAYS",
                        dest="token_usage", help="Show LLM token usage for the last DAYS days (default: 7)")
    parser.add_argument("--push-logs", type=int, nargs="?", const=7, default=None, metavar="DAYS",
                        dest="push_logs", help="Show push records for the last DAYS days (default: 7)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Verbose logging")
    parser.add_argument("-q", "--quiet", action="store_true", help="Only log warnings and errors")
    return parser


def _console_notifier(fmt: str, mode: str):
    def notify(text, report):
        print(render_console(report, mode) if fmt == "console" else text)
    return notify


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING if args.quiet else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
    )

    overrides = {"report_mode": args.mode, "store_path": args.store}
    try:
        config = build_config(overrides, use_files=not args.no_config)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(2)

    if args.dry_run:
        kv = MemoryKVStore()
    elif config.get("store_path"):
        kv = FileKVStore(Path(config["store_path"]).expanduser())
    else:
        kv = FileKVStore()
    storage = StorageManager(kv)

    if args.set_keywords:
        path = Path(args.set_keywords)
        if not path.is_file():
            print(f"Error: keyword file not found: {path}", file=sys.stderr)
            sys.exit(1)
        storage.save_keywords(path.read_text(encoding="utf-8"))
        print(f"✅ Stored keywords from {path}")
        return

    if args.show_keywords:
        print(storage.get_keywords())
        return

    if args.history_stats or args.clear_history:
        history = HistoryWindow(
            kv,
            window=parse_since_seconds(config["history_window"]),
            ttl=parse_since_seconds(config["history_ttl"]),
        )
        if args.clear_history:
            history.clear()
            print("🧹 Cleared history window")
        else:
            stats = history.stats()
            print("🕑 History window")
            for key, value in stats.items():
                print(f"   {key}: {value}")
        return

    if args.token_usage is not None:
        print(json.dumps(storage.token_usage_logs(args.token_usage), ensure_ascii=False, indent=2))
        return

    if args.push_logs is not None:
        print(json.dumps(storage.push_logs(args.push_logs), ensure_ascii=False, indent=2))
        return

    engine = TrendEngine.from_config(config, kv=kv, notifier=_console_notifier(args.format, config["report_mode"]))
    result = engine.push(force=args.force) if args.push else engine.run(force=args.force)

    if not args.quiet:
        print(json.dumps(result, ensure_ascii=False), file=sys.stderr)
    if not result.get("success"):
        sys.exit(1)


if __name__ == "__main__":
    main()
