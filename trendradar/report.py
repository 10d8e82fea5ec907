"""Push report: ranked (title, url, source) triples plus a count and a timestamp."""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Iterable, List

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel

from trendradar.models import ScoredItem
from trendradar.utils import beijing_now, format_time

MODE_LABELS = {
    "daily": "当日汇总",
    "current": "当前榜单",
    "incremental": "增量监控",
}


@dataclass(frozen=True)
class ReportEntry:
    title: str
    url: str
    source: str


@dataclass
class Report:
    entries: List[ReportEntry] = field(default_factory=list)
    count: int = 0
    generated_at: datetime = field(default_factory=beijing_now)


def merge_groups(matched: Dict[str, List[ScoredItem]]) -> List[ScoredItem]:
    """Flatten keyword groups; an item shared by several groups appears once."""
    seen = set()
    merged = []
    for items in matched.values():
        for item in items:
            if id(item) in seen:
                continue
            seen.add(id(item))
            merged.append(item)
    return merged


def build_report(items: Iterable[ScoredItem], generated_at: datetime = None) -> Report:
    ranked = sorted(items, key=lambda x: x.weight or 0.0, reverse=True)
    entries = [ReportEntry(title=i.title, url=i.url or i.mobile_url, source=i.source or i.source_id) for i in ranked]
    return Report(entries=entries, count=len(entries), generated_at=generated_at or beijing_now())


def format_text(report: Report, mode: str = "incremental") -> str:
    """Plain text push body, markdown links where a URL exists."""
    label = MODE_LABELS.get(mode, mode)
    lines = ["🔥 热点新闻推送", "", f" {report.count}条 | {label} | {format_time(report.generated_at)}"]
    for i, e in enumerate(report.entries, 1):
        if e.url:
            lines.append(f"{i}. [{e.title}]({e.url}) - {e.source}")
        else:
            lines.append(f"{i}. {e.title} - {e.source}")
    return "\n".join(lines) + "\n"


def render_console(report: Report, mode: str = "incremental") -> str:
    console = Console(record=True, width=120)
    label = MODE_LABELS.get(mode, mode)
    stamp = report.generated_at.strftime("%Y-%m-%d %H:%M")
    console.print(Panel(f"[bold red]🔥 热点新闻推送[/] {report.count}条 | {label} | {stamp}", expand=False))

    for i, e in enumerate(report.entries, 1):
        console.print(f"\n[bold white]{i}. {escape(e.title)}[/]")
        console.print(f"   [dim]📰 {escape(e.source)}[/]")
        if e.url:
            console.print(f"   [blue underline]{escape(e.url)}[/]")

    return console.export_text()
