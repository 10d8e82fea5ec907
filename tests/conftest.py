"""Shared test fixtures and configuration."""
from datetime import datetime

import pytest

from trendradar.models import ScoredItem
from trendradar.storage import MemoryKVStore
from trendradar.utils import BEIJING


class FakeClock:
    """Manually advanced epoch clock."""

    def __init__(self, start: float = 1_740_794_400.0):  # 2025-03-01 10:00 Beijing
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds

    def beijing(self) -> datetime:
        return datetime.fromtimestamp(self.now, tz=BEIJING)


def make_item(title: str, weight: float = 1.0, source: str = "微博", url: str = "", ranks=None) -> ScoredItem:
    ranks = list(ranks or [1])
    return ScoredItem(
        title=title,
        source_id="weibo",
        ranks=ranks,
        url=url,
        weight=weight,
        first_rank=min(ranks),
        count=len(ranks),
        source=source,
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def kv(clock):
    return MemoryKVStore(clock=clock)
