"""Data models for TrendRadar."""
from dataclasses import asdict, dataclass, field
from typing import Any, FrozenSet, List, Mapping, Union

from trendradar.text import normalize, tokenize


@dataclass
class RawItem:
    """All rank observations of one title from one source in one crawl cycle."""
    title: str
    source_id: str
    ranks: List[int] = field(default_factory=list)
    url: str = ""
    mobile_url: str = ""

    def add_rank(self, rank: int) -> None:
        self.ranks.append(rank)


@dataclass
class ScoredItem:
    title: str
    source_id: str
    ranks: List[int]
    url: str = ""
    mobile_url: str = ""
    weight: float = 0.0
    first_rank: int = 0
    count: int = 0
    source: str = ""  # display name of the source

    @classmethod
    def from_raw(cls, raw: RawItem, weight: float, source_name: str) -> "ScoredItem":
        return cls(
            title=raw.title,
            source_id=raw.source_id,
            ranks=list(raw.ranks),
            url=raw.url,
            mobile_url=raw.mobile_url,
            weight=weight,
            first_rank=min(raw.ranks),
            count=len(raw.ranks),
            source=source_name,
        )

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, d: Mapping[str, Any]) -> "ScoredItem":
        ranks = [int(r) for r in d.get("ranks", [])]
        return cls(
            title=d["title"],
            source_id=d.get("source_id", ""),
            ranks=ranks,
            url=d.get("url", ""),
            mobile_url=d.get("mobile_url", ""),
            weight=float(d.get("weight", 0.0)),
            first_rank=int(d.get("first_rank", min(ranks) if ranks else 0)),
            count=int(d.get("count", len(ranks))),
            source=d.get("source", ""),
        )


@dataclass(frozen=True)
class PreparedItem:
    """Normalized view of an item, built once per deduplication call."""
    original: Any
    title: str
    normalized: str
    tokens: FrozenSet[str]
    length: int

    @property
    def weight(self) -> float:
        if isinstance(self.original, Mapping):
            return float(self.original.get("weight") or 0.0)
        return getattr(self.original, "weight", 0.0) or 0.0


@dataclass(frozen=True)
class HistoryEntry:
    timestamp: int  # epoch millis
    titles: FrozenSet[str]


def prepare_item(obj: Union[str, ScoredItem, Mapping[str, Any]]) -> PreparedItem:
    """Build a PreparedItem from a bare title, a ScoredItem or a mapping with ``title``."""
    if isinstance(obj, str):
        title = obj
    elif isinstance(obj, Mapping):
        title = obj.get("title") or ""
    else:
        title = getattr(obj, "title", "") or ""
    normalized = normalize(title)
    return PreparedItem(
        original=obj,
        title=title,
        normalized=normalized,
        tokens=tokenize(normalized),
        length=len(normalized),
    )


def prepare_items(items) -> List[PreparedItem]:
    return [prepare_item(obj) for obj in items]
