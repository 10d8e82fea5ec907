"""Keyword groups, relevance weights and per-group ranking.

Keyword text format (groups separated by a blank line):

    AI
    大模型
    +发布
    !娱乐
    @20

plain word  - at least one must appear in the title
``+word``   - every required word must appear
``!word``   - global filter: titles containing it are dropped everywhere
``@N``      - keep at most N items in this group

Matching is a case-insensitive substring test on the title.
"""
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from trendradar.models import RawItem, ScoredItem

logger = logging.getLogger(__name__)

CATCH_ALL_GROUP = "全部"

DEFAULT_WEIGHT_CONFIG = {
    "rank_weight": 0.6,
    "frequency_weight": 0.3,
    "hotness_weight": 0.1,
}


@dataclass
class KeywordGroup:
    required: List[str] = field(default_factory=list)
    normal: List[str] = field(default_factory=list)
    group_key: str = ""
    max_count: int = 0


def parse_keywords(text: Optional[str]) -> Tuple[List[KeywordGroup], List[str]]:
    """Parse keyword text into (groups, global filter words)."""
    if not text or not text.strip():
        return [], []

    groups: List[KeywordGroup] = []
    filter_words: List[str] = []

    for block in text.replace("\r\n", "\n").split("\n\n"):
        required, normal, max_count = [], [], 0
        for line in block.split("\n"):
            word = line.strip().lower()
            if not word:
                continue
            if word.startswith("@"):
                try:
                    count = int(word[1:])
                except ValueError:
                    logger.warning(f"[Keywords] Ignoring bad group limit: {word}")
                    continue
                if count > 0:
                    max_count = count
            elif word.startswith("!"):
                if word[1:]:
                    filter_words.append(word[1:])
            elif word.startswith("+"):
                if word[1:]:
                    required.append(word[1:])
            else:
                normal.append(word)

        if required or normal:
            key = " ".join(normal) if normal else " ".join(required)
            groups.append(KeywordGroup(required=required, normal=normal, group_key=key, max_count=max_count))

    return groups, filter_words


def match_title(lower_title: str, group: KeywordGroup) -> bool:
    if any(word not in lower_title for word in group.required):
        return False
    if group.normal:
        return any(word in lower_title for word in group.normal)
    return True


def calculate_weight(ranks: List[int], weight_config: Optional[dict] = None, hot_rank_threshold: int = 10) -> float:
    """Blend rank quality, frequency and hotness into one relevance weight."""
    cfg = {**DEFAULT_WEIGHT_CONFIG, **(weight_config or {})}
    avg_rank = sum(ranks) / len(ranks)
    rank_score = 1 / avg_rank
    frequency_score = len(ranks)
    hotness_score = sum(1 for r in ranks if r <= hot_rank_threshold) / len(ranks)
    return (
        rank_score * cfg["rank_weight"]
        + frequency_score * cfg["frequency_weight"]
        + hotness_score * cfg["hotness_weight"]
    )


class KeywordMatcher:
    """Score crawled items and sort them into keyword groups."""

    def __init__(self, config: dict):
        self.weight_config = config.get("weight_config") or DEFAULT_WEIGHT_CONFIG
        self.hot_rank_threshold = config.get("hot_rank_threshold", 10)
        self.allow_multi_group = config.get("allow_multi_group", True)
        self.sort_by_position_first = config.get("sort_by_position_first", False)
        self.max_news_per_keyword = config.get("max_news_per_keyword", 10)

    def weight(self, raw: RawItem) -> float:
        return calculate_weight(raw.ranks, self.weight_config, self.hot_rank_threshold)

    def process(
        self,
        results: Dict[str, Dict[str, RawItem]],
        id_to_name: Dict[str, str],
        groups: List[KeywordGroup],
        filter_words: List[str],
    ) -> Dict[str, List[ScoredItem]]:
        if not groups:
            logger.info("[Keywords] No keyword groups configured, keeping all items")
            groups = [KeywordGroup(group_key=CATCH_ALL_GROUP)]

        matched: Dict[str, List[ScoredItem]] = {g.group_key: [] for g in groups}

        for source_id, titles in results.items():
            source_name = id_to_name.get(source_id, source_id)
            for title, raw in titles.items():
                lower = title.lower()
                if any(w in lower for w in filter_words):
                    continue
                scored = None
                for group in groups:
                    if not match_title(lower, group):
                        continue
                    if scored is None:
                        scored = ScoredItem.from_raw(raw, self.weight(raw), source_name)
                    matched[group.group_key].append(scored)
                    if not self.allow_multi_group:
                        break

        limits = {g.group_key: g.max_count for g in groups}
        for key, items in matched.items():
            if self.sort_by_position_first:
                items.sort(key=lambda x: x.weight, reverse=True)
            else:
                items.sort(key=lambda x: (x.count, x.weight), reverse=True)
            limit = limits.get(key) or self.max_news_per_keyword
            if limit and len(items) > limit:
                matched[key] = items[:limit]

        total = sum(len(v) for v in matched.values())
        logger.info(f"[Keywords] {total} items matched across {len(matched)} groups")
        return matched
