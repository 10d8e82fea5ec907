"""Deduplication engine for TrendRadar.

Four-stage strategy, cheapest first:
1. Exact signature match (normalized title) against history and the batch, O(1) lookup
2. Hybrid similarity (Jaccard + edit distance) against history and accepted items,
   keeping the heavier duplicate
3. Jaccard-only pre-filter picking the few items worth a model call
4. Semantic review of those items by a chat model (optional)
"""
import logging
import time
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from trendradar.models import PreparedItem, ScoredItem, prepare_items
from trendradar.semantic import MalformedResponseError, SemanticDeduplicator
from trendradar.similarity import hybrid_similarity, jaccard, lengths_compatible

logger = logging.getLogger(__name__)

MAX_RELEVANT_HISTORY = 50


@dataclass
class DedupStats:
    """Per-call counters, filled in by Deduplicator.deduplicate."""
    input_count: int = 0
    exact_removed: int = 0
    algorithmic_removed: int = 0
    suspicious: int = 0
    semantic_removed: int = 0
    semantic_used: bool = False
    fallback: bool = False
    output_count: int = 0
    elapsed_ms: float = 0.0


@dataclass
class PreFilterResult:
    suspicious: List[PreparedItem] = field(default_factory=list)
    safe: List[PreparedItem] = field(default_factory=list)
    relevant_history: List[str] = field(default_factory=list)


def exact_signature_pass(items: Sequence[PreparedItem], history: Sequence[PreparedItem]) -> List[PreparedItem]:
    """Drop items whose signature was seen in history or earlier in the batch."""
    seen = {h.normalized for h in history}
    unique = []
    for item in items:
        if item.normalized in seen:
            logger.debug(f"[Dedup] Exact: <{item.title}> already seen")
            continue
        seen.add(item.normalized)
        unique.append(item)
    return unique


def algorithmic_dedup(
    items: Sequence[PreparedItem],
    history: Sequence[PreparedItem],
    threshold: float = 0.8,
) -> List[PreparedItem]:
    """Drop near-duplicates of history, collapse near-duplicates inside the batch.

    History always wins. Inside the batch, a duplicate with a strictly greater
    weight replaces the accepted item in its slot; otherwise it is discarded.
    """
    unique: List[PreparedItem] = []

    for item in items:
        rejected_by = None
        for h in history:
            if not lengths_compatible(item, h):
                continue
            sim = hybrid_similarity(item, h, threshold)
            if sim > threshold:
                rejected_by = (h, sim)
                break
        if rejected_by:
            logger.debug(f"[Dedup] History (sim={rejected_by[1]:.2f}): "
                         f"\"{item.title}\" ~= \"{rejected_by[0].title}\"")
            continue

        is_dupe = False
        for i, kept in enumerate(unique):
            if not lengths_compatible(item, kept):
                continue
            sim = hybrid_similarity(item, kept, threshold)
            if sim > threshold:
                if item.weight > kept.weight:
                    logger.debug(f"[Dedup] Replace (sim={sim:.2f}): keep \"{item.title}\" over \"{kept.title}\"")
                    unique[i] = item
                else:
                    logger.debug(f"[Dedup] Drop (sim={sim:.2f}): \"{item.title}\" in favour of \"{kept.title}\"")
                is_dupe = True
                break

        if not is_dupe:
            unique.append(item)

    return unique


def prefilter(
    items: Sequence[PreparedItem],
    history: Sequence[PreparedItem],
    threshold: float = 0.1,
) -> PreFilterResult:
    """Split items into suspicious/safe using Jaccard only."""
    suspicious = set()
    relevant: List[str] = []
    relevant_seen = set()

    for h in history:
        related = False
        for i, item in enumerate(items):
            j = jaccard(item.tokens, h.tokens)
            if j > threshold:
                suspicious.add(i)
                related = True
                logger.debug(f"[Dedup] Suspicious vs history (J={j:.2f}): \"{item.title}\" <~> \"{h.title}\"")
        if related and h.title not in relevant_seen:
            relevant_seen.add(h.title)
            relevant.append(h.title)

    for i in range(len(items)):
        for k in range(i + 1, len(items)):
            j = jaccard(items[i].tokens, items[k].tokens)
            if j > threshold:
                suspicious.update((i, k))
                logger.debug(f"[Dedup] Suspicious pair (J={j:.2f}): \"{items[i].title}\" <~> \"{items[k].title}\"")

    return PreFilterResult(
        suspicious=[it for i, it in enumerate(items) if i in suspicious],
        safe=[it for i, it in enumerate(items) if i not in suspicious],
        relevant_history=relevant[:MAX_RELEVANT_HISTORY],
    )


def unique_titles(items: Sequence[ScoredItem]) -> List[ScoredItem]:
    seen = set()
    result = []
    for item in items:
        if item.title not in seen:
            seen.add(item.title)
            result.append(item)
    return result


class Deduplicator:
    """Run the full pipeline over one batch against the history window."""

    def __init__(
        self,
        semantic: Optional[SemanticDeduplicator] = None,
        algorithm_threshold: float = 0.8,
        prefilter_threshold: float = 0.1,
        semantic_max_items: Optional[int] = None,
    ):
        self.semantic = semantic
        self.algorithm_threshold = algorithm_threshold
        self.prefilter_threshold = prefilter_threshold
        self.semantic_max_items = semantic_max_items

    @classmethod
    def from_config(cls, config: dict, semantic: Optional[SemanticDeduplicator] = None) -> "Deduplicator":
        return cls(
            semantic=semantic,
            algorithm_threshold=config.get("algorithm_threshold", 0.8),
            prefilter_threshold=config.get("prefilter_threshold", 0.1),
            semantic_max_items=config.get("semantic_max_items"),
        )

    def _semantic_enabled(self, count: int) -> bool:
        if self.semantic is None or not self.semantic.configured or count == 0:
            return False
        if self.semantic_max_items is not None and count > self.semantic_max_items:
            logger.info(f"[Dedup] {count} items exceed semantic cutoff {self.semantic_max_items}, skipping")
            return False
        return True

    def deduplicate(
        self,
        news_list: Sequence[ScoredItem],
        history_titles: Sequence[str] = (),
        stats: Optional[DedupStats] = None,
    ) -> List[ScoredItem]:
        if stats is None:
            stats = DedupStats()
        if not news_list:
            return []

        t0 = time.monotonic()
        stats.input_count = len(news_list)
        logger.info(f"[Dedup] Start: {len(news_list)} items, {len(history_titles)} history titles")

        prepared = prepare_items(news_list)
        history = prepare_items(history_titles)

        unique = exact_signature_pass(prepared, history)
        stats.exact_removed = len(prepared) - len(unique)
        logger.info(f"[Dedup] After exact pass: {len(unique)}")

        algo = algorithmic_dedup(unique, history, self.algorithm_threshold)
        stats.algorithmic_removed = len(unique) - len(algo)
        logger.info(f"[Dedup] After algorithmic pass (>{self.algorithm_threshold}): {len(algo)}")
        algo_result = [p.original for p in algo]

        result = algo_result
        if self._semantic_enabled(len(algo)):
            merged = self._semantic_pass(algo, history, stats)
            if merged is not None:
                result = merged

        stats.output_count = len(result)
        stats.elapsed_ms = (time.monotonic() - t0) * 1000
        logger.info(f"[Dedup] Done: {stats.output_count} items in {stats.elapsed_ms:.0f}ms")
        return result

    def _semantic_pass(self, algo: List[PreparedItem], history: List[PreparedItem],
                       stats: DedupStats) -> Optional[List[ScoredItem]]:
        """Return the merged semantic result, or None to fall back to ``algo``."""
        try:
            pre = prefilter(algo, history, self.prefilter_threshold)
            stats.suspicious = len(pre.suspicious)
            if not pre.suspicious:
                logger.info("[Dedup] Pre-filter found nothing suspicious, no model call")
                return None

            logger.info(f"[Dedup] Semantic pass: {len(pre.suspicious)} suspicious, "
                        f"{len(pre.safe)} safe, {len(pre.relevant_history)} history context")
            survivors = self.semantic.resolve([p.original for p in pre.suspicious], pre.relevant_history)
        except MalformedResponseError as e:
            logger.warning(f"[Dedup] Classifier broke the response contract, using algorithmic result: {e}")
            stats.fallback = True
            return None
        except Exception as e:
            logger.warning(f"[Dedup] Semantic stage failed, using algorithmic result: {e}")
            stats.fallback = True
            return None

        stats.semantic_used = True
        stats.semantic_removed = len(pre.suspicious) - len(survivors)
        return unique_titles([p.original for p in pre.safe] + survivors)
