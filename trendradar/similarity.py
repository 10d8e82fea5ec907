"""Hybrid lexical similarity: Jaccard over tokens blended with edit distance.

score = 0.6 * jaccard + 0.4 * (1 - levenshtein / max_len)

Edit distance is O(len(a) * len(b)), so it is only computed when the Jaccard
part leaves the threshold reachable. ``0.6 * J + 0.4`` is the best score the
pair could get with a perfect edit match; below the threshold we stop there.
"""
from typing import AbstractSet, Optional

from trendradar.models import PreparedItem

JACCARD_WEIGHT = 0.6
EDIT_WEIGHT = 0.4
MAX_LENGTH_GAP = 0.6


def jaccard(a: AbstractSet[str], b: AbstractSet[str]) -> float:
    if not a or not b:
        return 0.0
    smaller, larger = (a, b) if len(a) < len(b) else (b, a)
    inter = sum(1 for t in smaller if t in larger)
    union = len(a) + len(b) - inter
    return inter / union if union else 0.0


def levenshtein(s1: str, s2: str) -> int:
    """Unit-cost edit distance keeping two rows of the shorter string's length."""
    if len(s1) > len(s2):
        s1, s2 = s2, s1
    prev = list(range(len(s1) + 1))
    cur = [0] * (len(s1) + 1)
    for j in range(1, len(s2) + 1):
        cur[0] = j
        c2 = s2[j - 1]
        for i in range(1, len(s1) + 1):
            if s1[i - 1] == c2:
                cur[i] = prev[i - 1]
            else:
                cur[i] = min(prev[i], cur[i - 1], prev[i - 1]) + 1
        prev, cur = cur, prev
    return prev[len(s1)]


def upper_bound(j: float) -> float:
    return JACCARD_WEIGHT * j + EDIT_WEIGHT


def lengths_compatible(a: PreparedItem, b: PreparedItem) -> bool:
    """False when the normalized lengths differ by more than 60% of the longer one."""
    return abs(a.length - b.length) <= MAX_LENGTH_GAP * max(a.length, b.length)


def hybrid_similarity(a: PreparedItem, b: PreparedItem, threshold: Optional[float] = None) -> float:
    """Similarity in [0, 1]. With a threshold, may return the (sub-threshold) upper bound."""
    if a.normalized == b.normalized:
        return 1.0

    j = jaccard(a.tokens, b.tokens)
    bound = upper_bound(j)
    if threshold is not None and bound < threshold:
        return bound

    max_len = max(a.length, b.length)
    edit_sim = 1 - levenshtein(a.normalized, b.normalized) / max_len if max_len else 0.0
    return JACCARD_WEIGHT * j + EDIT_WEIGHT * edit_sim
