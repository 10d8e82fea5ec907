"""Title normalization and tokenization shared by every dedup stage."""
import re
from typing import FrozenSet, Optional

# CJK unified ideographs, ASCII letters and digits are the only signature characters
_STRIP_RE = re.compile(r"[^\u4e00-\u9fa5a-z0-9]")
_TOKEN_RE = re.compile(r"[\u4e00-\u9fa5]|[a-z0-9]+")
_CJK_RE = re.compile(r"[\u4e00-\u9fa5]")
_LATIN_RE = re.compile(r"[a-zA-Z]")


def normalize(text: Optional[str]) -> str:
    """Lowercase and drop everything except CJK ideographs, ASCII letters and digits."""
    if not text:
        return ""
    return _STRIP_RE.sub("", text.lower()).strip()


def tokenize(normalized: str) -> FrozenSet[str]:
    """Split normalized text into single ideographs and ASCII letter/digit runs."""
    if not normalized:
        return frozenset()
    return frozenset(_TOKEN_RE.findall(normalized))


def is_english(text: str) -> bool:
    """True when text has no CJK ideograph and at least one Latin letter."""
    return not _CJK_RE.search(text) and bool(_LATIN_RE.search(text))
