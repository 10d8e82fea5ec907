"""Semantic deduplication delegated to a chat model.

The model receives a numbered manifest of candidates plus a manifest of
recently pushed titles and answers ``{"remove_ids": [...], "analysis": "..."}``.
Anything else is a hard failure; callers fall back to the algorithmic result.
"""
import json
import logging
from typing import Callable, List, Optional, Sequence

from trendradar.llm import ChatClient, LLMError
from trendradar.models import ScoredItem

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "你是一个只输出 JSON 的新闻去重助手。你擅长分析新闻的演进关系和语义颗粒度，"
    "能精准识别历史冗余，确保新闻流的唯一性和高质量。"
)

PROMPT_TEMPLATE = """
### 任务
分析【待处理列表】中的新闻，结合【历史参考列表】识别其中重复、冗余或过时的条目。

### 判定标准
1. 完全语义重复：描述同一主体在同一时间发生的同一事件，即使措辞或语言不同。
   例："特斯拉发布三季度财报" vs "Tesla Q3 earnings report released" -> 重复。
2. 包含关系：两条新闻描述同一事件时，保留信息量更大、细节更具体的一条，删除简略的一条。
   例："某大模型发布" vs "某大模型正式发布，支持100万上下文" -> 删除前者。
3. 历史冗余：待处理新闻在历史参考列表中已存在，且没有实质性新进展，视为冗余。
   同一事件的重大后续进展不算重复（如 "火箭已发射" vs "火箭已成功着陆"）。
4. 汇总与单项：汇总报道与其中的单项报道同时存在时，按重要性择一保留。

### 输出格式
只返回 JSON：
{{"remove_ids": [id1, id2, ...], "analysis": "简要说明(可选)"}}

### 输入数据
【历史参考列表】(仅供参考，不从中删除):
{history}

【待处理列表】(从中选出应删除的 id):
{candidates}
"""

UsageLedger = Callable[..., object]


class SemanticDedupError(LLMError):
    """The semantic stage could not produce a trustworthy judgement."""


class MalformedResponseError(SemanticDedupError):
    """The classifier answered, but not with the agreed JSON contract."""


def build_candidate_manifest(items: Sequence[ScoredItem]) -> List[dict]:
    return [{"id": i, "title": item.title, "source": item.source} for i, item in enumerate(items)]


def build_history_manifest(titles: Sequence[str]) -> List[dict]:
    return [{"id": f"h_{i}", "title": t} for i, t in enumerate(titles)]


def parse_remove_ids(content: str) -> List[int]:
    """Extract ``remove_ids`` from the model answer or raise MalformedResponseError."""
    try:
        parsed = json.loads(content)
    except (TypeError, ValueError) as e:
        raise MalformedResponseError(f"response is not valid JSON: {e}") from e
    if not isinstance(parsed, dict):
        raise MalformedResponseError(f"expected a JSON object, got {type(parsed).__name__}")
    remove_ids = parsed.get("remove_ids")
    if not isinstance(remove_ids, list):
        raise MalformedResponseError("'remove_ids' is missing or not an array")
    ids = []
    for raw in remove_ids:
        # bool is an int subclass
        if isinstance(raw, int) and not isinstance(raw, bool):
            ids.append(raw)
        elif isinstance(raw, str) and raw.strip().isdigit():
            ids.append(int(raw))
        else:
            raise MalformedResponseError(f"invalid id in remove_ids: {raw!r}")
    return ids


class SemanticDeduplicator:
    """Ask the chat model which suspicious candidates are redundant."""

    module_tag = "deduplicator"

    def __init__(self, client: ChatClient, usage_ledger: Optional[UsageLedger] = None):
        self.client = client
        self.usage_ledger = usage_ledger

    @property
    def configured(self) -> bool:
        return self.client.configured

    def build_prompt(self, items: Sequence[ScoredItem], history_titles: Sequence[str]) -> str:
        return PROMPT_TEMPLATE.format(
            history=json.dumps(build_history_manifest(history_titles), ensure_ascii=False),
            candidates=json.dumps(build_candidate_manifest(items), ensure_ascii=False),
        )

    def resolve(self, items: Sequence[ScoredItem], history_titles: Sequence[str]) -> List[ScoredItem]:
        """Return the input items the model did not flag, in input order."""
        if not items:
            return []
        prompt = self.build_prompt(items, history_titles)
        logger.debug(f"[Semantic] Sending {len(items)} candidates, {len(history_titles)} history titles "
                     f"(prompt {len(prompt)} chars)")
        try:
            result = self.client.complete(
                [{"role": "system", "content": SYSTEM_PROMPT}, {"role": "user", "content": prompt}],
                temperature=0.1,
                json_mode=True,
            )
        except LLMError as e:
            raise SemanticDedupError(str(e)) from e

        try:
            remove_ids = parse_remove_ids(result.content)
        except MalformedResponseError:
            logger.error(f"[Semantic] Malformed classifier response: {result.content[:500]!r}")
            raise

        self._record_usage(result.model, result.usage, len(items), len(history_titles))

        unknown = [i for i in remove_ids if not 0 <= i < len(items)]
        if unknown:
            logger.warning(f"[Semantic] Ignoring unknown ids: {unknown}")
        remove = set(remove_ids)
        kept = [item for i, item in enumerate(items) if i not in remove]
        logger.info(f"[Semantic] Model removed {len(items) - len(kept)} of {len(items)} candidates")
        return kept

    def _record_usage(self, model: str, usage: dict, item_count: int, history_count: int) -> None:
        if not self.usage_ledger or not usage:
            return
        try:
            self.usage_ledger(
                self.module_tag, model, usage,
                {"item_count": item_count, "history_count": history_count},
            )
        except Exception as e:
            logger.warning(f"[Semantic] Failed to record token usage: {e}")
