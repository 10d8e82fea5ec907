"""Minimal OpenAI-compatible chat-completions client shared by the semantic
dedup stage and the title translator."""
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

import requests

from trendradar.http import get_session

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://dashscope.aliyuncs.com/compatible-mode/v1"
DEFAULT_MODEL = "deepseek-v3.2"


class LLMError(Exception):
    """Transport or protocol failure talking to the chat endpoint."""


@dataclass
class ChatResult:
    content: str
    model: str
    usage: Dict[str, int] = field(default_factory=dict)


class ChatClient:
    """Issue single, non-streaming chat completions."""

    def __init__(self, api_key: str, base_url: str = DEFAULT_BASE_URL, model: str = DEFAULT_MODEL,
                 timeout: float = 60, session: Optional[requests.Session] = None):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.timeout = timeout
        self._session = session

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    def complete(self, messages: List[dict], temperature: float = 0.1, json_mode: bool = False) -> ChatResult:
        body = {
            "model": self.model,
            "messages": messages,
            "temperature": temperature,
            "stream": False,
        }
        if json_mode:
            body["response_format"] = {"type": "json_object"}

        session = self._session or get_session()
        try:
            resp = session.post(
                f"{self.base_url}/chat/completions",
                json=body,
                headers={"Authorization": f"Bearer {self.api_key}"},
                timeout=self.timeout,
            )
            resp.raise_for_status()
            data = resp.json()
        except requests.RequestException as e:
            raise LLMError(f"chat request failed: {e}") from e
        except ValueError as e:
            raise LLMError(f"chat response is not JSON: {e}") from e

        try:
            content = (data["choices"][0]["message"]["content"] or "").strip()
        except (KeyError, IndexError, TypeError) as e:
            raise LLMError(f"chat response missing choices[0].message.content: {e}") from e

        return ChatResult(
            content=content,
            model=data.get("model") or self.model,
            usage=data.get("usage") or {},
        )
