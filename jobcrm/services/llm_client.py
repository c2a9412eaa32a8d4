# llm_client.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Sequence

from openai import OpenAI

from jobcrm.config import Settings, settings as default_settings


logger = logging.getLogger(__name__)


class LLMConfigurationError(RuntimeError):
    """Raised when a model call is attempted without an API key."""


@dataclass
class ChatResult:
    content: str
    model: str
    prompt_tokens: int = 0
    completion_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.prompt_tokens + self.completion_tokens


class LLMClient:
    """Thin wrapper over the OpenAI SDK for chat completions and embeddings."""

    def __init__(self, api_key: str | None, *, embed_model: str, default_model: str):
        self.api_key = api_key
        self.embed_model = embed_model
        self.default_model = default_model
        self._client: OpenAI | None = OpenAI(api_key=api_key) if api_key else None

    @classmethod
    def from_settings(cls, cfg: Settings | None = None) -> "LLMClient":
        cfg = cfg or default_settings
        return cls(cfg.openai_api_key, embed_model=cfg.embed_model, default_model=cfg.jd_analysis_model)

    @property
    def configured(self) -> bool:
        return self._client is not None

    def _require_client(self) -> OpenAI:
        if self._client is None:
            raise LLMConfigurationError("OPENAI_API_KEY environment variable is not configured")
        return self._client

    def chat(
        self,
        messages: Sequence[dict[str, str]],
        *,
        model: str | None = None,
        temperature: float = 0.3,
        max_tokens: int | None = None,
        response_format: dict[str, Any] | None = None,
    ) -> ChatResult:
        client = self._require_client()
        kwargs: dict[str, Any] = {
            "model": model or self.default_model,
            "messages": list(messages),
            "temperature": temperature,
        }
        if max_tokens is not None:
            kwargs["max_tokens"] = max_tokens
        if response_format is not None:
            kwargs["response_format"] = response_format

        response = client.chat.completions.create(**kwargs)
        content = response.choices[0].message.content if response.choices else None
        usage = getattr(response, "usage", None)
        result = ChatResult(
            content=content or "",
            model=getattr(response, "model", None) or kwargs["model"],
            prompt_tokens=getattr(usage, "prompt_tokens", 0) or 0,
            completion_tokens=getattr(usage, "completion_tokens", 0) or 0,
        )
        logger.debug("chat completion model=%s tokens=%s", result.model, result.total_tokens)
        return result

    def embed(self, texts: Sequence[str]) -> list[list[float]]:
        if not texts:
            return []
        client = self._require_client()
        response = client.embeddings.create(model=self.embed_model, input=list(texts))
        return [list(item.embedding) for item in response.data]
