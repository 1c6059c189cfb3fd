"""
lumen/llm/openai_service.py

Chat and embedding provider backed by the OpenAI async client.
Translates SDK exceptions into the ProviderError family so callers can tell
billing/quota problems apart from generic failures.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Sequence

import openai
from openai import AsyncOpenAI

from .errors import (
    BillingInactiveError,
    ConfigurationMissing,
    ProviderAuthError,
    ProviderConnectionError,
    ProviderError,
    ProviderRateLimitError,
)

BILLING_ERROR_CODES = ("billing_not_active", "insufficient_quota")


@dataclass
class Usage:
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


@dataclass
class ChatResult:
    text: str
    usage: Usage = field(default_factory=Usage)


def _error_code(error: openai.APIError) -> str | None:
    code = getattr(error, "code", None)
    if code:
        return str(code)
    body = getattr(error, "body", None)
    if isinstance(body, dict):
        inner = body.get("error", body)
        if isinstance(inner, dict) and inner.get("code"):
            return str(inner["code"])
    return None


def translate_error(error: Exception) -> ProviderError:
    """Map an OpenAI SDK exception onto the ProviderError taxonomy."""
    if isinstance(error, ProviderError):
        return error
    message = str(error).split("\n")[0][:200]
    if isinstance(error, openai.APIError) and _error_code(error) in BILLING_ERROR_CODES:
        return BillingInactiveError(message)
    if isinstance(error, openai.AuthenticationError):
        return ProviderAuthError(message)
    if isinstance(error, openai.RateLimitError):
        return ProviderRateLimitError(message)
    if isinstance(error, openai.APIConnectionError):
        return ProviderConnectionError(message)
    return ProviderError(f"{type(error).__name__}: {message}")


class OpenAIService:
    def __init__(self, api_key: str, base_url: str | None = None, client: AsyncOpenAI | None = None):
        """
        api_key:  provider key; an empty key leaves the service unconfigured
        base_url: optional OpenAI-compatible endpoint
        client:   pre-built client (tests)
        """
        self.client = client
        if self.client is None and api_key:
            kwargs: dict[str, Any] = {"api_key": api_key}
            if base_url:
                kwargs["base_url"] = base_url
            self.client = AsyncOpenAI(**kwargs)

    @property
    def configured(self) -> bool:
        return self.client is not None

    def _require_client(self) -> AsyncOpenAI:
        if self.client is None:
            raise ConfigurationMissing("OPENAI_API_KEY not set")
        return self.client

    async def create_embeddings(self, model: str, input: str | Sequence[str]) -> List[List[float]]:
        client = self._require_client()
        texts = [input] if isinstance(input, str) else list(input)
        try:
            response = await client.embeddings.create(model=model, input=texts)
        except Exception as e:
            logging.warning("OpenAIService: embeddings failed: %s", e)
            raise translate_error(e) from e

        data = sorted(response.data, key=lambda d: d.index)
        if len(data) != len(texts):
            raise ProviderError(
                f"Embedding provider returned {len(data)} vectors for {len(texts)} inputs"
            )
        return [list(d.embedding) for d in data]

    async def create_chat_completion(
        self,
        model: str,
        messages: List[Dict[str, str]],
        temperature: float = 0.4,
        max_tokens: int = 600,
    ) -> ChatResult:
        client = self._require_client()
        try:
            response = await client.chat.completions.create(
                model=model,
                messages=messages,
                temperature=temperature,
                max_tokens=max_tokens,
            )
        except Exception as e:
            logging.warning("OpenAIService: chat completion failed: %s", e)
            raise translate_error(e) from e

        choice = response.choices[0] if response.choices else None
        if choice is None:
            raise ProviderError("Chat provider returned no choices")

        usage = Usage()
        if response.usage is not None:
            usage = Usage(
                prompt_tokens=response.usage.prompt_tokens or 0,
                completion_tokens=response.usage.completion_tokens or 0,
                total_tokens=response.usage.total_tokens or 0,
            )
        logging.info(
            "OpenAIService: %s tokens=%d (prompt=%d, completion=%d)",
            model, usage.total_tokens, usage.prompt_tokens, usage.completion_tokens,
        )
        return ChatResult(text=(choice.message.content or "").strip(), usage=usage)

    async def close(self) -> None:
        if self.client is not None:
            await self.client.close()
