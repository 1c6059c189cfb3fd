"""
lumen/answer.py

Retrieval-augmented answering: optional KB context, prompt assembly, and a
chat completion raced against a hard timeout.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Protocol

from lumen.config.personas import build_system_instruction
from lumen.kb.models import KBStatus, SearchHit
from lumen.kb.service import KnowledgeBase
from lumen.llm.errors import ConfigurationMissing
from lumen.llm.openai_service import ChatResult
from lumen.utils import truncate, with_timeout

MAX_USER_CHARS = 12_000
SNIPPET_COUNT = 3
SNIPPET_CHARS = 300


class ChatProvider(Protocol):
    configured: bool

    async def create_chat_completion(
        self, model: str, messages: List[Dict[str, str]], temperature: float = ..., max_tokens: int = ...
    ) -> ChatResult:
        ...


def format_context(hits: List[SearchHit]) -> List[str]:
    return [f"Title: {h.title}\nContent: {h.content}" for h in hits]


def format_snippets(contexts: List[str]) -> str:
    return "🔎 KB snippets:\n\n" + "\n\n".join(
        f"**{i}.** {truncate(c, SNIPPET_CHARS, '…')}" for i, c in enumerate(contexts[:SNIPPET_COUNT], 1)
    )


class AnswerOrchestrator:
    def __init__(
        self,
        chat: ChatProvider | None,
        kb: KnowledgeBase | None,
        model: str = "gpt-4o-mini",
        kb_timeout: float = 25.0,
        llm_timeout: float = 35.0,
        max_answer_chars: int = 1900,
        top_k: int = 5,
        top_k_elevated: int = 8,
        temperature: float = 0.4,
        max_tokens: int = 600,
    ):
        self.chat = chat
        self.kb = kb
        self.model = model
        self.kb_timeout = kb_timeout
        self.llm_timeout = llm_timeout
        self.max_answer_chars = max_answer_chars
        self.top_k = top_k
        self.top_k_elevated = top_k_elevated
        self.temperature = temperature
        self.max_tokens = max_tokens

    @property
    def kb_status(self) -> KBStatus:
        return self.kb.status if self.kb is not None else KBStatus.DISABLED

    async def retrieve_context(self, question: str, limit: int) -> List[str]:
        """KB context blocks; any failure yields no context instead of an error."""
        if self.kb_status is not KBStatus.READY:
            return []
        try:
            hits = await with_timeout(self.kb.search(question, limit), self.kb_timeout, "kbSearch")
        except Exception as e:
            logging.warning("kbSearch failed: %s", e)
            return []
        return format_context(hits)

    def build_messages(
        self,
        question: str,
        contexts: List[str],
        language: str = "en",
        elevated: bool = False,
    ) -> List[Dict[str, str]]:
        messages = [{"role": "system", "content": build_system_instruction(language, elevated)}]
        if contexts:
            messages.append({"role": "system", "content": "KB Context:\n" + "\n\n".join(contexts)})
        messages.append({"role": "user", "content": question[:MAX_USER_CHARS]})
        return messages

    async def answer(
        self,
        question: str,
        use_knowledge_base: bool = True,
        model: str | None = None,
        timeout: float | None = None,
        elevated: bool = False,
        language: str = "en",
    ) -> str:
        """
        Answer a question, optionally grounded in KB context.

        Raises OperationTimeout if the chat call exceeds `timeout` seconds and
        ProviderError if the provider fails.
        """
        contexts: List[str] = []
        if use_knowledge_base:
            contexts = await self.retrieve_context(
                question, self.top_k_elevated if elevated else self.top_k
            )

        if self.chat is None or not self.chat.configured:
            if contexts:
                return truncate(format_snippets(contexts), self.max_answer_chars)
            raise ConfigurationMissing("OPENAI_API_KEY not set; AI answers are disabled.")

        timeout = self.llm_timeout if timeout is None else timeout
        model = model or self.model
        messages = self.build_messages(question, contexts, language, elevated)
        logging.info("━━━ answer | %s | context blocks: %d", model, len(contexts))

        result = await with_timeout(
            self.chat.create_chat_completion(
                model, messages, temperature=self.temperature, max_tokens=self.max_tokens
            ),
            timeout,
            "chat",
        )
        text = (result.text or "").strip() or "No answer."
        return text[: self.max_answer_chars].strip()
