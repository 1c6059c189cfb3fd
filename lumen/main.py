"""
Entrypoint: `python -m lumen.main` or the `lumen-bot` console script.
"""

import asyncio
import logging
import os

import httpx

from lumen.answer import AnswerOrchestrator
from lumen.commands import CommandContext
from lumen.config.loader import get_config
from lumen.config.settings import Settings
from lumen.kb.embeddings import Embedder
from lumen.kb.service import KnowledgeBase
from lumen.kb.store import VectorStore, build_qdrant_client
from lumen.limits import Limits, RateLimiter, UsageStore
from lumen.llm.openai_service import OpenAIService


def setup_logging() -> None:
    if os.environ.get("DEBUG"):
        logging.basicConfig(level=logging.DEBUG)
        logging.getLogger("httpx").setLevel(logging.DEBUG)

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s: %(message)s")


def build_context(settings: Settings, http: httpx.AsyncClient) -> CommandContext:
    """Wire providers, KB, limiter and orchestrator from settings."""
    chat = OpenAIService(settings.openai_api_key, settings.openai_base_url or None)
    if settings.effective_embedding_key != settings.openai_api_key:
        embedding_provider = OpenAIService(settings.effective_embedding_key, settings.openai_base_url or None)
    else:
        embedding_provider = chat

    store = VectorStore(
        build_qdrant_client(settings.qdrant_url, settings.qdrant_api_key),
        collection_name=settings.kb_collection,
        dimension=settings.kb_vector_size,
        metric=settings.kb_distance,
    )
    embedder = Embedder(
        embedding_provider if embedding_provider.configured else None,
        model=settings.embedding_model,
        batch_size=settings.embed_batch_size,
    )
    kb = KnowledgeBase(
        store,
        embedder,
        min_score=settings.kb_min_score,
        chunk_size=settings.kb_chunk_size,
        chunk_overlap=settings.kb_chunk_overlap,
        timeout=settings.kb_timeout,
    )
    orchestrator = AnswerOrchestrator(
        chat if chat.configured else None,
        kb,
        model=settings.chat_model,
        kb_timeout=settings.kb_timeout,
        llm_timeout=settings.llm_timeout,
        max_answer_chars=settings.max_answer_chars,
        top_k=settings.kb_top_k,
        top_k_elevated=settings.kb_top_k_elevated,
        temperature=settings.temperature,
        max_tokens=settings.max_tokens,
    )
    limiter = RateLimiter(
        UsageStore(),
        Limits(
            global_per_day=settings.global_per_day,
            user_per_day=settings.user_per_day,
            elevated_per_day=settings.elevated_per_day,
        ),
    )
    return CommandContext(settings=settings, limiter=limiter, kb=kb, orchestrator=orchestrator, http=http)


async def run_bot(settings: Settings) -> None:
    # Imported here so the core can be used without the Discord transport.
    from lumen.discord.client import LumenBot

    async with httpx.AsyncClient() as http:
        ctx = build_context(settings, http)
        bot = LumenBot(ctx)
        logging.info(
            "🚀 Bot starting | chat: %s / %s | KB: %s",
            settings.chat_model, settings.pro_chat_model, settings.qdrant_url or "disabled",
        )
        try:
            await bot.start(settings.bot_token)
        finally:
            await bot.close()
            await ctx.kb.store.close()
            providers = {id(p): p for p in (ctx.orchestrator.chat, ctx.kb.embedder.provider) if p is not None}
            for provider in providers.values():
                await provider.close()


def main() -> None:
    setup_logging()
    settings = get_config(require_token=True)
    try:
        asyncio.run(run_bot(settings))
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
