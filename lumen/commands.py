"""
lumen/commands.py

Single dispatch table from command name to handler. Handlers receive a
platform-neutral CommandRequest and return a CommandResponse; the Discord
layer only translates interactions into requests and responses into replies.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional

import httpx

from lumen.answer import AnswerOrchestrator
from lumen.config.personas import detect_language
from lumen.config.settings import Settings
from lumen.kb.models import Document, KBStatus
from lumen.kb.service import KnowledgeBase
from lumen.limits import RateLimiter
from lumen.llm.errors import (
    LumenError,
    RateLimitExceeded,
    error_messages,
    format_user_friendly_error,
    parse_error_message,
)
from lumen.utils import truncate, with_timeout

WEBSITE_TIMEOUT_SECONDS = 4.5
KB_SEARCH_LIMIT = 5
KB_SEARCH_PREVIEW_CHARS = 140


@dataclass(frozen=True)
class Capability:
    """What the caller may do, resolved by the transport from its role model."""
    is_bypass: bool = False
    is_elevated: bool = False
    is_kb_editor: bool = False
    elevated_label: Optional[str] = None  # e.g. the role that granted elevation


@dataclass(frozen=True)
class PinnedMessage:
    author: str
    created_at: Optional[datetime]
    content: str


@dataclass
class CommandRequest:
    name: str
    user_id: str
    user_tag: str = ""
    capability: Capability = field(default_factory=Capability)
    options: Dict[str, Any] = field(default_factory=dict)


@dataclass
class CommandResponse:
    content: str
    ephemeral: bool = True
    # Optional message the transport should post to another channel.
    announcement: Optional[str] = None
    announcement_channel_id: Optional[int] = None


Handler = Callable[["CommandContext", CommandRequest], Awaitable[CommandResponse]]


@dataclass
class CommandContext:
    settings: Settings
    limiter: RateLimiter
    kb: KnowledgeBase
    orchestrator: AnswerOrchestrator
    http: httpx.AsyncClient
    languages: Dict[str, str] = field(default_factory=dict)  # user_id -> 'pl' | 'en'

    def language_for(self, user_id: str, text: str = "") -> str:
        return detect_language(text, self.languages.get(user_id))


def _reply(content: str, limit: int, ephemeral: bool = True) -> CommandResponse:
    return CommandResponse(content=truncate(content, limit, "…"), ephemeral=ephemeral)


def _kb_unavailable(ctx: CommandContext) -> Optional[CommandResponse]:
    status = ctx.kb.status
    if status is KBStatus.DISABLED:
        return CommandResponse("KB disabled (no QDRANT_URL).")
    if status is KBStatus.DEGRADED:
        return CommandResponse("⛔ No OPENAI_API_KEY set for embeddings.")
    return None


# ── Ask ──────────────────────────────────────────────────────────────────────

# Ask-style commands and whether they use the elevated tier.
ASK_COMMANDS = {"ask": False, "ask-pro": True}


def _refusal(ctx: CommandContext, req: CommandRequest, elevated: bool) -> Optional[CommandResponse]:
    cap = req.capability
    if elevated and not (cap.is_elevated or cap.is_bypass):
        return CommandResponse("⛔ `/ask-pro` requires a pro role. Use `/ask`.")
    gate = ctx.limiter.can_use(req.user_id, elevated, cap.is_bypass)
    if not gate.ok:
        denied = RateLimitExceeded(gate.reason, ctx.settings.global_per_day)
        return CommandResponse(format_user_friendly_error(denied))
    return None


def precheck(ctx: CommandContext, req: CommandRequest) -> Optional[CommandResponse]:
    """
    Role and quota refusal for an ask-style request, or None.

    Nothing is consumed, so a transport can call this before acknowledging
    the request publicly and keep refusals private.
    """
    if req.name not in ASK_COMMANDS:
        return None
    return _refusal(ctx, req, ASK_COMMANDS[req.name])


async def _answer(ctx: CommandContext, req: CommandRequest, question: str, elevated: bool) -> CommandResponse:
    cap = req.capability
    limit = ctx.settings.max_answer_chars

    if refused := _refusal(ctx, req, elevated):
        return refused

    language = ctx.language_for(req.user_id, question)
    model = ctx.settings.pro_chat_model if elevated else ctx.settings.chat_model
    try:
        answer = await ctx.orchestrator.answer(
            question, use_knowledge_base=True, model=model, elevated=elevated, language=language
        )
    except LumenError as e:
        admin_msg, user_msg = error_messages(e)
        logging.warning("answer failed for %s: %s", req.user_id, admin_msg)
        return _reply(user_msg, limit)

    ctx.limiter.consume(req.user_id, elevated, cap.is_bypass)

    prefix = ""
    if elevated:
        if cap.is_bypass:
            prefix = "✅ (Helper bypass)"
        elif cap.elevated_label:
            prefix = f"✅ You have **{cap.elevated_label}**"
    text = f"{prefix}\n\n{answer}" if prefix else answer
    return _reply(text, limit, ephemeral=False)


async def ask(ctx: CommandContext, req: CommandRequest) -> CommandResponse:
    return await _answer(ctx, req, req.options["question"], elevated=False)


async def ask_pro(ctx: CommandContext, req: CommandRequest) -> CommandResponse:
    return await _answer(ctx, req, req.options["question"], elevated=True)


async def mention(ctx: CommandContext, req: CommandRequest) -> CommandResponse:
    text = req.options.get("question", "").strip()
    if not text:
        return CommandResponse(
            "Hi! Use `/ask` to talk to me, or type your question after mentioning me.", ephemeral=False
        )
    return await _answer(ctx, req, text, elevated=False)


# ── Limits & preferences ────────────────────────────────────────────────────

async def limits(ctx: CommandContext, req: CommandRequest) -> CommandResponse:
    s, cap = ctx.settings, req.capability
    lines = [
        f"Global left: **{ctx.limiter.global_remaining()}/{s.global_per_day}**",
        f"Your /ask left: **{ctx.limiter.remaining(req.user_id, False)}/{s.user_per_day}**",
    ]
    if cap.is_elevated:
        lines.append(
            f"Your /ask-pro left: **{ctx.limiter.remaining(req.user_id, True)}/{s.elevated_per_day}**"
        )
    if cap.is_bypass:
        lines.append("(Helper bypass active)")
    return CommandResponse("\n".join(lines))


async def set_lang(ctx: CommandContext, req: CommandRequest) -> CommandResponse:
    lang = req.options["language"]
    if lang not in ("pl", "en"):
        return CommandResponse("⛔ Choose `pl` or `en`.")
    ctx.languages[req.user_id] = lang
    return CommandResponse(
        "✅ Ustawiono język na **polski**." if lang == "pl" else "✅ Language set to **English**."
    )


# ── Knowledge base ──────────────────────────────────────────────────────────

async def kb_add(ctx: CommandContext, req: CommandRequest) -> CommandResponse:
    if not req.capability.is_kb_editor:
        return CommandResponse("⛔ Adding to the KB requires a moderator role.")
    if denied := _kb_unavailable(ctx):
        return denied

    title = req.options["title"]
    content = req.options["content"]
    max_chars = ctx.settings.max_add_chars
    if len(content) > max_chars:
        return CommandResponse(f"⛔ Content too big ({len(content)}). Max {max_chars}.")

    result = await ctx.kb.add_document(
        title=title,
        text=content,
        source=req.options.get("source") or "manual",
        language=ctx.language_for(req.user_id, content),
        author=req.user_tag or None,
    )
    if not result.ok:
        reason = parse_error_message(result.error) if result.error else "KB unavailable"
        return _reply(
            f"⛔ Stopped after {result.chunk_count} chunk(s): {reason}", ctx.settings.max_answer_chars
        )
    return CommandResponse(f"✅ Added to KB: **{title}** ({result.chunk_count} chunks).")


async def kb_search(ctx: CommandContext, req: CommandRequest) -> CommandResponse:
    if denied := _kb_unavailable(ctx):
        return denied
    query = req.options["query"]
    try:
        hits = await with_timeout(ctx.kb.search(query, KB_SEARCH_LIMIT), ctx.settings.kb_timeout, "kbSearch")
    except LumenError as e:
        return _reply(format_user_friendly_error(e), ctx.settings.max_answer_chars)
    if not hits:
        return CommandResponse("No results.")
    lines = [
        f"**{i}. {h.title}** – {truncate(h.content, KB_SEARCH_PREVIEW_CHARS, '…')}  _score:{h.score:.3f}_"
        for i, h in enumerate(hits, 1)
    ]
    return _reply("\n".join(lines), ctx.settings.max_answer_chars)


async def kb_import_pins(ctx: CommandContext, req: CommandRequest) -> CommandResponse:
    if not req.capability.is_kb_editor:
        return CommandResponse("⛔ Importing pins requires a moderator role.")
    if denied := _kb_unavailable(ctx):
        return denied

    pins: List[PinnedMessage] = req.options.get("pins") or []
    channel_name = req.options.get("channel_name", "channel")
    if not pins:
        return CommandResponse("No pinned messages.")

    documents = [
        Document(
            title=f"Pin from #{channel_name}",
            text=(
                f"Author: {p.author}\n"
                f"Date: {p.created_at.isoformat() if p.created_at else 'unknown'}\n\n{p.content}"
            ),
            source=f"pins:#{channel_name}",
            language=detect_language(p.content),
            author=req.user_tag or None,
        )
        for p in pins
    ]
    result = await ctx.kb.add_documents(documents)
    if not result.ok:
        reason = parse_error_message(result.error) if result.error else "KB unavailable"
        return _reply(
            f"⛔ Imported {result.chunk_count} chunk(s) before failing: {reason}",
            ctx.settings.max_answer_chars,
        )
    return CommandResponse(f"✅ Imported {result.chunk_count} chunks from pinned messages.")


async def kb_stats(ctx: CommandContext, req: CommandRequest) -> CommandResponse:
    status = ctx.kb.status
    lines = [f"📚 KB status: **{status.value}**", f"Collection: `{ctx.settings.kb_collection}`"]
    if status is not KBStatus.DISABLED:
        try:
            lines.append(f"Entries: **{await with_timeout(ctx.kb.count(), ctx.settings.kb_timeout, 'count')}**")
        except LumenError as e:
            lines.append(f"Entries: unknown ({parse_error_message(e)})")
    return CommandResponse("\n".join(lines))


# ── Misc ─────────────────────────────────────────────────────────────────────

async def website(ctx: CommandContext, req: CommandRequest) -> CommandResponse:
    url = ctx.settings.status_website_url
    if not url:
        return CommandResponse("No STATUS_WEBSITE_URL set.")
    try:
        res = await with_timeout(ctx.http.get(url, timeout=4.0), WEBSITE_TIMEOUT_SECONDS, "website")
    except (LumenError, httpx.HTTPError) as e:
        return CommandResponse(f"❌ Website offline ({truncate(str(e), 200, '…')})")
    icon = "✅" if res.status_code < 400 else "⚠️"
    return CommandResponse(f"{icon} Website — HTTP {res.status_code}")


async def report(ctx: CommandContext, req: CommandRequest) -> CommandResponse:
    title = req.options["title"]
    details = req.options["details"]
    channel_id = ctx.settings.reports_channel_id or req.options.get("channel_id")
    announcement = (
        "📣 **New Player Report**\n"
        f"**From:** {req.options.get('user_mention') or req.user_tag}\n"
        f"**Title:** {title}\n"
        f"**Details:** {details}"
    )
    return CommandResponse(
        "Thanks! Your report has been sent to the admins. ✅",
        announcement=truncate(announcement, 2000, "…"),
        announcement_channel_id=channel_id,
    )


COMMANDS: Dict[str, Handler] = {
    "ask": ask,
    "ask-pro": ask_pro,
    "mention": mention,
    "limits": limits,
    "set-lang": set_lang,
    "kb-add": kb_add,
    "kb-search": kb_search,
    "kb-import-pins": kb_import_pins,
    "kb-stats": kb_stats,
    "website": website,
    "report": report,
}


async def dispatch(ctx: CommandContext, req: CommandRequest) -> CommandResponse:
    """Route a request to its handler. Unknown names get a short notice."""
    handler = COMMANDS.get(req.name)
    if handler is None:
        return CommandResponse(f"Unknown command: {req.name}")
    logging.info("Command /%s (uid:%s)", req.name, req.user_id)
    return await handler(ctx, req)
