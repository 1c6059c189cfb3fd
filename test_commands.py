import unittest
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import httpx

from lumen.answer import AnswerOrchestrator
from lumen.commands import (
    COMMANDS,
    Capability,
    CommandContext,
    CommandRequest,
    PinnedMessage,
    dispatch,
    precheck,
)
from lumen.config.settings import Settings
from lumen.kb.models import AddResult, KBStatus, SearchHit
from lumen.limits import Limits, RateLimiter, UsageStore
from lumen.llm.errors import BillingInactiveError, OperationTimeout, ProviderError
from lumen.llm.openai_service import ChatResult

MEMBER = Capability()
PRO = Capability(is_elevated=True, elevated_label="Mastercraft")
OWNER = Capability(is_bypass=True, is_elevated=True, is_kb_editor=True)
MOD = Capability(is_kb_editor=True)


def make_ctx(kb_status=KBStatus.READY, settings=None, http_handler=None):
    settings = settings or Settings(global_per_day=3, user_per_day=2, elevated_per_day=2)
    chat = MagicMock()
    chat.configured = True
    chat.create_chat_completion = AsyncMock(return_value=ChatResult(text="Answer."))

    kb = MagicMock()
    kb.status = kb_status
    kb.search = AsyncMock(return_value=[])
    kb.add_document = AsyncMock(return_value=AddResult(ok=True, chunk_count=3))
    kb.add_documents = AsyncMock(return_value=AddResult(ok=True, chunk_count=2))
    kb.count = AsyncMock(return_value=42)

    limiter = RateLimiter(
        UsageStore(day_key="2026-10-18"),
        Limits(settings.global_per_day, settings.user_per_day, settings.elevated_per_day),
        today=lambda: "2026-10-18",
    )
    transport = httpx.MockTransport(http_handler or (lambda request: httpx.Response(200)))
    return CommandContext(
        settings=settings,
        limiter=limiter,
        kb=kb,
        orchestrator=AnswerOrchestrator(chat, kb),
        http=httpx.AsyncClient(transport=transport),
    )


def req(name, capability=MEMBER, user_id="100", **options):
    return CommandRequest(name=name, user_id=user_id, user_tag="player#1", capability=capability, options=options)


class TestAskCommands(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.ctx = make_ctx()

    async def asyncTearDown(self):
        await self.ctx.http.aclose()

    async def test_ask_answers_publicly_and_consumes(self):
        resp = await dispatch(self.ctx, req("ask", question="Where is the Ferox?"))

        self.assertEqual(resp.content, "Answer.")
        self.assertFalse(resp.ephemeral)
        self.assertEqual(self.ctx.limiter.remaining("100"), 1)

    async def test_ask_denied_after_user_cap(self):
        for _ in range(2):
            await dispatch(self.ctx, req("ask", question="q"))

        resp = await dispatch(self.ctx, req("ask", question="q"))

        self.assertIn("Daily limit reached", resp.content)
        self.assertTrue(resp.ephemeral)
        self.assertEqual(self.ctx.orchestrator.chat.create_chat_completion.await_count, 2)

    async def test_ask_denied_after_global_cap(self):
        for uid in ("1", "2", "3"):
            await dispatch(self.ctx, req("ask", user_id=uid, question="q"))

        resp = await dispatch(self.ctx, req("ask", user_id="4", question="q"))
        self.assertIn("Global limit reached (3/day)", resp.content)

        resp = await dispatch(self.ctx, req("ask", capability=OWNER, user_id="5", question="q"))
        self.assertEqual(resp.content, "Answer.")

    async def test_ask_pro_requires_capability(self):
        resp = await dispatch(self.ctx, req("ask-pro", question="q"))
        self.assertIn("requires a pro role", resp.content)
        self.ctx.orchestrator.chat.create_chat_completion.assert_not_awaited()

    async def test_precheck_refuses_without_consuming(self):
        self.assertIsNone(precheck(self.ctx, req("ask", question="q")))
        self.assertIsNone(precheck(self.ctx, req("limits")))
        self.assertIn("requires a pro role", precheck(self.ctx, req("ask-pro", question="q")).content)

        for _ in range(2):
            self.ctx.limiter.consume("100")
        refused = precheck(self.ctx, req("ask", question="q"))
        self.assertTrue(refused.ephemeral)
        self.assertIn("Daily limit reached", refused.content)
        self.assertEqual(self.ctx.limiter.global_remaining(), 1)

    async def test_ask_pro_uses_pro_model_and_elevated_quota(self):
        resp = await dispatch(self.ctx, req("ask-pro", capability=PRO, question="q"))

        self.assertEqual(resp.content, "✅ You have **Mastercraft**\n\nAnswer.")
        model = self.ctx.orchestrator.chat.create_chat_completion.await_args.args[0]
        self.assertEqual(model, self.ctx.settings.pro_chat_model)
        self.assertEqual(self.ctx.limiter.remaining("100", elevated=True), 1)
        self.assertEqual(self.ctx.limiter.remaining("100"), 2)

    async def test_bypass_prefix(self):
        resp = await dispatch(self.ctx, req("ask-pro", capability=OWNER, question="q"))
        self.assertTrue(resp.content.startswith("✅ (Helper bypass)"))

    async def test_billing_error_gets_distinct_message_and_does_not_consume(self):
        self.ctx.orchestrator.chat.create_chat_completion.side_effect = BillingInactiveError("inactive")

        resp = await dispatch(self.ctx, req("ask", question="q"))

        self.assertIn("billing inactive", resp.content)
        self.assertEqual(self.ctx.limiter.remaining("100"), 2)

    async def test_timeout_asks_to_try_again(self):
        self.ctx.orchestrator.chat.create_chat_completion.side_effect = OperationTimeout("chat", 35)
        resp = await dispatch(self.ctx, req("ask", question="q"))
        self.assertIn("try again", resp.content)

    async def test_mention_without_text_shows_help(self):
        resp = await dispatch(self.ctx, req("mention", question="   "))
        self.assertIn("/ask", resp.content)
        self.ctx.orchestrator.chat.create_chat_completion.assert_not_awaited()

    async def test_set_lang_switches_persona(self):
        await dispatch(self.ctx, req("set-lang", language="pl"))
        await dispatch(self.ctx, req("ask", question="What now?"))

        _, messages = self.ctx.orchestrator.chat.create_chat_completion.await_args.args
        self.assertIn("po polsku", messages[0]["content"])


class TestLimitsCommand(unittest.IsolatedAsyncioTestCase):
    async def test_limits_lines(self):
        ctx = make_ctx()
        await dispatch(ctx, req("ask", question="q"))

        member = await dispatch(ctx, req("limits"))
        owner = await dispatch(ctx, req("limits", capability=OWNER))

        self.assertEqual(member.content, "Global left: **2/3**\nYour /ask left: **1/2**")
        self.assertIn("Your /ask-pro left: **2/2**", owner.content)
        self.assertIn("(Helper bypass active)", owner.content)
        await ctx.http.aclose()


class TestKnowledgeBaseCommands(unittest.IsolatedAsyncioTestCase):
    async def test_kb_add_requires_editor(self):
        ctx = make_ctx()
        resp = await dispatch(ctx, req("kb-add", title="T", content="text"))
        self.assertIn("moderator", resp.content)
        ctx.kb.add_document.assert_not_awaited()

    async def test_kb_add_success(self):
        ctx = make_ctx()
        resp = await dispatch(ctx, req("kb-add", capability=MOD, title="Rules", content="No griefing."))

        self.assertEqual(resp.content, "✅ Added to KB: **Rules** (3 chunks).")
        kwargs = ctx.kb.add_document.await_args.kwargs
        self.assertEqual(kwargs["author"], "player#1")
        self.assertEqual(kwargs["source"], "manual")

    async def test_kb_add_reports_partial_failure(self):
        ctx = make_ctx()
        ctx.kb.add_document.return_value = AddResult(ok=False, chunk_count=32, error=ProviderError("boom"))
        resp = await dispatch(ctx, req("kb-add", capability=MOD, title="T", content="x"))
        self.assertIn("Stopped after 32 chunk(s)", resp.content)

    async def test_kb_add_rejects_oversized_content(self):
        ctx = make_ctx(settings=Settings(max_add_chars=10))
        resp = await dispatch(ctx, req("kb-add", capability=MOD, title="T", content="x" * 11))
        self.assertIn("Content too big (11). Max 10.", resp.content)

    async def test_kb_commands_when_disabled(self):
        ctx = make_ctx(kb_status=KBStatus.DISABLED)
        for name, options in (("kb-add", {"title": "T", "content": "c"}), ("kb-search", {"query": "q"})):
            with self.subTest(command=name):
                resp = await dispatch(ctx, req(name, capability=MOD, **options))
                self.assertEqual(resp.content, "KB disabled (no QDRANT_URL).")

    async def test_kb_search_formats_hits(self):
        ctx = make_ctx()
        ctx.kb.search.return_value = [SearchHit(0.91234, {"title": "Ferox", "content": "y" * 200})]

        resp = await dispatch(ctx, req("kb-search", query="ferox"))

        self.assertTrue(resp.content.startswith("**1. Ferox** – "))
        self.assertIn("_score:0.912_", resp.content)

    async def test_kb_search_no_results(self):
        resp = await dispatch(make_ctx(), req("kb-search", query="nothing"))
        self.assertEqual(resp.content, "No results.")

    async def test_kb_import_pins(self):
        ctx = make_ctx()
        pins = [
            PinnedMessage("admin#1", datetime(2026, 10, 1, tzinfo=timezone.utc), "Server rules"),
            PinnedMessage("admin#2", None, "Zasady serwera: żadnych"),
        ]

        resp = await dispatch(ctx, req("kb-import-pins", capability=MOD, pins=pins, channel_name="info"))

        self.assertEqual(resp.content, "✅ Imported 2 chunks from pinned messages.")
        docs = ctx.kb.add_documents.await_args.args[0]
        self.assertEqual(docs[0].title, "Pin from #info")
        self.assertTrue(docs[0].text.startswith("Author: admin#1\nDate: 2026-10-01"))
        self.assertEqual(docs[1].language, "pl")

    async def test_kb_import_pins_empty(self):
        resp = await dispatch(make_ctx(), req("kb-import-pins", capability=MOD, pins=[], channel_name="info"))
        self.assertEqual(resp.content, "No pinned messages.")

    async def test_kb_stats(self):
        resp = await dispatch(make_ctx(), req("kb-stats"))
        self.assertIn("**ready**", resp.content)
        self.assertIn("Entries: **42**", resp.content)


class TestMiscCommands(unittest.IsolatedAsyncioTestCase):
    async def test_website_status(self):
        ctx = make_ctx(
            settings=Settings(status_website_url="https://example.org"),
            http_handler=lambda request: httpx.Response(503),
        )
        resp = await dispatch(ctx, req("website"))
        self.assertEqual(resp.content, "⚠️ Website — HTTP 503")
        await ctx.http.aclose()

    async def test_website_offline(self):
        def refuse(request):
            raise httpx.ConnectError("refused", request=request)

        ctx = make_ctx(settings=Settings(status_website_url="https://example.org"), http_handler=refuse)
        resp = await dispatch(ctx, req("website"))
        self.assertTrue(resp.content.startswith("❌ Website offline"))
        await ctx.http.aclose()

    async def test_website_not_configured(self):
        resp = await dispatch(make_ctx(), req("website"))
        self.assertEqual(resp.content, "No STATUS_WEBSITE_URL set.")

    async def test_report_produces_announcement(self):
        ctx = make_ctx(settings=Settings(reports_channel_id=555))
        resp = await dispatch(ctx, req("report", title="Lag", details="Island lags at night", user_mention="<@100>"))

        self.assertEqual(resp.announcement_channel_id, 555)
        self.assertIn("**From:** <@100>", resp.announcement)
        self.assertIn("**Details:** Island lags at night", resp.announcement)

    async def test_unknown_command(self):
        resp = await dispatch(make_ctx(), req("reply-ferox"))
        self.assertIn("Unknown command", resp.content)

    def test_dispatch_table_covers_all_commands(self):
        self.assertEqual(
            set(COMMANDS),
            {"ask", "ask-pro", "mention", "limits", "set-lang", "kb-add", "kb-search",
             "kb-import-pins", "kb-stats", "website", "report"},
        )


if __name__ == "__main__":
    unittest.main()
