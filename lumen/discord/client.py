"""
lumen/discord/client.py

discord.py transport: registers slash commands, answers mentions, and turns
interactions into CommandRequests for the dispatch table.
"""

from __future__ import annotations

import logging
from typing import Any

import discord
from discord import app_commands
from discord.app_commands import Choice
from discord.ext import commands

from lumen.commands import (
    Capability,
    CommandContext,
    CommandRequest,
    CommandResponse,
    PinnedMessage,
    dispatch,
    precheck,
)
from lumen.discord.capabilities import capability_for
from lumen.discord.errors import (
    GENERIC_ERROR_MESSAGE,
    handle_app_command_error,
    notify_admin_error,
    send_interaction_message,
)

# Commands whose answers are posted publicly; everything else is ephemeral.
PUBLIC_COMMANDS = ("ask", "ask-pro")


def build_intents() -> discord.Intents:
    intents = discord.Intents.default()
    intents.message_content = True
    intents.dm_messages = True
    return intents


class LumenBot(commands.Bot):
    def __init__(self, ctx: CommandContext):
        settings = ctx.settings
        activity = discord.CustomActivity(name=(settings.status_message or "Ask me with /ask")[:128])
        super().__init__(intents=build_intents(), activity=activity, command_prefix=None)
        self.ctx = ctx
        register_commands(self)

    async def setup_hook(self) -> None:
        status = await self.ctx.kb.ensure_ready()
        logging.info("KB status: %s", status.value)

    async def on_ready(self) -> None:
        logging.info("🤖 Logged in as %s", self.user)
        synced = await self.tree.sync()
        logging.info("✅ Synced %d slash commands", len(synced))

    async def on_message(self, new_msg: discord.Message) -> None:
        if new_msg.author.bot or self.user is None or self.user not in new_msg.mentions:
            return

        text = (
            new_msg.content.replace(f"<@{self.user.id}>", "").replace(f"<@!{self.user.id}>", "").strip()
        )
        req = CommandRequest(
            name="mention",
            user_id=str(new_msg.author.id),
            user_tag=str(new_msg.author),
            # Mentions always use the standard tier and never bypass limits.
            capability=Capability(),
            options={"question": text},
        )
        logging.info("Message (uid:%s, len:%d): %s", new_msg.author.id, len(text), text[:100])
        try:
            async with new_msg.channel.typing():
                resp = await dispatch(self.ctx, req)
            await new_msg.reply(resp.content)
        except Exception as e:
            logging.exception("mention handler error")
            await notify_admin_error(self, self.ctx.settings, e, f"Mention in #{getattr(new_msg.channel, 'name', 'DM')}")

    async def run_command(self, interaction: discord.Interaction, name: str, **options: Any) -> None:
        """Defer, dispatch, and deliver the response (plus any announcement)."""
        req = CommandRequest(
            name=name,
            user_id=str(interaction.user.id),
            user_tag=str(interaction.user),
            capability=capability_for(interaction.user, self.ctx.settings),
            options={**options, "channel_id": interaction.channel_id, "user_mention": interaction.user.mention},
        )
        if not interaction.response.is_done():
            # A public defer makes the first followup public too; refuse privately before it.
            refused = precheck(self.ctx, req)
            if refused is not None:
                await send_interaction_message(interaction, refused.content, ephemeral=True)
                return
            await interaction.response.defer(ephemeral=name not in PUBLIC_COMMANDS, thinking=True)
        try:
            resp = await dispatch(self.ctx, req)
        except Exception as e:
            logging.exception("interaction handler /%s", name)
            await notify_admin_error(self, self.ctx.settings, e, f"/{name}")
            resp = CommandResponse(GENERIC_ERROR_MESSAGE)
        await send_interaction_message(interaction, resp.content, ephemeral=resp.ephemeral)
        if resp.announcement:
            await self.announce(resp)

    async def announce(self, resp: CommandResponse) -> None:
        if resp.announcement_channel_id is None:
            return
        try:
            channel = self.get_channel(resp.announcement_channel_id) or await self.fetch_channel(
                resp.announcement_channel_id
            )
            await channel.send(resp.announcement)
        except discord.HTTPException as e:
            logging.error("Could not post to channel %s: %s", resp.announcement_channel_id, e)


async def fetch_pins(channel: discord.TextChannel) -> list[PinnedMessage]:
    return [
        PinnedMessage(author=str(m.author), created_at=m.created_at, content=m.content or "")
        for m in await channel.pins()
    ]


def register_commands(bot: LumenBot) -> None:
    tree = bot.tree

    @tree.command(name="ask", description="Ask the Lumen AI bot")
    @app_commands.describe(question="Your question")
    async def ask_command(interaction: discord.Interaction, question: str) -> None:
        await bot.run_command(interaction, "ask", question=question)

    @tree.command(name="ask-pro", description="Ask the Lumen AI bot (pro model, needs a pro role)")
    @app_commands.describe(question="Your question")
    async def ask_pro_command(interaction: discord.Interaction, question: str) -> None:
        await bot.run_command(interaction, "ask-pro", question=question)

    @tree.command(name="limits", description="Show your remaining daily limits")
    async def limits_command(interaction: discord.Interaction) -> None:
        await bot.run_command(interaction, "limits")

    @tree.command(name="set-lang", description="Set your preferred language for bot responses")
    @app_commands.choices(language=[Choice(name="Polski", value="pl"), Choice(name="English", value="en")])
    async def set_lang_command(interaction: discord.Interaction, language: Choice[str]) -> None:
        await bot.run_command(interaction, "set-lang", language=language.value)

    @tree.command(name="kb-add", description="Add a note to the knowledge base")
    @app_commands.describe(title="Title", content="Content")
    async def kb_add_command(interaction: discord.Interaction, title: str, content: str) -> None:
        await bot.run_command(interaction, "kb-add", title=title, content=content)

    @tree.command(name="kb-search", description="Search the knowledge base")
    @app_commands.describe(query="Your query")
    async def kb_search_command(interaction: discord.Interaction, query: str) -> None:
        await bot.run_command(interaction, "kb-search", query=query)

    @tree.command(name="kb-import-pins", description="Import pinned messages from a channel to the KB")
    @app_commands.describe(channel="Channel")
    async def kb_import_pins_command(interaction: discord.Interaction, channel: discord.TextChannel) -> None:
        await interaction.response.defer(ephemeral=True, thinking=True)
        try:
            pins = await fetch_pins(channel)
        except discord.HTTPException as e:
            logging.warning("Could not fetch pins from #%s: %s", channel.name, e)
            await send_interaction_message(interaction, f"⛔ Cannot read pins in #{channel.name}.")
            return
        await bot.run_command(interaction, "kb-import-pins", pins=pins, channel_name=channel.name)

    @tree.command(name="kb-stats", description="Show knowledge base status")
    async def kb_stats_command(interaction: discord.Interaction) -> None:
        await bot.run_command(interaction, "kb-stats")

    @tree.command(name="website", description="Check website HTTP status")
    async def website_command(interaction: discord.Interaction) -> None:
        await bot.run_command(interaction, "website")

    @tree.command(name="report", description="Submit a server issue report to admins")
    @app_commands.describe(title="Short title", details="Describe the problem")
    async def report_command(interaction: discord.Interaction, title: str, details: str) -> None:
        await bot.run_command(interaction, "report", title=title, details=details)

    @tree.error
    async def on_app_command_error(interaction: discord.Interaction, error: Exception) -> None:
        await handle_app_command_error(interaction, error, bot, bot.ctx.settings)
