from __future__ import annotations

from datetime import datetime
import logging

import discord

from lumen.config.settings import Settings
from lumen.llm.errors import parse_error_message

GENERIC_ERROR_MESSAGE = "⛔ Something went wrong. Please try again or ping an admin."


async def notify_admin_error(
    discord_bot: discord.Client,
    settings: Settings,
    error: Exception,
    context: str = "",
) -> None:
    """
    Send a concise error notification to all configured admins.
    """
    try:
        admin_ids = list(settings.admin_ids)
        if settings.owner_id is not None and settings.owner_id not in admin_ids:
            admin_ids.append(settings.owner_id)
        if not admin_ids:
            return

        msg = (
            "🤖 **Bot Error Notification**\n"
            f"⏰ Time: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}\n"
            f"📝 Context: {context}\n\nError: {parse_error_message(error)}"
        )
        for admin_id in admin_ids:
            try:
                user = discord_bot.get_user(admin_id) or await discord_bot.fetch_user(
                    admin_id
                )
                await user.send(msg)
            except Exception as e:  # noqa: BLE001
                logging.warning("Could not notify admin %s: %s", admin_id, e)
    except Exception as e:  # noqa: BLE001
        logging.warning("Failed to notify admins: %s", e)


async def send_interaction_message(
    interaction: discord.Interaction,
    content: str,
    ephemeral: bool = True,
) -> None:
    """Reply, edit the deferred reply, or follow up, whichever the interaction allows."""
    try:
        if not interaction.response.is_done():
            await interaction.response.send_message(content, ephemeral=ephemeral)
        else:
            await interaction.followup.send(content, ephemeral=ephemeral)
    except discord.HTTPException as e:
        logging.error("Failed to respond to interaction: %s", e)


async def handle_app_command_error(
    interaction: discord.Interaction,
    error: Exception,
    discord_bot: discord.Client,
    settings: Settings,
) -> None:
    """
    Standard handler for slash command errors.
    """
    logging.exception("App command error: %s", error)
    await notify_admin_error(
        discord_bot,
        settings,
        error,
        f"App command error: {getattr(interaction.command, 'name', 'unknown')}",
    )
    await send_interaction_message(interaction, GENERIC_ERROR_MESSAGE)
