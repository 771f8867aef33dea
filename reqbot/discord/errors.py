from __future__ import annotations

from datetime import datetime
import logging
from typing import Any

import discord

from reqbot.llm.errors import parse_error_message


GENERIC_ERROR = "There was an error while executing this command! An admin has been notified."


async def notify_admin_error(
    discord_bot: discord.Client,
    config: dict[str, Any],
    error: Exception,
    context: str = "",
) -> None:
    """
    DM a short error report to every configured admin user.

    Failures to reach an admin are logged and never propagate to the caller.
    """
    admin_ids = dict.fromkeys(config.get("permissions", {}).get("users", {}).get("admin_ids", []))
    if not admin_ids:
        return

    lines = [
        "🤖 **Bot Error Notification**",
        f"⏰ Time: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}",
    ]
    if context:
        lines.append(f"📝 Context: {context}")
    lines.append(f"\nError: {parse_error_message(error)}")
    msg = "\n".join(lines)

    for admin_id in admin_ids:
        try:
            user = discord_bot.get_user(admin_id) or await discord_bot.fetch_user(admin_id)
            await user.send(msg)
        except discord.DiscordException as e:
            logging.warning("Could not notify admin %s: %s", admin_id, e)


async def send_ephemeral(interaction: discord.Interaction, content: str) -> None:
    """
    Reply privately whether or not the interaction has been answered already.
    """
    try:
        if not interaction.response.is_done():
            await interaction.response.send_message(content, ephemeral=True)
        else:
            await interaction.followup.send(content, ephemeral=True)
    except discord.HTTPException as e:
        logging.warning("Could not send ephemeral reply: %s", e)


async def handle_app_command_error(
    interaction: discord.Interaction,
    error: Exception,
    discord_bot: discord.Client,
    config: dict[str, Any],
) -> None:
    """
    Standard handler for slash command errors.
    """
    original = getattr(error, "original", error)
    logging.exception("App command error: %s", original, exc_info=original)
    await notify_admin_error(
        discord_bot,
        config,
        original,
        f"App command error: {getattr(interaction.command, 'name', 'unknown')}",
    )
    await send_ephemeral(interaction, GENERIC_ERROR)
