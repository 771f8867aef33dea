"""
One-shot slash command registration.

Logs in, pushes the command tree to the configured guild (or globally when no
guild is configured) and exits: status 0 on success, 1 on failure.
"""

from __future__ import annotations

import asyncio
import logging
import sys

import discord


async def register(guild_id: int | None = None) -> int:
    # Importing queuebot builds the bot and its command tree from config.yaml.
    from queuebot import config, discord_bot

    guild_id = guild_id or config.get("guild_id")
    try:
        await discord_bot.login(config["bot_token"])
        if guild_id:
            guild = discord.Object(id=int(guild_id))
            discord_bot.tree.copy_global_to(guild=guild)
            synced = await discord_bot.tree.sync(guild=guild)
            logging.info("Registered %d commands in guild %s", len(synced), guild_id)
        else:
            synced = await discord_bot.tree.sync()
            logging.info("Registered %d global commands", len(synced))
        return 0
    except discord.DiscordException as e:
        logging.error("Command registration failed: %s", e)
        return 1
    finally:
        await discord_bot.close()


def main() -> None:
    sys.exit(asyncio.run(register()))


if __name__ == "__main__":
    main()
