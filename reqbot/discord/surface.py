"""
Discord implementations of the queue surface and requester notifications.
"""

from __future__ import annotations

import logging
from typing import Awaitable, Callable

import discord

from reqbot.queue.formatter import QueueControls
from reqbot.queue.models import QueueMonitorConfig


ViewFactory = Callable[[QueueControls], discord.ui.View]


class WebhookSurface:
    """
    Sends queue chunks through the monitor's webhook.

    The webhook is bound to the bot client so it can carry interactive
    components (only application-owned webhooks may).
    """

    def __init__(self, client: discord.Client, config: QueueMonitorConfig, view_factory: ViewFactory):
        self.webhook = discord.Webhook.partial(config.webhook_id, config.webhook_token, client=client)
        self.view_factory = view_factory

    async def send(self, content: str, controls: QueueControls | None = None) -> str:
        kwargs = {"content": content, "wait": True, "allowed_mentions": discord.AllowedMentions.none()}
        if controls is not None:
            kwargs["view"] = self.view_factory(controls)
        message = await self.webhook.send(**kwargs)
        return str(message.id)

    async def delete(self, message_id: str) -> None:
        await self.webhook.delete_message(int(message_id))


class DiscordNotifier:
    def __init__(self, client: discord.Client):
        self.client = client

    async def notify(self, user_id: str, text: str) -> None:
        uid = int(user_id)
        user = self.client.get_user(uid) or await self.client.fetch_user(uid)
        await user.send(text)
        logging.info("Notified user %s", uid)


async def send_in_chunks(send: Callable[[str], Awaitable[object]], text: str, limit: int = 2000) -> None:
    """Send `text` through `send` in pieces no longer than Discord's message cap."""
    for chunk in [text[i:i + limit] for i in range(0, len(text), limit)]:
        if chunk.strip():
            await send(chunk)
