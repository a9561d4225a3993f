"""Discord bot sessions used to deliver notifications."""

from __future__ import annotations

import asyncio
import logging
from typing import Dict, List, Optional, Sequence

import discord

from .models import ItemRecord
from .notifier import Notifier, NotifierError, build_update_message, split_message

LOGGER = logging.getLogger(__name__)


def strip_role_mention(content: str, role_id: Optional[int]) -> str:
    """Remove the leading ``<@&role>`` ping from a relayed message."""
    if role_id is None:
        return content
    mention = f"<@&{role_id}> "
    if content.startswith(mention):
        return content[len(mention):]
    return content


class SpiffoClient(discord.Client):
    """Client that optionally mirrors one channel into another."""

    def __init__(
        self,
        *,
        relay_from: Optional[int] = None,
        relay_to: Optional[int] = None,
        role_id: Optional[int] = None,
    ) -> None:
        intents = discord.Intents.default()
        intents.guilds = True
        intents.guild_messages = True
        if relay_from and relay_to:
            intents.message_content = True
        super().__init__(intents=intents)
        self.relay_from = relay_from
        self.relay_to = relay_to
        self.role_id = role_id

    async def on_ready(self) -> None:
        LOGGER.info("Logged in as %s", self.user)

    async def on_message(self, message: discord.Message) -> None:
        if not (self.relay_from and self.relay_to):
            return
        if message.channel.id != self.relay_from:
            return

        content = strip_role_mention(message.content, self.role_id)
        if not content:
            return
        try:
            channel = await self.get_text_channel(self.relay_to)
            await channel.send(content)
        except discord.DiscordException:
            LOGGER.exception("Failed to relay message %s", message.id)

    async def get_text_channel(self, channel_id: int) -> discord.abc.Messageable:
        channel = self.get_channel(channel_id)
        if channel is None:
            channel = await self.fetch_channel(channel_id)
        return channel

    async def send_text(self, channel_id: int, content: str, **kwargs) -> None:
        channel = await self.get_text_channel(channel_id)
        for chunk in split_message(content):
            await channel.send(chunk, **kwargs)


class DiscordNotifier(Notifier):
    """Notifier backed by one or two logged-in Discord bot sessions.

    Updates are posted by the main client. Restart broadcasts are posted by
    the broadcast client, which is the main client unless a separate token
    is configured.
    """

    def __init__(
        self,
        token: str,
        channel_id: int,
        *,
        broadcast_token: Optional[str] = None,
        notifications_channel_id: Optional[int] = None,
        all_channel_id: Optional[int] = None,
        role_id: Optional[int] = None,
    ) -> None:
        self.channel_id = channel_id
        self.notifications_channel_id = notifications_channel_id or channel_id
        self.role_id = role_id

        self.client = SpiffoClient(
            relay_from=notifications_channel_id,
            relay_to=all_channel_id,
            role_id=role_id,
        )
        self._sessions: Dict[str, SpiffoClient] = {token: self.client}
        if broadcast_token and broadcast_token != token:
            self.broadcast_client = SpiffoClient()
            self._sessions[broadcast_token] = self.broadcast_client
        else:
            self.broadcast_client = self.client

        self._tasks: List[asyncio.Task] = []

    @property
    def clients(self) -> List[SpiffoClient]:
        return list(self._sessions.values())

    async def start(self) -> None:
        """Log every client in and wait until all of them are ready."""
        self._tasks = [
            asyncio.create_task(client.start(token), name=f"discord-session-{i}")
            for i, (token, client) in enumerate(self._sessions.items())
        ]
        for task in self._tasks:
            task.add_done_callback(self._session_done)
        ready = asyncio.ensure_future(
            asyncio.gather(*(client.wait_until_ready() for client in self.clients))
        )

        done, _ = await asyncio.wait(
            [ready, *self._tasks], return_when=asyncio.FIRST_COMPLETED
        )
        if ready in done:
            LOGGER.info("%d Discord session(s) ready", len(self._sessions))
            return

        ready.cancel()
        for task in done:
            exc = task.exception()
            if exc is not None:
                raise NotifierError("Discord session failed to start") from exc
        raise NotifierError("Discord session closed before becoming ready")

    @staticmethod
    def _session_done(task: asyncio.Task) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            LOGGER.error("%s stopped: %s", task.get_name(), exc, exc_info=exc)
        else:
            LOGGER.info("%s closed", task.get_name())

    async def notify_changes(self, changes: Sequence[ItemRecord]) -> None:
        if not changes:
            return
        await self.client.send_text(self.channel_id, build_update_message(changes))
        LOGGER.info("Sent %d mod updates to channel %s", len(changes), self.channel_id)

    async def notify_broadcast(self, text: str) -> None:
        if self.role_id:
            text = f"<@&{self.role_id}> {text}"
        await self.broadcast_client.send_text(
            self.notifications_channel_id,
            text,
            allowed_mentions=discord.AllowedMentions(roles=True),
        )
        LOGGER.info("Broadcast sent to channel %s: %s", self.notifications_channel_id, text)

    async def close(self) -> None:
        for client in self.clients:
            await client.close()
        for task in self._tasks:
            if not task.done():
                task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
