# spiffo_bot/notifier.py

from __future__ import annotations

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from typing import List, Optional, Sequence

import requests

from .models import ItemRecord

LOGGER = logging.getLogger(__name__)

# Discord rejects messages longer than this.
MAX_MESSAGE_LENGTH = 2000


class NotifierError(Exception):
    """Raised when a notification session cannot be established."""


class Notifier(ABC):
    """Interface shared by the bot and webhook notifiers."""

    async def start(self) -> None:
        """Resolve once every underlying session is ready to send."""

    @abstractmethod
    async def notify_changes(self, changes: Sequence[ItemRecord]) -> None:
        """Announce new or updated items."""

    @abstractmethod
    async def notify_broadcast(self, text: str) -> None:
        """Post a plain announcement such as a restart reminder."""

    async def close(self) -> None:
        """Release any sessions opened by start()."""


def build_update_message(changes: Sequence[ItemRecord]) -> str:
    """Describe updated mods in the server's announcement format."""
    single = len(changes) == 1
    header = (
        "**Mod activity detected.**\n\n"
        f"{'This' if single else 'These'} mod{'' if single else 's'} "
        f"require{'s' if single else ''} update:\n"
    )
    lines = [f"- {record.title} ({record.url})" for record in changes]
    return header + "\n" + "\n".join(lines)


def split_message(text: str, limit: int = MAX_MESSAGE_LENGTH) -> List[str]:
    """Split text on line boundaries into chunks no longer than ``limit``."""
    chunks: List[str] = []
    current = ""
    for line in text.split("\n"):
        while len(line) > limit:
            if current:
                chunks.append(current)
                current = ""
            chunks.append(line[:limit])
            line = line[limit:]
        candidate = f"{current}\n{line}" if current else line
        if len(candidate) > limit:
            chunks.append(current)
            current = line
        else:
            current = candidate
    if current:
        chunks.append(current)
    return chunks


def _post_with_rate_limit(webhook_url: str, payload: dict, timeout: float = 10) -> None:
    """Post to a Discord webhook, waiting and retrying on 429."""
    while True:
        resp = requests.post(webhook_url, json=payload, timeout=timeout)

        if resp.status_code == 429:
            try:
                retry_after = float(resp.json().get("retry_after", 1.0))
            except ValueError:
                retry_after = 1.0
            LOGGER.warning("Discord rate limit hit, waiting %.1fs", retry_after)
            time.sleep(retry_after)
            continue

        resp.raise_for_status()
        return


def send_webhook_message(
    webhook_url: str, content: str, *, allow_role_mentions: bool = False
) -> None:
    """Send text to a webhook, split into as many messages as needed."""
    allowed = {"parse": ["roles"] if allow_role_mentions else []}
    for chunk in split_message(content):
        _post_with_rate_limit(webhook_url, {"content": chunk, "allowed_mentions": allowed})
        time.sleep(0.2)


class WebhookNotifier(Notifier):
    """Deliver notifications through Discord webhooks instead of a bot session."""

    def __init__(
        self,
        webhook_url: str,
        broadcast_webhook_url: Optional[str] = None,
        *,
        role_id: Optional[int] = None,
    ) -> None:
        self.webhook_url = webhook_url
        self.broadcast_webhook_url = broadcast_webhook_url or webhook_url
        self.role_id = role_id

    async def notify_changes(self, changes: Sequence[ItemRecord]) -> None:
        if not changes:
            return
        await asyncio.to_thread(
            send_webhook_message, self.webhook_url, build_update_message(changes)
        )
        LOGGER.info("Sent %d mod updates via webhook", len(changes))

    async def notify_broadcast(self, text: str) -> None:
        if self.role_id:
            text = f"<@&{self.role_id}> {text}"
        await asyncio.to_thread(
            send_webhook_message,
            self.broadcast_webhook_url,
            text,
            allow_role_mentions=True,
        )
        LOGGER.info("Broadcast sent via webhook: %s", text)
