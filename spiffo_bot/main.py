"""Entrypoint for the workshop update and restart reminder bot."""

from __future__ import annotations

import asyncio
import logging
import sys
from typing import Optional

from .bot import DiscordNotifier
from .config import Settings, get_settings
from .crawler import WorkshopCrawler
from .notifier import Notifier, NotifierError, WebhookNotifier
from .poller import Poller
from .reminders import ReminderScheduler, build_restart_reminders

LOGGER = logging.getLogger(__name__)


def build_notifier(settings: Settings) -> Notifier:
    """Use bot sessions when a token is configured, webhooks otherwise."""
    if settings.discord_token:
        return DiscordNotifier(
            settings.discord_token,
            settings.channel_id,
            broadcast_token=settings.discord_broadcast_token,
            notifications_channel_id=settings.notifications_channel_id,
            all_channel_id=settings.all_channel_id,
            role_id=settings.notifications_role_id,
        )
    return WebhookNotifier(
        settings.webhook_url,
        settings.broadcast_webhook_url,
        role_id=settings.notifications_role_id,
    )


async def serve(settings: Settings, notifier: Optional[Notifier] = None) -> None:
    """Start the notifier, then poll and send reminders until cancelled."""
    if notifier is None:
        notifier = build_notifier(settings)
    crawler = WorkshopCrawler(
        settings.listing_url,
        settings.detail_url,
        requests_per_second=settings.requests_per_second,
        timeout=settings.request_timeout,
        tz=settings.timezone,
    )
    poller = Poller(crawler, notifier, interval=settings.poll_interval)
    scheduler = ReminderScheduler(
        notifier,
        build_restart_reminders(settings.restart_times),
        tz=settings.timezone,
    )

    try:
        await notifier.start()
        LOGGER.info("Spiffo bot online.")
        await asyncio.gather(poller.run_forever(), scheduler.run_forever())
    finally:
        await notifier.close()


def main() -> int:
    """Run the bot."""
    try:
        settings = get_settings()
    except ValueError as exc:
        logging.basicConfig(level=logging.INFO)
        LOGGER.error("Configuration error: %s", exc)
        return 1

    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s [%(levelname)s] %(name)s - %(message)s",
    )

    try:
        asyncio.run(serve(settings))
    except NotifierError as exc:
        LOGGER.error("Failed to connect to Discord: %s", exc)
        return 1
    except KeyboardInterrupt:
        LOGGER.info("Shutting down")
    return 0


def run() -> None:
    sys.exit(main())


if __name__ == "__main__":
    run()
