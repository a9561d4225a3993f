"""Periodic workshop poll loop."""

from __future__ import annotations

import asyncio
import enum
import logging
from typing import List, Optional

from .crawler import WorkshopCrawler
from .models import ItemRecord
from .notifier import Notifier
from .state import diff_snapshots, merge_snapshots

LOGGER = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 5 * 60
LOG_DATE_FORMAT = "%d %b %Y %I:%M%p"


class PollerState(enum.Enum):
    UNINITIALIZED = "uninitialized"
    POLLING = "polling"
    IDLE = "idle"


class Poller:
    """Owns the retained snapshot and reports changes once per cycle.

    Cycles never overlap: the next one is scheduled ``interval`` seconds after
    the previous one finishes, whether it succeeded or not.
    """

    def __init__(
        self,
        crawler: WorkshopCrawler,
        notifier: Notifier,
        *,
        interval: float = DEFAULT_POLL_INTERVAL,
    ) -> None:
        self.crawler = crawler
        self.notifier = notifier
        self.interval = interval
        self.retained: Optional[List[ItemRecord]] = None
        self.state = PollerState.UNINITIALIZED

    async def run_cycle(self) -> List[ItemRecord]:
        """Run one poll and return the changes that were reported."""
        self.state = PollerState.POLLING
        try:
            snapshot = await self.crawler.fetch_snapshot()

            if self.retained is None:
                LOGGER.info("First scan complete, tracking %d items", len(snapshot))
                self.retained = snapshot
                return []

            changes = diff_snapshots(self.retained, snapshot)
            if changes:
                LOGGER.info("Mod changes detected.")
                for record in changes:
                    LOGGER.info(
                        "%s (%s) - %s",
                        record.title,
                        record.id,
                        record.last_updated.strftime(LOG_DATE_FORMAT),
                    )
                await self._notify(changes)

            self.retained = merge_snapshots(self.retained, snapshot)
            return changes
        finally:
            self.state = PollerState.IDLE

    async def _notify(self, changes: List[ItemRecord]) -> None:
        try:
            await self.notifier.notify_changes(changes)
        except Exception:  # noqa: BLE001
            LOGGER.exception("Failed to send %d mod updates", len(changes))

    async def run_forever(self, max_cycles: Optional[int] = None) -> None:
        """Poll until cancelled. ``max_cycles`` bounds the loop."""
        cycles = 0
        while max_cycles is None or cycles < max_cycles:
            try:
                await self.run_cycle()
            except Exception:  # noqa: BLE001
                LOGGER.exception("Poll cycle failed")
            cycles += 1
            await asyncio.sleep(self.interval)
