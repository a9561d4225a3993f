"""Daily server restart reminders."""

from __future__ import annotations

import asyncio
import logging
from datetime import date, datetime, time, timedelta
from typing import Iterable, List, Sequence
from zoneinfo import ZoneInfo

from .dates import DEFAULT_TIMEZONE
from .models import Reminder
from .notifier import Notifier

LOGGER = logging.getLogger(__name__)

DEFAULT_RESTART_TIMES = (time(6, 0), time(18, 0))
DEFAULT_LEAD_MINUTES = (10, 5, 1)

REMINDER_MESSAGES = {
    10: "**Server restart in 10 minutes.** Find a safe place to log out.",
    5: "**Server restart in 5 minutes.** Please wrap up what you are doing.",
    1: "**Server restart in 1 minute.** Log out now to avoid losing progress.",
}


def reminder_message(minutes: int) -> str:
    if minutes in REMINDER_MESSAGES:
        return REMINDER_MESSAGES[minutes]
    return f"**Server restart in {minutes} minutes.**"


def build_restart_reminders(
    restart_times: Iterable[time] = DEFAULT_RESTART_TIMES,
    lead_minutes: Sequence[int] = DEFAULT_LEAD_MINUTES,
) -> List[Reminder]:
    """One reminder per restart time and lead, ordered by time of day."""
    reminders = []
    for restart in restart_times:
        anchor = datetime.combine(date(2000, 1, 2), restart)
        for minutes in lead_minutes:
            at = (anchor - timedelta(minutes=minutes)).time()
            reminders.append(Reminder(at=at, message=reminder_message(minutes)))
    return sorted(reminders, key=lambda r: r.at)


def next_occurrence(at: time, now: datetime, tz: ZoneInfo) -> datetime:
    """Next datetime strictly after ``now`` whose wall-clock time in ``tz`` is ``at``."""
    local_now = now.astimezone(tz)
    target = datetime.combine(local_now.date(), at, tzinfo=tz)
    if target <= local_now:
        target = datetime.combine(local_now.date() + timedelta(days=1), at, tzinfo=tz)
    return target


class ReminderScheduler:
    """Runs every reminder as its own daily job."""

    def __init__(
        self,
        notifier: Notifier,
        reminders: Sequence[Reminder],
        *,
        tz: str | ZoneInfo = DEFAULT_TIMEZONE,
    ) -> None:
        self.notifier = notifier
        self.reminders = list(reminders)
        self.tz = tz if isinstance(tz, ZoneInfo) else ZoneInfo(tz)

    async def fire(self, reminder: Reminder) -> None:
        try:
            await self.notifier.notify_broadcast(reminder.message)
        except Exception:  # noqa: BLE001
            LOGGER.exception("Failed to send reminder scheduled for %s", reminder.at)

    def _now(self) -> datetime:
        return datetime.now(self.tz)

    async def _run_job(self, reminder: Reminder) -> None:
        after = self._now()
        while True:
            target = next_occurrence(reminder.at, after, self.tz)
            delay = (target - self._now()).total_seconds()
            await asyncio.sleep(max(delay, 0))
            await self.fire(reminder)
            # An early wake must not land in the slot that just fired.
            after = max(self._now(), target)

    async def run_forever(self) -> None:
        LOGGER.info(
            "Scheduling %d reminders at %s",
            len(self.reminders),
            ", ".join(r.at.strftime("%H:%M") for r in self.reminders),
        )
        await asyncio.gather(*(self._run_job(r) for r in self.reminders))
