"""Normalise the "Updated" timestamps shown on workshop detail pages.

Steam renders the date as ``15 Mar @ 2:30pm`` for the current year and as
``15 Mar, 2023 @ 2:30pm`` otherwise. Accounts with a US locale see the month
first (``Mar 15 @ 2:30pm``), so the token order is detected per value.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime, timezone
from typing import Optional
from zoneinfo import ZoneInfo

LOGGER = logging.getLogger(__name__)

DEFAULT_TIMEZONE = "Asia/Manila"
DATE_TIME_SEPARATOR = " @ "

DAY_FIRST_FORMAT = "%d %b %Y %I:%M%p"
MONTH_FIRST_FORMAT = "%b %d %Y %I:%M%p"

# Returned when the fragment cannot be parsed. Compares equal to itself so a
# permanently broken date does not register as a change on every cycle.
UNRESOLVED_TIMESTAMP = datetime(1970, 1, 1, tzinfo=timezone.utc)

YEAR_PATTERN = re.compile(r"\d{4}")


def is_resolved(value: Optional[datetime]) -> bool:
    """Return True when ``value`` is a real timestamp."""
    return value is not None and value != UNRESOLVED_TIMESTAMP


def normalize_timestamp(
    text: str,
    *,
    tz: str | ZoneInfo = DEFAULT_TIMEZONE,
    now: Optional[datetime] = None,
) -> datetime:
    """Parse a ``<date> @ <time>`` fragment into an aware datetime.

    Args:
        text: raw text such as ``"15 Mar @ 2:30pm"``.
        tz: zone the page renders times in; the result is anchored to it.
        now: reference time used to fill in a missing year (default: now).

    Returns:
        The parsed timestamp, or ``UNRESOLVED_TIMESTAMP`` if parsing fails.
    """
    zone = tz if isinstance(tz, ZoneInfo) else ZoneInfo(tz)

    date_text, sep, time_text = text.strip().partition(DATE_TIME_SEPARATOR)
    if not sep:
        LOGGER.debug("No date/time separator in %r", text)
        return UNRESOLVED_TIMESTAMP

    if not YEAR_PATTERN.search(date_text):
        current = now.astimezone(zone) if now is not None else datetime.now(zone)
        date_text = f"{date_text}, {current.year}"

    date_text = " ".join(date_text.replace(",", "").split())
    time_text = time_text.strip()

    fmt = MONTH_FIRST_FORMAT if date_text[:1].isalpha() else DAY_FIRST_FORMAT

    try:
        parsed = datetime.strptime(f"{date_text} {time_text}", fmt)
    except ValueError:
        LOGGER.debug("Unparseable timestamp %r", text)
        return UNRESOLVED_TIMESTAMP

    return parsed.replace(tzinfo=zone)
