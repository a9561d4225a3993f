"""Fetch and parse workshop listing and detail pages."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import List, Optional, Sequence
from zoneinfo import ZoneInfo

import requests
from bs4 import BeautifulSoup

from .dates import DEFAULT_TIMEZONE, normalize_timestamp
from .models import ItemRecord

LOGGER = logging.getLogger(__name__)

DEFAULT_LISTING_URL = (
    "https://steamcommunity.com/profiles/76561198077301146/myworkshopfiles/"
    "?appid=108600&browsefilter=myfavorites&sortmethod=lastupdated"
    "&browsesort=myfavorites&p=1"
)
DEFAULT_DETAIL_URL = "https://steamcommunity.com/sharedfiles/filedetails/"
DEFAULT_TIMEOUT = 10

ITEM_ID_ATTRIBUTE = "data-publishedfileid"
TITLE_SELECTOR = ".workshopItemTitle"
UPDATED_SELECTOR = ".detailsStatRight:nth-child(3)"

HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
        "AppleWebKit/537.36 (KHTML, like Gecko) "
        "Chrome/118.0.0.0 Safari/537.36"
    ),
    # Steam renders dates in the offset given here (UTC+8).
    "Cookie": "timezoneOffset=28800,0",
}


class ItemFetchError(Exception):
    """Raised when a single item's detail page cannot be fetched or parsed."""

    def __init__(self, item_id: str, message: str = "") -> None:
        super().__init__(message or f"Failed to scrape item {item_id}")
        self.item_id = item_id


def fetch_html(url: str, timeout: float = DEFAULT_TIMEOUT) -> str:
    """Retrieve the HTML contents of the given URL."""
    response = requests.get(url, headers=HEADERS, timeout=timeout)
    response.raise_for_status()
    return response.text


def build_item_url(detail_url: str, item_id: str) -> str:
    return f"{detail_url}?id={item_id}"


def parse_item_ids(html: str) -> List[str]:
    """Return item ids in listing order. Duplicates are kept."""
    soup = BeautifulSoup(html, "html.parser")
    ids = [tag[ITEM_ID_ATTRIBUTE].strip() for tag in soup.select(f"a[{ITEM_ID_ATTRIBUTE}]")]
    if not ids:
        LOGGER.warning("No elements with %s found in listing page.", ITEM_ID_ATTRIBUTE)
    return ids


def parse_item_details(
    html: str, item_id: str, url: str, *, tz: str | ZoneInfo = DEFAULT_TIMEZONE
) -> ItemRecord:
    """Extract title and last-updated time from a detail page."""
    soup = BeautifulSoup(html, "html.parser")

    title_tag = soup.select_one(TITLE_SELECTOR)
    if title_tag is None:
        raise ValueError(f"Title missing for item {item_id}")

    updated_tag = soup.select_one(UPDATED_SELECTOR)
    if updated_tag is None:
        raise ValueError(f"Updated date missing for item {item_id}")

    return ItemRecord(
        id=item_id,
        title=title_tag.get_text(strip=True),
        url=url,
        last_updated=normalize_timestamp(updated_tag.get_text(), tz=tz),
    )


class RateLimiter:
    """Let at most ``rate`` operations start per second.

    Only starts are spaced out; operations that already started keep running,
    so more than ``rate`` of them can be in flight at once.
    """

    def __init__(self, rate: float) -> None:
        if rate <= 0:
            raise ValueError("rate must be positive")
        self.interval = 1.0 / rate
        self._lock = asyncio.Lock()
        self._next_start: Optional[float] = None

    async def acquire(self) -> None:
        async with self._lock:
            now = time.monotonic()
            if self._next_start is not None and self._next_start > now:
                await asyncio.sleep(self._next_start - now)
                now = self._next_start
            self._next_start = now + self.interval


class WorkshopCrawler:
    """Scrapes one workshop listing and the detail page of every item on it."""

    def __init__(
        self,
        listing_url: str = DEFAULT_LISTING_URL,
        detail_url: str = DEFAULT_DETAIL_URL,
        *,
        requests_per_second: float = 1.0,
        timeout: float = DEFAULT_TIMEOUT,
        tz: str | ZoneInfo = DEFAULT_TIMEZONE,
    ) -> None:
        self.listing_url = listing_url
        self.detail_url = detail_url
        self.requests_per_second = requests_per_second
        self.timeout = timeout
        self.tz = tz

    async def fetch_item_ids(self) -> List[str]:
        """Fetch the listing page. Errors propagate to the caller."""
        html = await asyncio.to_thread(fetch_html, self.listing_url, self.timeout)
        return parse_item_ids(html)

    async def fetch_item(self, item_id: str) -> ItemRecord:
        """Fetch one item's details, wrapping any failure in ItemFetchError."""
        url = build_item_url(self.detail_url, item_id)
        try:
            html = await asyncio.to_thread(fetch_html, url, self.timeout)
            return parse_item_details(html, item_id, url, tz=self.tz)
        except Exception as exc:
            raise ItemFetchError(item_id) from exc

    async def fetch_items(self, item_ids: Sequence[str]) -> List[ItemRecord]:
        """Fetch every item, throttled, without letting one failure stop the rest.

        Returns one record per input id in the same order; failed items are
        returned as placeholders.
        """
        limiter = RateLimiter(self.requests_per_second)

        async def throttled(item_id: str) -> ItemRecord:
            await limiter.acquire()
            return await self.fetch_item(item_id)

        outcomes = await asyncio.gather(
            *(throttled(item_id) for item_id in item_ids), return_exceptions=True
        )

        records: List[ItemRecord] = []
        for item_id, outcome in zip(item_ids, outcomes):
            if isinstance(outcome, BaseException):
                LOGGER.warning("Failed to fetch item %s: %s", item_id, outcome.__cause__ or outcome)
                records.append(ItemRecord.placeholder(item_id))
            else:
                records.append(outcome)
        return records

    async def fetch_snapshot(self) -> List[ItemRecord]:
        """Fetch the listing and then every item on it."""
        item_ids = await self.fetch_item_ids()
        LOGGER.info("Listing has %d items", len(item_ids))
        return await self.fetch_items(item_ids)
