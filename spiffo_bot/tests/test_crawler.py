import asyncio
from datetime import datetime
from types import SimpleNamespace
from zoneinfo import ZoneInfo

import pytest
import requests

from spiffo_bot import crawler
from spiffo_bot.crawler import (
    ItemFetchError,
    RateLimiter,
    WorkshopCrawler,
    parse_item_details,
    parse_item_ids,
)
from spiffo_bot.models import ItemRecord

MANILA = ZoneInfo("Asia/Manila")

LISTING_HTML = """
<div class="workshopBrowseItems">
  <div class="workshopItem">
    <a href="https://steamcommunity.com/sharedfiles/filedetails/?id=111" data-publishedfileid="111">
      <img src="preview.jpg">
    </a>
  </div>
  <div class="workshopItem">
    <a href="https://steamcommunity.com/sharedfiles/filedetails/?id=222" data-publishedfileid="222">
      <img src="preview.jpg">
    </a>
  </div>
  <div class="workshopItem">
    <a href="https://steamcommunity.com/sharedfiles/filedetails/?id=111" data-publishedfileid="111"></a>
    <a href="https://steamcommunity.com/id/author">author</a>
  </div>
</div>
"""

DETAIL_TEMPLATE = """
<div class="workshopItemTitle">{title}</div>
<div class="detailsStatsContainerRight">
  <div class="detailsStatRight">12.345 MB</div>
  <div class="detailsStatRight">10 Jan, 2022 @ 3:12am</div>
  <div class="detailsStatRight">{updated}</div>
</div>
"""

DETAIL_URL = "https://steamcommunity.com/sharedfiles/filedetails/"


def detail_html(title, updated):
    return DETAIL_TEMPLATE.format(title=title, updated=updated)


def make_crawler():
    return WorkshopCrawler(
        "https://example.com/listing", DETAIL_URL, requests_per_second=1000
    )


def test_parse_item_ids_keeps_listing_order_and_duplicates():
    assert parse_item_ids(LISTING_HTML) == ["111", "222", "111"]


def test_parse_item_ids_empty_page():
    assert parse_item_ids("<html><body></body></html>") == []


def test_parse_item_details_extracts_fields():
    html = detail_html("Better Sorting", "15 Mar, 2024 @ 2:30pm")

    record = parse_item_details(html, "111", f"{DETAIL_URL}?id=111")

    assert record == ItemRecord(
        id="111",
        title="Better Sorting",
        url=f"{DETAIL_URL}?id=111",
        last_updated=datetime(2024, 3, 15, 14, 30, tzinfo=MANILA),
    )


def test_parse_item_details_requires_title():
    html = '<div class="detailsStatRight">a</div>'

    with pytest.raises(ValueError):
        parse_item_details(html, "111", "url")


def test_parse_item_details_requires_updated_date():
    html = """
    <div class="workshopItemTitle">Mod</div>
    <div><div class="detailsStatRight">12 MB</div></div>
    """

    with pytest.raises(ValueError):
        parse_item_details(html, "111", "url")


def test_fetch_item_wraps_errors(monkeypatch):
    def fake_fetch(url, timeout):
        raise requests.ConnectionError("boom")

    monkeypatch.setattr(crawler, "fetch_html", fake_fetch)

    with pytest.raises(ItemFetchError) as info:
        asyncio.run(make_crawler().fetch_item("42"))

    assert info.value.item_id == "42"
    assert isinstance(info.value.__cause__, requests.ConnectionError)


def test_fetch_items_isolates_failures_and_keeps_order(monkeypatch):
    requested = []

    def fake_fetch(url, timeout):
        requested.append(url)
        if url.endswith("id=B"):
            raise requests.HTTPError("503")
        item_id = url.rsplit("=", 1)[1]
        return detail_html(f"Mod {item_id}", "Mar 15, 2023 @ 2:30pm")

    monkeypatch.setattr(crawler, "fetch_html", fake_fetch)

    records = asyncio.run(make_crawler().fetch_items(["A", "B", "C"]))

    assert [r.id for r in records] == ["A", "B", "C"]
    assert records[0].title == "Mod A"
    assert records[1] == ItemRecord.placeholder("B")
    assert records[2].title == "Mod C"
    assert len(requested) == 3


def test_fetch_items_with_unparseable_page(monkeypatch):
    monkeypatch.setattr(crawler, "fetch_html", lambda url, timeout: "<html></html>")

    records = asyncio.run(make_crawler().fetch_items(["1"]))

    assert records == [ItemRecord.placeholder("1")]


def test_fetch_snapshot(monkeypatch):
    def fake_fetch(url, timeout):
        if url == "https://example.com/listing":
            return LISTING_HTML
        return detail_html("Mod", "15 Mar, 2024 @ 2:30pm")

    monkeypatch.setattr(crawler, "fetch_html", fake_fetch)

    snapshot = asyncio.run(make_crawler().fetch_snapshot())

    assert [r.id for r in snapshot] == ["111", "222", "111"]
    assert all(r.is_complete for r in snapshot)


def test_listing_failure_propagates(monkeypatch):
    def fake_fetch(url, timeout):
        raise requests.ConnectionError("down")

    monkeypatch.setattr(crawler, "fetch_html", fake_fetch)

    with pytest.raises(requests.ConnectionError):
        asyncio.run(make_crawler().fetch_snapshot())


def test_rate_limiter_spaces_starts(monkeypatch):
    sleeps = []

    async def fake_sleep(delay):
        sleeps.append(delay)

    monkeypatch.setattr(crawler, "time", SimpleNamespace(monotonic=lambda: 100.0))
    monkeypatch.setattr(crawler, "asyncio", SimpleNamespace(sleep=fake_sleep, Lock=asyncio.Lock))

    limiter = RateLimiter(2)

    async def run():
        for _ in range(3):
            await limiter.acquire()

    asyncio.run(run())

    assert sleeps == [0.5, 1.0]


def test_rate_limiter_rejects_non_positive_rate():
    with pytest.raises(ValueError):
        RateLimiter(0)
