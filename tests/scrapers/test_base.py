"""Tests for the shared scraper plumbing: retries, validation and throttling."""

import time
from dataclasses import replace
from datetime import date, datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from cineingest.exceptions import BrowserLaunchError, ScrapeError
from cineingest.scrapers.base import RetryPolicy, StaticScraper, run_units
from cineingest.scrapers.http import RateLimitedFetcher

NO_WAIT = RetryPolicy(max_attempts=3, backoff=0)


class FakeScraper(StaticScraper):
    """Static scraper returning canned results."""

    def __init__(self, venue, results=None, error: Exception | None = None) -> None:
        super().__init__(venue, retry_policy=NO_WAIT)
        self.results = results or []
        self.error = error

    def make_fetcher(self) -> RateLimitedFetcher:
        return RateLimitedFetcher(min_delay=0, client=AsyncMock())

    async def fetch_static(self, fetcher, date_from, date_to):
        if self.error:
            raise self.error
        return self.results


# ---------------------------------------------------------------------------
# run_units
# ---------------------------------------------------------------------------


async def test_run_units_retries_then_succeeds() -> None:
    calls = {"n": 0}

    async def flaky(unit: int) -> list[int]:
        calls["n"] += 1
        if calls["n"] < 3:
            raise RuntimeError("flaky")
        return [unit]

    assert await run_units([7], flaky, NO_WAIT) == [7]
    assert calls["n"] == 3


async def test_run_units_skips_units_that_keep_failing() -> None:
    async def fn(unit: int) -> list[int]:
        if unit == 2:
            raise RuntimeError("always broken")
        return [unit * 10]

    assert await run_units([1, 2, 3], fn, NO_WAIT) == [10, 30]


async def test_run_units_sleeps_between_attempts() -> None:
    fn = AsyncMock(side_effect=[RuntimeError("x"), ["ok"]])
    with patch("cineingest.scrapers.base.asyncio.sleep", new=AsyncMock()) as sleep:
        await run_units(["day"], fn, RetryPolicy(max_attempts=3, backoff=5.0))
    sleep.assert_awaited_once_with(5.0)


async def test_run_units_does_not_retry_browser_launch() -> None:
    fn = AsyncMock(side_effect=BrowserLaunchError("bfi-southbank", "no chromium"))
    with pytest.raises(BrowserLaunchError):
        await run_units(["day"], fn, NO_WAIT)
    assert fn.await_count == 1


# ---------------------------------------------------------------------------
# BaseScraper.scrape
# ---------------------------------------------------------------------------


async def test_scrape_validates_and_keeps_summary(ica_venue, make_raw) -> None:
    past = datetime.now(timezone.utc) - timedelta(days=1)
    scraper = FakeScraper(
        ica_venue, results=[make_raw("Nosferatu"), make_raw("Anora", start_time=past)]
    )

    valid = await scraper.scrape(date.today(), date.today() + timedelta(days=14))

    assert [s.title for s in valid] == ["Nosferatu"]
    assert scraper.last_validation is not None
    assert scraper.last_validation.rejected == {"past_start_time": 1}


async def test_scrape_wraps_unexpected_errors(ica_venue) -> None:
    scraper = FakeScraper(ica_venue, error=KeyError("events"))
    with pytest.raises(ScrapeError, match="Unhandled scraper failure"):
        await scraper.scrape(date.today(), date.today())


async def test_scrape_passes_scrape_errors_through(ica_venue) -> None:
    scraper = FakeScraper(ica_venue, error=ScrapeError("ica", "site is down"))
    with pytest.raises(ScrapeError, match="site is down"):
        await scraper.scrape(date.today(), date.today())


async def test_health_check_looks_for_marker(ica_venue) -> None:
    venue = replace(ica_venue, health_marker="ICA")
    scraper = FakeScraper(venue)

    with patch.object(RateLimitedFetcher, "get_text", new=AsyncMock(return_value="<title>ICA</title>")):
        assert await scraper.health_check()
    with patch.object(RateLimitedFetcher, "get_text", new=AsyncMock(return_value="<title>502</title>")):
        assert not await scraper.health_check()
    with patch.object(RateLimitedFetcher, "get_text", new=AsyncMock(side_effect=httpx.ConnectError("down"))):
        assert not await scraper.health_check()


# ---------------------------------------------------------------------------
# RateLimitedFetcher
# ---------------------------------------------------------------------------


def make_client(body: str = "ok") -> MagicMock:
    response = MagicMock()
    response.text = body
    response.raise_for_status = MagicMock()
    client = MagicMock()
    client.get = AsyncMock(return_value=response)
    client.aclose = AsyncMock()
    return client


async def test_fetcher_spaces_requests() -> None:
    client = make_client()
    async with RateLimitedFetcher(min_delay=0.05, requests_per_minute=100, client=client) as fetcher:
        t0 = time.monotonic()
        await fetcher.get_text("https://example.com/a")
        await fetcher.get_text("https://example.com/b")
        elapsed = time.monotonic() - t0

    assert elapsed >= 0.04
    client.aclose.assert_awaited_once()


async def test_fetcher_respects_per_minute_cap() -> None:
    client = make_client()
    fetcher = RateLimitedFetcher(min_delay=0, requests_per_minute=2, client=client)

    with patch("cineingest.scrapers.http.asyncio.sleep", new=AsyncMock()) as sleep:
        for _ in range(3):
            await fetcher.get("https://example.com")

    sleep.assert_awaited_once()
    assert sleep.await_args.args[0] > 59


async def test_fetcher_raises_http_errors() -> None:
    client = make_client()
    client.get.return_value.raise_for_status.side_effect = httpx.HTTPStatusError(
        "404", request=MagicMock(), response=MagicMock()
    )
    fetcher = RateLimitedFetcher(min_delay=0, client=client)
    with pytest.raises(httpx.HTTPStatusError):
        await fetcher.get("https://example.com/missing")
