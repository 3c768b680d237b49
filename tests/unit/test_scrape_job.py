"""Tests for the venue scrape job and the all-venues runner."""

import asyncio
from contextlib import asynccontextmanager
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from cineingest.config import settings
from cineingest.exceptions import ScrapeError
from cineingest.repositories import InMemoryStore
from cineingest.repositories.records import BaselineRecord
from cineingest.services.title_extractor import TitleExtractor
from cineingest.tasks.scrape_job import (
    RunResources,
    VenueRunResult,
    run_scrape_all,
    run_venue_scraper,
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def make_scraper(screenings=None, error: Exception | None = None) -> MagicMock:
    scraper = MagicMock()
    scraper.scrape = AsyncMock(return_value=screenings or [], side_effect=error)
    scraper.last_validation = None
    return scraper


def make_resources() -> RunResources:
    tmdb = MagicMock()
    tmdb.search_films = AsyncMock(return_value=[])
    llm = MagicMock()
    llm.complete = AsyncMock(return_value='{"title": "x", "confidence": "low"}')
    return RunResources(tmdb_client=tmdb, extractor=TitleExtractor(llm=llm, min_interval=0))


@pytest.fixture
def patched_store(store: InMemoryStore):
    @asynccontextmanager
    async def _open_store(dry_run: bool = False):
        yield store

    with patch("cineingest.tasks.scrape_job.open_store", _open_store):
        yield store


def patch_scraper(scraper: MagicMock):
    return patch("cineingest.tasks.scrape_job.get_scraper", return_value=scraper)


# ---------------------------------------------------------------------------
# run_venue_scraper
# ---------------------------------------------------------------------------


async def test_successful_run_reconciles_and_records(patched_store: InMemoryStore, make_raw) -> None:
    scraper = make_scraper([make_raw("Nosferatu"), make_raw("Anora", booking_url="https://www.ica.art/films/anora")])

    with patch_scraper(scraper):
        result = await run_venue_scraper("ica", triggered_by="cli", resources=make_resources())

    assert result.success
    assert result.found == 2
    assert result.added == 2
    assert len(patched_store.screenings) == 2
    assert patched_store.baselines["ica"].sample_count == 1

    (run,) = patched_store.runs
    assert run.status == "success"
    assert run.triggered_by == "cli"
    assert run.added == 2


async def test_zero_screenings_are_blocked(patched_store: InMemoryStore) -> None:
    alerts = AsyncMock()

    with patch_scraper(make_scraper([])):
        result = await run_venue_scraper("ica", resources=make_resources(), alert_sink=alerts)

    assert not result.success
    assert result.blocked
    assert result.error.startswith("Blocked by health check")
    assert patched_store.cinemas == {}
    assert patched_store.baselines == {}
    assert patched_store.runs[0].status == "blocked"

    payload = alerts.await_args.args[0]
    assert payload.severity == "critical"
    assert payload.blocked


async def test_sharp_drop_keeps_existing_data(patched_store: InMemoryStore, make_raw) -> None:
    await patched_store.set_baseline(
        BaselineRecord(venue_id="ica", weekday_avg=40.0, weekend_avg=40.0), expected_version=0
    )

    with patch_scraper(make_scraper([make_raw("Nosferatu")])):
        result = await run_venue_scraper("ica", resources=make_resources())

    assert result.blocked
    assert patched_store.screenings == {}
    assert patched_store.baselines["ica"].sample_count == 0


async def test_failing_alert_sink_does_not_fail_the_run(patched_store: InMemoryStore) -> None:
    alerts = AsyncMock(side_effect=RuntimeError("webhook down"))
    with patch_scraper(make_scraper([])):
        result = await run_venue_scraper("ica", resources=make_resources(), alert_sink=alerts)
    assert result.blocked


async def test_scrape_error_is_reported(patched_store: InMemoryStore) -> None:
    scraper = make_scraper(error=ScrapeError("ica", "Browser launch failed"))

    with patch_scraper(scraper):
        result = await run_venue_scraper("ica", resources=make_resources())

    assert not result.success
    assert "Browser launch failed" in result.error
    assert patched_store.runs[0].status == "failed"


async def test_unexpected_error_is_reported(patched_store: InMemoryStore) -> None:
    with patch_scraper(make_scraper(error=KeyError("showtimes"))):
        result = await run_venue_scraper("ica", resources=make_resources())
    assert not result.success
    assert result.error.startswith("KeyError")


async def test_slow_venue_times_out(patched_store: InMemoryStore, monkeypatch) -> None:
    async def slow_scrape(date_from, date_to):
        await asyncio.sleep(5)
        return []

    scraper = make_scraper()
    scraper.scrape = slow_scrape
    monkeypatch.setattr(settings, "venue_timeout", 0.05)

    with patch_scraper(scraper):
        result = await run_venue_scraper("ica", resources=make_resources())

    assert not result.success
    assert result.error.startswith("Timed out")
    assert patched_store.runs[0].status == "failed"


async def test_unknown_venue() -> None:
    result = await run_venue_scraper("odeon-leicester-square")
    assert not result.success
    assert "Unknown venue" in result.error


async def test_dry_run_uses_memory_store(make_raw) -> None:
    with (
        patch_scraper(make_scraper([make_raw("Nosferatu")])),
        patch("cineingest.tasks.scrape_job.session_scope") as session_scope,
    ):
        result = await run_venue_scraper("ica", dry_run=True, resources=make_resources())

    assert result.success
    assert result.added == 1
    session_scope.assert_not_called()


# ---------------------------------------------------------------------------
# run_scrape_all
# ---------------------------------------------------------------------------


async def test_one_crashing_venue_does_not_stop_the_rest() -> None:
    async def fake_run(venue_id, **kwargs):
        if venue_id == "rio-cinema":
            raise RuntimeError("worker died")
        return VenueRunResult(success=True, venue_id=venue_id, added=3)

    with patch("cineingest.tasks.scrape_job.run_venue_scraper", side_effect=fake_run) as run:
        results = await run_scrape_all(["ica", "rio-cinema", "prince-charles"], triggered_by="admin")

    assert [r.venue_id for r in results] == ["ica", "rio-cinema", "prince-charles"]
    assert [r.success for r in results] == [True, False, True]
    assert results[1].error == "worker died"
    assert run.call_args.kwargs["triggered_by"] == "admin"


async def test_all_venues_share_resources() -> None:
    with patch(
        "cineingest.tasks.scrape_job.run_venue_scraper",
        new=AsyncMock(side_effect=lambda venue_id, **kw: VenueRunResult(True, venue_id)),
    ) as run:
        results = await run_scrape_all(dry_run=True)

    assert len(results) == 4
    shared = {id(call.kwargs["resources"]) for call in run.call_args_list}
    assert len(shared) == 1
    assert all(call.kwargs["dry_run"] for call in run.call_args_list)
