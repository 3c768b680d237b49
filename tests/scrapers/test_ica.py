"""Unit tests for the ICA Spektrix scraper."""

from datetime import date
from unittest.mock import AsyncMock, MagicMock

import pytest

from cineingest.scrapers.base import RetryPolicy
from cineingest.scrapers.ica import EVENT_URL, INSTANCES_URL, ICAScraper
from cineingest.venues import get_venue

DATE_FROM = date(2026, 10, 20)
DATE_TO = date(2026, 10, 30)

FILM_EVENT = {
    "id": "12345ABCDEF",
    "name": "“Nosferatu”",
    "description": "Germany 1922. Dir. F. W. Murnau.",
    "attribute_Category": "Films",
}
TALK_EVENT = {"id": "999XYZ", "name": "Artist Talk", "attribute_Category": "Talks"}

INSTANCES = [
    {
        "id": "inst-1",
        "start": "2026-10-21T18:30:00",
        "event": {"id": "12345ABCDEF"},
        "attribute_Venue": "Cinema 1",
        "attribute_Captioned": True,
    },
    {
        "id": "inst-2",
        "start": "2026-10-22T20:45:00",
        "event": {"id": "12345ABCDEF"},
        "cancelled": True,
    },
    {
        "id": "inst-3",
        "start": "2026-11-15T18:00:00",
        "event": {"id": "12345ABCDEF"},
    },
    {"id": "inst-4", "start": "2026-10-21T19:00:00", "event": {"id": "999XYZ"}},
]


@pytest.fixture
def scraper() -> ICAScraper:
    return ICAScraper(get_venue("ica"), retry_policy=RetryPolicy(max_attempts=1, backoff=0))


class TestParseEvent:
    def test_builds_screenings_for_instances(self, scraper: ICAScraper) -> None:
        screenings = scraper.parse_event(
            "12345ABCDEF", FILM_EVENT, INSTANCES[:3], DATE_FROM, DATE_TO
        )

        # Cancelled and out-of-range instances are dropped
        assert len(screenings) == 1
        screening = screenings[0]
        assert screening.title == "Nosferatu"
        assert screening.start_time.isoformat() == "2026-10-21T18:30:00+01:00"
        assert screening.screen == "Cinema 1"
        assert screening.format == "Captioned"
        assert screening.source_id == "ica:inst-1"
        assert "EventId=12345" in screening.booking_url
        assert screening.listing_text == "Germany 1922. Dir. F. W. Murnau."

    def test_blank_title_is_skipped(self, scraper: ICAScraper) -> None:
        event = {**FILM_EVENT, "name": "  "}
        assert scraper.parse_event("12345ABCDEF", event, INSTANCES[:1], DATE_FROM, DATE_TO) == []

    def test_bad_start_is_skipped(self, scraper: ICAScraper) -> None:
        inst = {"id": "x", "start": "soon", "event": {"id": "12345ABCDEF"}}
        assert scraper.parse_event("12345ABCDEF", FILM_EVENT, [inst], DATE_FROM, DATE_TO) == []


class TestFetchStatic:
    async def test_only_film_events_are_kept(self, scraper: ICAScraper) -> None:
        events = {
            EVENT_URL.format(event_id="12345ABCDEF"): FILM_EVENT,
            EVENT_URL.format(event_id="999XYZ"): TALK_EVENT,
        }

        async def get_json(url, params=None):
            if url == INSTANCES_URL:
                return INSTANCES
            return events[url]

        fetcher = MagicMock()
        fetcher.get_json = AsyncMock(side_effect=get_json)

        screenings = await scraper.fetch_static(fetcher, DATE_FROM, DATE_TO)

        assert [s.title for s in screenings] == ["Nosferatu"]
        params = fetcher.get_json.await_args_list[0].kwargs["params"]
        assert params == {"startFrom": "2026-10-20", "startTo": "2026-10-30"}

    async def test_failing_event_is_skipped(self, scraper: ICAScraper) -> None:
        async def get_json(url, params=None):
            if url == INSTANCES_URL:
                return INSTANCES
            if "999XYZ" in url:
                raise RuntimeError("502 Bad Gateway")
            return FILM_EVENT

        fetcher = MagicMock()
        fetcher.get_json = AsyncMock(side_effect=get_json)

        screenings = await scraper.fetch_static(fetcher, DATE_FROM, DATE_TO)
        assert len(screenings) == 1
