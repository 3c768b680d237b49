"""Unit tests for the Rio Cinema scraper."""

import json
from datetime import date

import pytest

from cineingest.scrapers.rio import RioScraper
from cineingest.venues import get_venue

DATE_FROM = date(2026, 2, 20)
DATE_TO = date(2026, 2, 21)

EVENTS = {
    "Events": [
        {
            "Title": "Nosferatu",
            "Year": "1922",
            "Director": "F. W. Murnau",
            "Synopsis": "A silent classic.",
            "Performances": [
                {
                    "ID": "101",
                    "StartDate": "2026-02-20",
                    "StartTime": "2040",
                    "URL": "Booking?Booking=TSelectItems.waSelectItemsPrices.TCs&Key=101",
                    "AuditoriumName": "Screen 1",
                    "HoH": "Y",
                },
                {
                    "ID": "102",
                    "StartDate": "2026-02-21",
                    "StartTime": "1100",
                    "URL": "https://riocinema.org.uk/Rio.dll/Booking?Key=102",
                    "CM": "Y",
                    "IsSoldOut": "Y",
                },
                {"ID": "103", "StartDate": "2026-03-01", "StartTime": "1800"},
            ],
        },
        {"Title": "", "Performances": [{"ID": "201", "StartDate": "2026-02-20", "StartTime": "1900"}]},
    ]
}


def page(data: dict) -> str:
    return f"<html><script>var Events = {json.dumps(data)};</script></html>"


@pytest.fixture
def scraper() -> RioScraper:
    return RioScraper(get_venue("rio-cinema"))


class TestParseHtml:
    def test_extracts_screenings_in_range(self, scraper: RioScraper) -> None:
        screenings = scraper.parse_html(page(EVENTS), DATE_FROM, DATE_TO)
        assert [s.source_id for s in screenings] == ["rio-cinema:101", "rio-cinema:102"]

    def test_film_details_are_attached(self, scraper: RioScraper) -> None:
        first = scraper.parse_html(page(EVENTS), DATE_FROM, DATE_TO)[0]
        assert first.title == "Nosferatu"
        assert first.year == 1922
        assert first.director == "F. W. Murnau"
        assert first.listing_text == "A silent classic."
        assert first.start_time.hour == 20
        assert first.start_time.minute == 40
        assert first.screen == "Screen 1"
        assert first.format == "Hard of Hearing"
        assert first.availability == "available"
        assert first.booking_url.startswith("https://riocinema.org.uk/Rio.dll/Booking?")

    def test_event_flags_and_sold_out(self, scraper: RioScraper) -> None:
        second = scraper.parse_html(page(EVENTS), DATE_FROM, DATE_TO)[1]
        assert second.event_type == "classic matinee"
        assert second.availability == "sold_out"
        assert second.booking_url == "https://riocinema.org.uk/Rio.dll/Booking?Key=102"

    def test_missing_events_variable(self, scraper: RioScraper) -> None:
        assert scraper.parse_html("<html>No events</html>", DATE_FROM, DATE_TO) == []

    def test_broken_json(self, scraper: RioScraper) -> None:
        assert scraper.parse_html("var Events = {oops", DATE_FROM, DATE_TO) == []

    def test_trailing_script_does_not_confuse_decoder(self, scraper: RioScraper) -> None:
        html = 'var Events = {"Events":[]}; var X = {"k": "v; with }; inside"};'
        assert scraper.parse_html(html, DATE_FROM, DATE_TO) == []
