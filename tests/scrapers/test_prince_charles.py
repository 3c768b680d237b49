"""Unit tests for the Prince Charles Cinema scraper."""

from datetime import date

import pytest

from cineingest.scrapers.prince_charles import PrinceCharlesScraper
from cineingest.venues import get_venue

HTML = """
<html><body>
<div class="jacro-event">
  <a class="liveeventtitle" href="/film/123/">35mm: Casablanca (PG)</a>
  <div class="jacrofilm-list-content">USA 1942. Dir. Michael Curtiz.</div>
  <ul class="performance-list-items">
    <div class="heading">Saturday 19th December</div>
    <li><a href="/booking/1/"><span class="time">2:30 pm</span></a></li>
    <li class="soldout"><a href="/booking/2/"><span class="time">8:45 pm</span></a></li>
    <div class="heading">Sunday 3rd January</div>
    <li><a href="https://tickets.example.com/3"><span class="time">12:00 pm</span></a></li>
    <div class="heading">Monday 15th March</div>
    <li><a href="/booking/4/"><span class="time">6:00 pm</span></a></li>
  </ul>
</div>
<div class="jacro-event"><p>No title link here</p></div>
</body></html>
"""


@pytest.fixture
def scraper() -> PrinceCharlesScraper:
    return PrinceCharlesScraper(get_venue("prince-charles"))


def test_parses_performances_across_year_end(scraper: PrinceCharlesScraper) -> None:
    screenings = scraper.parse_html(HTML, date(2026, 12, 15), date(2027, 1, 10))

    assert [s.start_time.strftime("%Y-%m-%d %H:%M") for s in screenings] == [
        "2026-12-19 14:30",
        "2026-12-19 20:45",
        "2027-01-03 12:00",
    ]
    assert all(s.title == "35mm: Casablanca (PG)" for s in screenings)


def test_booking_urls_and_availability(scraper: PrinceCharlesScraper) -> None:
    first, second, third = scraper.parse_html(HTML, date(2026, 12, 15), date(2027, 1, 10))

    assert first.booking_url == "https://princecharlescinema.com/booking/1/"
    assert first.availability == "available"
    assert second.availability == "sold_out"
    assert third.booking_url == "https://tickets.example.com/3"
    assert first.listing_text == "USA 1942. Dir. Michael Curtiz."


def test_dates_outside_range_are_skipped(scraper: PrinceCharlesScraper) -> None:
    screenings = scraper.parse_html(HTML, date(2026, 12, 20), date(2026, 12, 31))
    assert screenings == []


def test_heading_parsing(scraper: PrinceCharlesScraper) -> None:
    assert scraper._parse_heading("Friday 1st May", date(2026, 4, 1)) == date(2026, 5, 1)
    assert scraper._parse_heading("Tomorrow", date(2026, 4, 1)) is None
    assert scraper._parse_heading("31st Feb", date(2026, 1, 1)) is None
