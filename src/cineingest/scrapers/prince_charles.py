"""Prince Charles Cinema scraper."""

import logging
import re
from datetime import date, datetime

from bs4 import BeautifulSoup, Tag

from cineingest.scrapers.base import StaticScraper
from cineingest.scrapers.http import RateLimitedFetcher
from cineingest.scrapers.models import RawScreening

logger = logging.getLogger(__name__)

MONTHS = {
    "jan": 1, "feb": 2, "mar": 3, "apr": 4, "may": 5, "jun": 6,
    "jul": 7, "aug": 8, "sep": 9, "oct": 10, "nov": 11, "dec": 12,
}

_DATE_RE = re.compile(r"\b(\d{1,2})(?:st|nd|rd|th)?\s+([A-Za-z]{3})[a-z]*\b")
_TIME_RE = re.compile(r"(\d{1,2}):(\d{2})\s*(am|pm)?", re.IGNORECASE)


class PrinceCharlesScraper(StaticScraper):
    """
    Scraper for Prince Charles Cinema.

    WordPress site using the jacro cinema plugin: one ``div.jacro-event``
    per film, each holding ``ul.performance-list-items`` where date headings
    and time ``li`` items are interleaved.
    """

    WHATS_ON_PATH = "/whats-on/"

    async def fetch_static(
        self, fetcher: RateLimitedFetcher, date_from: date, date_to: date
    ) -> list[RawScreening]:
        html = await fetcher.get_text(f"{self.venue.base_url.rstrip('/')}{self.WHATS_ON_PATH}")
        return self.parse_html(html, date_from, date_to)

    def parse_html(self, html: str, date_from: date, date_to: date) -> list[RawScreening]:
        soup = BeautifulSoup(html, "html.parser")
        events = soup.find_all("div", class_="jacro-event")
        logger.debug(f"Prince Charles: {len(events)} jacro-event containers")

        screenings: list[RawScreening] = []
        for event in events:
            try:
                screenings.extend(self._parse_event(event, date_from, date_to))
            except Exception as e:
                logger.warning(f"Prince Charles: failed to parse jacro-event: {e}")
        return screenings

    def _parse_event(self, event: Tag, date_from: date, date_to: date) -> list[RawScreening]:
        link = event.find("a", class_="liveeventtitle")
        if not link:
            return []
        title = link.get_text(strip=True)

        desc = event.find("div", class_="jacrofilm-list-content")
        listing_text = desc.get_text(" ", strip=True) if desc else None

        screenings: list[RawScreening] = []
        for perf_list in event.find_all("ul", class_="performance-list-items"):
            current_date: date | None = None
            for child in perf_list.find_all(["div", "li"], recursive=False):
                if child.name == "div" and "heading" in (child.get("class") or []):
                    current_date = self._parse_heading(child.get_text(strip=True), date_from)
                    if current_date and not (date_from <= current_date <= date_to):
                        current_date = None
                elif child.name == "li" and current_date:
                    screening = self._parse_time_item(title, child, current_date, listing_text)
                    if screening:
                        screenings.append(screening)
        return screenings

    def _parse_heading(self, text: str, date_from: date) -> date | None:
        """Parse "Saturday 14th February"; the year is inferred and may roll over."""
        match = _DATE_RE.search(text)
        if not match:
            return None
        month = MONTHS.get(match.group(2).lower())
        if not month:
            return None
        year = date_from.year + (1 if month < date_from.month else 0)
        try:
            return date(year, month, int(match.group(1)))
        except ValueError:
            return None

    def _parse_time_item(
        self, title: str, item: Tag, day: date, listing_text: str | None
    ) -> RawScreening | None:
        time_span = item.find("span", class_="time")
        if not time_span:
            return None
        match = _TIME_RE.search(time_span.get_text(strip=True))
        if not match:
            return None

        hour, minute = int(match.group(1)), int(match.group(2))
        meridiem = (match.group(3) or "").lower()
        if meridiem == "pm" and hour != 12:
            hour += 12
        elif meridiem == "am" and hour == 12:
            hour = 0

        booking_url = ""
        anchor = time_span.find_parent("a")
        if anchor and anchor.get("href"):
            href = anchor["href"]
            booking_url = f"{self.venue.base_url.rstrip('/')}{href}" if href.startswith("/") else href

        classes = item.get("class") or []
        sold_out = "soldout" in classes or "sold-out" in classes

        return RawScreening(
            venue_id=self.venue.id,
            title=title,
            start_time=datetime(day.year, day.month, day.day, hour, minute, tzinfo=self.venue.tz),
            booking_url=booking_url,
            availability="sold_out" if sold_out else "available",
            listing_text=listing_text,
        )
