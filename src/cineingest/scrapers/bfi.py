"""BFI Southbank scraper driving a stealth browser through the calendar."""

import json
import logging
import re
from datetime import date, datetime, timedelta
from urllib.parse import urlencode

from bs4 import BeautifulSoup, Tag

from cineingest.scrapers.base import BrowserScraper, run_units
from cineingest.scrapers.browser import BrowserSession
from cineingest.scrapers.models import RawScreening

logger = logging.getLogger(__name__)

FILMS_INDEX_URL = (
    "https://whatson.bfi.org.uk/Online/default.asp"
    "?BOparam::WScontent::loadArticle::permalink=filmsindex"
)
ONLINE_URL = "https://whatson.bfi.org.uk/Online"

MONTHS = {
    "january": 1, "february": 2, "march": 3, "april": 4,
    "may": 5, "june": 6, "july": 7, "august": 8,
    "september": 9, "october": 10, "november": 11, "december": 12,
}

KNOWN_FORMATS = {"35mm", "70mm", "4k", "imax"}

_START_RE = re.compile(r"(\d{1,2})\s+(\w+)\s+(\d{4})\s+(\d{1,2}):(\d{2})")


def date_range(date_from: date, date_to: date):
    day = date_from
    while day <= date_to:
        yield day
        day += timedelta(days=1)


def search_url(day: date) -> str:
    """Results page for a single date. BFI wants the date as Y-M-D without zero padding."""
    day_str = f"{day.year}-{day.month}-{day.day}"
    params = {
        "doWork::WScontent::search": "1",
        "BOset::WScontent::SearchCriteria::search_from": day_str,
        "BOset::WScontent::SearchCriteria::search_to": day_str,
    }
    return f"{ONLINE_URL}/default.asp?{urlencode(params)}"


class BFIScraper(BrowserScraper):
    """
    Scraper for BFI Southbank.

    The filmsindex page shows a month calendar; clicking a day loads a
    results page of ``.result-box-item`` entries. Each day is one unit of
    work: reload the calendar, click the day, parse the results. The
    calendar only shows one month, so days in range beyond it are loaded
    through the search URL for that date instead.
    """

    async def fetch_browser(
        self, session: BrowserSession, date_from: date, date_to: date
    ) -> list[RawScreening]:
        html = await session.goto(FILMS_INDEX_URL)
        calendar = set(self.calendar_days(html, date_from, date_to))
        target_days = list(date_range(date_from, date_to))
        logger.debug(
            f"BFI: {len(calendar)} of {len(target_days)} days in range are on the calendar"
        )

        async def scrape_day(day: date) -> list[RawScreening]:
            if day not in calendar:
                results_html = await session.goto(search_url(day))
                return self.parse_results_html(results_html)

            if session.page.url != FILMS_INDEX_URL:
                await session.goto(FILMS_INDEX_URL)
            button = await self._find_day_button(session, day.day)
            if button is None:
                logger.warning(f"BFI: no calendar button for {day}, using search")
                results_html = await session.goto(search_url(day))
            else:
                results_html = await session.follow(button.click)
            return self.parse_results_html(results_html)

        return await run_units(target_days, scrape_day, self.retry_policy, label="BFI day")

    def calendar_days(self, html: str, date_from: date, date_to: date) -> list[date]:
        """Dates shown on the calendar page that fall inside the range."""
        soup = BeautifulSoup(html, "html.parser")
        display = soup.select_one(".calendar-month-display")
        if not display:
            logger.warning("BFI: calendar month display not found")
            return []

        match = re.match(r"(\w+)\s+(\d{4})", display.get_text(strip=True))
        month = MONTHS.get(match.group(1).lower()) if match else None
        if not match or not month:
            return []
        year = int(match.group(2))

        days: list[date] = []
        for button in soup.select(".calendar-date-button"):
            text = button.get_text(strip=True)
            if not text.isdigit():
                continue
            try:
                day = date(year, month, int(text))
            except ValueError:
                continue
            if date_from <= day <= date_to:
                days.append(day)
        return days

    async def _find_day_button(self, session: BrowserSession, day_num: int):
        # Handles go stale after every navigation, so always query afresh
        for button in await session.page.query_selector_all(".calendar-date-button"):
            if (await button.text_content() or "").strip() == str(day_num):
                return button
        return None

    def parse_results_html(self, html: str) -> list[RawScreening]:
        """
        Parse a BFI search results page.

        Each ``.result-box-item`` holds the title link, a ``.start-date``
        like "Sunday 15 February 2026 18:00", the screen in ``.item-venue``
        and a ``.item-link.soldout`` marker when no tickets remain.
        """
        soup = BeautifulSoup(html, "html.parser")
        format_lookup = self._format_lookup(html)

        screenings: list[RawScreening] = []
        for item in soup.find_all("div", class_="result-box-item"):
            try:
                screening = self._parse_item(item, format_lookup)
            except Exception as e:
                logger.warning(f"BFI: failed to parse result item: {e}", exc_info=True)
                continue
            if screening:
                screenings.append(screening)
        return screenings

    def _format_lookup(self, html: str) -> dict[tuple[str, str], str]:
        """
        Map (title, date string) to a film format from the page's JS data.

        ``searchResults`` is an array of arrays: index 5 is the title, 7 the
        date string and 17 comma separated keywords such as "35mm,Kathryn Bigelow".
        """
        m = re.search(r'"?searchResults"?\s*:\s*(\[)', html)
        if not m:
            return {}

        start = m.start(1)
        depth = 0
        end = start
        for i, ch in enumerate(html[start:], start):
            if ch == "[":
                depth += 1
            elif ch == "]":
                depth -= 1
                if depth == 0:
                    end = i + 1
                    break

        try:
            records = json.loads(html[start:end])
        except ValueError:
            logger.debug("BFI: could not parse searchResults data")
            return {}

        lookup: dict[tuple[str, str], str] = {}
        for record in records:
            if not isinstance(record, list) or len(record) <= 17:
                continue
            tags = [t.strip().lower() for t in str(record[17]).split(",")]
            fmt = next((t for t in tags if t in KNOWN_FORMATS), None)
            if fmt:
                lookup[(str(record[5]), str(record[7]))] = fmt
        return lookup

    def _parse_item(
        self, item: Tag, format_lookup: dict[tuple[str, str], str]
    ) -> RawScreening | None:
        link = item.select_one(".item-name a.more-info")
        start_elem = item.select_one(".start-date")
        if not link or not start_elem:
            return None

        title = link.get_text(strip=True)
        start_text = start_elem.get_text(strip=True)
        start_time = self.parse_start(start_text)
        if not start_time:
            logger.warning(f"BFI: could not parse date {start_text!r} for {title!r}")
            return None

        href = link.get("href", "")
        booking_url = href if href.startswith("http") else f"{ONLINE_URL}/{href}"
        venue_elem = item.select_one(".item-venue")

        if item.select_one(".item-link.soldout"):
            availability = "sold_out"
        elif item.select_one(".item-link.limited"):
            availability = "limited"
        else:
            availability = "available"

        return RawScreening(
            venue_id=self.venue.id,
            title=title,
            start_time=start_time,
            booking_url=booking_url,
            screen=venue_elem.get_text(strip=True) if venue_elem else None,
            format=format_lookup.get((title, start_text)),
            availability=availability,
        )

    def parse_start(self, text: str) -> datetime | None:
        match = _START_RE.search(text)
        if not match:
            return None
        month = MONTHS.get(match.group(2).lower())
        if not month:
            return None
        try:
            return datetime(
                int(match.group(3)),
                month,
                int(match.group(1)),
                int(match.group(4)),
                int(match.group(5)),
                tzinfo=self.venue.tz,
            )
        except ValueError:
            return None
