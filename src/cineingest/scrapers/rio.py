"""Rio Cinema scraper using embedded JSON in page HTML."""

import json
import logging
import re
from datetime import date, datetime

from cineingest.scrapers.base import StaticScraper
from cineingest.scrapers.http import RateLimitedFetcher
from cineingest.scrapers.models import RawScreening

logger = logging.getLogger(__name__)

BASE_URL = "https://riocinema.org.uk"
WHATS_ON_URL = f"{BASE_URL}/Rio.dll/WhatsOn"

# Performance flags that describe the kind of event rather than the film
EVENT_FLAGS: dict[str, str] = {
    "CB": "carers and babies",
    "PP": "pink palace",
    "CM": "classic matinee",
    "QA": "q&a",
    "FF": "kids screening",
    "RS": "relaxed screening",
}

ACCESS_FLAGS: dict[str, str] = {
    "HoH": "Hard of Hearing",
    "NoAds": "No Ads",
}


class RioScraper(StaticScraper):
    """
    Scraper for Rio Cinema (Dalston).

    The What's On page embeds every film and performance as a JavaScript
    ``var Events = {...}`` assignment, so no JS rendering is needed.
    """

    async def fetch_static(
        self, fetcher: RateLimitedFetcher, date_from: date, date_to: date
    ) -> list[RawScreening]:
        html = await fetcher.get_text(WHATS_ON_URL)
        return self.parse_html(html, date_from, date_to)

    def parse_html(self, html: str, date_from: date, date_to: date) -> list[RawScreening]:
        """Extract the embedded Events JSON and parse it into screenings."""
        marker = re.search(r"var\s+Events\s*=\s*", html)
        if not marker:
            logger.warning("Rio Cinema: could not find 'var Events' in page HTML")
            return []

        try:
            data, _ = json.JSONDecoder().raw_decode(html, marker.end())
        except json.JSONDecodeError as e:
            logger.error(f"Rio Cinema: failed to parse Events JSON: {e}")
            return []

        screenings: list[RawScreening] = []
        for film in data.get("Events", []):
            try:
                screenings.extend(self._parse_film(film, date_from, date_to))
            except Exception as e:
                logger.warning(f"Rio Cinema: failed to parse film entry: {e}")
        return screenings

    def _parse_film(self, film: dict, date_from: date, date_to: date) -> list[RawScreening]:
        title = str(film.get("Title") or "").strip()
        if not title:
            return []

        year = None
        if str(film.get("Year") or "").isdigit():
            year = int(film["Year"])
        director = film.get("Director") or None
        synopsis = film.get("Synopsis") or None

        screenings: list[RawScreening] = []
        for perf in film.get("Performances", []):
            screening = self._parse_performance(title, perf, date_from, date_to)
            if screening:
                screening.year = year
                screening.director = director
                screening.listing_text = synopsis
                screenings.append(screening)
        return screenings

    def _parse_performance(
        self, title: str, perf: dict, date_from: date, date_to: date
    ) -> RawScreening | None:
        # StartDate "2026-02-16", StartTime "2040" (= 20:40)
        try:
            perf_date = date.fromisoformat(perf.get("StartDate") or "")
            time_str = str(perf.get("StartTime") or "").zfill(4)
            hour, minute = int(time_str[:2]), int(time_str[2:])
        except ValueError:
            return None
        if not (date_from <= perf_date <= date_to):
            return None

        start_time = datetime(
            perf_date.year, perf_date.month, perf_date.day, hour, minute, tzinfo=self.venue.tz
        )

        # Booking URLs are relative: "Booking?Booking=TSelectItems..."
        url = perf.get("URL") or ""
        if url and not url.startswith("http"):
            url = f"{BASE_URL}/Rio.dll/{url}"

        event_type = next(
            (label for flag, label in EVENT_FLAGS.items() if perf.get(flag) == "Y"), None
        )
        access = [label for flag, label in ACCESS_FLAGS.items() if perf.get(flag) == "Y"]

        sold_out = perf.get("IsSoldOut") == "Y"
        perf_id = perf.get("ID")

        return RawScreening(
            venue_id=self.venue.id,
            title=title,
            start_time=start_time,
            booking_url=url,
            screen=str(perf["AuditoriumName"]) if perf.get("AuditoriumName") else None,
            format=", ".join(access) if access else None,
            event_type=event_type,
            availability="sold_out" if sold_out else "available",
            source_id=f"{self.venue.id}:{perf_id}" if perf_id else None,
        )
