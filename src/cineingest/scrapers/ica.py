"""ICA (Institute of Contemporary Arts) cinema scraper using the Spektrix JSON API.

The ICA sells tickets through Spektrix, whose REST API is public.

Two-phase fetch:
  1. GET /instances?startFrom=…&startTo=…: every performance in the date
     window, with start time, screen, accessibility flags and event id.
  2. GET /events/{id} once per event, keeping attribute_Category == "Films".

Booking URLs are event-level, built from the numeric prefix of the event id.
"""

import logging
import re
from datetime import date, datetime

from cineingest.scrapers.base import StaticScraper, run_units
from cineingest.scrapers.http import RateLimitedFetcher
from cineingest.scrapers.models import RawScreening

logger = logging.getLogger(__name__)

SPEKTRIX_BASE = "https://system.spektrix.com/ica/api/v3"
INSTANCES_URL = f"{SPEKTRIX_BASE}/instances"
EVENT_URL = f"{SPEKTRIX_BASE}/events/{{event_id}}"
BOOKING_URL_TEMPLATE = (
    "https://buy.ica.art/ica/website/EventDetails.aspx"
    "?EventId={event_numeric_id}&Stylesheet=main-spektrix.css&resize=true"
)

# Accessibility flag → format label
ACCESS_FLAGS: dict[str, str] = {
    "attribute_BSLInterpreted": "BSL",
    "attribute_Captioned": "Captioned",
}

_OUTER_QUOTES_RE = re.compile(r'^["“‘](.+)["”’]$')


class ICAScraper(StaticScraper):
    """Scraper for ICA cinema (The Mall)."""

    async def fetch_static(
        self, fetcher: RateLimitedFetcher, date_from: date, date_to: date
    ) -> list[RawScreening]:
        instances: list[dict] = await fetcher.get_json(
            INSTANCES_URL,
            params={"startFrom": date_from.isoformat(), "startTo": date_to.isoformat()},
        )
        logger.debug(f"ICA: {len(instances)} instances in date window")

        by_event: dict[str, list[dict]] = {}
        for inst in instances:
            event_id = (inst.get("event") or {}).get("id")
            if event_id:
                by_event.setdefault(event_id, []).append(inst)

        async def load_event(event_id: str) -> list[RawScreening]:
            event = await fetcher.get_json(EVENT_URL.format(event_id=event_id))
            if event.get("attribute_Category") != "Films":
                return []
            return self.parse_event(event_id, event, by_event[event_id], date_from, date_to)

        return await run_units(by_event, load_event, self.retry_policy, label="ICA event")

    def parse_event(
        self,
        event_id: str,
        event: dict,
        instances: list[dict],
        date_from: date,
        date_to: date,
    ) -> list[RawScreening]:
        """Turn one Spektrix film event and its instances into screenings."""
        title = (event.get("name") or "").strip()
        match = _OUTER_QUOTES_RE.match(title)
        if match:
            title = match.group(1).strip()
        if not title:
            return []

        numeric = re.match(r"^(\d+)", event_id)
        booking_url = (
            BOOKING_URL_TEMPLATE.format(event_numeric_id=numeric.group(1)) if numeric else ""
        )
        description = event.get("description") or None

        screenings: list[RawScreening] = []
        for inst in instances:
            screening = self._parse_instance(
                title, inst, booking_url, description, date_from, date_to
            )
            if screening:
                screenings.append(screening)
        return screenings

    def _parse_instance(
        self,
        title: str,
        inst: dict,
        booking_url: str,
        description: str | None,
        date_from: date,
        date_to: date,
    ) -> RawScreening | None:
        if inst.get("cancelled"):
            return None

        try:
            naive = datetime.fromisoformat(inst.get("start") or "")
        except ValueError:
            return None
        if not (date_from <= naive.date() <= date_to):
            return None

        tags = [label for flag, label in ACCESS_FLAGS.items() if inst.get(flag) is True]
        instance_id = inst.get("id")

        return RawScreening(
            venue_id=self.venue.id,
            title=title,
            start_time=naive.replace(tzinfo=self.venue.tz),
            booking_url=booking_url,
            screen=inst.get("attribute_Venue") or None,
            format=", ".join(tags) if tags else None,
            listing_text=description,
            source_id=f"{self.venue.id}:{instance_id}" if instance_id else None,
        )
