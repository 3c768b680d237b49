"""Data models for scrapers."""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from zoneinfo import ZoneInfo


class ScrapeStrategy(str, Enum):
    STATIC = "static"
    BROWSER = "browser"


class ScraperKind(str, Enum):
    """Every scraper implementation the registry knows about."""

    BFI = "bfi"
    ICA = "ica"
    RIO = "rio"
    PRINCE_CHARLES = "prince-charles"


@dataclass(frozen=True)
class VenueDefinition:
    """
    Static configuration for one venue.

    ``kind`` picks the scraper class; ``strategy`` must agree with the
    strategy that class declares (checked when the venue list is loaded).
    """

    id: str
    name: str
    base_url: str
    kind: ScraperKind
    strategy: ScrapeStrategy
    extra_urls: tuple[str, ...] = ()
    address: str | None = None
    postcode: str | None = None
    features: tuple[str, ...] = ()
    timezone: str = "Europe/London"
    # Text expected somewhere on the homepage when the site is healthy
    health_marker: str | None = None

    @property
    def tz(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)


@dataclass
class RawScreening:
    """
    Raw screening data from a cinema scraper.

    This is the output format that all scrapers must return. Titles are
    passed through exactly as listed; cleanup happens in the normalizer.
    """

    venue_id: str
    title: str  # Film title as it appears on cinema website
    start_time: datetime  # Showing time (timezone-aware)
    booking_url: str = ""
    screen: str | None = None  # Screen/auditorium name
    format: str | None = None  # e.g. "35mm", "IMAX"
    event_type: str | None = None  # Set when the venue labels the event itself
    event_description: str | None = None
    year: int | None = None
    director: str | None = None
    festival_slug: str | None = None
    availability: str | None = None  # "available" | "limited" | "sold_out"
    listing_text: str | None = None  # Surrounding copy, used for metadata hints
    source_id: str | None = None

    def __post_init__(self) -> None:
        """Validate that start_time is timezone-aware and fill in source_id."""
        if self.start_time.tzinfo is None or self.start_time.utcoffset() is None:
            raise ValueError("start_time must be timezone-aware")
        if not self.source_id:
            self.source_id = f"{self.venue_id}:{self.title}:{self.start_time.isoformat()}"
