"""Scraper registry mapping scraper kinds to scraper classes."""

from cineingest.scrapers.base import BaseScraper, BrowserScraper, StaticScraper
from cineingest.scrapers.bfi import BFIScraper
from cineingest.scrapers.ica import ICAScraper
from cineingest.scrapers.models import RawScreening, ScraperKind, ScrapeStrategy, VenueDefinition
from cineingest.scrapers.prince_charles import PrinceCharlesScraper
from cineingest.scrapers.rio import RioScraper

SCRAPER_REGISTRY: dict[ScraperKind, type[BaseScraper]] = {
    ScraperKind.BFI: BFIScraper,
    ScraperKind.ICA: ICAScraper,
    ScraperKind.RIO: RioScraper,
    ScraperKind.PRINCE_CHARLES: PrinceCharlesScraper,
}

_missing = set(ScraperKind) - set(SCRAPER_REGISTRY)
if _missing:
    raise RuntimeError(f"Scraper kinds without an implementation: {sorted(_missing)}")


def get_scraper(venue: VenueDefinition) -> BaseScraper:
    """Build the scraper for ``venue``."""
    return SCRAPER_REGISTRY[venue.kind](venue)


__all__ = [
    "SCRAPER_REGISTRY",
    "get_scraper",
    "BaseScraper",
    "BrowserScraper",
    "StaticScraper",
    "BFIScraper",
    "ICAScraper",
    "PrinceCharlesScraper",
    "RioScraper",
    "RawScreening",
    "ScraperKind",
    "ScrapeStrategy",
    "VenueDefinition",
]
