"""Configured venues.

Checked at import: every venue must use a registered scraper kind whose
class declares the same strategy as the venue, and ids must be unique.
"""

from cineingest.exceptions import UnknownVenueError
from cineingest.scrapers import SCRAPER_REGISTRY
from cineingest.scrapers.models import ScraperKind, ScrapeStrategy, VenueDefinition

_VENUES = (
    VenueDefinition(
        id="bfi-southbank",
        name="BFI Southbank",
        base_url="https://whatson.bfi.org.uk/Online/default.asp",
        kind=ScraperKind.BFI,
        strategy=ScrapeStrategy.BROWSER,
        address="Belvedere Road, South Bank",
        postcode="SE1 8XT",
        features=("35mm", "70mm", "repertory"),
        health_marker="BFI",
    ),
    VenueDefinition(
        id="ica",
        name="ICA Cinema",
        base_url="https://www.ica.art/films",
        kind=ScraperKind.ICA,
        strategy=ScrapeStrategy.STATIC,
        address="The Mall",
        postcode="SW1Y 5AH",
        features=("independent",),
        health_marker="ICA",
    ),
    VenueDefinition(
        id="rio-cinema",
        name="Rio Cinema",
        base_url="https://riocinema.org.uk",
        kind=ScraperKind.RIO,
        strategy=ScrapeStrategy.STATIC,
        address="107 Kingsland High Street",
        postcode="E8 2PB",
        features=("independent", "art deco"),
        health_marker="Rio",
    ),
    VenueDefinition(
        id="prince-charles",
        name="Prince Charles Cinema",
        base_url="https://princecharlescinema.com",
        kind=ScraperKind.PRINCE_CHARLES,
        strategy=ScrapeStrategy.STATIC,
        address="7 Leicester Place",
        postcode="WC2H 7BY",
        features=("35mm", "70mm", "repertory"),
        health_marker="Prince Charles",
    ),
)


def validate_venues(venues: tuple[VenueDefinition, ...]) -> dict[str, VenueDefinition]:
    """Check venue definitions against the scraper registry and index them by id."""
    by_id: dict[str, VenueDefinition] = {}
    for venue in venues:
        if venue.id in by_id:
            raise ValueError(f"Duplicate venue id {venue.id!r}")
        scraper_class = SCRAPER_REGISTRY.get(venue.kind)
        if scraper_class is None:
            raise ValueError(f"Venue {venue.id!r} uses unregistered scraper {venue.kind!r}")
        if scraper_class.strategy != venue.strategy:
            raise ValueError(
                f"Venue {venue.id!r} is configured as {venue.strategy.value} but "
                f"{scraper_class.__name__} is a {scraper_class.strategy.value} scraper"
            )
        by_id[venue.id] = venue
    return by_id


VENUES: dict[str, VenueDefinition] = validate_venues(_VENUES)


def get_venue(venue_id: str) -> VenueDefinition:
    try:
        return VENUES[venue_id]
    except KeyError:
        raise UnknownVenueError(venue_id) from None


def all_venues() -> list[VenueDefinition]:
    return list(VENUES.values())
