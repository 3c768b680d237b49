"""Base scraper interfaces for all cinema scrapers."""

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass
from datetime import date
from typing import ClassVar, TypeVar

from cineingest.config import settings
from cineingest.exceptions import BrowserLaunchError, ScrapeError
from cineingest.scrapers.browser import BrowserSession, ChallengePolicy
from cineingest.scrapers.http import RateLimitedFetcher
from cineingest.scrapers.models import RawScreening, ScrapeStrategy, VenueDefinition
from cineingest.scrapers.validation import ValidationSummary, validate_screenings

logger = logging.getLogger(__name__)

U = TypeVar("U")
T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """Retry a failed unit of work ``max_attempts`` times, ``backoff`` seconds apart."""

    max_attempts: int = 3
    backoff: float = 5.0

    @classmethod
    def from_settings(cls) -> "RetryPolicy":
        return cls(
            max_attempts=settings.scrape_max_retries,
            backoff=settings.scrape_retry_backoff,
        )


async def run_units(
    units: Iterable[U],
    fn: Callable[[U], Awaitable[list[T]]],
    policy: RetryPolicy,
    label: str = "unit",
) -> list[T]:
    """
    Run ``fn`` over each unit (a date, a page, an event id) in order.

    A unit that keeps failing after ``policy.max_attempts`` is logged and
    skipped so one bad date never costs the rest of the run. A browser
    that cannot launch is not retried.

    Returns:
        The concatenated results of every unit that succeeded
    """
    results: list[T] = []
    for unit in units:
        for attempt in range(1, policy.max_attempts + 1):
            try:
                results.extend(await fn(unit))
                break
            except BrowserLaunchError:
                raise
            except Exception as e:
                if attempt < policy.max_attempts:
                    logger.info(
                        f"{label} {unit} failed (attempt {attempt}/{policy.max_attempts}): "
                        f"{e}; retrying in {policy.backoff}s"
                    )
                    await asyncio.sleep(policy.backoff)
                else:
                    logger.warning(
                        f"{label} {unit} failed after {policy.max_attempts} attempts, skipping: {e}",
                        exc_info=True,
                    )
    return results


class BaseScraper(ABC):
    """
    Abstract base class for all cinema scrapers.

    ``scrape`` fetches and validates. Subclasses implement ``fetch`` (via the
    static or browser base below) and must raise ``ScrapeError`` only for
    failures that make the whole run meaningless; anything narrower is
    handled per unit with ``run_units``.
    """

    strategy: ClassVar[ScrapeStrategy]

    def __init__(
        self,
        venue: VenueDefinition,
        retry_policy: RetryPolicy | None = None,
    ) -> None:
        self.venue = venue
        self.retry_policy = retry_policy or RetryPolicy.from_settings()
        self.last_validation: ValidationSummary | None = None

    @abstractmethod
    async def fetch(self, date_from: date, date_to: date) -> list[RawScreening]:
        """
        Fetch unvalidated screenings for the given date range.

        Args:
            date_from: Start date (inclusive)
            date_to: End date (inclusive)
        """

    @abstractmethod
    async def health_check(self) -> bool:
        """Return True if the venue site is reachable and looks normal."""

    def validate(self, screenings: list[RawScreening]) -> ValidationSummary:
        return validate_screenings(screenings, timezone_name=self.venue.timezone)

    async def scrape(self, date_from: date, date_to: date) -> list[RawScreening]:
        """
        Fetch screenings for the given date range and validate them.

        The validation summary of the last call is kept in ``last_validation``.

        Raises:
            ScrapeError: The venue could not be scraped at all
        """
        try:
            raw = await self.fetch(date_from, date_to)
        except ScrapeError:
            raise
        except Exception as e:
            logger.error(f"{self.venue.name} scraper error: {e}", exc_info=True)
            raise ScrapeError(self.venue.id, f"Unhandled scraper failure: {e}") from e

        summary = self.validate(raw)
        self.last_validation = summary
        logger.info(
            f"{self.venue.name}: found {len(raw)} screenings, {len(summary.valid)} valid"
        )
        return summary.valid

    def _marker_ok(self, html: str) -> bool:
        marker = self.venue.health_marker
        if marker and marker not in html:
            logger.warning(f"{self.venue.name}: health marker {marker!r} not found")
            return False
        return True


class StaticScraper(BaseScraper):
    """Scraper for sites that serve their listings as HTML or JSON."""

    strategy = ScrapeStrategy.STATIC

    def make_fetcher(self) -> RateLimitedFetcher:
        return RateLimitedFetcher()

    async def fetch(self, date_from: date, date_to: date) -> list[RawScreening]:
        async with self.make_fetcher() as fetcher:
            return await self.fetch_static(fetcher, date_from, date_to)

    @abstractmethod
    async def fetch_static(
        self, fetcher: RateLimitedFetcher, date_from: date, date_to: date
    ) -> list[RawScreening]: ...

    async def health_check(self) -> bool:
        try:
            async with self.make_fetcher() as fetcher:
                html = await fetcher.get_text(self.venue.base_url)
        except Exception as e:
            logger.warning(f"{self.venue.name}: health check failed: {e}")
            return False
        return self._marker_ok(html)


class BrowserScraper(BaseScraper):
    """Scraper for JS-rendered sites behind a bot challenge."""

    strategy = ScrapeStrategy.BROWSER

    def make_session(self) -> BrowserSession:
        return BrowserSession(
            self.venue.id,
            timezone_id=self.venue.timezone,
            policy=ChallengePolicy.from_settings(),
        )

    async def fetch(self, date_from: date, date_to: date) -> list[RawScreening]:
        async with self.make_session() as session:
            await session.warm_up(self.venue.base_url)
            return await self.fetch_browser(session, date_from, date_to)

    @abstractmethod
    async def fetch_browser(
        self, session: BrowserSession, date_from: date, date_to: date
    ) -> list[RawScreening]: ...

    async def health_check(self) -> bool:
        try:
            async with self.make_session() as session:
                html = await session.warm_up(self.venue.base_url)
        except Exception as e:
            logger.warning(f"{self.venue.name}: health check failed: {e}")
            return False
        return self._marker_ok(html)
