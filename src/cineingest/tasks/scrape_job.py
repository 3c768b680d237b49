"""Scrape jobs: one venue end to end, or every venue concurrently."""

import asyncio
import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager, nullcontext
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone

from cineingest.config import settings
from cineingest.database import session_scope
from cineingest.exceptions import IngestError, UnknownVenueError
from cineingest.repositories import IngestStore, InMemoryStore, SqlAlchemyStore
from cineingest.repositories.records import RunRecord
from cineingest.scrapers import get_scraper
from cineingest.scrapers.models import ScrapeStrategy, VenueDefinition
from cineingest.services.film_matcher import FilmCatalog, FilmMatcher, ResolvedFilm
from cineingest.services.health_monitor import AlertSink, HealthMonitor, HealthReport
from cineingest.services.normalizer import NormalizedScreening, Normalizer
from cineingest.services.reconciler import Reconciler
from cineingest.services.title_extractor import TitleExtractor
from cineingest.services.tmdb_client import TMDbClient
from cineingest.venues import all_venues, get_venue

logger = logging.getLogger(__name__)


@dataclass
class VenueRunResult:
    success: bool
    venue_id: str
    found: int = 0
    added: int = 0
    updated: int = 0
    failed: int = 0
    rejected: int = 0
    review: int = 0
    duration_ms: int = 0
    blocked: bool = False
    health: HealthReport | None = None
    error: str | None = None


@dataclass
class RunResources:
    """Clients and caches shared by every venue in one scrape run."""

    tmdb_client: TMDbClient = field(default_factory=TMDbClient)
    extractor: TitleExtractor = field(default_factory=TitleExtractor)
    normalizer: Normalizer = field(default_factory=Normalizer)
    browser_slots: asyncio.Semaphore | None = None


@asynccontextmanager
async def open_store(dry_run: bool = False) -> AsyncIterator[IngestStore]:
    """Yield a store for one venue run: its own session, or memory on a dry run."""
    if dry_run:
        yield InMemoryStore()
        return
    async with session_scope() as session:
        yield SqlAlchemyStore(session)


def _scrape_window(venue: VenueDefinition) -> tuple[date, date]:
    today = datetime.now(venue.tz).date()
    return today, today + timedelta(days=settings.scrape_days_ahead)


async def _resolve_all(
    matcher: FilmMatcher, normalized: list[NormalizedScreening], result: VenueRunResult
) -> list[tuple[NormalizedScreening, ResolvedFilm]]:
    pairs = []
    for screening in normalized:
        try:
            pairs.append((screening, await matcher.resolve(screening)))
        except Exception as e:
            result.failed += 1
            logger.warning(
                f"Could not resolve {screening.raw.title!r}: {e}", exc_info=True
            )
    return pairs


async def _run_pipeline(
    venue: VenueDefinition,
    store: IngestStore,
    resources: RunResources,
    alert_sink: AlertSink | None,
) -> VenueRunResult:
    result = VenueRunResult(success=False, venue_id=venue.id)
    scraper = get_scraper(venue)
    date_from, date_to = _scrape_window(venue)

    slots = resources.browser_slots if venue.strategy is ScrapeStrategy.BROWSER else None
    async with slots or nullcontext():
        screenings = await scraper.scrape(date_from, date_to)

    result.found = len(screenings)
    if scraper.last_validation:
        result.rejected = scraper.last_validation.rejected_total

    normalized = [resources.normalizer.normalize(s) for s in screenings]
    catalog = await FilmCatalog.load(store)
    matcher = FilmMatcher(
        catalog,
        tmdb_client=resources.tmdb_client,
        extractor=resources.extractor.bind(store),
    )
    pairs = await _resolve_all(matcher, normalized, result)

    now = datetime.now(venue.tz)
    monitor = HealthMonitor(store)
    health = await monitor.evaluate(venue.id, result.found, now)
    result.health = health

    if health.alert and alert_sink is not None:
        try:
            await alert_sink(health.alert)
        except Exception as e:
            logger.error(f"Alert sink failed for {venue.name}: {e}", exc_info=True)

    if health.should_block:
        result.blocked = True
        result.error = f"Blocked by health check: {'; '.join(health.issues)}"
        logger.warning(
            f"{venue.name}: not saving {result.found} screenings. {health.recommendation}",
            extra={"event": "run_blocked", "venue_id": venue.id},
        )
        return result

    reconciled = await Reconciler(store).reconcile(venue, pairs, now)
    result.added = reconciled.added
    result.updated = reconciled.updated
    result.failed += reconciled.failed
    result.review = reconciled.review

    async with store.transaction():
        await monitor.record(venue.id, result.found, now)

    result.success = True
    return result


async def _record_run(
    store: IngestStore, result: VenueRunResult, triggered_by: str, started_at: datetime
) -> None:
    health = result.health
    run = RunRecord(
        venue_id=result.venue_id,
        triggered_by=triggered_by,
        started_at=started_at,
        completed_at=datetime.now(timezone.utc),
        status="blocked" if result.blocked else ("success" if result.success else "failed"),
        screening_count=result.found,
        baseline_count=health.baseline if health else None,
        percent_change=health.percent_change if health else None,
        added=result.added,
        updated=result.updated,
        failed=result.failed,
        rejected=result.rejected,
        error=result.error,
    )
    try:
        async with store.transaction():
            await store.record_run(run)
    except Exception as e:
        logger.error(f"Could not record run for {result.venue_id}: {e}", exc_info=True)


async def run_venue_scraper(
    venue_id: str,
    triggered_by: str = "manual",
    dry_run: bool = False,
    resources: RunResources | None = None,
    alert_sink: AlertSink | None = None,
) -> VenueRunResult:
    """
    Scrape, match and reconcile one venue.

    Never raises: failures come back as ``success=False`` with the error
    message. Each call uses its own database session, or an in-memory
    store when ``dry_run`` is set.

    Args:
        venue_id: Configured venue id
        triggered_by: "scheduler", "admin", "cli" or "manual"
        dry_run: Scrape and match without touching the database
        resources: Clients shared across a multi-venue run
        alert_sink: Receives an alert when the health check flags the run
    """
    started_at = datetime.now(timezone.utc)
    t0 = time.monotonic()
    log_extra = {"event": "venue_run", "venue_id": venue_id}

    try:
        venue = get_venue(venue_id)
    except UnknownVenueError as e:
        logger.warning(str(e), extra=log_extra)
        return VenueRunResult(success=False, venue_id=venue_id, error=str(e))

    resources = resources or RunResources()
    logger.info(f"Starting scrape of {venue.name} ({triggered_by})", extra=log_extra)

    async with open_store(dry_run) as store:
        try:
            result = await asyncio.wait_for(
                _run_pipeline(venue, store, resources, alert_sink),
                timeout=settings.venue_timeout,
            )
        except asyncio.TimeoutError:
            logger.error(
                f"{venue.name}: timed out after {settings.venue_timeout:.0f}s", extra=log_extra
            )
            result = VenueRunResult(
                success=False,
                venue_id=venue.id,
                error=f"Timed out after {settings.venue_timeout:.0f}s",
            )
        except IngestError as e:
            logger.error(f"{venue.name}: {e}", exc_info=True, extra=log_extra)
            result = VenueRunResult(success=False, venue_id=venue.id, error=str(e))
        except Exception as e:
            logger.error(f"Error scraping {venue.name}: {e}", exc_info=True, extra=log_extra)
            result = VenueRunResult(
                success=False, venue_id=venue.id, error=f"{type(e).__name__}: {e}"
            )

        result.duration_ms = int((time.monotonic() - t0) * 1000)
        await _record_run(store, result, triggered_by, started_at)

    logger.info(
        f"Finished {venue.name}: success={result.success}, found {result.found}, "
        f"{result.added} added, {result.updated} updated, {result.failed} failed, "
        f"{result.rejected} rejected, {result.review} for review "
        f"in {result.duration_ms}ms",
        extra={
            **log_extra,
            "success": result.success,
            "found": result.found,
            "added": result.added,
            "updated": result.updated,
            "blocked": result.blocked,
            "duration_ms": result.duration_ms,
        },
    )
    return result


async def run_scrape_all(
    venue_ids: list[str] | None = None,
    triggered_by: str = "scheduler",
    dry_run: bool = False,
    alert_sink: AlertSink | None = None,
) -> list[VenueRunResult]:
    """Scrape every configured venue, a few at a time.

    Safe to call from the scheduler: a venue failure is reported in its
    result and never stops the others.
    """
    venue_ids = venue_ids or [venue.id for venue in all_venues()]
    logger.info(f"Starting scrape of {len(venue_ids)} venues ({triggered_by})")

    resources = RunResources(
        browser_slots=asyncio.Semaphore(settings.max_concurrent_browsers)
    )
    venue_slots = asyncio.Semaphore(settings.max_concurrent_venues)

    async def run_one(venue_id: str) -> VenueRunResult:
        async with venue_slots:
            return await run_venue_scraper(
                venue_id,
                triggered_by=triggered_by,
                dry_run=dry_run,
                resources=resources,
                alert_sink=alert_sink,
            )

    outcomes = await asyncio.gather(
        *(run_one(venue_id) for venue_id in venue_ids), return_exceptions=True
    )

    results: list[VenueRunResult] = []
    for venue_id, outcome in zip(venue_ids, outcomes):
        if isinstance(outcome, BaseException):
            logger.error(f"Venue task {venue_id} crashed: {outcome!r}")
            outcome = VenueRunResult(success=False, venue_id=venue_id, error=str(outcome))
        results.append(outcome)

    succeeded = sum(1 for r in results if r.success)
    logger.info(
        f"Scrape complete: {succeeded} succeeded, {len(results) - succeeded} failed, "
        f"{sum(r.added for r in results)} screenings added, "
        f"AI extraction calls: {resources.extractor.calls}"
    )
    return results
