"""Reconciliation of matched screenings into persistent state."""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone

from cineingest.exceptions import IngestError, PersistenceError
from cineingest.repositories.base import IngestStore
from cineingest.repositories.records import (
    ReviewRecord,
    ScreeningKey,
    ScreeningRecord,
    UpsertOutcome,
)
from cineingest.scrapers.models import VenueDefinition
from cineingest.services.film_matcher import ResolvedFilm
from cineingest.services.normalizer import NormalizedScreening

logger = logging.getLogger(__name__)


@dataclass
class ReconcileResult:
    added: int = 0
    updated: int = 0
    unchanged: int = 0
    protected: int = 0
    failed: int = 0
    review: int = 0
    stale: int = 0
    errors: list[str] = field(default_factory=list)

    @property
    def applied(self) -> int:
        return self.added + self.updated + self.unchanged


def build_screening_record(
    screening: NormalizedScreening, film_id: str, scraped_at: datetime
) -> ScreeningRecord:
    raw = screening.raw
    return ScreeningRecord(
        venue_id=raw.venue_id,
        film_id=film_id,
        start_time=raw.start_time,
        booking_url=raw.booking_url,
        screen=raw.screen,
        format=raw.format,
        event_type=screening.event_type,
        event_description=raw.event_description,
        availability=raw.availability,
        is_sold_out=raw.availability == "sold_out",
        source_id=raw.source_id,
        festival_slug=raw.festival_slug,
        raw_title=raw.title,
        scraped_at=scraped_at,
    )


class Reconciler:
    """
    Merges one venue's resolved screenings into the store.

    Everything for a venue happens in one transaction. Each screening runs
    in its own savepoint, so a bad row is counted in ``failed`` and the
    rest still commit. Screenings stored for the venue but missing from
    this scrape are only counted as ``stale``; nothing is deleted here.
    """

    def __init__(self, store: IngestStore) -> None:
        self.store = store

    async def reconcile(
        self,
        venue: VenueDefinition,
        pairs: list[tuple[NormalizedScreening, ResolvedFilm]],
        now: datetime | None = None,
    ) -> ReconcileResult:
        now = now or datetime.now(timezone.utc)
        result = ReconcileResult()
        seen: set[ScreeningKey] = set()

        try:
            async with self.store.transaction():
                await self.store.ensure_cinema(venue, scraped_at=now)

                for screening, resolved in pairs:
                    if resolved.requires_review:
                        await self._queue_review(venue, screening, resolved)
                        result.review += 1
                        continue

                    key = await self._apply(screening, resolved, now, result)
                    if key is not None:
                        seen.add(key)

                upcoming = await self.store.list_upcoming_keys(venue.id, now)
                result.stale = len(upcoming - seen)
        except IngestError:
            raise
        except Exception as e:
            logger.error(f"Reconciliation failed for {venue.name}: {e}", exc_info=True)
            raise PersistenceError(f"Reconciliation failed for {venue.id}: {e}") from e

        logger.info(
            f"{venue.name}: {result.added} added, {result.updated} updated, "
            f"{result.unchanged} unchanged, {result.protected} protected, "
            f"{result.failed} failed, {result.review} for review, {result.stale} stale"
        )
        return result

    async def _apply(
        self,
        screening: NormalizedScreening,
        resolved: ResolvedFilm,
        now: datetime,
        result: ReconcileResult,
    ) -> ScreeningKey | None:
        try:
            async with self.store.savepoint():
                film_id = resolved.film_id
                if resolved.film is not None:
                    stored = await self.store.ensure_film(resolved.film)
                    film_id = stored.id

                record = build_screening_record(screening, film_id, now)
                outcome = await self.store.upsert_screening(record)
        except Exception as e:
            result.failed += 1
            result.errors.append(f"{screening.raw.title!r}: {e}")
            logger.warning(
                f"Failed to store screening {screening.raw.title!r} at "
                f"{screening.raw.start_time}: {e}",
                exc_info=True,
            )
            return None

        if outcome.outcome is UpsertOutcome.ADDED:
            result.added += 1
        elif outcome.outcome is UpsertOutcome.UPDATED:
            result.updated += 1
        else:
            result.unchanged += 1

        if outcome.protected:
            result.protected += 1
            logger.info(
                f"Kept manual edits to {', '.join(outcome.skipped)} for "
                f"{screening.raw.title!r} at {screening.raw.start_time}"
            )
        return outcome.key or record.key

    async def _queue_review(
        self,
        venue: VenueDefinition,
        screening: NormalizedScreening,
        resolved: ResolvedFilm,
    ) -> None:
        logger.info(
            f"Low confidence match for {screening.raw.title!r}: {resolved.title!r} "
            f"({resolved.strategy.value}, {resolved.confidence:.2f}), queued for review"
        )
        await self.store.add_review(
            ReviewRecord(
                venue_id=venue.id,
                raw_title=screening.raw.title,
                clean_title=screening.clean_title,
                candidate_film_id=None if resolved.is_new else resolved.film_id,
                confidence=resolved.confidence,
                strategy=resolved.strategy.value,
            )
        )
