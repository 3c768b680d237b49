"""SQLAlchemy implementation of the ingestion store."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import delete, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from cineingest.exceptions import BaselineConflictError, PersistenceError
from cineingest.models import (
    Cinema,
    Film,
    MatchReview,
    ScraperRun,
    Screening,
    TitleExtraction,
    VenueBaseline,
)
from cineingest.repositories.base import IngestStore
from cineingest.repositories.records import (
    BaselineRecord,
    ExtractionRecord,
    FilmRecord,
    ReviewRecord,
    RunRecord,
    ScreeningKey,
    ScreeningRecord,
    UpsertOutcome,
    UpsertResult,
    screening_changes,
)
from cineingest.scrapers.models import VenueDefinition

logger = logging.getLogger(__name__)

_FILM_FIELDS = (
    "id",
    "title",
    "year",
    "directors",
    "genres",
    "countries",
    "overview",
    "runtime",
    "poster_url",
    "backdrop_url",
    "tmdb_id",
    "imdb_id",
    "match_confidence",
    "match_strategy",
    "matched_at",
)


def _film_record(film: Film) -> FilmRecord:
    return FilmRecord(**{name: getattr(film, name) for name in _FILM_FIELDS})


def _screening_record(row: Screening) -> ScreeningRecord:
    return ScreeningRecord(
        id=row.id,
        venue_id=row.cinema_id,
        film_id=row.film_id,
        start_time=row.start_time,
        booking_url=row.booking_url,
        screen=row.screen,
        format=row.format,
        event_type=row.event_type,
        event_description=row.event_description,
        availability=row.availability,
        is_sold_out=row.is_sold_out,
        source_id=row.source_id,
        festival_slug=row.festival_slug,
        raw_title=row.raw_title,
        manually_edited=row.manually_edited,
        edited_at=row.edited_at,
        scraped_at=row.scraped_at,
    )


def _baseline_record(row: VenueBaseline) -> BaselineRecord:
    return BaselineRecord(
        venue_id=row.venue_id,
        weekday_avg=row.weekday_avg,
        weekend_avg=row.weekend_avg,
        tolerance_percent=row.tolerance_percent,
        manual_override=row.manual_override,
        sample_count=row.sample_count,
        version=row.version,
        notes=row.notes,
        updated_at=row.updated_at,
    )


class SqlAlchemyStore(IngestStore):
    """
    ``IngestStore`` backed by an ``AsyncSession``.

    The store never opens sessions itself; the caller owns the session and
    its lifetime (one per venue run).
    """

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[None]:
        try:
            yield
            await self.session.commit()
        except BaseException:
            # Includes cancellation from a venue timeout
            await self.session.rollback()
            raise

    @asynccontextmanager
    async def savepoint(self) -> AsyncIterator[None]:
        async with self.session.begin_nested():
            yield

    # ------------------------------------------------------------------
    # Catalog
    # ------------------------------------------------------------------

    async def ensure_cinema(
        self, venue: VenueDefinition, scraped_at: datetime | None = None
    ) -> None:
        cinema = await self.session.get(Cinema, venue.id)
        if cinema is None:
            cinema = Cinema(
                id=venue.id,
                name=venue.name,
                address=venue.address,
                postcode=venue.postcode,
                website=venue.base_url,
                features=list(venue.features) or None,
                scrape_strategy=venue.strategy.value,
            )
            self.session.add(cinema)
        if scraped_at is not None:
            cinema.last_scraped_at = scraped_at
        await self.session.flush()

    async def list_films(self) -> list[FilmRecord]:
        result = await self.session.execute(select(Film))
        return [_film_record(film) for film in result.scalars().all()]

    async def ensure_film(self, record: FilmRecord) -> FilmRecord:
        existing = await self.session.get(Film, record.id)
        if existing is None and record.tmdb_id is not None:
            result = await self.session.execute(
                select(Film).where(Film.tmdb_id == record.tmdb_id)
            )
            existing = result.scalar_one_or_none()
        if existing is not None:
            return _film_record(existing)

        film = Film(**{name: getattr(record, name) for name in _FILM_FIELDS})
        try:
            async with self.session.begin_nested():
                self.session.add(film)
                await self.session.flush()
        except IntegrityError:
            # Another venue run created the same film concurrently
            result = await self.session.execute(
                select(Film).where(
                    (Film.id == record.id)
                    | ((Film.tmdb_id == record.tmdb_id) & (Film.tmdb_id.is_not(None)))
                )
            )
            existing = result.scalars().first()
            if existing is None:
                raise
            logger.debug(f"Film {record.id!r} already exists, reusing.")
            return _film_record(existing)
        return _film_record(film)

    # ------------------------------------------------------------------
    # Screenings
    # ------------------------------------------------------------------

    async def _find(self, record: ScreeningRecord) -> Screening | None:
        result = await self.session.execute(
            select(Screening).where(
                Screening.cinema_id == record.venue_id,
                Screening.film_id == record.film_id,
                Screening.start_time == record.start_time,
            )
        )
        row = result.scalar_one_or_none()
        if row is not None or not record.source_id:
            return row

        # An edited row may have been moved off its scraped start time
        result = await self.session.execute(
            select(Screening).where(
                Screening.cinema_id == record.venue_id,
                Screening.source_id == record.source_id,
                Screening.manually_edited.is_(True),
            )
        )
        return result.scalars().first()

    async def upsert_screening(self, record: ScreeningRecord) -> UpsertResult:
        now = record.scraped_at or datetime.now(timezone.utc)
        row = await self._find(record)

        if row is None:
            self.session.add(
                Screening(
                    cinema_id=record.venue_id,
                    film_id=record.film_id,
                    start_time=record.start_time,
                    booking_url=record.booking_url,
                    screen=record.screen,
                    format=record.format,
                    event_type=record.event_type,
                    event_description=record.event_description,
                    availability=record.availability,
                    is_sold_out=record.is_sold_out,
                    source_id=record.source_id,
                    festival_slug=record.festival_slug,
                    raw_title=record.raw_title,
                    scraped_at=now,
                )
            )
            await self.session.flush()
            return UpsertResult(UpsertOutcome.ADDED, key=record.key)

        changes, skipped = screening_changes(_screening_record(row), record)
        for name, value in changes.items():
            setattr(row, name, value)
        # scraped_at alone does not bump updated_at; only real changes do
        if changes:
            row.scraped_at = now
        else:
            await self.session.execute(
                update(Screening)
                .where(Screening.id == row.id)
                .values(scraped_at=now, updated_at=Screening.updated_at)
                .execution_options(synchronize_session=False)
            )
        await self.session.flush()

        outcome = UpsertOutcome.UPDATED if changes else UpsertOutcome.UNCHANGED
        return UpsertResult(
            outcome,
            changed=tuple(changes),
            skipped=skipped,
            key=ScreeningKey(row.cinema_id, row.film_id, row.start_time),
        )

    async def edit_screening(
        self, screening_id: int, changes: dict[str, Any]
    ) -> ScreeningRecord | None:
        row = await self.session.get(Screening, screening_id)
        if row is None:
            return None
        for name, value in changes.items():
            setattr(row, name, value)
        row.manually_edited = True
        row.edited_at = datetime.now(timezone.utc)
        try:
            await self.session.flush()
        except IntegrityError as e:
            raise PersistenceError(
                f"Screening {screening_id} would duplicate an existing screening"
            ) from e
        return _screening_record(row)

    async def list_upcoming_keys(self, venue_id: str, since: datetime) -> set[ScreeningKey]:
        result = await self.session.execute(
            select(Screening.cinema_id, Screening.film_id, Screening.start_time).where(
                Screening.cinema_id == venue_id,
                Screening.start_time >= since,
            )
        )
        return {ScreeningKey(*row) for row in result.all()}

    async def delete_screenings_before(self, cutoff: datetime) -> int:
        result = await self.session.execute(
            delete(Screening).where(Screening.start_time < cutoff)
        )
        return result.rowcount or 0

    async def delete_orphan_films(self) -> int:
        has_screenings = select(Screening.id).where(Screening.film_id == Film.id).exists()
        result = await self.session.execute(delete(Film).where(~has_screenings))
        return result.rowcount or 0

    # ------------------------------------------------------------------
    # Baselines
    # ------------------------------------------------------------------

    async def get_baseline(self, venue_id: str) -> BaselineRecord | None:
        row = await self.session.get(VenueBaseline, venue_id, populate_existing=True)
        return _baseline_record(row) if row else None

    async def set_baseline(self, record: BaselineRecord, expected_version: int) -> BaselineRecord:
        values = {
            "weekday_avg": record.weekday_avg,
            "weekend_avg": record.weekend_avg,
            "tolerance_percent": record.tolerance_percent,
            "manual_override": record.manual_override,
            "sample_count": record.sample_count,
            "notes": record.notes,
            "version": expected_version + 1,
        }

        if expected_version == 0:
            stmt = (
                pg_insert(VenueBaseline)
                .values(venue_id=record.venue_id, **values)
                .on_conflict_do_nothing(index_elements=["venue_id"])
            )
        else:
            stmt = (
                update(VenueBaseline)
                .where(
                    VenueBaseline.venue_id == record.venue_id,
                    VenueBaseline.version == expected_version,
                )
                .values(**values)
                .execution_options(synchronize_session=False)
            )

        try:
            result = await self.session.execute(stmt)
        except SQLAlchemyError as e:
            raise PersistenceError(f"Could not write baseline for {record.venue_id}: {e}") from e

        if not result.rowcount:
            raise BaselineConflictError(record.venue_id, expected_version)

        stored = await self.get_baseline(record.venue_id)
        assert stored is not None
        return stored

    # ------------------------------------------------------------------
    # Extraction cache, reviews, run history
    # ------------------------------------------------------------------

    async def get_extraction(self, raw_title: str) -> ExtractionRecord | None:
        result = await self.session.execute(
            select(TitleExtraction).where(TitleExtraction.raw_title == raw_title)
        )
        row = result.scalar_one_or_none()
        if row is None:
            return None
        return ExtractionRecord(
            raw_title=row.raw_title,
            title=row.title,
            event_type=row.event_type,
            confidence=row.confidence,
        )

    async def save_extraction(self, record: ExtractionRecord) -> None:
        stmt = (
            pg_insert(TitleExtraction)
            .values(
                raw_title=record.raw_title,
                title=record.title,
                event_type=record.event_type,
                confidence=record.confidence,
            )
            .on_conflict_do_nothing(index_elements=["raw_title"])
        )
        await self.session.execute(stmt)

    async def add_review(self, record: ReviewRecord) -> None:
        stmt = (
            pg_insert(MatchReview)
            .values(
                venue_id=record.venue_id,
                raw_title=record.raw_title,
                clean_title=record.clean_title,
                candidate_film_id=record.candidate_film_id,
                confidence=record.confidence,
                strategy=record.strategy,
            )
            .on_conflict_do_nothing(constraint="uq_match_review_venue_title")
        )
        await self.session.execute(stmt)

    async def record_run(self, run: RunRecord) -> None:
        self.session.add(
            ScraperRun(
                venue_id=run.venue_id,
                triggered_by=run.triggered_by,
                started_at=run.started_at,
                completed_at=run.completed_at,
                status=run.status,
                screening_count=run.screening_count,
                baseline_count=run.baseline_count,
                percent_change=run.percent_change,
                added=run.added,
                updated=run.updated,
                failed=run.failed,
                rejected=run.rejected,
                error=run.error,
            )
        )
        await self.session.flush()
