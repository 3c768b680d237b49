"""In-memory store for dry runs and tests."""

import asyncio
import dataclasses
import logging
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any

from cineingest.exceptions import BaselineConflictError, PersistenceError
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

# Undo actions for the innermost open transaction/savepoint of the current task
_undo_log: ContextVar[list[Callable[[], None]] | None] = ContextVar("_undo_log", default=None)


class InMemoryStore(IngestStore):
    """
    Dict-backed ``IngestStore``.

    Rollback is implemented with an undo log kept per asyncio task, so
    concurrent venue runs sharing one store cannot undo each other's work.
    """

    def __init__(self) -> None:
        self.cinemas: dict[str, dict] = {}
        self.films: dict[str, FilmRecord] = {}
        self.screenings: dict[ScreeningKey, ScreeningRecord] = {}
        self.baselines: dict[str, BaselineRecord] = {}
        self.extractions: dict[str, ExtractionRecord] = {}
        self.reviews: dict[tuple[str, str], ReviewRecord] = {}
        self.runs: list[RunRecord] = []
        self._next_id = 1
        self._baseline_locks: dict[str, asyncio.Lock] = {}

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    @asynccontextmanager
    async def _scope(self) -> AsyncIterator[None]:
        parent = _undo_log.get()
        log: list[Callable[[], None]] = []
        token = _undo_log.set(log)
        try:
            yield
        except BaseException:
            for undo in reversed(log):
                undo()
            raise
        else:
            if parent is not None:
                parent.extend(log)
        finally:
            _undo_log.reset(token)

    def transaction(self):
        return self._scope()

    def savepoint(self):
        return self._scope()

    def _on_rollback(self, undo: Callable[[], None]) -> None:
        log = _undo_log.get()
        if log is not None:
            log.append(undo)

    # ------------------------------------------------------------------
    # Catalog
    # ------------------------------------------------------------------

    async def ensure_cinema(
        self, venue: VenueDefinition, scraped_at: datetime | None = None
    ) -> None:
        previous = self.cinemas.get(venue.id)
        row = dict(previous) if previous else {
            "id": venue.id,
            "name": venue.name,
            "address": venue.address,
            "postcode": venue.postcode,
            "website": venue.base_url,
            "features": list(venue.features),
            "scrape_strategy": venue.strategy.value,
            "last_scraped_at": None,
        }
        if scraped_at is not None:
            row["last_scraped_at"] = scraped_at
        self.cinemas[venue.id] = row

        if previous is None:
            self._on_rollback(lambda: self.cinemas.pop(venue.id, None))
        else:
            self._on_rollback(lambda: self.cinemas.__setitem__(venue.id, previous))

    async def list_films(self) -> list[FilmRecord]:
        return [dataclasses.replace(film) for film in self.films.values()]

    async def ensure_film(self, record: FilmRecord) -> FilmRecord:
        existing = self.films.get(record.id)
        if existing is None and record.tmdb_id is not None:
            existing = next(
                (f for f in self.films.values() if f.tmdb_id == record.tmdb_id), None
            )
        if existing is not None:
            return dataclasses.replace(existing)

        stored = dataclasses.replace(record)
        self.films[stored.id] = stored
        self._on_rollback(lambda: self.films.pop(stored.id, None))
        return dataclasses.replace(stored)

    # ------------------------------------------------------------------
    # Screenings
    # ------------------------------------------------------------------

    def _find(self, record: ScreeningRecord) -> ScreeningRecord | None:
        existing = self.screenings.get(record.key)
        if existing is not None or not record.source_id:
            return existing
        # An edited row may have been moved off its scraped start time
        return next(
            (
                s
                for s in self.screenings.values()
                if s.manually_edited
                and s.venue_id == record.venue_id
                and s.source_id == record.source_id
            ),
            None,
        )

    async def upsert_screening(self, record: ScreeningRecord) -> UpsertResult:
        now = record.scraped_at or datetime.now(timezone.utc)
        existing = self._find(record)

        if existing is None:
            stored = dataclasses.replace(record, id=self._next_id, scraped_at=now)
            self._next_id += 1
            self.screenings[stored.key] = stored
            self._on_rollback(lambda: self.screenings.pop(stored.key, None))
            return UpsertResult(UpsertOutcome.ADDED, key=stored.key)

        before = dataclasses.replace(existing)
        changes, skipped = screening_changes(existing, record)
        updated = dataclasses.replace(existing, scraped_at=now, **changes)
        del self.screenings[existing.key]
        self.screenings[updated.key] = updated

        def undo() -> None:
            self.screenings.pop(updated.key, None)
            self.screenings[before.key] = before

        self._on_rollback(undo)

        outcome = UpsertOutcome.UPDATED if changes else UpsertOutcome.UNCHANGED
        return UpsertResult(
            outcome, changed=tuple(changes), skipped=skipped, key=updated.key
        )

    async def edit_screening(
        self, screening_id: int, changes: dict[str, Any]
    ) -> ScreeningRecord | None:
        existing = next((s for s in self.screenings.values() if s.id == screening_id), None)
        if existing is None:
            return None

        updated = dataclasses.replace(
            existing,
            manually_edited=True,
            edited_at=datetime.now(timezone.utc),
            **changes,
        )
        if updated.key != existing.key and updated.key in self.screenings:
            raise PersistenceError(
                f"Edit would duplicate screening {self.screenings[updated.key].id}"
            )
        del self.screenings[existing.key]
        self.screenings[updated.key] = updated

        def undo() -> None:
            self.screenings.pop(updated.key, None)
            self.screenings[existing.key] = existing

        self._on_rollback(undo)
        return dataclasses.replace(updated)

    async def list_upcoming_keys(self, venue_id: str, since: datetime) -> set[ScreeningKey]:
        return {
            key
            for key in self.screenings
            if key.venue_id == venue_id and key.start_time >= since
        }

    async def delete_screenings_before(self, cutoff: datetime) -> int:
        old = [key for key in self.screenings if key.start_time < cutoff]
        for key in old:
            removed = self.screenings.pop(key)
            self._on_rollback(lambda r=removed: self.screenings.__setitem__(r.key, r))
        return len(old)

    async def delete_orphan_films(self) -> int:
        in_use = {key.film_id for key in self.screenings}
        orphans = [film_id for film_id in self.films if film_id not in in_use]
        for film_id in orphans:
            removed = self.films.pop(film_id)
            self._on_rollback(lambda r=removed: self.films.__setitem__(r.id, r))
        return len(orphans)

    # ------------------------------------------------------------------
    # Baselines
    # ------------------------------------------------------------------

    def baseline_lock(self, venue_id: str) -> asyncio.Lock:
        lock = self._baseline_locks.get(venue_id)
        if lock is None:
            lock = self._baseline_locks[venue_id] = asyncio.Lock()
        return lock

    async def get_baseline(self, venue_id: str) -> BaselineRecord | None:
        baseline = self.baselines.get(venue_id)
        return dataclasses.replace(baseline) if baseline else None

    async def set_baseline(self, record: BaselineRecord, expected_version: int) -> BaselineRecord:
        async with self.baseline_lock(record.venue_id):
            current = self.baselines.get(record.venue_id)
            current_version = current.version if current else 0
            if current_version != expected_version:
                raise BaselineConflictError(record.venue_id, expected_version)

            stored = dataclasses.replace(
                record,
                version=expected_version + 1,
                updated_at=datetime.now(timezone.utc),
            )
            self.baselines[record.venue_id] = stored

        if current is None:
            self._on_rollback(lambda: self.baselines.pop(record.venue_id, None))
        else:
            self._on_rollback(lambda: self.baselines.__setitem__(record.venue_id, current))
        return dataclasses.replace(stored)

    # ------------------------------------------------------------------
    # Extraction cache, reviews, run history
    # ------------------------------------------------------------------

    async def get_extraction(self, raw_title: str) -> ExtractionRecord | None:
        return self.extractions.get(raw_title)

    async def save_extraction(self, record: ExtractionRecord) -> None:
        self.extractions[record.raw_title] = record

    async def add_review(self, record: ReviewRecord) -> None:
        key = (record.venue_id, record.raw_title)
        if key in self.reviews:
            return
        self.reviews[key] = record
        self._on_rollback(lambda: self.reviews.pop(key, None))

    async def record_run(self, run: RunRecord) -> None:
        self.runs.append(run)
        logger.debug(f"Recorded {run.status} run for {run.venue_id}")
