"""Storage interface used by the ingestion pipeline."""

from abc import ABC, abstractmethod
from contextlib import AbstractAsyncContextManager
from datetime import datetime
from typing import Any

from cineingest.repositories.records import (
    BaselineRecord,
    ExtractionRecord,
    FilmRecord,
    ReviewRecord,
    RunRecord,
    ScreeningKey,
    ScreeningRecord,
    UpsertResult,
)
from cineingest.scrapers.models import VenueDefinition


class IngestStore(ABC):
    """
    Abstract store for everything a venue run reads and writes.

    Implementations must make ``upsert_screening`` idempotent on the
    screening business key and must honour ``manually_edited``: protected
    fields of an edited row are never overwritten.
    """

    @abstractmethod
    def transaction(self) -> AbstractAsyncContextManager[None]:
        """Commit on clean exit, roll back everything on error."""

    @abstractmethod
    def savepoint(self) -> AbstractAsyncContextManager[None]:
        """Nested scope whose failure only undoes its own writes."""

    @abstractmethod
    async def ensure_cinema(
        self, venue: VenueDefinition, scraped_at: datetime | None = None
    ) -> None:
        """Create the cinema row for ``venue`` if missing; stamp last scrape."""

    @abstractmethod
    async def list_films(self) -> list[FilmRecord]:
        """All catalog films."""

    @abstractmethod
    async def ensure_film(self, record: FilmRecord) -> FilmRecord:
        """
        Insert ``record`` unless a film with the same id or tmdb_id exists.

        Returns:
            The stored film, which may be a pre-existing one
        """

    @abstractmethod
    async def upsert_screening(self, record: ScreeningRecord) -> UpsertResult:
        """Insert or merge one screening by its business key."""

    @abstractmethod
    async def edit_screening(
        self, screening_id: int, changes: dict[str, Any]
    ) -> ScreeningRecord | None:
        """
        Apply an admin edit and mark the screening as manually edited.

        Returns:
            The updated screening, or None if no screening has that id
        """

    @abstractmethod
    async def list_upcoming_keys(self, venue_id: str, since: datetime) -> set[ScreeningKey]:
        """Keys of stored screenings for ``venue_id`` starting at or after ``since``."""

    @abstractmethod
    async def get_baseline(self, venue_id: str) -> BaselineRecord | None: ...

    @abstractmethod
    async def set_baseline(self, record: BaselineRecord, expected_version: int) -> BaselineRecord:
        """
        Write a baseline if its stored version still equals ``expected_version``.

        Raises:
            BaselineConflictError: Another writer got there first
        """

    @abstractmethod
    async def get_extraction(self, raw_title: str) -> ExtractionRecord | None: ...

    @abstractmethod
    async def save_extraction(self, record: ExtractionRecord) -> None: ...

    @abstractmethod
    async def add_review(self, record: ReviewRecord) -> None:
        """Queue a low-confidence match for review; repeats are ignored."""

    @abstractmethod
    async def record_run(self, run: RunRecord) -> None: ...

    @abstractmethod
    async def delete_screenings_before(self, cutoff: datetime) -> int: ...

    @abstractmethod
    async def delete_orphan_films(self) -> int: ...
