"""Plain records passed between the pipeline and the store.

The pipeline never touches ORM objects directly; stores convert to and from
these dataclasses so the same reconciliation logic runs against Postgres or
the in-memory store used for dry runs.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, NamedTuple

# Fields a manual edit freezes against later scrapes
PROTECTED_FIELDS: tuple[str, ...] = (
    "start_time",
    "format",
    "screen",
    "event_type",
    "event_description",
)

# Fields a scrape may always refresh
MUTABLE_FIELDS: tuple[str, ...] = (
    "booking_url",
    "availability",
    "is_sold_out",
    "source_id",
    "festival_slug",
    "raw_title",
)


class ScreeningKey(NamedTuple):
    """Business key of a screening."""

    venue_id: str
    film_id: str
    start_time: datetime


@dataclass
class ScreeningRecord:
    venue_id: str
    film_id: str
    start_time: datetime
    booking_url: str
    screen: str | None = None
    format: str | None = None
    event_type: str | None = None
    event_description: str | None = None
    availability: str | None = None
    is_sold_out: bool = False
    source_id: str | None = None
    festival_slug: str | None = None
    raw_title: str | None = None
    manually_edited: bool = False
    edited_at: datetime | None = None
    scraped_at: datetime | None = None
    id: int | None = None

    @property
    def key(self) -> ScreeningKey:
        return ScreeningKey(self.venue_id, self.film_id, self.start_time)


@dataclass
class FilmRecord:
    id: str
    title: str
    year: int | None = None
    directors: list[str] | None = None
    genres: list[str] | None = None
    countries: list[str] | None = None
    overview: str | None = None
    runtime: int | None = None
    poster_url: str | None = None
    backdrop_url: str | None = None
    tmdb_id: int | None = None
    imdb_id: str | None = None
    match_confidence: float | None = None
    match_strategy: str | None = None
    matched_at: datetime | None = None


@dataclass
class BaselineRecord:
    venue_id: str
    weekday_avg: float | None = None
    weekend_avg: float | None = None
    tolerance_percent: float = 30.0
    manual_override: bool = False
    sample_count: int = 0
    version: int = 0
    notes: str | None = None
    updated_at: datetime | None = None


@dataclass
class ExtractionRecord:
    raw_title: str
    title: str
    event_type: str | None
    confidence: str


@dataclass
class ReviewRecord:
    venue_id: str
    raw_title: str
    clean_title: str
    candidate_film_id: str | None
    confidence: float
    strategy: str


@dataclass
class RunRecord:
    venue_id: str
    triggered_by: str
    started_at: datetime
    status: str
    completed_at: datetime | None = None
    screening_count: int = 0
    baseline_count: float | None = None
    percent_change: float | None = None
    added: int = 0
    updated: int = 0
    failed: int = 0
    rejected: int = 0
    error: str | None = None


class UpsertOutcome(str, Enum):
    ADDED = "added"
    UPDATED = "updated"
    UNCHANGED = "unchanged"


@dataclass
class UpsertResult:
    """What an upsert did to one screening.

    ``skipped`` lists protected fields whose scraped value differed from a
    manually edited row and was therefore not written.
    ``key`` identifies the stored row, which differs from the scraped
    record when an edited screening was matched by ``source_id``.
    """

    outcome: UpsertOutcome
    changed: tuple[str, ...] = ()
    skipped: tuple[str, ...] = ()
    key: ScreeningKey | None = None

    @property
    def protected(self) -> bool:
        return bool(self.skipped)


def screening_changes(
    existing: ScreeningRecord, incoming: ScreeningRecord
) -> tuple[dict[str, Any], tuple[str, ...]]:
    """Work out which fields of ``existing`` a scrape should overwrite.

    Returns ``(changes, skipped)``. ``changes`` maps field name to the new
    value and only contains fields that actually differ. ``scraped_at`` is
    never reported as a change.
    """
    changes: dict[str, Any] = {}
    skipped: list[str] = []

    for name in PROTECTED_FIELDS:
        new = getattr(incoming, name)
        if getattr(existing, name) == new:
            continue
        if existing.manually_edited:
            skipped.append(name)
        else:
            changes[name] = new

    for name in MUTABLE_FIELDS:
        new = getattr(incoming, name)
        if getattr(existing, name) != new:
            changes[name] = new

    return changes, tuple(skipped)


@dataclass
class CleanupResult:
    screenings_deleted: int = 0
    films_deleted: int = 0
    errors: list[str] = field(default_factory=list)
