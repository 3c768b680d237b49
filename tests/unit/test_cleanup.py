"""Tests for the daily cleanup sweep."""

from datetime import datetime, timedelta, timezone

from cineingest.repositories import InMemoryStore
from cineingest.repositories.records import FilmRecord, ScreeningRecord
from cineingest.tasks.cleanup import cleanup_store

NOW = datetime(2026, 10, 19, 4, 0, tzinfo=timezone.utc)


async def add_screening(store: InMemoryStore, film_id: str, start_time: datetime) -> None:
    await store.ensure_film(FilmRecord(id=film_id, title=film_id.title()))
    await store.upsert_screening(
        ScreeningRecord(
            venue_id="ica",
            film_id=film_id,
            start_time=start_time,
            booking_url=f"https://www.ica.art/films/{film_id}",
        )
    )


async def test_deletes_past_screenings_and_orphans(store: InMemoryStore) -> None:
    await add_screening(store, "heat", NOW - timedelta(days=3))
    await add_screening(store, "anora", NOW - timedelta(days=3))
    await add_screening(store, "anora", NOW + timedelta(days=1))

    result = await cleanup_store(store, now=NOW, grace_hours=24)

    assert result.screenings_deleted == 2
    assert result.films_deleted == 1
    assert result.errors == []
    assert set(store.films) == {"anora"}


async def test_grace_period_keeps_recent_screenings(store: InMemoryStore) -> None:
    await add_screening(store, "heat", NOW - timedelta(hours=6))

    result = await cleanup_store(store, now=NOW, grace_hours=24)

    assert result.screenings_deleted == 0
    assert result.films_deleted == 0


async def test_failed_film_sweep_keeps_screening_deletions(store: InMemoryStore) -> None:
    await add_screening(store, "heat", NOW - timedelta(days=3))

    async def broken():
        raise RuntimeError("lock timeout")

    store.delete_orphan_films = broken  # type: ignore[method-assign]

    result = await cleanup_store(store, now=NOW, grace_hours=24)

    assert result.screenings_deleted == 1
    assert store.screenings == {}
    assert result.errors == ["films: lock timeout"]
