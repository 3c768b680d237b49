"""Tests for the admin API endpoints."""

from datetime import datetime, timezone
from unittest.mock import AsyncMock, patch

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from cineingest.api.routes import admin
from cineingest.repositories import InMemoryStore
from cineingest.repositories.records import BaselineRecord, ScreeningRecord
from cineingest.services.health_monitor import HealthReport
from cineingest.tasks.scrape_job import VenueRunResult

START = datetime(2026, 10, 21, 18, 30, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


@pytest.fixture
def client_app(test_app: FastAPI, store: InMemoryStore) -> FastAPI:
    async def override_store():
        return store

    test_app.dependency_overrides[admin.get_store] = override_store
    return test_app


def make_client(app: FastAPI) -> AsyncClient:
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")


async def add_screening(store: InMemoryStore, start_time: datetime = START, **kwargs) -> ScreeningRecord:
    await store.upsert_screening(
        ScreeningRecord(
            venue_id="ica",
            film_id="nosferatu",
            start_time=start_time,
            booking_url="https://www.ica.art/films/nosferatu",
            screen="Cinema 1",
            **kwargs,
        )
    )
    return store.screenings[("ica", "nosferatu", start_time)]


# ---------------------------------------------------------------------------
# POST /api/admin/scrape
# ---------------------------------------------------------------------------


class TestTriggerScrape:
    async def test_runs_requested_venues(self, client_app: FastAPI) -> None:
        health = HealthReport(
            venue_id="ica", screening_count=12, baseline=10.0, tolerance_percent=30.0, percent_change=20.0
        )
        results = [VenueRunResult(success=True, venue_id="ica", found=12, added=4, updated=2, health=health)]

        with patch.object(admin, "run_scrape_all", new=AsyncMock(return_value=results)) as run:
            async with make_client(client_app) as client:
                response = await client.post(
                    "/api/admin/scrape", json={"venue_ids": ["ica"], "dry_run": True}
                )

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "completed"
        assert body["total_added"] == 4
        assert body["total_updated"] == 2
        assert body["results"][0]["health"]["percent_change"] == 20.0
        run.assert_awaited_once_with(["ica"], triggered_by="admin", dry_run=True)

    async def test_unknown_venue_is_404(self, client_app: FastAPI) -> None:
        with patch.object(admin, "run_scrape_all", new=AsyncMock()) as run:
            async with make_client(client_app) as client:
                response = await client.post("/api/admin/scrape", json={"venue_ids": ["odeon"]})

        assert response.status_code == 404
        run.assert_not_awaited()

    async def test_empty_venue_list_is_rejected(self, client_app: FastAPI) -> None:
        async with make_client(client_app) as client:
            response = await client.post("/api/admin/scrape", json={"venue_ids": []})
        assert response.status_code == 422


class TestTriggerScrapeAll:
    async def test_starts_background_run(self, client_app: FastAPI) -> None:
        with patch.object(admin, "run_scrape_all", new=AsyncMock(return_value=[])) as run:
            async with make_client(client_app) as client:
                response = await client.post("/api/admin/scrape-all")

        assert response.status_code == 200
        assert response.json() == {"status": "started"}
        run.assert_awaited_once_with(None, triggered_by="admin", dry_run=False)


# ---------------------------------------------------------------------------
# PATCH /api/admin/screenings/{id}
# ---------------------------------------------------------------------------


class TestEditScreening:
    async def test_edit_marks_screening(self, client_app: FastAPI, store: InMemoryStore) -> None:
        screening = await add_screening(store)

        async with make_client(client_app) as client:
            response = await client.patch(
                f"/api/admin/screenings/{screening.id}", json={"screen": "Cinema 2"}
            )

        assert response.status_code == 200
        body = response.json()
        assert body["screen"] == "Cinema 2"
        assert body["manually_edited"] is True
        assert body["edited_at"] is not None

    async def test_unknown_screening_is_404(self, client_app: FastAPI) -> None:
        async with make_client(client_app) as client:
            response = await client.patch("/api/admin/screenings/999", json={"screen": "Cinema 2"})
        assert response.status_code == 404

    async def test_naive_start_time_is_rejected(self, client_app: FastAPI, store: InMemoryStore) -> None:
        screening = await add_screening(store)
        async with make_client(client_app) as client:
            response = await client.patch(
                f"/api/admin/screenings/{screening.id}", json={"start_time": "2026-10-21T19:00:00"}
            )
        assert response.status_code == 422

    async def test_unknown_fields_are_rejected(self, client_app: FastAPI, store: InMemoryStore) -> None:
        screening = await add_screening(store)
        async with make_client(client_app) as client:
            response = await client.patch(
                f"/api/admin/screenings/{screening.id}", json={"booking_url": "https://x"}
            )
        assert response.status_code == 422

    async def test_moving_onto_another_screening_is_409(
        self, client_app: FastAPI, store: InMemoryStore
    ) -> None:
        first = await add_screening(store)
        later = START.replace(hour=21)
        await add_screening(store, start_time=later)

        async with make_client(client_app) as client:
            response = await client.patch(
                f"/api/admin/screenings/{first.id}", json={"start_time": later.isoformat()}
            )

        assert response.status_code == 409
        assert not store.screenings[("ica", "nosferatu", START)].manually_edited


# ---------------------------------------------------------------------------
# Baselines
# ---------------------------------------------------------------------------


class TestBaseline:
    async def test_get_default_baseline(self, client_app: FastAPI) -> None:
        async with make_client(client_app) as client:
            response = await client.get("/api/admin/venues/ica/baseline")

        assert response.status_code == 200
        body = response.json()
        assert body["version"] == 0
        assert body["weekday_avg"] is None

    async def test_unknown_venue_is_404(self, client_app: FastAPI) -> None:
        async with make_client(client_app) as client:
            response = await client.get("/api/admin/venues/odeon/baseline")
        assert response.status_code == 404

    async def test_update_baseline(self, client_app: FastAPI, store: InMemoryStore) -> None:
        async with make_client(client_app) as client:
            response = await client.put(
                "/api/admin/venues/ica/baseline",
                json={"manual_override": True, "tolerance_percent": 50, "notes": "Festival week"},
            )

        assert response.status_code == 200
        body = response.json()
        assert body["manual_override"] is True
        assert body["tolerance_percent"] == 50
        assert body["version"] == 1
        assert store.baselines["ica"].notes == "Festival week"
        assert "ica" in store.cinemas

    async def test_stale_version_is_409(self, client_app: FastAPI, store: InMemoryStore) -> None:
        await store.set_baseline(BaselineRecord(venue_id="ica", weekday_avg=40.0), expected_version=0)
        await store.set_baseline(BaselineRecord(venue_id="ica", weekday_avg=42.0), expected_version=1)

        async with make_client(client_app) as client:
            response = await client.put(
                "/api/admin/venues/ica/baseline",
                json={"weekday_avg": 30, "expected_version": 1},
            )

        assert response.status_code == 409
        assert store.baselines["ica"].weekday_avg == 42.0

    async def test_invalid_tolerance_is_rejected(self, client_app: FastAPI) -> None:
        async with make_client(client_app) as client:
            response = await client.put(
                "/api/admin/venues/ica/baseline", json={"tolerance_percent": 0}
            )
        assert response.status_code == 422

    async def test_null_override_is_rejected(self, client_app: FastAPI) -> None:
        async with make_client(client_app) as client:
            response = await client.put(
                "/api/admin/venues/ica/baseline", json={"manual_override": None}
            )
        assert response.status_code == 422
