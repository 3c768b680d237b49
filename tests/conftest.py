"""Shared test fixtures."""

from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from typing import Any

import pytest
from fastapi import FastAPI

from cineingest.api.routes import admin, health
from cineingest.repositories import InMemoryStore
from cineingest.scrapers.models import RawScreening, ScraperKind, ScrapeStrategy, VenueDefinition


@pytest.fixture
def test_app() -> FastAPI:
    """Minimal FastAPI app without the APScheduler lifespan, for API tests."""
    app = FastAPI()
    app.include_router(health.router)
    app.include_router(admin.router, prefix="/api")
    return app


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def ica_venue() -> VenueDefinition:
    return VenueDefinition(
        id="ica",
        name="ICA Cinema",
        base_url="https://www.ica.art/films",
        kind=ScraperKind.ICA,
        strategy=ScrapeStrategy.STATIC,
    )


def _make_raw(
    title: str = "Nosferatu",
    start_time: datetime | None = None,
    venue_id: str = "ica",
    booking_url: str = "https://www.ica.art/films/nosferatu",
    **kwargs: Any,
) -> RawScreening:
    if start_time is None:
        day = datetime.now(timezone.utc) + timedelta(days=2)
        start_time = day.replace(hour=19, minute=0, second=0, microsecond=0)
    return RawScreening(
        venue_id=venue_id,
        title=title,
        start_time=start_time,
        booking_url=booking_url,
        **kwargs,
    )


@pytest.fixture
def make_raw() -> Callable[..., RawScreening]:
    """Factory for RawScreenings two days from now at 19:00 UTC by default."""
    return _make_raw
