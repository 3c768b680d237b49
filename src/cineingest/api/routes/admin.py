"""Admin API endpoints for manual operations."""

import dataclasses
import logging

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from cineingest.config import settings
from cineingest.database import get_db
from cineingest.exceptions import BaselineConflictError, PersistenceError, UnknownVenueError
from cineingest.repositories import IngestStore, SqlAlchemyStore
from cineingest.repositories.records import BaselineRecord
from cineingest.schemas import (
    BaselineResponse,
    BaselineUpdate,
    ScrapeAllRequest,
    ScrapeRequest,
    ScrapeResponse,
    ScreeningResponse,
    ScreeningUpdate,
    VenueRunResponse,
)
from cineingest.scrapers.models import VenueDefinition
from cineingest.tasks.scrape_job import run_scrape_all
from cineingest.venues import get_venue

logger = logging.getLogger(__name__)
router = APIRouter()


async def get_store(db: AsyncSession = Depends(get_db)) -> IngestStore:
    return SqlAlchemyStore(db)


def _venue_or_404(venue_id: str) -> VenueDefinition:
    try:
        return get_venue(venue_id)
    except UnknownVenueError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e


@router.post("/admin/scrape", response_model=ScrapeResponse)
async def trigger_scrape(request: ScrapeRequest) -> ScrapeResponse:
    """
    Scrape specific venues and wait for the results.

    Venues run concurrently with the same limits as the scheduled job.
    This may take several minutes for browser-based venues.
    """
    for venue_id in request.venue_ids:
        _venue_or_404(venue_id)

    logger.info(f"Admin scrape requested for {', '.join(request.venue_ids)}")
    results = await run_scrape_all(
        request.venue_ids, triggered_by="admin", dry_run=request.dry_run
    )
    return ScrapeResponse(
        status="completed",
        results=[VenueRunResponse.model_validate(r) for r in results],
        total_added=sum(r.added for r in results),
        total_updated=sum(r.updated for r in results),
    )


@router.post("/admin/scrape-all")
async def trigger_scrape_all(
    background_tasks: BackgroundTasks, request: ScrapeAllRequest | None = None
) -> dict[str, str]:
    """Trigger a scrape of all venues as a background task.

    Returns immediately; the scrape runs asynchronously.
    """
    request = request or ScrapeAllRequest()
    for venue_id in request.venue_ids or []:
        _venue_or_404(venue_id)
    background_tasks.add_task(
        run_scrape_all, request.venue_ids, triggered_by="admin", dry_run=request.dry_run
    )
    return {"status": "started"}


@router.patch("/admin/screenings/{screening_id}", response_model=ScreeningResponse)
async def edit_screening(
    screening_id: int,
    update: ScreeningUpdate,
    store: IngestStore = Depends(get_store),
) -> ScreeningResponse:
    """
    Correct a screening by hand.

    The screening is flagged as manually edited, so later scrapes keep the
    corrected time, format, screen and event fields.
    """
    changes = update.model_dump(exclude_unset=True)
    try:
        async with store.transaction():
            record = await store.edit_screening(screening_id, changes)
    except PersistenceError as e:
        raise HTTPException(status_code=409, detail=str(e)) from e

    if record is None:
        raise HTTPException(status_code=404, detail="Screening not found")

    logger.info(f"Screening {screening_id} edited by admin: {sorted(changes)}")
    return ScreeningResponse.model_validate(record)


@router.get("/admin/venues/{venue_id}/baseline", response_model=BaselineResponse)
async def get_baseline(
    venue_id: str, store: IngestStore = Depends(get_store)
) -> BaselineResponse:
    _venue_or_404(venue_id)
    record = await store.get_baseline(venue_id)
    if record is None:
        record = BaselineRecord(
            venue_id=venue_id, tolerance_percent=settings.health_default_tolerance
        )
    return BaselineResponse.model_validate(record)


@router.put("/admin/venues/{venue_id}/baseline", response_model=BaselineResponse)
async def update_baseline(
    venue_id: str,
    update: BaselineUpdate,
    store: IngestStore = Depends(get_store),
) -> BaselineResponse:
    """
    Adjust a venue's tolerance, override flag or averages.

    Returns 409 if ``expected_version`` no longer matches the stored baseline.
    """
    venue = _venue_or_404(venue_id)
    changes = update.model_dump(exclude_unset=True)
    expected_version = changes.pop("expected_version", None)

    try:
        async with store.transaction():
            await store.ensure_cinema(venue)
            current = await store.get_baseline(venue_id) or BaselineRecord(
                venue_id=venue_id, tolerance_percent=settings.health_default_tolerance
            )
            if expected_version is None:
                expected_version = current.version
            updated = dataclasses.replace(current, **changes)
            stored = await store.set_baseline(updated, expected_version=expected_version)
    except BaselineConflictError as e:
        raise HTTPException(status_code=409, detail=str(e)) from e

    logger.info(f"Baseline for {venue_id} updated by admin: {sorted(changes)}")
    return BaselineResponse.model_validate(stored)
