"""Daily sweep of past screenings and films nothing points at any more."""

import logging
from datetime import datetime, timedelta, timezone

from cineingest.config import settings
from cineingest.database import session_scope
from cineingest.repositories import IngestStore, SqlAlchemyStore
from cineingest.repositories.records import CleanupResult

logger = logging.getLogger(__name__)


async def cleanup_store(
    store: IngestStore, now: datetime | None = None, grace_hours: int | None = None
) -> CleanupResult:
    """
    Delete screenings that started more than ``grace_hours`` ago, then
    films left without screenings.

    Each step commits separately, so a failed film sweep keeps the
    screening deletions.
    """
    now = now or datetime.now(timezone.utc)
    grace = settings.cleanup_grace_hours if grace_hours is None else grace_hours
    cutoff = now - timedelta(hours=grace)
    result = CleanupResult()

    try:
        async with store.transaction():
            result.screenings_deleted = await store.delete_screenings_before(cutoff)
    except Exception as e:
        logger.error(f"Failed to delete past screenings: {e}", exc_info=True)
        result.errors.append(f"screenings: {e}")

    try:
        async with store.transaction():
            result.films_deleted = await store.delete_orphan_films()
    except Exception as e:
        logger.error(f"Failed to delete orphaned films: {e}", exc_info=True)
        result.errors.append(f"films: {e}")

    logger.info(
        f"Cleanup complete: {result.screenings_deleted} screenings before {cutoff:%Y-%m-%d %H:%M} "
        f"and {result.films_deleted} orphaned films deleted",
        extra={
            "event": "cleanup",
            "screenings_deleted": result.screenings_deleted,
            "films_deleted": result.films_deleted,
        },
    )
    return result


async def run_cleanup() -> CleanupResult:
    """Run the cleanup sweep on its own database session."""
    async with session_scope() as session:
        return await cleanup_store(SqlAlchemyStore(session))
