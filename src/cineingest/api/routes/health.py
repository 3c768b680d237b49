"""Health check endpoint."""

from fastapi import APIRouter

from cineingest.venues import all_venues

router = APIRouter()


@router.get("/health", tags=["health"])
async def health_check() -> dict[str, str | int]:
    """
    Liveness check for the scheduler process.

    Returns:
        Status and the number of configured venues
    """
    return {"status": "ok", "venues": len(all_venues())}
