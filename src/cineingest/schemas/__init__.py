"""Pydantic schemas for API requests and responses."""

from cineingest.schemas.baseline import BaselineResponse, BaselineUpdate
from cineingest.schemas.scrape import (
    HealthReportResponse,
    ScrapeAllRequest,
    ScrapeRequest,
    ScrapeResponse,
    VenueRunResponse,
)
from cineingest.schemas.screening import ScreeningResponse, ScreeningUpdate

__all__ = [
    "BaselineResponse",
    "BaselineUpdate",
    "HealthReportResponse",
    "ScrapeAllRequest",
    "ScrapeRequest",
    "ScrapeResponse",
    "ScreeningResponse",
    "ScreeningUpdate",
    "VenueRunResponse",
]
