"""Pydantic schemas for scrape triggers and run results."""

from pydantic import BaseModel, ConfigDict, Field


class ScrapeRequest(BaseModel):
    """Request model for triggering a scrape."""

    venue_ids: list[str] = Field(min_length=1)
    dry_run: bool = False


class ScrapeAllRequest(BaseModel):
    venue_ids: list[str] | None = None
    dry_run: bool = False


class HealthReportResponse(BaseModel):
    """Health check outcome for one venue run."""

    model_config = ConfigDict(from_attributes=True)

    screening_count: int
    baseline: float | None = None
    tolerance_percent: float
    percent_change: float | None = None
    anomaly_detected: bool
    should_block: bool
    manual_override: bool
    issues: list[str] = []
    recommendation: str = ""


class VenueRunResponse(BaseModel):
    """Result for a single venue scrape."""

    model_config = ConfigDict(from_attributes=True)

    venue_id: str
    success: bool
    found: int
    added: int
    updated: int
    failed: int
    rejected: int
    review: int
    duration_ms: int
    blocked: bool
    health: HealthReportResponse | None = None
    error: str | None = None


class ScrapeResponse(BaseModel):
    """Response for scrape operation."""

    status: str
    results: list[VenueRunResponse]
    total_added: int
    total_updated: int
