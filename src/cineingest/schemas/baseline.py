"""Pydantic schemas for venue health baselines."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, model_validator


class BaselineResponse(BaseModel):
    """Venue baseline response schema."""

    model_config = ConfigDict(from_attributes=True)

    venue_id: str
    weekday_avg: float | None = None
    weekend_avg: float | None = None
    tolerance_percent: float
    manual_override: bool
    sample_count: int
    version: int
    notes: str | None = None
    updated_at: datetime | None = None


class BaselineUpdate(BaseModel):
    """
    Admin changes to a venue baseline.

    ``expected_version`` guards against overwriting a concurrent update;
    omit it to update whatever version is current.
    """

    model_config = ConfigDict(extra="forbid")

    tolerance_percent: float | None = Field(default=None, gt=0, le=100)
    manual_override: bool | None = None
    weekday_avg: float | None = Field(default=None, ge=0)
    weekend_avg: float | None = Field(default=None, ge=0)
    notes: str | None = None
    expected_version: int | None = Field(default=None, ge=0)

    @model_validator(mode="after")
    def reject_null_settings(self) -> "BaselineUpdate":
        for name in ("tolerance_percent", "manual_override"):
            if name in self.model_fields_set and getattr(self, name) is None:
                raise ValueError(f"{name} cannot be null")
        return self
