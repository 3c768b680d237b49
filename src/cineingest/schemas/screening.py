"""Pydantic schemas for screening edits."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, field_validator, model_validator


class ScreeningUpdate(BaseModel):
    """
    Manual correction of a screening.

    Only the fields an admin may override are accepted. Any edit marks the
    screening as manually edited, after which scrapes no longer change
    these fields.
    """

    model_config = ConfigDict(extra="forbid")

    start_time: datetime | None = None
    format: str | None = None
    screen: str | None = None
    event_type: str | None = None
    event_description: str | None = None

    @field_validator("start_time")
    @classmethod
    def require_timezone(cls, value: datetime | None) -> datetime | None:
        if value is not None and value.tzinfo is None:
            raise ValueError("start_time must include a UTC offset")
        return value

    @model_validator(mode="after")
    def require_change(self) -> "ScreeningUpdate":
        if not self.model_fields_set:
            raise ValueError("No fields to update")
        return self


class ScreeningResponse(BaseModel):
    """Screening response schema."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    venue_id: str
    film_id: str
    start_time: datetime
    screen: str | None = None
    format: str | None = None
    event_type: str | None = None
    event_description: str | None = None
    booking_url: str
    availability: str | None = None
    is_sold_out: bool
    manually_edited: bool
    edited_at: datetime | None = None
