"""Per-venue screening count baseline used for anomaly detection."""

from sqlalchemy import Boolean, Float, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from cineingest.models.base import Base, TimestampMixin


class VenueBaseline(Base, TimestampMixin):
    """
    Rolling screening-count baseline for one venue.

    ``version`` is bumped on every write; writers compare it to the value
    they read so overlapping runs for the same venue cannot lose updates.
    """

    __tablename__ = "venue_baselines"

    venue_id: Mapped[str] = mapped_column(
        String(100),
        ForeignKey("cinemas.id", ondelete="CASCADE"),
        primary_key=True,
    )
    weekday_avg: Mapped[float | None] = mapped_column(Float, nullable=True)
    weekend_avg: Mapped[float | None] = mapped_column(Float, nullable=True)
    tolerance_percent: Mapped[float] = mapped_column(Float, nullable=False, default=30.0)
    manual_override: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    sample_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    def __repr__(self) -> str:
        return (
            f"<VenueBaseline(venue_id={self.venue_id!r}, "
            f"weekday_avg={self.weekday_avg}, weekend_avg={self.weekend_avg})>"
        )
