"""Cinema model derived from venue configuration."""

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import DateTime, String, Text
from sqlalchemy.dialects.postgresql import ARRAY
from sqlalchemy.orm import Mapped, mapped_column, relationship

from cineingest.models.base import Base, TimestampMixin

if TYPE_CHECKING:
    from cineingest.models.screening import Screening


class Cinema(Base, TimestampMixin):
    """
    Cinema venue model.

    Rows are created on demand from a ``VenueDefinition`` before the first
    screening for that venue is written; the venue config stays the source
    of truth for name, address and scrape strategy.
    """

    __tablename__ = "cinemas"

    id: Mapped[str] = mapped_column(String(100), primary_key=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    address: Mapped[str | None] = mapped_column(Text, nullable=True)
    postcode: Mapped[str | None] = mapped_column(String(20), nullable=True)
    website: Mapped[str | None] = mapped_column(String(500), nullable=True)
    features: Mapped[list[str] | None] = mapped_column(ARRAY(String), nullable=True)

    # "static" or "browser"
    scrape_strategy: Mapped[str] = mapped_column(String(20), nullable=False)
    last_scraped_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    screenings: Mapped[list["Screening"]] = relationship(
        back_populates="cinema",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"<Cinema(id={self.id!r}, name={self.name!r})>"
