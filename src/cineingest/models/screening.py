"""Screening model for film showtimes at cinemas."""

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from cineingest.models.base import Base, TimestampMixin

if TYPE_CHECKING:
    from cineingest.models.cinema import Cinema
    from cineingest.models.film import Film


class Screening(Base, TimestampMixin):
    """
    Film screening model.

    The business key is (cinema_id, film_id, start_time). Once
    ``manually_edited`` is set by the admin API, scrapes may no longer
    change start_time, format, screen or the event fields.
    """

    __tablename__ = "screenings"
    __table_args__ = (
        UniqueConstraint(
            "cinema_id",
            "film_id",
            "start_time",
            name="uq_venue_film_time",
        ),
        # Finds edited rows whose start time no longer matches the scrape
        Index("ix_screenings_cinema_source", "cinema_id", "source_id"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)

    cinema_id: Mapped[str] = mapped_column(
        String(100),
        ForeignKey("cinemas.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    film_id: Mapped[str] = mapped_column(
        String(100),
        ForeignKey("films.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    start_time: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        index=True,
    )
    screen: Mapped[str | None] = mapped_column(String(100), nullable=True)
    format: Mapped[str | None] = mapped_column(String(50), nullable=True)
    event_type: Mapped[str | None] = mapped_column(String(50), nullable=True)
    event_description: Mapped[str | None] = mapped_column(Text, nullable=True)

    booking_url: Mapped[str] = mapped_column(String(1000), nullable=False)
    availability: Mapped[str | None] = mapped_column(String(20), nullable=True)
    is_sold_out: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    source_id: Mapped[str | None] = mapped_column(String(300), nullable=True)
    festival_slug: Mapped[str | None] = mapped_column(String(100), nullable=True)
    # The title exactly as the venue listed it
    raw_title: Mapped[str | None] = mapped_column(Text, nullable=True)

    manually_edited: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    edited_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    scraped_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    cinema: Mapped["Cinema"] = relationship(back_populates="screenings")
    film: Mapped["Film"] = relationship(back_populates="screenings")

    def __repr__(self) -> str:
        return (
            f"<Screening(cinema_id={self.cinema_id!r}, "
            f"film_id={self.film_id!r}, "
            f"start_time={self.start_time})>"
        )
