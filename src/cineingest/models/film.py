"""Film model for storing canonical film metadata."""

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import DateTime, Float, Integer, String, Text
from sqlalchemy.dialects.postgresql import ARRAY
from sqlalchemy.orm import Mapped, mapped_column, relationship

from cineingest.models.base import Base, TimestampMixin

if TYPE_CHECKING:
    from cineingest.models.screening import Screening


class Film(Base, TimestampMixin):
    """
    Film model.

    Created by title resolution, either from TMDb details or as a
    placeholder when the metadata provider has no match. Placeholders are
    filled in later by the enrichment process.
    """

    __tablename__ = "films"

    id: Mapped[str] = mapped_column(String(100), primary_key=True)
    title: Mapped[str] = mapped_column(String(500), nullable=False, index=True)
    year: Mapped[int | None] = mapped_column(Integer, nullable=True)

    # TMDb metadata
    tmdb_id: Mapped[int | None] = mapped_column(Integer, nullable=True, unique=True, index=True)
    imdb_id: Mapped[str | None] = mapped_column(String(20), nullable=True)
    directors: Mapped[list[str] | None] = mapped_column(ARRAY(String), nullable=True)
    genres: Mapped[list[str] | None] = mapped_column(ARRAY(String), nullable=True)
    countries: Mapped[list[str] | None] = mapped_column(ARRAY(String), nullable=True)
    overview: Mapped[str | None] = mapped_column(Text, nullable=True)
    runtime: Mapped[int | None] = mapped_column(Integer, nullable=True)
    poster_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    backdrop_url: Mapped[str | None] = mapped_column(String(500), nullable=True)

    # How the film was first matched
    match_confidence: Mapped[float | None] = mapped_column(Float, nullable=True)
    match_strategy: Mapped[str | None] = mapped_column(String(20), nullable=True)
    matched_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    screenings: Mapped[list["Screening"]] = relationship(
        back_populates="film",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"<Film(id={self.id!r}, title={self.title!r}, year={self.year})>"
