"""Scraper run history and the match review queue."""

from datetime import datetime

from sqlalchemy import DateTime, Float, Integer, String, Text, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from cineingest.models.base import Base


class ScraperRun(Base):
    """One execution of a venue scraper and what happened to its results."""

    __tablename__ = "scraper_runs"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    venue_id: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    triggered_by: Mapped[str] = mapped_column(String(50), nullable=False)
    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # "success" | "failed" | "blocked"
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    screening_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    baseline_count: Mapped[float | None] = mapped_column(Float, nullable=True)
    percent_change: Mapped[float | None] = mapped_column(Float, nullable=True)
    added: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    updated: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    failed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    rejected: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    error: Mapped[str | None] = mapped_column(Text, nullable=True)

    def __repr__(self) -> str:
        return f"<ScraperRun(venue_id={self.venue_id!r}, status={self.status!r})>"


class MatchReview(Base):
    """A listing title whose film match was not confident enough to apply."""

    __tablename__ = "match_reviews"
    __table_args__ = (
        UniqueConstraint("venue_id", "raw_title", name="uq_match_review_venue_title"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    venue_id: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    raw_title: Mapped[str] = mapped_column(String(500), nullable=False)
    clean_title: Mapped[str] = mapped_column(String(500), nullable=False)
    candidate_film_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    confidence: Mapped[float] = mapped_column(Float, nullable=False)
    strategy: Mapped[str] = mapped_column(String(20), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    def __repr__(self) -> str:
        return f"<MatchReview(raw_title={self.raw_title!r}, confidence={self.confidence})>"
