"""Cache of LLM title extractions, keyed by the raw listing title."""

from sqlalchemy import String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from cineingest.models.base import Base, TimestampMixin


class TitleExtraction(Base, TimestampMixin):
    """
    Title extraction model.

    Stores what the LLM made of an event-style listing title such as
    "UK PREMIERE I Only Rest in the Storm" so later runs skip the call.
    Only successful extractions are stored; mechanical fallbacks are not.
    """

    __tablename__ = "title_extractions"
    __table_args__ = (UniqueConstraint("raw_title", name="uq_title_extraction_raw"),)

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    raw_title: Mapped[str] = mapped_column(String(500), nullable=False, index=True)
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    event_type: Mapped[str | None] = mapped_column(String(100), nullable=True)
    # "high" | "medium" | "low"
    confidence: Mapped[str] = mapped_column(String(10), nullable=False)

    def __repr__(self) -> str:
        return f"<TitleExtraction(raw_title={self.raw_title!r}, title={self.title!r})>"
