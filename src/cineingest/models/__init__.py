"""SQLAlchemy ORM models."""

from cineingest.models.base import Base
from cineingest.models.cinema import Cinema
from cineingest.models.film import Film
from cineingest.models.scraper_run import MatchReview, ScraperRun
from cineingest.models.screening import Screening
from cineingest.models.title_extraction import TitleExtraction
from cineingest.models.venue_baseline import VenueBaseline

__all__ = [
    "Base",
    "Cinema",
    "Film",
    "MatchReview",
    "ScraperRun",
    "Screening",
    "TitleExtraction",
    "VenueBaseline",
]
