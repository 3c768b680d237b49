"""Storage backends for the ingestion pipeline."""

from cineingest.repositories.base import IngestStore
from cineingest.repositories.memory import InMemoryStore
from cineingest.repositories.sql import SqlAlchemyStore

__all__ = ["IngestStore", "InMemoryStore", "SqlAlchemyStore"]
