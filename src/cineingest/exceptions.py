"""Exception hierarchy for the ingestion pipeline."""


class IngestError(Exception):
    """Base class for all pipeline errors."""


class ScrapeError(IngestError):
    """A venue scrape could not complete.

    Raised for fatal conditions only (browser cannot start, unhandled
    failure). Individual dates or pages that fail are logged and skipped.
    """

    def __init__(self, venue_id: str, message: str) -> None:
        super().__init__(f"[{venue_id}] {message}")
        self.venue_id = venue_id


class BrowserLaunchError(ScrapeError):
    """The browser context could not be created."""


class ChallengeTimeoutError(ScrapeError):
    """A bot-challenge interstitial did not clear within the allowed time."""


class UnknownVenueError(IngestError):
    """No venue is configured under the requested id."""

    def __init__(self, venue_id: str) -> None:
        super().__init__(f"Unknown venue: {venue_id!r}")
        self.venue_id = venue_id


class ExtractionError(IngestError):
    """The LLM title extraction call failed or returned unusable output."""


class MetadataProviderError(IngestError):
    """The film metadata provider returned an error."""


class PersistenceError(IngestError):
    """The store could not complete an operation."""


class BaselineConflictError(PersistenceError):
    """A venue baseline was modified concurrently (stale version)."""

    def __init__(self, venue_id: str, expected_version: int) -> None:
        super().__init__(
            f"Baseline for {venue_id!r} changed since version {expected_version}"
        )
        self.venue_id = venue_id
        self.expected_version = expected_version
