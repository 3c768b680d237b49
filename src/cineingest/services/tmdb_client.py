"""TMDb API client for fetching film metadata."""

import logging
from typing import Any

import httpx

from cineingest.config import settings
from cineingest.exceptions import MetadataProviderError

logger = logging.getLogger(__name__)


class TMDbClient:
    """
    Client for The Movie Database (TMDb) API.

    Read-only. Responses are cached on the instance, so create one client
    per scrape run to share lookups between venues of that run.
    """

    BASE_URL = "https://api.themoviedb.org/3"
    IMAGE_BASE_URL = "https://image.tmdb.org/t/p"

    def __init__(self, api_key: str | None = None, timeout: float | None = None) -> None:
        """
        Initialize TMDb client.

        Args:
            api_key: TMDb API key (uses settings if not provided)
            timeout: Request timeout in seconds
        """
        self.api_key = api_key or settings.tmdb_api_key
        self.timeout = timeout or settings.scrape_timeout
        self._search_cache: dict[tuple[str, int | None], list[dict[str, Any]]] = {}
        self._details_cache: dict[int, dict[str, Any] | None] = {}
        self._person_cache: dict[int, dict[str, Any] | None] = {}
        if not self.api_key:
            logger.warning("TMDb API key not configured")

    async def _get(self, path: str, **params: Any) -> dict[str, Any]:
        if not self.api_key:
            raise MetadataProviderError("TMDb API key not configured")

        params = {"api_key": self.api_key, "language": "en-GB", **params}
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.get(f"{self.BASE_URL}{path}", params=params)
                response.raise_for_status()
                return response.json()
        except (httpx.HTTPError, ValueError) as e:
            raise MetadataProviderError(f"TMDb request {path} failed: {e}") from e

    async def search_films(self, title: str, year: int | None = None) -> list[dict[str, Any]]:
        """
        Search for films by title.

        Args:
            title: Film title
            year: Release year (optional, narrows results)

        Returns:
            Search results in TMDb order; empty on no match or error
        """
        key = (title.lower(), year)
        if key in self._search_cache:
            return self._search_cache[key]

        params: dict[str, Any] = {"query": title}
        if year:
            params["year"] = year

        try:
            data = await self._get("/search/movie", **params)
        except MetadataProviderError as e:
            logger.error(f"TMDb search error for '{title}': {e}")
            return []

        results = data.get("results", [])
        if not results:
            logger.info(f"No TMDb results for: {title}")
        self._search_cache[key] = results
        return results

    async def get_film_details(self, tmdb_id: int) -> dict[str, Any] | None:
        """
        Get detailed film information including credits.

        Args:
            tmdb_id: TMDb film ID

        Returns:
            Film details including credits or None if error
        """
        if tmdb_id in self._details_cache:
            return self._details_cache[tmdb_id]
        try:
            details = await self._get(f"/movie/{tmdb_id}", append_to_response="credits")
        except MetadataProviderError as e:
            logger.error(f"TMDb details error for ID {tmdb_id}: {e}")
            return None
        self._details_cache[tmdb_id] = details
        return details

    async def get_person_details(self, person_id: int) -> dict[str, Any] | None:
        if person_id in self._person_cache:
            return self._person_cache[person_id]
        try:
            person = await self._get(f"/person/{person_id}")
        except MetadataProviderError as e:
            logger.error(f"TMDb person error for ID {person_id}: {e}")
            return None
        self._person_cache[person_id] = person
        return person

    def image_url(self, path: str | None, size: str = "w500") -> str | None:
        if not path:
            return None
        return f"{self.IMAGE_BASE_URL}/{size}{path}"

    def extract_directors(self, credits: dict[str, Any]) -> list[str]:
        """
        Extract director names from TMDb credits.

        Args:
            credits: TMDb credits data

        Returns:
            List of director names
        """
        crew = credits.get("crew", [])
        return [person["name"] for person in crew if person.get("job") == "Director"]

    def extract_countries(self, film_data: dict[str, Any]) -> list[str]:
        return [country["name"] for country in film_data.get("production_countries", [])]

    def extract_genres(self, film_data: dict[str, Any]) -> list[str]:
        return [genre["name"] for genre in film_data.get("genres", [])]
