"""Throttled HTTP fetching for static scrapers."""

import asyncio
import logging
import time
from collections import deque
from types import TracebackType
from typing import Any

import httpx

from cineingest.config import settings

logger = logging.getLogger(__name__)

DEFAULT_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/122.0.0.0 Safari/537.36"
    ),
    "Accept-Language": "en-GB,en;q=0.9",
}


class RateLimitedFetcher:
    """
    One ``httpx.AsyncClient`` shared by every request of a venue run.

    Requests are spaced at least ``min_delay`` seconds apart and no more
    than ``requests_per_minute`` are sent in any rolling 60 second window.
    Use as an async context manager so the client is closed afterwards.
    """

    def __init__(
        self,
        min_delay: float | None = None,
        requests_per_minute: int | None = None,
        timeout: float | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.min_delay = settings.request_delay if min_delay is None else min_delay
        self.requests_per_minute = requests_per_minute or settings.requests_per_minute
        self._client = client or httpx.AsyncClient(
            timeout=timeout or settings.scrape_timeout,
            headers=DEFAULT_HEADERS,
            follow_redirects=True,
        )
        self._lock = asyncio.Lock()
        self._last_request = 0.0
        self._window: deque[float] = deque()

    async def __aenter__(self) -> "RateLimitedFetcher":
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _wait_turn(self) -> None:
        async with self._lock:
            now = time.monotonic()

            wait = self._last_request + self.min_delay - now
            while self._window and now - self._window[0] >= 60:
                self._window.popleft()
            if len(self._window) >= self.requests_per_minute:
                wait = max(wait, self._window[0] + 60 - now)

            if wait > 0:
                logger.debug(f"Throttling request for {wait:.2f}s")
                await asyncio.sleep(wait)
                now = time.monotonic()

            self._last_request = now
            self._window.append(now)

    async def get(self, url: str, **kwargs: Any) -> httpx.Response:
        """GET ``url`` after waiting for a free slot; raises on HTTP errors."""
        await self._wait_turn()
        response = await self._client.get(url, **kwargs)
        response.raise_for_status()
        return response

    async def get_text(self, url: str, **kwargs: Any) -> str:
        return (await self.get(url, **kwargs)).text

    async def get_json(self, url: str, **kwargs: Any) -> Any:
        return (await self.get(url, **kwargs)).json()
