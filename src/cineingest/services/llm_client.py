"""Minimal client for the Anthropic Messages API."""

import logging
from typing import Any

import httpx

from cineingest.config import settings
from cineingest.exceptions import ExtractionError

logger = logging.getLogger(__name__)


class AnthropicClient:
    """Client for Anthropic's Messages API, used for title extraction."""

    API_URL = "https://api.anthropic.com/v1/messages"
    API_VERSION = "2023-06-01"

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        timeout: float | None = None,
    ) -> None:
        """
        Initialize the client.

        Args:
            api_key: Anthropic API key (uses settings if not provided)
            model: Model name (uses settings if not provided)
            timeout: Request timeout in seconds
        """
        self.api_key = api_key or settings.anthropic_api_key
        self.model = model or settings.llm_model
        self.timeout = timeout or settings.llm_timeout
        if not self.api_key:
            logger.warning("Anthropic API key not configured")

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    async def complete(self, prompt: str, max_tokens: int = 150) -> str:
        """
        Send a single user message and return the text of the reply.

        Raises:
            ExtractionError: Missing key, HTTP failure, or a reply with no text
        """
        if not self.api_key:
            raise ExtractionError("Anthropic API key not configured")

        payload: dict[str, Any] = {
            "model": self.model,
            "max_tokens": max_tokens,
            "messages": [{"role": "user", "content": prompt}],
        }
        headers = {
            "x-api-key": self.api_key,
            "anthropic-version": self.API_VERSION,
            "content-type": "application/json",
        }

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(self.API_URL, json=payload, headers=headers)
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPStatusError as e:
            raise ExtractionError(
                f"Anthropic HTTP {e.response.status_code}: {e.response.text[:200]}"
            ) from e
        except (httpx.HTTPError, ValueError) as e:
            raise ExtractionError(f"Anthropic request failed: {e}") from e

        text = "".join(
            block.get("text", "")
            for block in data.get("content", [])
            if block.get("type") == "text"
        )
        if not text:
            raise ExtractionError("Anthropic reply contained no text")
        return text
