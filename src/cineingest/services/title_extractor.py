"""LLM-assisted extraction of film titles from event-style listings."""

import asyncio
import json
import logging
import re
import time
from dataclasses import dataclass, field

from cineingest.config import settings
from cineingest.exceptions import ExtractionError
from cineingest.repositories.base import IngestStore
from cineingest.repositories.records import ExtractionRecord
from cineingest.services.llm_client import AnthropicClient
from cineingest.services.normalizer import Normalizer

logger = logging.getLogger(__name__)

# Confidence the matcher may claim for a title the LLM produced
AI_CONFIDENCE = {"high": 0.9, "medium": 0.7, "low": 0.4}

PROMPT_TEMPLATE = """Extract the actual film title from this cinema screening listing. The listing may include event prefixes (like "Kids Club:", "35mm:", "UK PREMIERE"), format info, or Q&A notes that are NOT part of the film title.

Listing: "{raw_title}"

Respond with ONLY a JSON object (no markdown):
{{"title": "The Actual Film Title", "event": "event type if any", "confidence": "high|medium|low"}}

Examples:
- "Saturday Morning Picture Club: The Muppets Christmas Carol" → {{"title": "The Muppets Christmas Carol", "event": "kids screening", "confidence": "high"}}
- "Star Wars: A New Hope" → {{"title": "Star Wars: A New Hope", "confidence": "high"}}
- "35mm: Casablanca (PG)" → {{"title": "Casablanca", "event": "35mm screening", "confidence": "high"}}
- "UK PREMIERE I Only Rest in the Storm" → {{"title": "Only Rest in the Storm", "event": "premiere", "confidence": "high"}}"""

_JSON_OBJECT_RE = re.compile(r"\{.*\}", re.DOTALL)


@dataclass(frozen=True)
class ExtractionResult:
    title: str
    event_type: str | None
    confidence: str  # "high" | "medium" | "low"
    source: str  # "gate" | "ai" | "cache" | "fallback"

    @property
    def score(self) -> float:
        return AI_CONFIDENCE.get(self.confidence, AI_CONFIDENCE["low"])

    @property
    def from_model(self) -> bool:
        return self.source in ("ai", "cache")


def parse_reply(text: str) -> tuple[str, str | None, str]:
    """
    Parse the model's JSON reply into ``(title, event, confidence)``.

    Tolerates markdown fences and chatter around the object.

    Raises:
        ExtractionError: No usable JSON object or no title in it
    """
    match = _JSON_OBJECT_RE.search(text)
    if not match:
        raise ExtractionError(f"No JSON object in reply: {text[:100]!r}")
    try:
        data = json.loads(match.group(0))
    except json.JSONDecodeError as e:
        raise ExtractionError(f"Invalid JSON in reply: {e}") from e

    title = data.get("title") if isinstance(data, dict) else None
    if not isinstance(title, str) or not title.strip():
        raise ExtractionError("Reply has no title")

    event = data.get("event")
    if not isinstance(event, str) or not event.strip():
        event = None
    confidence = data.get("confidence")
    if confidence not in AI_CONFIDENCE:
        confidence = "medium"
    return title.strip(), event, confidence


@dataclass
class _ExtractorState:
    cache: dict[str, ExtractionResult] = field(default_factory=dict)
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    last_call: float | None = None
    calls: int = 0


class TitleExtractor:
    """
    Pulls the real film title out of listings like "UK PREMIERE I ...".

    Calls are serialized behind a lock with at least ``min_interval``
    seconds between them. Results are cached for the life of the object,
    and successful AI answers are also persisted through the store so
    later runs skip the call. One extractor is created per scrape run and
    bound to each venue's store with ``bind``.
    """

    def __init__(
        self,
        llm: AnthropicClient | None = None,
        store: IngestStore | None = None,
        normalizer: Normalizer | None = None,
        min_interval: float | None = None,
    ) -> None:
        self.llm = llm or AnthropicClient()
        self.store = store
        self.normalizer = normalizer or Normalizer()
        self.min_interval = settings.ai_request_interval if min_interval is None else min_interval
        self._state = _ExtractorState()

    @property
    def calls(self) -> int:
        return self._state.calls

    def bind(self, store: IngestStore | None) -> "TitleExtractor":
        """
        Return an extractor that persists through ``store``.

        The returned extractor shares this one's cache, lock and call
        pacing, so venues running concurrently on their own sessions still
        make one AI call at a time.
        """
        bound = TitleExtractor(self.llm, store, self.normalizer, self.min_interval)
        bound._state = self._state
        return bound

    async def extract(self, raw_title: str, force: bool = False) -> ExtractionResult:
        """
        Extract the film title from ``raw_title``.

        Titles that pass the clean-title gate are only tidied, unless
        ``force`` is set. Never raises: failures fall back to mechanical
        cleanup with low confidence.
        """
        if not force and self.normalizer.is_likely_clean_title(raw_title):
            return ExtractionResult(
                title=self.normalizer.clean_title(raw_title),
                event_type=self.normalizer.detect_event_type(raw_title),
                confidence="high",
                source="gate",
            )

        cached = self._state.cache.get(raw_title)
        if cached:
            return cached

        if self.store is not None:
            stored = await self.store.get_extraction(raw_title)
            if stored:
                result = ExtractionResult(
                    stored.title, stored.event_type, stored.confidence, "cache"
                )
                self._state.cache[raw_title] = result
                return result

        async with self._state.lock:
            # Another task may have resolved it while we waited
            cached = self._state.cache.get(raw_title)
            if cached:
                return cached
            result = await self._call(raw_title)
            self._state.cache[raw_title] = result

        if result.source == "ai" and self.store is not None:
            await self.store.save_extraction(
                ExtractionRecord(
                    raw_title=raw_title,
                    title=result.title,
                    event_type=result.event_type,
                    confidence=result.confidence,
                )
            )
        return result

    async def _call(self, raw_title: str) -> ExtractionResult:
        if self._state.last_call is not None:
            wait = self._state.last_call + self.min_interval - time.monotonic()
            if wait > 0:
                await asyncio.sleep(wait)

        self._state.calls += 1
        try:
            reply = await self.llm.complete(PROMPT_TEMPLATE.format(raw_title=raw_title))
            title, event, confidence = parse_reply(reply)
        except ExtractionError as e:
            logger.warning(f"AI extraction failed for {raw_title!r}: {e}")
            return ExtractionResult(
                title=self.normalizer.clean_title(raw_title),
                event_type=self.normalizer.detect_event_type(raw_title),
                confidence="low",
                source="fallback",
            )
        finally:
            self._state.last_call = time.monotonic()

        cleaned = self.normalizer.strip_cruft(title) or title
        logger.info(f"AI extracted {cleaned!r} from {raw_title!r} ({confidence})")
        return ExtractionResult(cleaned, event, confidence, "ai")

    async def extract_many(self, raw_titles: list[str]) -> dict[str, ExtractionResult]:
        """Extract a batch; duplicates are resolved once."""
        results: dict[str, ExtractionResult] = {}
        for raw_title in dict.fromkeys(raw_titles):
            results[raw_title] = await self.extract(raw_title)
        return results
