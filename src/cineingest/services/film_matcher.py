"""Film matching service: tiered resolution of listing titles to catalog films."""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from rapidfuzz import fuzz, process

from cineingest.config import settings
from cineingest.repositories.base import IngestStore
from cineingest.repositories.records import FilmRecord
from cineingest.services.normalizer import NormalizedScreening
from cineingest.services.title_extractor import AI_CONFIDENCE, ExtractionResult, TitleExtractor
from cineingest.services.tmdb_client import TMDbClient
from cineingest.utils.text import match_key, slugify

logger = logging.getLogger(__name__)

EXACT_CONFIDENCE = 1.0
NORMALIZED_CONFIDENCE = 0.9
FUZZY_WEIGHT = 0.9
DIRECTOR_BONUS = 0.05
DIRECTOR_CAP = 0.95
CLEAN_PLACEHOLDER_CONFIDENCE = 0.85
PROVIDER_CANDIDATES = 5


class MatchStrategy(str, Enum):
    EXACT = "exact"
    NORMALIZED = "normalized"
    FUZZY = "fuzzy"
    AI = "ai"
    PLACEHOLDER = "placeholder"


@dataclass
class ResolvedFilm:
    """
    Outcome of title resolution for one screening.

    ``film`` is set when the film does not exist in the store yet (or was
    created earlier in this run) and must be ensured before the screening
    is written.
    """

    film_id: str
    title: str
    year: int | None
    confidence: float
    strategy: MatchStrategy
    auto_apply: bool
    is_new: bool = False
    film: FilmRecord | None = None
    event_type: str | None = None

    @property
    def requires_review(self) -> bool:
        return not self.auto_apply


@dataclass
class _Hit:
    film: FilmRecord
    confidence: float
    strategy: MatchStrategy


def years_compatible(a: int | None, b: int | None, tolerance: int = 0) -> bool:
    return a is None or b is None or abs(a - b) <= tolerance


def generate_film_id(title: str, year: int | None) -> str:
    """Film ids are the title slug plus the year: "nosferatu-2024"."""
    slug = slugify(title) or "untitled"
    return f"{slug}-{year}" if year else slug


class FilmCatalog:
    """
    In-memory index of the film catalog for one scrape run.

    Films created during the run are added as they are resolved, so every
    later screening of the same film matches exactly.
    """

    def __init__(self, films: list[FilmRecord] | None = None) -> None:
        self._by_id: dict[str, FilmRecord] = {}
        self._by_title: dict[str, list[FilmRecord]] = {}
        self._by_key: dict[str, list[FilmRecord]] = {}
        self._by_tmdb: dict[int, FilmRecord] = {}
        self.created: dict[str, FilmRecord] = {}
        for film in films or []:
            self.add(film)

    @classmethod
    async def load(cls, store: IngestStore) -> "FilmCatalog":
        return cls(await store.list_films())

    def __len__(self) -> int:
        return len(self._by_id)

    def __contains__(self, film_id: str) -> bool:
        return film_id in self._by_id

    def get(self, film_id: str) -> FilmRecord | None:
        return self._by_id.get(film_id)

    def by_tmdb_id(self, tmdb_id: int) -> FilmRecord | None:
        return self._by_tmdb.get(tmdb_id)

    def add(self, film: FilmRecord, created: bool = False) -> None:
        if film.id in self._by_id:
            return
        self._by_id[film.id] = film
        self._by_title.setdefault(film.title, []).append(film)
        self._by_key.setdefault(match_key(film.title), []).append(film)
        if film.tmdb_id is not None:
            self._by_tmdb[film.tmdb_id] = film
        if created:
            self.created[film.id] = film

    @staticmethod
    def _pick(films: list[FilmRecord], year: int | None) -> FilmRecord | None:
        compatible = [f for f in films if years_compatible(f.year, year)]
        if not compatible:
            return None
        # Same title, no year to tell them apart: prefer the newest film
        return max(compatible, key=lambda f: f.year or 0)

    def exact(self, title: str, year: int | None) -> FilmRecord | None:
        return self._pick(self._by_title.get(title, []), year)

    def normalized(self, title: str, year: int | None) -> FilmRecord | None:
        key = match_key(title)
        return self._pick(self._by_key.get(key, []), year) if key else None

    def fuzzy(self, title: str, year: int | None, floor: float) -> tuple[FilmRecord, float] | None:
        """Best token_sort_ratio match at or above ``floor``, within a year of the hint."""
        key = match_key(title)
        if not key:
            return None
        choices = {
            film.id: match_key(film.title)
            for film in self._by_id.values()
            if years_compatible(film.year, year, tolerance=1)
        }
        best = process.extractOne(
            key, choices, scorer=fuzz.token_sort_ratio, score_cutoff=floor
        )
        if best is None:
            return None
        _choice, score, film_id = best
        return self._by_id[film_id], score


class FilmMatcher:
    """
    Service for matching cinema listing titles to canonical films.

    Strictly ordered, first success wins:

    1. Exact title match against the catalog
    2. Normalized match (case, punctuation, leading "the")
    3. Fuzzy match (rapidfuzz token_sort_ratio)
    4. AI-assisted extraction for event-style titles, then 1-3 again
    5. TMDb search scored with the same comparators
    6. Placeholder film from the cleaned title

    Matches below the auto-apply threshold for their strategy are returned
    with ``auto_apply=False`` and are not added to the catalog.
    """

    def __init__(
        self,
        catalog: FilmCatalog,
        tmdb_client: TMDbClient | None = None,
        extractor: TitleExtractor | None = None,
        fuzzy_floor: float | None = None,
        fuzzy_auto_apply: float | None = None,
        ai_auto_apply: float | None = None,
        placeholder_auto_apply: float | None = None,
    ) -> None:
        self.catalog = catalog
        self.tmdb_client = tmdb_client
        self.extractor = extractor
        self.fuzzy_floor = fuzzy_floor if fuzzy_floor is not None else settings.fuzzy_floor
        self.thresholds = {
            MatchStrategy.FUZZY: (
                fuzzy_auto_apply if fuzzy_auto_apply is not None else settings.fuzzy_auto_apply
            ),
            MatchStrategy.AI: ai_auto_apply if ai_auto_apply is not None else settings.ai_auto_apply,
            MatchStrategy.PLACEHOLDER: (
                placeholder_auto_apply
                if placeholder_auto_apply is not None
                else settings.placeholder_auto_apply
            ),
        }

    def should_auto_apply(self, strategy: MatchStrategy, confidence: float) -> bool:
        if strategy in (MatchStrategy.EXACT, MatchStrategy.NORMALIZED):
            return True
        return confidence >= self.thresholds[strategy]

    # ------------------------------------------------------------------
    # Comparators
    # ------------------------------------------------------------------

    def match_catalog(self, title: str, year: int | None) -> _Hit | None:
        """Tiers 1-3 against the local catalog."""
        film = self.catalog.exact(title, year)
        if film:
            return _Hit(film, EXACT_CONFIDENCE, MatchStrategy.EXACT)

        film = self.catalog.normalized(title, year)
        if film:
            return _Hit(film, NORMALIZED_CONFIDENCE, MatchStrategy.NORMALIZED)

        fuzzy = self.catalog.fuzzy(title, year, self.fuzzy_floor)
        if fuzzy:
            film, score = fuzzy
            logger.debug(f"Fuzzy match {score:.1f}: {title!r} -> {film.title!r}")
            return _Hit(film, FUZZY_WEIGHT * score / 100, MatchStrategy.FUZZY)
        return None

    def score_candidate(
        self, title: str, year: int | None, candidate_title: str, candidate_year: int | None
    ) -> tuple[float, MatchStrategy] | None:
        """Apply the catalog comparators to a single provider candidate."""
        if title == candidate_title and years_compatible(year, candidate_year):
            return EXACT_CONFIDENCE, MatchStrategy.EXACT
        if match_key(title) == match_key(candidate_title) and years_compatible(year, candidate_year):
            return NORMALIZED_CONFIDENCE, MatchStrategy.NORMALIZED
        if years_compatible(year, candidate_year, tolerance=1):
            score = fuzz.token_sort_ratio(match_key(title), match_key(candidate_title))
            if score >= self.fuzzy_floor:
                return FUZZY_WEIGHT * score / 100, MatchStrategy.FUZZY
        return None

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    async def resolve(self, screening: NormalizedScreening) -> ResolvedFilm:
        title = screening.clean_title
        year = screening.year_hint

        hit = self.match_catalog(title, year)
        if hit:
            return self._from_hit(hit)

        extraction: ExtractionResult | None = None
        if screening.needs_extraction and self.extractor is not None:
            extraction = await self.extractor.extract(screening.raw.title, force=True)
            # A fallback is only mechanical cleanup; keep the normalizer's title
            if extraction.from_model and extraction.title and extraction.title != title:
                hit = self.match_catalog(extraction.title, year)
                if hit:
                    hit = _Hit(hit.film, min(hit.confidence, extraction.score), MatchStrategy.AI)
                    return self._from_hit(hit, event_type=extraction.event_type)
                title = extraction.title

        if self.tmdb_client is not None:
            resolved = await self._resolve_with_provider(
                title, year, screening.director_hint, extraction
            )
            if resolved:
                return resolved

        return self._placeholder(title, year, screening, extraction)

    def _from_hit(self, hit: _Hit, event_type: str | None = None) -> ResolvedFilm:
        film = hit.film
        created = self.catalog.created.get(film.id)
        return ResolvedFilm(
            film_id=film.id,
            title=film.title,
            year=film.year,
            confidence=round(hit.confidence, 4),
            strategy=hit.strategy,
            auto_apply=self.should_auto_apply(hit.strategy, hit.confidence),
            is_new=created is not None,
            film=created,
            event_type=event_type,
        )

    async def _resolve_with_provider(
        self,
        title: str,
        year: int | None,
        director: str | None,
        extraction: ExtractionResult | None,
    ) -> ResolvedFilm | None:
        assert self.tmdb_client is not None
        results = await self.tmdb_client.search_films(title, year)

        best: tuple[float, MatchStrategy, dict[str, Any]] | None = None
        for candidate in results[:PROVIDER_CANDIDATES]:
            candidate_year = _release_year(candidate.get("release_date"))
            scored = None
            for name in dict.fromkeys(filter(None, (candidate.get("title"), candidate.get("original_title")))):
                result = self.score_candidate(title, year, name, candidate_year)
                if result and (scored is None or result[0] > scored[0]):
                    scored = result
            if scored and (best is None or scored[0] > best[0]):
                best = (scored[0], scored[1], candidate)

        if best is None:
            return None
        confidence, strategy, candidate = best
        tmdb_id = candidate["id"]

        details = await self.tmdb_client.get_film_details(tmdb_id)
        if strategy is MatchStrategy.FUZZY and director and details:
            if await self._director_matches(director, details):
                confidence = min(confidence + DIRECTOR_BONUS, DIRECTOR_CAP)

        if extraction is not None and extraction.source != "gate":
            confidence = min(confidence, extraction.score)
            if extraction.from_model:
                strategy = MatchStrategy.AI

        auto_apply = self.should_auto_apply(strategy, confidence)
        event_type = extraction.event_type if extraction else None
        existing = self.catalog.by_tmdb_id(tmdb_id)
        if existing:
            return self._from_hit(_Hit(existing, confidence, strategy), event_type=event_type)

        film = self._film_from_tmdb(candidate, details, confidence, strategy)
        existing = self.catalog.get(film.id)
        if existing and existing.tmdb_id is None:
            # Placeholder with the same slug; the enrichment job will fill it in
            return self._from_hit(_Hit(existing, confidence, strategy), event_type=event_type)
        if existing:
            film.id = f"{film.id}-{tmdb_id}"

        if auto_apply:
            self.catalog.add(film, created=True)
        logger.info(f"Matched {title!r} to TMDb {film.title!r} ({strategy.value}, {confidence:.2f})")
        return ResolvedFilm(
            film_id=film.id,
            title=film.title,
            year=film.year,
            confidence=round(confidence, 4),
            strategy=strategy,
            auto_apply=auto_apply,
            is_new=True,
            film=film,
            event_type=event_type,
        )

    async def _director_matches(self, director: str, details: dict[str, Any]) -> bool:
        assert self.tmdb_client is not None
        wanted = match_key(director)
        for person in details.get("credits", {}).get("crew", []):
            if person.get("job") != "Director":
                continue
            if fuzz.token_sort_ratio(wanted, match_key(person.get("name", ""))) >= 90:
                return True
            # Transliterations differ: "Andrei Tarkovsky" / "Andrey Tarkovskiy"
            if person.get("id") is not None:
                profile = await self.tmdb_client.get_person_details(person["id"])
                aliases = (profile or {}).get("also_known_as", [])
                if any(match_key(alias) == wanted for alias in aliases):
                    return True
        return False

    def _film_from_tmdb(
        self,
        candidate: dict[str, Any],
        details: dict[str, Any] | None,
        confidence: float,
        strategy: MatchStrategy,
    ) -> FilmRecord:
        assert self.tmdb_client is not None
        data = details or candidate
        title = data.get("title") or candidate.get("title") or ""
        year = _release_year(data.get("release_date"))
        credits = (details or {}).get("credits", {})

        return FilmRecord(
            id=generate_film_id(title, year),
            title=title,
            year=year,
            directors=self.tmdb_client.extract_directors(credits) or None,
            genres=self.tmdb_client.extract_genres(data) or None,
            countries=self.tmdb_client.extract_countries(data) or None,
            overview=data.get("overview") or None,
            runtime=data.get("runtime") or None,
            poster_url=self.tmdb_client.image_url(data.get("poster_path")),
            backdrop_url=self.tmdb_client.image_url(data.get("backdrop_path"), size="w1280"),
            tmdb_id=candidate["id"],
            imdb_id=(details or {}).get("imdb_id") or None,
            match_confidence=round(confidence, 4),
            match_strategy=strategy.value,
            matched_at=datetime.now(timezone.utc),
        )

    def _placeholder(
        self,
        title: str,
        year: int | None,
        screening: NormalizedScreening,
        extraction: ExtractionResult | None,
    ) -> ResolvedFilm:
        if not screening.needs_extraction:
            confidence = CLEAN_PLACEHOLDER_CONFIDENCE
        elif extraction is not None:
            confidence = extraction.score
        else:
            confidence = AI_CONFIDENCE["low"]

        strategy = MatchStrategy.PLACEHOLDER
        auto_apply = self.should_auto_apply(strategy, confidence)
        film = FilmRecord(
            id=generate_film_id(title, year),
            title=title,
            year=year,
            directors=[screening.director_hint] if screening.director_hint else None,
            match_confidence=round(confidence, 4),
            match_strategy=strategy.value,
            matched_at=datetime.now(timezone.utc),
        )
        if auto_apply:
            self.catalog.add(film, created=True)

        logger.info(f"Created placeholder: {title!r} ({confidence:.2f})")
        return ResolvedFilm(
            film_id=film.id,
            title=title,
            year=year,
            confidence=round(confidence, 4),
            strategy=strategy,
            auto_apply=auto_apply,
            is_new=True,
            film=film,
            event_type=extraction.event_type if extraction else None,
        )


def _release_year(release_date: str | None) -> int | None:
    """Extract year from TMDb release date string."""
    if not release_date:
        return None
    try:
        return int(release_date[:4])
    except ValueError:
        return None
