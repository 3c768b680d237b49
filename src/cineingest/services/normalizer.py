"""Raw screening normalizer.

Venue listings wrap film titles in event branding ("Saturday Morning
Picture Club: ...", "... + Q&A", "35mm: ... (PG)"). The normalizer strips
that wrapping, classifies the event, pulls year/director hints out of the
listing, and decides whether the title is trustworthy enough to skip AI
extraction. Every rule lives in a table below; nothing is venue specific.
"""

import html
import logging
import re
from dataclasses import dataclass, field
from re import Pattern

from cineingest.scrapers.models import RawScreening
from cineingest.utils.text import extract_year, normalise_title

logger = logging.getLogger(__name__)

_SEP = r"\s*[:\-–—|]\s*"


def _prefix(pattern: str, separator: str = _SEP) -> Pattern[str]:
    return re.compile(rf"^(?:{pattern}){separator}", re.IGNORECASE)


# (pattern, event label). First match wins; only one prefix is stripped.
EVENT_PREFIX_PATTERNS: tuple[tuple[Pattern[str], str], ...] = (
    (_prefix(r"(?:saturday|sunday)\s+morning\s+picture\s+club"), "kids screening"),
    (_prefix(r"(?:kids?|family|toddler)\s*(?:club|time|film\s+club|films?)"), "kids screening"),
    (_prefix(r"(?:parents?|carers?)\s*(?:&|and)\s*bab(?:y|ies)"), "parent and baby"),
    # "UK PREMIERE I Only Rest in the Storm": a capital I between spaces is a separator
    (
        _prefix(r"(?:uk|world|european|london)\s+premiere", r"(?:\s*[:\-–—|]\s*|\s+(?-i:I)\s+|\s+)"),
        "premiere",
    ),
    (_prefix(r"(?:sneak\s+)?preview|advance\s+screening"), "preview"),
    (_prefix(r"35mm"), "35mm screening"),
    (_prefix(r"70mm"), "70mm screening"),
    (_prefix(r"imax"), "imax screening"),
    (_prefix(r"4k(?:\s+restoration)?|restoration"), "restoration"),
    (_prefix(r"sing[\s-]?a[\s-]?long(?:[\s-]?a)?|quote[\s-]?a[\s-]?long", rf"(?:{_SEP}|\s+)"), "sing-along"),
    (_prefix(r"q\s*&\s*a"), "q&a"),
    (
        _prefix(
            r"nt\s+live|national\s+theatre\s+live|met\s+opera(?:\s+live|\s+encore)?"
            r"|roh(?:\s+live)?|royal\s+opera\s+house|royal\s+ballet|bolshoi\s+ballet"
            r"|exhibition\s+on\s+screen"
        ),
        "live broadcast",
    ),
    (_prefix(r"(?:double|triple)\s+(?:bill|feature)"), "double bill"),
    (_prefix(r"(?:relaxed|autism[\s-]friendly|dementia[\s-]friendly)(?:\s+screening)?"), "relaxed screening"),
    (_prefix(r"classic\s+matinee|silver\s+screen"), "classic"),
    (_prefix(r"(?:special|members?'?)\s+screening"), "special screening"),
    (_prefix(r"late\s+night|midnight(?:\s+movies?)?"), "late night"),
    (_prefix(r"lsff|lff|bfi\s+flare"), "festival"),
    (
        _prefix(
            r"film\s+club|doc\s*house|shorts(?:\s+club)?|documentary|doc\s*'?n'?\s*roll"
            r"|queer\s+horror\s+nights|underscore\s+cinema|sonic\s+cinema|drink\s*(?:&|and)\s*dine"
        ),
        "event series",
    ),
)

# (pattern, event label). Every matching suffix is stripped.
EVENT_SUFFIX_PATTERNS: tuple[tuple[Pattern[str], str], ...] = (
    (re.compile(r"\s*(?:\+|with)\s*q\s*&\s*(?:amp;)?a\b.*$", re.IGNORECASE), "q&a"),
    (re.compile(r"\s*\+\s*intro(?:duction|duced)?\b.*$", re.IGNORECASE), "intro"),
    (re.compile(r"\s*\+\s*(?:panel|discussion)\b.*$", re.IGNORECASE), "discussion"),
    (re.compile(r"\s*\+\s*live\b.*$", re.IGNORECASE), "live performance"),
    (re.compile(r"\s*with\s+shadow\s+cast.*$", re.IGNORECASE), "shadow cast"),
    (re.compile(r"\s+sing-?a?-?long!?$", re.IGNORECASE), "sing-along"),
)

# Listings matching any of these need more than mechanical cleanup
LIKELY_EVENT_PATTERNS: tuple[Pattern[str], ...] = tuple(
    re.compile(p, re.IGNORECASE)
    for p in (
        r"^(saturday|sunday|weekday)\s+(morning|afternoon)",
        r"^(kids?|family|toddler|baby)\s*(club|time|film)",
        r"^(uk|world)\s+premiere",
        r"^(35|70)mm[:\s]",
        r"^(imax|4k|restoration)[:\s]",
        r"^(sing[\s-]?a[\s-]?long|quote[\s-]?a[\s-]?long)[:\s]",
        r"^(preview|sneak|advance)[:\s]",
        r"^(special|member'?s?)\s+screening",
        r"^(double|triple)\s+(feature|bill)",
        r"^(cult|classic|christmas)\s+(classic|film)",
        r"^(late\s+night|midnight)",
        r"^(marathon|retrospective|tribute)[:\s]",
        r"^(q\s*&\s*a|live\s+q)",
        r"^(intro(duced)?\s+by|with\s+q)",
        r"^(classic\s+matinee)[:\s]",
        r"^(queer|horror|comedy|sci-?fi)\s+(night|horror|film)",
        r"^(doc\s*'?n'?\s*roll)[:\s]",
        r"^(lsff|bfi|afi|tiff)[:\s]",
        r"^(underscore\s+cinema)[:\s]",
        r"^(neurospicy|dyke\s+tv)[:\s!]",
        r"\+\s*q\s*&?\s*a\s*$",
        r"with\s+shadow\s+cast",
        r"\+\s*(discussion|intro|live)",
    )
)

# Short "X: Y" prefixes that are real franchise titles, not event branding
FRANCHISE_PREFIXES: Pattern[str] = re.compile(
    r"^(star\s+wars|indiana|harry|lord|mission|pirates|fast|jurassic|matrix|batman"
    r"|spider|alien|terminator|mad|back|die|lethal|home|rocky|rambo|godfather|toy"
    r"|finding|avengers|guardians|shrek|dark)",
    re.IGNORECASE,
)

_CERTIFICATE_RE = re.compile(r"\s*\((?:U|PG|12A?|15|18|R18)\*?\)\s*$", re.IGNORECASE)
_BRACKETED_RE = re.compile(r"\s*\[.*?\]\s*$")
_FORMAT_SUFFIX_RE = re.compile(r"\s*-\s*(?:35mm|70mm|4k|imax)\s*$", re.IGNORECASE)
_OUTER_QUOTES_RE = re.compile(r"^[\"'“‘](.+)[\"'”’]$")

_NAME = r"([A-Z][^\s,;:.()]*(?:\s+(?:de|van|von|da|del|di|la|le)?\s*[A-Z][^\s,;:.()]*){0,3})"
DIRECTOR_PATTERNS: tuple[Pattern[str], ...] = (
    re.compile(rf"\bDir\.\s*{_NAME}"),
    re.compile(rf"\b[Dd]irected by\s+{_NAME}"),
    re.compile(rf"\bDirector:\s*{_NAME}"),
)
_LISTING_YEAR_RE = re.compile(r"\b(1[89]\d{2}|20\d{2})\b")


@dataclass
class NormalizedScreening:
    """A raw screening plus everything title resolution needs to know."""

    raw: RawScreening
    clean_title: str
    event_type: str | None = None
    year_hint: int | None = None
    director_hint: str | None = None
    likely_clean: bool = True
    ambiguous_labels: tuple[str, ...] = field(default_factory=tuple)

    @property
    def needs_extraction(self) -> bool:
        return not self.likely_clean or bool(self.ambiguous_labels)


class Normalizer:
    """
    Table-driven title cleanup and event classification.

    All tables can be replaced at construction, e.g. to add a venue's own
    event series without touching the defaults.
    """

    def __init__(
        self,
        prefix_patterns: tuple[tuple[Pattern[str], str], ...] = EVENT_PREFIX_PATTERNS,
        suffix_patterns: tuple[tuple[Pattern[str], str], ...] = EVENT_SUFFIX_PATTERNS,
        gate_patterns: tuple[Pattern[str], ...] = LIKELY_EVENT_PATTERNS,
        franchise_prefixes: Pattern[str] = FRANCHISE_PREFIXES,
    ) -> None:
        self.prefix_patterns = prefix_patterns
        self.suffix_patterns = suffix_patterns
        self.gate_patterns = gate_patterns
        self.franchise_prefixes = franchise_prefixes

    @staticmethod
    def _collapse(raw: str) -> str:
        return re.sub(r"\s+", " ", html.unescape(raw)).strip()

    def strip_cruft(self, title: str) -> str:
        """Certificates, trailing bracketed notes and " - 35mm" style suffixes."""
        title = self._collapse(title)
        title = _CERTIFICATE_RE.sub("", title)
        title = _BRACKETED_RE.sub("", title)
        title = _FORMAT_SUFFIX_RE.sub("", title)
        return title.strip()

    def clean_title(self, raw: str) -> str:
        title = self._collapse(raw)

        for pattern, _label in self.prefix_patterns:
            stripped = pattern.sub("", title, count=1)
            if stripped != title:
                title = stripped
                break

        for pattern, _label in self.suffix_patterns:
            title = pattern.sub("", title)

        title = normalise_title(self.strip_cruft(title))
        match = _OUTER_QUOTES_RE.match(title)
        if match:
            title = match.group(1).strip()

        # Never return nothing; an empty result means the rules over-matched
        return title or self._collapse(raw)

    def event_labels(self, raw: str) -> list[str]:
        """All distinct event labels whose patterns match, prefix first."""
        title = self._collapse(raw)
        labels: list[str] = []
        for pattern, label in (*self.prefix_patterns, *self.suffix_patterns):
            if pattern.search(title) and label not in labels:
                labels.append(label)
        return labels

    def detect_event_type(self, raw: str) -> str | None:
        labels = self.event_labels(raw)
        return labels[0] if labels else None

    def extract_metadata(
        self, raw_title: str, listing_text: str | None = None
    ) -> tuple[int | None, str | None]:
        """
        Year and director hints from the title and surrounding listing copy.

        Returns:
            ``(year, director)``; either may be None
        """
        year = extract_year(raw_title)
        if year is None and listing_text:
            match = _LISTING_YEAR_RE.search(listing_text)
            year = int(match.group(1)) if match else None

        director = None
        for text in (raw_title, listing_text or ""):
            for pattern in DIRECTOR_PATTERNS:
                match = pattern.search(text)
                if match:
                    director = match.group(1).strip()
                    break
            if director:
                break
        return year, director

    def is_likely_clean_title(self, raw: str) -> bool:
        """
        Cheap check for titles that need no AI help.

        False when a known event pattern matches, or when a colon follows
        one or two words that are not a known franchise ("Kids Club: Up").
        """
        normalized = self._collapse(raw).lower()
        if any(p.search(normalized) for p in self.gate_patterns):
            return False

        if ":" in normalized:
            before = normalized.split(":", 1)[0].strip()
            if len(before.split()) <= 2 and not self.franchise_prefixes.match(before):
                return False
        return True

    def normalize(self, raw: RawScreening) -> NormalizedScreening:
        labels = self.event_labels(raw.title)
        year, director = self.extract_metadata(raw.title, raw.listing_text)

        return NormalizedScreening(
            raw=raw,
            clean_title=self.clean_title(raw.title),
            event_type=raw.event_type or (labels[0] if labels else None),
            year_hint=raw.year or year,
            director_hint=raw.director or director,
            likely_clean=self.is_likely_clean_title(raw.title),
            ambiguous_labels=tuple(labels) if len(labels) > 1 else (),
        )
