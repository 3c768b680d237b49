"""Text normalization utilities for film title matching."""

import re
import unicodedata

_PUNCTUATION_RE = re.compile(r"[^\w\s]")
_LEADING_ARTICLE_RE = re.compile(r"^the\s+")


def normalise_title(title: str) -> str:
    """
    General title cleanup shared by every venue.

    - Dash suffixes: "Film — Restoration", "Film - Subtitled" → "Film"
    - Year suffixes: "Film (2024)" → "Film"
    - Square bracket tags: "Film [35mm]" → "Film"
    - Trailing non-numeric parenthetical: "Film (Director's Cut)" → "Film"
    - Extra whitespace

    Args:
        title: Film title, usually already stripped of event prefixes

    Returns:
        Cleaned title
    """
    title = title.strip()

    # Dash suffixes go first so "Film (1929) — Restoration" still loses its
    # year. Requires whitespace around the dash to keep "Spider-Man".
    title = re.sub(r"\s+[-–—]\s+\S.*$", "", title)

    title = re.sub(r"\s*\(\d{4}(?:-\d{2,4})?\)\s*$", "", title)
    title = re.sub(r"\s*\[[^\]]+\]\s*", " ", title)

    # Only when it is the last element and contains no digits
    title = re.sub(r"\s*\([^)\d]*\)\s*$", "", title)

    return re.sub(r"\s+", " ", title).strip()


def match_key(title: str) -> str:
    """
    Comparison key for normalized matching.

    Lowercases, folds accents, drops punctuation and a leading "the", and
    collapses whitespace: "The Godfather: Part II" → "godfather part ii".
    """
    text = unicodedata.normalize("NFKD", title)
    text = "".join(ch for ch in text if not unicodedata.combining(ch))
    text = text.lower().replace("&", " and ")
    text = _PUNCTUATION_RE.sub(" ", text)
    text = re.sub(r"\s+", " ", text).strip()
    return _LEADING_ARTICLE_RE.sub("", text)


def extract_year(text: str | None) -> int | None:
    """Return the first plausible release year in parentheses, e.g. "(1942)"."""
    if not text:
        return None
    match = re.search(r"\((1[89]\d{2}|20\d{2})\)", text)
    return int(match.group(1)) if match else None


def slugify(text: str) -> str:
    """
    Convert text to a URL-safe slug.

    Args:
        text: Text to slugify

    Returns:
        Lowercase slug with hyphens
    """
    text = unicodedata.normalize("NFKD", text)
    text = "".join(ch for ch in text if not unicodedata.combining(ch)).lower()
    text = re.sub(r"[\s_]+", "-", text)
    text = re.sub(r"[^a-z0-9-]", "", text)
    text = re.sub(r"-+", "-", text)
    return text.strip("-")
