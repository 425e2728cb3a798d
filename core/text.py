"""Shared text normalization and matching utilities.

This module centralizes how artist and title strings are compared, keyed,
and simplified, so the cache, the ranker, and the scrapers agree.
"""

import re
import unicodedata

from rapidfuzz import fuzz

# =============================================================================
# Unicode Normalization
# =============================================================================

# Dakuten and handakuten decompose into combining marks but are part of the kana.
_KANA_VOICING_MARKS = frozenset("\u3099\u309a")


def strip_diacritics(text: str) -> str:
    """Remove diacritical marks from Latin text, preserving base characters.

    "Björk" -> "Bjork", "Beyoncé" -> "Beyonce". Hangul and kana are
    recomposed so their syllables survive unchanged.
    """
    nfkd = unicodedata.normalize("NFKD", text)
    stripped = "".join(
        c for c in nfkd if not unicodedata.combining(c) or c in _KANA_VOICING_MARKS
    )
    return unicodedata.normalize("NFC", stripped)


def normalize_for_comparison(text: str | None) -> str:
    """Normalize text for case-, diacritics- and punctuation-insensitive comparison.

    Returns empty string for None or empty input.
    """
    if not text:
        return ""
    text = strip_diacritics(text).casefold()
    text = re.sub(r"[^\w\s]", " ", text)
    return " ".join(text.split())


# =============================================================================
# Cache Keys
# =============================================================================


def make_cache_key(artist: str, title: str) -> str:
    """Build the store key for an artist/title pair.

    Lowercase, whitespace runs collapsed to a single underscore, joined as
    ``artist + "_" + title``.
    """
    artist_part = "_".join(unicodedata.normalize("NFC", artist).lower().split())
    title_part = "_".join(unicodedata.normalize("NFC", title).lower().split())
    return f"{artist_part}_{title_part}"


# =============================================================================
# Title Variants
# =============================================================================

_PARENTHETICAL = re.compile(r"\s*[\(\[].*?[\)\]]")
_FEATURING = re.compile(r"\s+(?:feat\.?|ft\.?|featuring)\s+.*$", re.IGNORECASE)
_VERSION_SUFFIX = re.compile(
    r"\s*[-–]\s*(?:.*\s)?(?:remix|live|acoustic|remaster(?:ed)?|ver\.?|version)\b.*$",
    re.IGNORECASE,
)


def strip_title_decorations(title: str) -> str:
    """Drop parentheticals, featuring credits, and remix/live suffixes from a title."""
    simplified = _PARENTHETICAL.sub("", title)
    simplified = _FEATURING.sub("", simplified)
    simplified = _VERSION_SUFFIX.sub("", simplified)
    return " ".join(simplified.split())


def title_variants(artist: str, title: str) -> list[tuple[str, str]]:
    """Artist/title pairs to try against a site search, exact pair first."""
    variants = [(artist, title)]
    simplified_title = strip_title_decorations(title)
    simplified_artist = _FEATURING.sub("", artist).strip()
    for pair in ((artist, simplified_title), (simplified_artist, simplified_title)):
        if pair[0] and pair[1] and pair not in variants:
            variants.append(pair)
    return variants


# =============================================================================
# Fuzzy Matching
# =============================================================================

SAME_NAME_THRESHOLD = 85
"""Minimum rapidfuzz ratio for two names to be treated as the same."""


def name_similarity(a: str | None, b: str | None) -> float:
    """Similarity 0-100 of two artist or title strings after normalization."""
    left = normalize_for_comparison(a)
    right = normalize_for_comparison(b)
    if not left or not right:
        return 0.0
    return float(fuzz.token_sort_ratio(left, right))


def names_match(a: str | None, b: str | None) -> bool:
    """Check whether two artist or title strings name the same thing."""
    return name_similarity(a, b) >= SAME_NAME_THRESHOLD
