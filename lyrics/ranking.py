"""Deterministic ordering and deduplication of lyrics candidates.

Candidates are ordered key by key; a later key only matters when every
earlier key is a near-tie:

1. time-synced text first
2. static source priority (always decisive)
3. confidence band: within each (synced, priority) group, candidates less
   than 0.1 below the band's most confident member share a band
4. text length, longer first

Bands are anchored on the most confident candidate, not formed pairwise, so
the result depends only on the set of candidates. Anything still tied keeps
dispatch order because ``sorted`` is stable.
"""

from core.text import normalize_for_comparison
from lyrics.models import LyricsCandidate, RankedResult

# Authoritative timing DB > regional official platforms > LLM free text > generic scraping.
SOURCE_PRIORITY: dict[str, int] = {
    "manual": 5,
    "lrclib": 4,
    "database": 3,
    "melon": 3,
    "bugs": 3,
    "genie": 3,
    "consolidated": 3,
    "llm_search": 2,
    "genius": 1,
}
DEFAULT_PRIORITY = 0

CONFIDENCE_EPSILON = 0.1


def source_family(source: str) -> str:
    """``llm_search:openai`` and ``llm_search:groq`` share the family ``llm_search``."""
    return source.split(":", 1)[0]


def source_priority(source: str) -> int:
    return SOURCE_PRIORITY.get(source_family(source), DEFAULT_PRIORITY)


def _group(candidate: LyricsCandidate) -> tuple[bool, int]:
    return (not candidate.has_timestamps, -source_priority(candidate.source))


def confidence_bands(candidates: list[LyricsCandidate]) -> list[int]:
    """Band index per candidate, 0 being the most confident band of its group."""
    bands = [0] * len(candidates)
    groups: dict[tuple[bool, int], list[int]] = {}
    for index, candidate in enumerate(candidates):
        groups.setdefault(_group(candidate), []).append(index)

    for members in groups.values():
        members.sort(key=lambda index: -candidates[index].confidence)
        band, top = -1, None
        for index in members:
            # Rounded so that 0.9 - 0.8 counts as a full step despite float error.
            if top is None or round(top - candidates[index].confidence, 6) >= CONFIDENCE_EPSILON:
                band, top = band + 1, candidates[index].confidence
            bands[index] = band
    return bands


def rank_keys(candidates: list[LyricsCandidate]) -> list[tuple[bool, int, int, int]]:
    """Sort key per candidate; smaller sorts first."""
    return [
        (*_group(candidate), band, -candidate.length)
        for candidate, band in zip(candidates, confidence_bands(candidates), strict=True)
    ]


def compare(a: LyricsCandidate, b: LyricsCandidate) -> int:
    """Negative when ``a`` ranks ahead of ``b`` in a ranking of just the two."""
    key_a, key_b = rank_keys([a, b])
    return (key_a > key_b) - (key_a < key_b)


def dedupe_key(candidate: LyricsCandidate, artist: str, title: str) -> tuple[str, str, str]:
    return (
        source_family(candidate.source),
        normalize_for_comparison(candidate.artist or artist),
        normalize_for_comparison(candidate.title or title),
    )


def dedupe(candidates: list[LyricsCandidate], artist: str = "", title: str = "") -> list[LyricsCandidate]:
    """Keep the first candidate per (source family, artist, title).

    Expects ranked input so the survivor is the best of its group. Candidates
    with similar text but different keys are left alone.
    """
    seen: set[tuple[str, str, str]] = set()
    unique = []
    for candidate in candidates:
        key = dedupe_key(candidate, artist, title)
        if key in seen:
            continue
        seen.add(key)
        unique.append(candidate)
    return unique


def rank(candidates: list[LyricsCandidate], artist: str = "", title: str = "") -> RankedResult:
    """Order candidates best-first and drop same-family duplicates.

    Args:
        candidates: Found candidates in dispatch order
        artist: Query artist, used when a candidate carries none
        title: Query title, used when a candidate carries none

    Returns:
        RankedResult whose ``best`` is the first candidate (empty input gives
        an empty result)
    """
    keys = rank_keys(candidates)
    order = sorted(range(len(candidates)), key=keys.__getitem__)
    ordered = [candidates[index] for index in order]
    return RankedResult(candidates=dedupe(ordered, artist, title))
