"""Query normalization: free text or separate fields -> canonical artist/title.

Parsing strategies run in order through ``first_success``: up to three LLM
backends, each with its own time budget, then a deterministic pattern parser
that always produces an answer.
"""

import json
import logging
import re

from core.exceptions import ParseError
from core.strategies import Attempt, first_success
from llm.client import LLMBackend
from lyrics.models import NormalizedQuery, ParseSource
from lyrics.quality import strip_code_fences

logger = logging.getLogger(__name__)

MAX_LLM_PARSERS = 3

# Stage names that are routinely written without a separator, e.g. "아이유좋은날".
KNOWN_ARTISTS = (
    "방탄소년단",
    "블랙핑크",
    "소녀시대",
    "뉴진스",
    "트와이스",
    "세븐틴",
    "레드벨벳",
    "잔나비",
    "아이유",
    "태연",
    "악뮤",
    "샘킴",
    "도리",
    "BTS",
    "IU",
)

SYSTEM_PROMPT = """You are a music query parser. Extract artist name and song title from user queries.
Handle various formats and languages (Korean, English, Japanese, Chinese).

Rules:
1. Return JSON only, no explanations
2. Handle typos and spacing issues
3. Recognize artist/title in any order
4. Handle mixed languages (e.g., "BTS 다이너마이트", "아이유 Good Day")
5. Common patterns: "ARTIST TITLE", "TITLE by ARTIST", "ARTIST의 TITLE", "TITLE ARTIST"

Return format:
{"artist": "extracted artist name", "title": "extracted song title"}"""

USER_PROMPT = """Parse this music query: "{query}"

Examples:
- "아이유 좋은날" -> {{"artist": "아이유", "title": "좋은날"}}
- "샘킴 makeup" -> {{"artist": "샘킴", "title": "Makeup"}}
- "november rain by jannabi" -> {{"artist": "JANNABI", "title": "November Rain"}}
- "BTS dynamite" -> {{"artist": "BTS", "title": "Dynamite"}}"""

_SPACED_DASH = re.compile(r"^(.+?)\s+[-–—]\s+(.+)$")
_ANY_DASH = re.compile(r"^(.+?)\s*[-–—]\s*(.+)$")
_BY = re.compile(r"^(.+?)\s+by\s+(.+)$", re.IGNORECASE)


# =============================================================================
# Validation
# =============================================================================


def _clean(value: str) -> str:
    return " ".join(value.strip().strip("\"'").split())


def is_single_token(text: str) -> bool:
    return len(text.split()) <= 1


def is_acceptable(pair: NormalizedQuery, raw_text: str) -> bool:
    """Both fields non-empty, and distinct unless the input was a single token."""
    if not pair.artist or not pair.title:
        return False
    if pair.source == ParseSource.IDENTICAL:
        return True
    if pair.artist.casefold() == pair.title.casefold():
        return is_single_token(raw_text)
    return True


def parse_llm_pair(text: str, source: ParseSource) -> NormalizedQuery | None:
    """Validate an LLM reply: a JSON object with two non-empty string fields."""
    try:
        data = json.loads(strip_code_fences(text))
    except (ValueError, TypeError):
        logger.debug(f"{source} returned non-JSON parse output")
        return None

    if not isinstance(data, dict):
        return None
    artist = data.get("artist")
    title = data.get("title")
    if not isinstance(artist, str) or not isinstance(title, str):
        return None
    artist, title = _clean(artist), _clean(title)
    if not artist or not title:
        return None
    return NormalizedQuery(artist=artist, title=title, source=source)


# =============================================================================
# Deterministic fallback
# =============================================================================


def _match_roster(text: str) -> tuple[str, str] | None:
    lowered = text.casefold()
    for name in KNOWN_ARTISTS:
        key = name.casefold()
        if lowered.startswith(key) and len(text) > len(name):
            if name.isascii() and not text[len(name)].isspace():
                continue
            rest = text[len(name):].strip()
            # Korean possessive particle: "아이유의 좋은날"
            if rest.startswith("의") and len(rest) > 1:
                rest = rest[1:].strip()
            if rest:
                return name, rest
        if lowered.endswith(key) and len(text) > len(name):
            rest = text[: len(text) - len(name)].strip()
            if rest and text[len(text) - len(name) - 1].isspace():
                return name, rest
    return None


def fallback_parse(raw_text: str) -> NormalizedQuery:
    """Pattern-based parsing that never fails.

    Order: "A - B", "B by A", known-artist prefix or suffix, "first token is
    the artist", and finally identical artist and title.
    """
    text = " ".join(raw_text.split())

    for pattern in (_SPACED_DASH, _ANY_DASH):
        match = pattern.match(text)
        if match:
            artist, title = _clean(match.group(1)), _clean(match.group(2))
            if artist and title:
                return NormalizedQuery(artist=artist, title=title, source=ParseSource.DASH)

    match = _BY.match(text)
    if match:
        title, artist = _clean(match.group(1)), _clean(match.group(2))
        if artist and title:
            return NormalizedQuery(artist=artist, title=title, source=ParseSource.BY)

    roster = _match_roster(text)
    if roster:
        return NormalizedQuery(artist=roster[0], title=roster[1], source=ParseSource.ROSTER)

    parts = text.split(" ", 1)
    if len(parts) == 2:
        return NormalizedQuery(artist=parts[0], title=parts[1], source=ParseSource.TWO_TOKENS)

    return NormalizedQuery(artist=text, title=text, source=ParseSource.IDENTICAL)


# =============================================================================
# Normalizer
# =============================================================================


class QueryNormalizer:
    """Turns user input into an artist/title pair, recording which strategy won."""

    def __init__(self, backends: list[LLMBackend] | None = None, attempt_timeout: float = 6.0):
        """Initialize the normalizer.

        Args:
            backends: LLM backends in preference order; only the first three are used
            attempt_timeout: Budget in seconds for each LLM attempt
        """
        self.backends = (backends or [])[:MAX_LLM_PARSERS]
        self.attempt_timeout = attempt_timeout

    def _llm_attempt(self, backend: LLMBackend, raw_text: str) -> Attempt[NormalizedQuery]:
        source = ParseSource(backend.name)

        async def run() -> NormalizedQuery | None:
            reply = await backend.complete(
                USER_PROMPT.format(query=raw_text),
                system=SYSTEM_PROMPT,
                json_mode=True,
                temperature=0.1,
                max_tokens=200,
            )
            return parse_llm_pair(reply, source)

        return Attempt(name=backend.name, run=run, timeout=self.attempt_timeout)

    async def normalize(
        self,
        raw_text: str | None = None,
        artist: str | None = None,
        title: str | None = None,
    ) -> NormalizedQuery:
        """Produce a canonical artist/title pair.

        Explicit fields win when both are present. Otherwise the available
        text is parsed through the strategy chain.

        Raises:
            ParseError: If there is no text at all to parse
        """
        artist = (artist or "").strip()
        title = (title or "").strip()
        if artist and title:
            return NormalizedQuery(artist=artist, title=title, source=ParseSource.FIELDS)

        text = " ".join(part for part in (raw_text or "", artist, title) if part).strip()
        if not text:
            raise ParseError("Query is empty", {"raw_text": raw_text})

        async def deterministic() -> NormalizedQuery:
            return fallback_parse(text)

        attempts = [self._llm_attempt(backend, text) for backend in self.backends]
        attempts.append(Attempt(name="fallback", run=deterministic))

        outcome = await first_success(attempts, accept=lambda pair: is_acceptable(pair, text))
        if outcome.value is None:
            # e.g. "Hello Hello": the fallback split repeats itself
            outcome.value = NormalizedQuery(artist=text, title=text, source=ParseSource.IDENTICAL)

        logger.info(
            f"Parsed '{text}' -> artist='{outcome.value.artist}', "
            f"title='{outcome.value.title}' via {outcome.value.source}"
        )
        return outcome.value
