"""LLM-backed free-text lyrics search.

The LLM is treated as a fuzzy knowledge source: it is asked for the lyrics
as JSON, and anything that looks like an explanation, a refusal, or a
fragment is discarded.
"""

import json
import logging

from llm.client import LLMBackend
from lyrics.models import LyricsCandidate, Query
from lyrics.quality import (
    clean_lyrics,
    is_only_first_verse,
    is_usable_lyrics,
    strip_code_fences,
)
from providers.base import Provider

logger = logging.getLogger(__name__)

MIN_LYRICS_LENGTH = 100
DEFAULT_LLM_CONFIDENCE = 0.7
FIRST_VERSE_PENALTY = 0.8
# Perplexity answers from live web search and is trusted a little more.
WEB_GROUNDED_CEILING = 0.85
DEFAULT_CEILING = 0.75

SYSTEM_PROMPT = """You are a lyrics search specialist. Return the complete original lyrics of the requested song.

Rules:
1. Use the song's original script (한글, 日本語, 中文, English); never romanize or translate
2. Preserve mixed-language songs exactly as written
3. Include every verse, chorus and bridge with line breaks; never truncate or write "..."
4. If you do not know the complete lyrics, set "hasLyrics" to false and "lyrics" to "NO_LYRICS_FOUND"
5. Return JSON only, no explanations, no markdown"""

USER_PROMPT = """Artist: "{artist}"
Title: "{title}"

Return strict JSON:
{{
  "artist": "exact artist name",
  "title": "exact song title",
  "lyrics": "complete lyrics with \\n line breaks",
  "hasLyrics": true,
  "confidence": 0.0
}}"""


class LLMSearchProvider(Provider):
    """Asks one LLM backend for the lyrics of a song."""

    authoritative = False

    def __init__(self, backend: LLMBackend, confidence_ceiling: float | None = None):
        self.backend = backend
        self.id = f"llm_search:{backend.name}"
        self.timeout = backend.timeout
        if confidence_ceiling is None:
            confidence_ceiling = (
                WEB_GROUNDED_CEILING if backend.name == "perplexity" else DEFAULT_CEILING
            )
        self.confidence_ceiling = confidence_ceiling

    def parse_reply(self, reply: str, query: Query) -> LyricsCandidate | None:
        """Turn a backend reply into a candidate, or None if it holds no lyrics."""
        body = strip_code_fences(reply)
        try:
            data = json.loads(body)
        except ValueError:
            data = None

        if isinstance(data, dict):
            if data.get("hasLyrics") is False:
                return None
            text = clean_lyrics(data.get("lyrics") if isinstance(data.get("lyrics"), str) else "")
            try:
                confidence = float(data.get("confidence") or DEFAULT_LLM_CONFIDENCE)
            except (TypeError, ValueError):
                confidence = DEFAULT_LLM_CONFIDENCE
            artist = data.get("artist") if isinstance(data.get("artist"), str) else None
            title = data.get("title") if isinstance(data.get("title"), str) else None
        else:
            # Plain-text reply: only trusted if it names the song it claims to be.
            text = clean_lyrics(body)
            if query.title.casefold() not in text.casefold():
                return None
            confidence, artist, title = DEFAULT_LLM_CONFIDENCE * 0.8, None, None

        if not is_usable_lyrics(text, MIN_LYRICS_LENGTH):
            return None
        if is_only_first_verse(text):
            confidence *= FIRST_VERSE_PENALTY

        return LyricsCandidate(
            text=text,
            source=self.id,
            confidence=max(0.0, min(confidence, 1.0)),
            artist=artist,
            title=title,
        )

    async def _search(self, query: Query) -> LyricsCandidate | None:
        reply = await self.backend.complete(
            USER_PROMPT.format(artist=query.artist, title=query.title),
            system=SYSTEM_PROMPT,
            json_mode=True,
            temperature=0.1,
            max_tokens=4000,
        )
        return self.parse_reply(reply, query)

    async def close(self) -> None:
        # Backends are shared; core.dependencies closes them.
        return None
