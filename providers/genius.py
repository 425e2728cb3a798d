"""Genius: generic web lyrics scraped from song pages."""

import logging

from core.exceptions import ProviderFailure
from core.text import name_similarity
from lyrics.models import LanguageTag, LyricsCandidate, Query
from providers.base import BROWSER_USER_AGENT, HttpProvider, all_languages_except
from providers.html import joined_text, parse_html

logger = logging.getLogger(__name__)

GENIUS_BASE = "https://genius.com"
GENIUS_CONFIDENCE = 0.85
MIN_LYRICS_LENGTH = 200


class GeniusProvider(HttpProvider):
    """Searches Genius's public search API and scrapes the matched song page."""

    id = "genius"
    # Korean queries go to the Korean platforms instead.
    languages = all_languages_except([LanguageTag.KO])
    confidence_ceiling = GENIUS_CONFIDENCE
    timeout = 12.0
    rate_limited = True
    default_headers = {
        "User-Agent": BROWSER_USER_AGENT,
        "Accept-Language": "en-US,en;q=0.9",
        "Referer": f"{GENIUS_BASE}/",
    }

    def _pick_hit(self, data: dict, query: Query) -> dict | None:
        sections = data.get("response", {}).get("sections", [])
        hits = next(
            (section.get("hits", []) for section in sections if section.get("type") == "song"),
            [],
        )
        songs = [hit.get("result") for hit in hits if isinstance(hit.get("result"), dict)]
        if not songs:
            return None
        return max(
            songs,
            key=lambda song: (
                name_similarity(song.get("primary_artist", {}).get("name"), query.artist)
                + name_similarity(song.get("title"), query.title)
            ),
        )

    async def _search(self, query: Query) -> LyricsCandidate | None:
        response = await self._get(
            f"{GENIUS_BASE}/api/search/multi",
            params={"q": f"{query.artist} {query.title}"},
            headers={"Accept": "application/json"},
        )
        try:
            data = response.json()
        except ValueError as e:
            raise ProviderFailure(self.id, "malformed_response") from e

        song = self._pick_hit(data, query)
        if song is None or not song.get("url"):
            return None

        page = await self._get(song["url"], headers={"Accept": "text/html,application/xhtml+xml"})
        text = joined_text(parse_html(page.text), "[data-lyrics-container]")
        if len(text) < MIN_LYRICS_LENGTH:
            logger.debug(f"Genius page {song['url']} had {len(text)} chars of lyrics")
            return None

        return LyricsCandidate(
            text=text,
            source=self.id,
            confidence=GENIUS_CONFIDENCE,
            url=song["url"],
            artist=song.get("primary_artist", {}).get("name"),
            title=song.get("title"),
        )
