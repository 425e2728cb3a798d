"""LRCLIB: open database of time-synced (LRC) lyrics."""

import logging

from core.exceptions import ProviderFailure
from core.text import name_similarity
from lyrics.models import LyricsCandidate, Query
from lyrics.quality import clean_lyrics, strip_timestamps
from providers.base import HttpProvider

logger = logging.getLogger(__name__)

LRCLIB_API_BASE = "https://lrclib.net/api"

SYNCED_CONFIDENCE = 0.95
PLAIN_CONFIDENCE = 0.85


def _match_score(item: dict, query: Query) -> float:
    return name_similarity(item.get("artistName"), query.artist) + name_similarity(
        item.get("trackName"), query.title
    )


class LrclibProvider(HttpProvider):
    """Searches LRCLIB, preferring synced lyrics over plain text."""

    id = "lrclib"
    confidence_ceiling = SYNCED_CONFIDENCE
    authoritative = True
    timeout = 8.0
    default_headers = {"User-Agent": "LyricsResolver/0.1"}

    async def _search(self, query: Query) -> LyricsCandidate | None:
        response = await self._get(
            f"{LRCLIB_API_BASE}/search",
            params={"artist_name": query.artist, "track_name": query.title},
        )
        try:
            items = response.json()
        except ValueError as e:
            raise ProviderFailure(self.id, "malformed_response") from e
        if not isinstance(items, list) or not items:
            return None

        items = [item for item in items if isinstance(item, dict) and not item.get("instrumental")]
        # Stable: equally good matches keep LRCLIB's own order.
        items.sort(key=lambda item: _match_score(item, query), reverse=True)

        synced = next((item for item in items if item.get("syncedLyrics")), None)
        if synced is not None:
            return LyricsCandidate(
                text=strip_timestamps(synced["syncedLyrics"]),
                synced_text=synced["syncedLyrics"].strip(),
                source=self.id,
                confidence=SYNCED_CONFIDENCE,
                has_timestamps=True,
                url=f"{LRCLIB_API_BASE}/get/{synced.get('id')}",
                artist=synced.get("artistName"),
                title=synced.get("trackName"),
            )

        plain = next((item for item in items if item.get("plainLyrics")), None)
        if plain is not None:
            return LyricsCandidate(
                text=clean_lyrics(plain["plainLyrics"]),
                source=self.id,
                confidence=PLAIN_CONFIDENCE,
                url=f"{LRCLIB_API_BASE}/get/{plain.get('id')}",
                artist=plain.get("artistName"),
                title=plain.get("trackName"),
            )

        logger.debug(f"LRCLIB had {len(items)} hits for '{query.artist} - {query.title}' but no lyrics")
        return None
