"""Scrapers for the Korean streaming platforms: Melon, Bugs and Genie.

Each site follows the same flow: search page -> song id (ordered regex
candidates, first match wins) -> detail page -> lyrics element (ordered CSS
selector candidates, first match wins). Title variants are tried in order
when the exact title finds nothing.
"""

import logging
import re
from abc import abstractmethod
from urllib.parse import quote

from core.text import title_variants
from lyrics.models import LanguageTag, LyricsCandidate, Query
from providers.base import BROWSER_USER_AGENT, HttpProvider, languages
from providers.html import first_matching_text, parse_html

logger = logging.getLogger(__name__)

KOREAN_SITE_CONFIDENCE = 0.9
MIN_LYRICS_LENGTH = 60
MAX_VARIANTS = 3


class KoreanSiteProvider(HttpProvider):
    """Shared search -> detail -> extract flow for Korean platforms."""

    languages = languages(LanguageTag.KO)
    confidence_ceiling = KOREAN_SITE_CONFIDENCE
    timeout = 12.0
    rate_limited = True
    default_headers = {
        "User-Agent": BROWSER_USER_AGENT,
        "Accept": "text/html,application/xhtml+xml",
        "Accept-Language": "ko-KR,ko;q=0.9",
        "Cache-Control": "no-cache",
    }

    referer: str = ""
    id_patterns: list[re.Pattern] = []
    lyrics_selectors: list[str] = []

    @abstractmethod
    def search_url(self, artist: str, title: str) -> str:
        """Search page URL for one artist/title variant."""

    @abstractmethod
    def detail_url(self, song_id: str) -> str:
        """Detail page URL for a song id found on the search page."""

    def find_song_id(self, html: str) -> str | None:
        for pattern in self.id_patterns:
            match = pattern.search(html)
            if match:
                return match.group(1)
        return None

    def extract_lyrics(self, html: str) -> str | None:
        return first_matching_text(parse_html(html), self.lyrics_selectors, MIN_LYRICS_LENGTH)

    def variants(self, query: Query) -> list[tuple[str, str]]:
        pairs = title_variants(query.artist, query.title)
        squashed = query.title.replace(" ", "")
        if squashed != query.title:
            pairs.append((query.artist, squashed))
        return pairs[:MAX_VARIANTS]

    async def _search_variant(self, artist: str, title: str) -> LyricsCandidate | None:
        search_url = self.search_url(artist, title)
        search_page = await self._get(search_url, headers={"Referer": self.referer})
        song_id = self.find_song_id(search_page.text)
        if song_id is None:
            logger.debug(f"{self.id}: no song id for '{artist} {title}'")
            return None

        detail_url = self.detail_url(song_id)
        detail_page = await self._get(detail_url, headers={"Referer": search_url})
        text = self.extract_lyrics(detail_page.text)
        if text is None:
            logger.debug(f"{self.id}: no lyrics element on {detail_url}")
            return None

        return LyricsCandidate(
            text=text,
            source=self.id,
            confidence=KOREAN_SITE_CONFIDENCE,
            language=LanguageTag.KO,
            url=detail_url,
            artist=artist,
            title=title,
        )

    async def _search(self, query: Query) -> LyricsCandidate | None:
        for artist, title in self.variants(query):
            candidate = await self._search_variant(artist, title)
            if candidate is not None:
                return candidate
        return None


class MelonProvider(KoreanSiteProvider):
    id = "melon"
    referer = "https://www.melon.com/"
    id_patterns = [re.compile(r"goSongDetail\('(\d+)'\)"), re.compile(r"songId=(\d+)")]
    lyrics_selectors = ["div#d_video_summary", "div.lyric", "div[class*=lyric]"]

    def search_url(self, artist: str, title: str) -> str:
        return (
            "https://www.melon.com/search/total/index.htm"
            f"?q={quote(f'{artist} {title}')}&section=&linkOrText=T&ipath=srch_form"
        )

    def detail_url(self, song_id: str) -> str:
        return f"https://www.melon.com/song/detail.htm?songId={song_id}"


class BugsProvider(KoreanSiteProvider):
    id = "bugs"
    referer = "https://music.bugs.co.kr/"
    id_patterns = [re.compile(r"track/(\d+)")]
    lyrics_selectors = [
        "div.lyricsContainer xmp",
        "div[class*=lyricsContainer]",
        "xmp",
        "div[class*=lyricsText]",
        "section.sectionPadding[class*=lyrics]",
        "p[class*=lyrics]",
    ]

    def search_url(self, artist: str, title: str) -> str:
        return f"https://music.bugs.co.kr/search/integrated?q={quote(f'{artist} {title}')}"

    def detail_url(self, song_id: str) -> str:
        return f"https://music.bugs.co.kr/track/{song_id}"


class GenieProvider(KoreanSiteProvider):
    id = "genie"
    referer = "https://www.genie.co.kr/"
    id_patterns = [
        re.compile(r"songInfo\('?(\d+)'?\)"),
        re.compile(r"detail/songInfo\?xgnm=(\d+)"),
        re.compile(r"data-song-id=[\"'](\d+)[\"']", re.IGNORECASE),
    ]
    lyrics_selectors = ["pre#pLyrics", "div#pLyrics", "div[class*=lyrics]"]

    def search_url(self, artist: str, title: str) -> str:
        return f"https://www.genie.co.kr/search/searchMain?query={quote(f'{artist} {title}')}"

    def detail_url(self, song_id: str) -> str:
        return f"https://www.genie.co.kr/detail/songInfo?xgnm={song_id}"
