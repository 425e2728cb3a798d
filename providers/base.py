"""Provider contract: one query in, zero or one lyrics candidate out.

Every provider implements ``_search``. The public ``search``/``lookup``
methods wrap it so that nothing but cancellation escapes: failures become
``None`` plus a short outcome tag that is logged, sent to Sentry as a
breadcrumb, and reported to the dispatcher for telemetry.
"""

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from collections.abc import Iterable
from dataclasses import dataclass

import httpx

from core.exceptions import ProviderFailure
from core.logging import log_fields
from core.sentry import add_provider_breadcrumb
from lyrics.models import LanguageTag, LyricsCandidate, Query
from providers.ratelimit import get_rate_limiter, get_semaphore, host_of

logger = logging.getLogger(__name__)

BROWSER_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0 Safari/537.36"
)


@dataclass
class ProviderResult:
    """What one provider call produced, for the dispatcher."""

    provider: str
    candidate: LyricsCandidate | None
    outcome: str
    elapsed_ms: int


class Provider(ABC):
    """A pluggable source of lyrics.

    Class attributes declare routing and scoring metadata:
    ``languages`` (None means every language), ``confidence_ceiling``
    (candidates are clamped to it), ``authoritative`` (a strong result may end
    dispatch early), and ``timeout`` (None means the dispatcher's default).
    """

    id: str = "provider"
    languages: frozenset[LanguageTag] | None = None
    confidence_ceiling: float = 1.0
    authoritative: bool = False
    timeout: float | None = None

    def __repr__(self) -> str:
        return f"{type(self).__name__}(id={self.id!r})"

    def supports(self, language: LanguageTag) -> bool:
        return self.languages is None or language in self.languages

    @abstractmethod
    async def _search(self, query: Query) -> LyricsCandidate | None:
        """Provider-specific lookup. May raise; ``lookup`` converts failures."""

    async def lookup(self, query: Query) -> ProviderResult:
        """Run the provider and report the outcome. Never raises (except on cancellation)."""
        start = time.perf_counter()
        candidate = None
        try:
            candidate = await self._search(query)
            outcome = "found" if candidate else "empty"
        except ProviderFailure as e:
            outcome = e.reason
        except httpx.TimeoutException:
            outcome = "timeout"
        except httpx.HTTPError as e:
            outcome = f"http_error:{type(e).__name__}"
        except Exception as e:
            logger.exception(f"Provider {self.id} raised unexpectedly")
            outcome = f"error:{type(e).__name__}"

        elapsed_ms = int((time.perf_counter() - start) * 1000)

        if candidate is not None and not candidate.text.strip():
            candidate, outcome = None, "empty"

        if candidate is not None:
            candidate = candidate.model_copy(
                update={
                    "source": self.id,
                    "confidence": min(candidate.confidence, self.confidence_ceiling),
                    "search_time_ms": elapsed_ms,
                    "artist": candidate.artist or query.artist,
                    "title": candidate.title or query.title,
                }
            )
            logger.info(
                log_fields(
                    provider=self.id,
                    outcome=outcome,
                    chars=candidate.length,
                    confidence=candidate.confidence,
                    ms=elapsed_ms,
                )
            )
        else:
            level = logging.DEBUG if outcome == "empty" else logging.WARNING
            logger.log(level, log_fields(provider=self.id, outcome=outcome, ms=elapsed_ms))

        add_provider_breadcrumb(
            self.id,
            outcome,
            {"artist": query.artist, "title": query.title, "ms": elapsed_ms},
            level="info" if outcome in ("found", "empty") else "warning",
        )
        return ProviderResult(
            provider=self.id, candidate=candidate, outcome=outcome, elapsed_ms=elapsed_ms
        )

    async def search(self, query: Query) -> LyricsCandidate | None:
        """Find lyrics for the query, or None. Never raises."""
        return (await self.lookup(query)).candidate

    async def close(self) -> None:
        """Release any held resources."""
        return None


class HttpProvider(Provider):
    """Provider backed by an httpx client with 429 retry and optional rate limiting."""

    default_headers: dict[str, str] = {"User-Agent": BROWSER_USER_AGENT}
    http_timeout: float = 10.0
    max_retries: int = 1
    rate_limited: bool = False

    def __init__(self):
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                headers=self.default_headers,
                timeout=self.http_timeout,
                follow_redirects=True,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def _send(
        self,
        url: str,
        params: dict | None,
        headers: dict | None,
    ) -> httpx.Response:
        client = await self._get_client()
        for attempt in range(self.max_retries + 1):
            response = await client.get(url, params=params, headers=headers)
            if response.status_code == 429 and attempt < self.max_retries:
                # Exponential backoff: 1s, 2s, 4s...
                delay = 2**attempt
                logger.warning(f"{self.id} rate limit hit, retrying in {delay}s")
                await asyncio.sleep(delay)
                continue
            return response
        return response

    async def _get(
        self,
        url: str,
        params: dict | None = None,
        headers: dict | None = None,
    ) -> httpx.Response:
        """GET a URL, raising ProviderFailure on any non-2xx status."""
        if self.rate_limited:
            async with get_semaphore():
                await get_rate_limiter(host_of(url)).acquire()
                response = await self._send(url, params, headers)
        else:
            response = await self._send(url, params, headers)

        if not response.is_success:
            raise ProviderFailure(self.id, f"http_{response.status_code}")
        return response


def languages(*tags: LanguageTag) -> frozenset[LanguageTag]:
    return frozenset(tags)


def all_languages_except(excluded: Iterable[LanguageTag]) -> frozenset[LanguageTag]:
    return frozenset(tag for tag in LanguageTag if tag not in set(excluded))
