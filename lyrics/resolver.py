"""Lyrics resolver: the full pipeline behind POST /lyrics/resolve.

normalize -> cache lookup -> classify -> dispatch providers -> rank ->
optional consolidation -> cache write-back -> response.

Only "not found" reaches the caller, as a ``success=False`` payload.
Parse problems, provider failures, consolidation failures and store
outages are all absorbed along the way.
"""

import logging

from cache.gateway import CacheGateway
from cache.store import CacheEntry
from core.exceptions import NoResultError, ParseError
from core.telemetry import RequestTelemetry
from lyrics.consolidator import Consolidator
from lyrics.dispatcher import Dispatcher
from lyrics.language import classify
from lyrics.models import (
    LanguageTag,
    LyricsCandidate,
    NormalizedQuery,
    Query,
    RankedResult,
    ResolveRequest,
    ResolveResponse,
)
from lyrics.normalizer import QueryNormalizer
from providers.database import DATABASE_SOURCE

logger = logging.getLogger(__name__)

NOT_FOUND_MESSAGE = "Lyrics not found"
PARSE_FAILED_MESSAGE = "Could not parse query"


def candidate_from_entry(entry: CacheEntry, language: LanguageTag) -> LyricsCandidate:
    return LyricsCandidate(
        text=entry.text,
        synced_text=entry.synced_text,
        source=entry.source,
        confidence=entry.confidence,
        has_timestamps=entry.has_timestamps,
        language=language,
        artist=entry.artist,
        title=entry.title,
    )


def entry_from_candidate(key: str, query: Query, candidate: LyricsCandidate, created_at) -> CacheEntry:
    return CacheEntry(
        key=key,
        artist=query.artist,
        title=query.title,
        text=candidate.text,
        synced_text=candidate.synced_text,
        has_timestamps=candidate.has_timestamps,
        confidence=candidate.confidence,
        source=candidate.source,
        created_at=created_at,
    )


class LyricsResolver:
    """Wires the pipeline stages together for one request at a time."""

    def __init__(
        self,
        normalizer: QueryNormalizer,
        dispatcher: Dispatcher,
        consolidator: Consolidator,
        gateway: CacheGateway,
        consolidate_when_synced: bool = False,
    ):
        self.normalizer = normalizer
        self.dispatcher = dispatcher
        self.consolidator = consolidator
        self.gateway = gateway
        self.consolidate_when_synced = consolidate_when_synced

    def should_consolidate(self, ranked: RankedResult) -> bool:
        if not self.consolidator.enabled:
            return False
        # A time-synced best result would lose its timing if replaced by merged text.
        return self.consolidate_when_synced or not ranked.best.has_timestamps

    async def _dispatch(
        self, query: Query, language: LanguageTag, telemetry: RequestTelemetry
    ) -> RankedResult:
        report = await self.dispatcher.dispatch(query, language, telemetry)
        if not report.found:
            raise NoResultError(
                f"No lyrics found for {query.artist} - {query.title}",
                {"outcomes": report.outcomes},
            )
        return report.ranked

    async def resolve(
        self,
        request: ResolveRequest,
        telemetry: RequestTelemetry | None = None,
    ) -> ResolveResponse:
        """Resolve a request into the best transcript plus ranked alternatives."""
        telemetry = telemetry or RequestTelemetry()

        try:
            with telemetry.track_step("normalize"):
                parsed: NormalizedQuery = await self.normalizer.normalize(
                    raw_text=request.raw_text, artist=request.artist, title=request.title
                )
        except ParseError as e:
            logger.info(f"Rejected query: {e.message}")
            return ResolveResponse(success=False, error=PARSE_FAILED_MESSAGE)

        query = parsed.to_query(request.raw_text)
        language = classify(f"{query.artist} {query.title}")
        key = self.gateway.key_for(query.artist, query.title)
        base = {
            "language": language,
            "artist": query.artist,
            "title": query.title,
            "parse_source": parsed.source,
        }

        # Step 1: Serve a fresh cached entry without touching any provider
        with telemetry.track_step("cache_lookup"):
            entry = await self.gateway.get(key)
        if entry is not None:
            logger.info(f"Cache hit for {key} ({entry.source}, {entry.confidence:.2f})")
            return ResolveResponse(
                success=True,
                result=candidate_from_entry(entry, language),
                cached=True,
                **base,
            )

        # Step 2: Fan out to the providers for this language
        try:
            with telemetry.track_step("dispatch"):
                ranked = await self._dispatch(query, language, telemetry)
        except NoResultError as e:
            logger.info(f"{e.message} ({e.details.get('outcomes')})")
            return ResolveResponse(success=False, error=NOT_FOUND_MESSAGE, **base)

        best = ranked.best
        alternatives = ranked.alternatives
        consolidated = False

        # Step 3: Cross-verify several full transcripts, keeping the top one on failure
        if self.should_consolidate(ranked) and self.consolidator.select(ranked) is not None:
            with telemetry.track_step("consolidate"):
                for _ in self.consolidator.backends:
                    telemetry.record_llm_call()
                merged = await self.consolidator.consolidate_ranked(
                    ranked, query.artist, query.title
                )
            if merged is not None:
                best, alternatives, consolidated = merged, ranked.candidates, True

        if best.language is None:
            best = best.model_copy(update={"language": language})

        # Step 4: Write back; the gateway applies the threshold and never-downgrade rules.
        # A row read straight from the store keeps its original source and timestamp.
        if best.source == DATABASE_SOURCE:
            logger.debug(f"Best result for {key} came from the store, not writing it back")
        else:
            with telemetry.track_step("cache_write"):
                await self.gateway.put(entry_from_candidate(key, query, best, self.gateway.clock()))

        return ResolveResponse(
            success=True,
            result=best,
            alternatives=alternatives,
            consolidated=consolidated,
            **base,
        )
