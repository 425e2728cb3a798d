"""Lyrics API router."""

import logging

from fastapi import APIRouter, Depends, HTTPException, Query
from posthog import Posthog

from cache.memory_cache import set_skip_cache
from core.dependencies import get_posthog_client, get_resolver
from core.exceptions import ParseError
from core.sentry import capture_exception
from core.telemetry import RequestTelemetry, get_cache_stats, init_cache_stats
from lyrics.language import classify
from lyrics.models import LanguageTag, NormalizedQuery, ResolveRequest, ResolveResponse
from lyrics.resolver import LyricsResolver

logger = logging.getLogger(__name__)

router = APIRouter(tags=["lyrics"])


@router.post(
    "/lyrics/resolve",
    response_model=ResolveResponse,
    summary="Resolve an artist/title query into the best lyrics transcript",
    description="""
    Resolves lyrics from a set of unreliable sources and converges on one answer.

    This endpoint:
    1. Normalizes free text or separate fields into an artist/title pair
    2. Serves a fresh cached result when one exists
    3. Detects the query language and picks the matching providers
    4. Queries every provider concurrently under a global deadline
    5. Ranks the candidates and optionally cross-verifies them with LLMs
    6. Caches results above the confidence threshold

    "Not found" is a normal outcome and returns 200 with success=false.
    """,
    responses={
        200: {"description": "Resolution finished (check success)"},
        400: {"description": "Empty request"},
        500: {"description": "Internal server error"},
    },
)
async def resolve_lyrics(
    request: ResolveRequest,
    resolver: LyricsResolver = Depends(get_resolver),
    posthog_client: Posthog | None = Depends(get_posthog_client),
    skip_cache: bool = False,
):
    """Process a resolve request."""
    if request.is_empty:
        raise HTTPException(status_code=400, detail="Provide artist and title, or rawText")

    # Initialize telemetry
    init_cache_stats()
    if skip_cache:
        set_skip_cache(True)
    telemetry = RequestTelemetry()

    try:
        response = await resolver.resolve(request, telemetry)

        # Attach cache stats
        response.cache_stats = get_cache_stats()

        # Send telemetry
        if posthog_client:
            telemetry.send_to_posthog(
                posthog_client,
                {
                    "success": response.success,
                    "language": str(response.language),
                    "source": response.result.source if response.result else None,
                    "cached": response.cached,
                    "consolidated": response.consolidated,
                    "parse_source": str(response.parse_source) if response.parse_source else None,
                },
            )

        return response

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Lyrics resolution failed: {e}")
        capture_exception(e, {"artist": request.artist, "title": request.title})
        raise HTTPException(status_code=500, detail="Internal server error") from e


@router.get(
    "/lyrics/parse",
    response_model=NormalizedQuery,
    summary="Parse a free-text query into artist and title",
)
async def parse_query(
    q: str = Query(..., min_length=1, description="Free-text query, e.g. 'IU - Good Day'"),
    resolver: LyricsResolver = Depends(get_resolver),
):
    """Run only the query normalizer."""
    try:
        return await resolver.normalizer.normalize(raw_text=q)
    except ParseError as e:
        raise HTTPException(status_code=400, detail=e.message) from e


@router.get(
    "/lyrics/providers",
    summary="Show the detected language and the providers a query would use",
)
async def list_providers(
    artist: str = Query(..., min_length=1),
    title: str = Query(..., min_length=1),
    resolver: LyricsResolver = Depends(get_resolver),
):
    """Describe routing for an artist/title pair without dispatching it."""
    language: LanguageTag = classify(f"{artist} {title}")
    providers = resolver.dispatcher.select(language)
    return {
        "language": language,
        "providers": [
            {
                "id": provider.id,
                "authoritative": provider.authoritative,
                "confidence_ceiling": provider.confidence_ceiling,
                "timeout": provider.timeout or resolver.dispatcher.policy.default_timeout,
            }
            for provider in providers
        ],
    }
