"""Admin endpoints for curating the lyrics cache."""

import logging
from datetime import UTC, datetime

from fastapi import APIRouter, Depends, Header, HTTPException
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from cache.gateway import CacheGateway
from cache.store import CacheEntry
from config.settings import Settings, get_settings
from core.dependencies import get_cache_gateway
from core.exceptions import CacheUnavailableError
from lyrics.quality import clean_lyrics, has_timestamps, strip_timestamps

logger = logging.getLogger(__name__)

router = APIRouter(tags=["admin"])

MANUAL_SOURCE = "manual"


class SaveLyricsRequest(BaseModel):
    """User-verified lyrics to store."""

    artist: str = Field(..., min_length=1)
    title: str = Field(..., min_length=1)
    lyrics: str = Field(..., min_length=1)


def _validate_auth(
    settings: Settings,
    authorization: str | None,
) -> None:
    """Validate bearer token against ADMIN_TOKEN setting."""
    if not settings.admin_token:
        raise HTTPException(status_code=403, detail="Admin endpoint disabled (no ADMIN_TOKEN set)")

    if not authorization:
        raise HTTPException(status_code=401, detail="Missing authorization")

    parts = authorization.split(" ", 1)
    if len(parts) != 2 or parts[0].lower() != "bearer" or parts[1] != settings.admin_token:
        raise HTTPException(status_code=403, detail="Invalid token")


@router.post(
    "/lyrics",
    summary="Save user-verified lyrics",
    responses={
        200: {"description": "Saved"},
        401: {"description": "Missing authorization"},
        403: {"description": "Invalid or missing token"},
        503: {"description": "Lyrics store unavailable"},
    },
)
async def save_lyrics(
    body: SaveLyricsRequest,
    settings: Settings = Depends(get_settings),
    gateway: CacheGateway = Depends(get_cache_gateway),
    authorization: str | None = Header(None),
):
    """Store lyrics with full confidence, replacing any cached entry.

    LRC-formatted input keeps its timing as ``synced_text``.
    """
    _validate_auth(settings, authorization)

    raw = clean_lyrics(body.lyrics)
    synced = has_timestamps(raw)
    key = gateway.key_for(body.artist.strip(), body.title.strip())
    entry = CacheEntry(
        key=key,
        artist=body.artist.strip(),
        title=body.title.strip(),
        text=strip_timestamps(raw) if synced else raw,
        synced_text=raw if synced else None,
        has_timestamps=synced,
        confidence=1.0,
        source=MANUAL_SOURCE,
        created_at=datetime.now(UTC),
    )

    if not await gateway.save_verified(entry):
        raise HTTPException(status_code=503, detail="Lyrics store unavailable")

    logger.info(f"Saved verified lyrics for {key} ({len(entry.text)} chars)")
    return JSONResponse(
        content={
            "status": "ok",
            "key": key,
            "has_timestamps": synced,
            "timestamp": entry.created_at.isoformat(),
        }
    )


@router.delete(
    "/lyrics",
    summary="Remove one cached lyrics entry",
    responses={
        200: {"description": "Entry removed (or was absent)"},
        401: {"description": "Missing authorization"},
        403: {"description": "Invalid or missing token"},
        503: {"description": "Lyrics store unavailable"},
    },
)
async def purge_lyrics(
    artist: str,
    title: str,
    settings: Settings = Depends(get_settings),
    gateway: CacheGateway = Depends(get_cache_gateway),
    authorization: str | None = Header(None),
):
    """Purge the cache entry for an artist/title pair."""
    _validate_auth(settings, authorization)

    key = gateway.key_for(artist.strip(), title.strip())
    try:
        deleted = await gateway.purge(key)
    except CacheUnavailableError as e:
        raise HTTPException(status_code=503, detail="Lyrics store unavailable") from e

    logger.info(f"Purged {key} (existed: {deleted})")
    return JSONResponse(content={"status": "ok", "key": key, "deleted": deleted})
