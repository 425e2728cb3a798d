"""Main application entry point for the Lyrics Resolver service."""

import logging
from contextlib import asynccontextmanager
from pathlib import Path

from dotenv import load_dotenv
from fastapi import FastAPI, Request

from config.settings import get_settings
from core.dependencies import (
    close_lyrics_store,
    close_resolver,
    flush_posthog,
    get_llm_backends,
    get_lyrics_store,
    shutdown_posthog,
)
from core.logging import setup_logging
from core.sentry import init_sentry
from lyrics.router import router as lyrics_router
from routers.admin import router as admin_router
from routers.health import router as health_router

load_dotenv()

settings = get_settings()

init_sentry(
    dsn=settings.sentry_dsn,
    environment="development" if settings.log_level == "DEBUG" else "production",
    release=settings.app_version,
)

log_file = None
if settings.log_level != "DEBUG":
    log_dir = Path("/app/logs") if Path("/app/logs").exists() else Path("logs")
    log_file = log_dir / "lyrics-resolver.log"
setup_logging(level=settings.log_level, log_file=log_file)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Open the lyrics store and LLM backends up front, release everything on shutdown.

    Resolution still works when the store cannot be opened; it just runs
    without the cache.
    """
    logger.info(f"Starting {settings.app_name} v{settings.app_version} (log level {settings.log_level})")

    store = await get_lyrics_store(settings)
    if store is None:
        logger.warning("Lyrics store unavailable, resolving without cache")
    else:
        logger.info(f"Lyrics store: {'PostgreSQL' if settings.database_url else 'SQLite'}")
    backends = get_llm_backends(settings)
    logger.info(f"LLM backends: {', '.join(backends) or 'none'}")

    yield

    logger.info("Shutting down application")
    shutdown_posthog()
    await close_resolver()
    await close_lyrics_store()
    logger.info("All services shut down")


app = FastAPI(
    title=settings.app_name,
    description="Lyrics resolution across lyrics databases, scrapers and LLM backends",
    version=settings.app_version,
    lifespan=lifespan,
)


@app.middleware("http")
async def posthog_flush_middleware(request: Request, call_next):
    """Flush PostHog events after each request to prevent data loss."""
    response = await call_next(request)
    flush_posthog()
    return response


app.include_router(health_router, tags=["health"])
app.include_router(lyrics_router, prefix="/api/v1", tags=["lyrics"])
app.include_router(admin_router, prefix="/admin", tags=["admin"])

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        app,
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )
