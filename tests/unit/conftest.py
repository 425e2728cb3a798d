"""Unit test fixtures."""

from contextlib import contextmanager
from unittest.mock import AsyncMock, MagicMock, Mock

import pytest

from cache.memory_cache import clear_all_caches, set_skip_cache
from config.settings import Settings
from providers.ratelimit import reset_rate_limiting


@contextmanager
def override_deps(app, overrides):
    """Set FastAPI dependency overrides and clear them on exit.

    Args:
        app: The FastAPI application.
        overrides: A dict mapping dependency functions to their replacement values.
    """

    def _make_override(val):
        return lambda: val

    for dep_fn, provider in overrides.items():
        app.dependency_overrides[dep_fn] = _make_override(provider)
    try:
        yield app
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def mock_settings(monkeypatch):
    """Settings with safe test defaults (no real keys/DSNs)."""
    for var in (
        "GROQ_API_KEY",
        "OPENAI_API_KEY",
        "ANTHROPIC_API_KEY",
        "PERPLEXITY_API_KEY",
        "GEMINI_API_KEY",
        "DATABASE_URL",
        "SENTRY_DSN",
        "POSTHOG_API_KEY",
        "ADMIN_TOKEN",
    ):
        monkeypatch.setenv(var, "")
    monkeypatch.setenv("ENABLE_TELEMETRY", "false")
    return Settings(
        groq_api_key=None,
        openai_api_key=None,
        anthropic_api_key=None,
        perplexity_api_key=None,
        gemini_api_key=None,
        database_url=None,
        sentry_dsn=None,
        posthog_api_key=None,
        enable_telemetry=False,
        admin_token=None,
        lyrics_db_path="test_lyrics.db",
    )


@pytest.fixture
def mock_asyncpg_pool():
    """AsyncMock mimicking asyncpg.Pool."""
    pool = AsyncMock()
    pool.fetch = AsyncMock(return_value=[])
    pool.fetchrow = AsyncMock(return_value=None)
    pool.fetchval = AsyncMock(return_value=1)
    pool.execute = AsyncMock(return_value="DELETE 0")

    conn = AsyncMock()
    conn.execute = AsyncMock()
    conn.executemany = AsyncMock()

    # acquire() must return an async context manager (not a coroutine).
    acq_ctx = MagicMock()
    acq_ctx.__aenter__ = AsyncMock(return_value=conn)
    acq_ctx.__aexit__ = AsyncMock(return_value=False)
    pool.acquire = MagicMock(return_value=acq_ctx)

    pool._mock_conn = conn  # expose for assertions
    return pool


@pytest.fixture
def mock_posthog_client():
    """Mock PostHog client."""
    client = Mock()
    client.capture = Mock()
    client.flush = Mock()
    client.shutdown = Mock()
    return client


@pytest.fixture(autouse=True)
def reset_caches():
    """Clear all in-memory caches, rate limiting state, and ContextVars between tests."""
    from core.telemetry import _cache_stats_var

    cache_stats_token = _cache_stats_var.set(None)
    set_skip_cache(False)
    yield
    clear_all_caches()
    reset_rate_limiting()
    _cache_stats_var.reset(cache_stats_token)
