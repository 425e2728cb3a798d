"""Shared test fixtures for pytest."""

import pytest

from cache.gateway import CacheGateway
from tests.factories import FIXED_NOW, InMemoryStore, make_candidate, make_lyrics


@pytest.fixture
def fixed_clock():
    """Clock frozen at FIXED_NOW."""
    return lambda: FIXED_NOW


@pytest.fixture
def memory_store():
    """Empty dict-backed lyrics store."""
    return InMemoryStore()


@pytest.fixture
def gateway(memory_store, fixed_clock):
    """Cache gateway over the in-memory store with a frozen clock and no memory tier."""
    return CacheGateway(memory_store, ttl_seconds=604800, write_threshold=0.7, clock=fixed_clock)


@pytest.fixture
def synced_candidate():
    """LRCLIB-style synced result: 40 lines, confidence 0.95."""
    return make_candidate(
        source="lrclib",
        text=make_lyrics(40),
        synced_text="\n".join(f"[00:{i:02d}.00] line number {i} of the song" for i in range(40)),
        has_timestamps=True,
        confidence=0.95,
    )


@pytest.fixture
def llm_candidate():
    """LLM free-text result: 35 lines, confidence 0.85."""
    return make_candidate(source="llm_search:openai", text=make_lyrics(35), confidence=0.85)
