"""Politeness limits for the HTML scraping providers.

Each scraped host gets its own requests-per-minute bucket, so a burst of
Korean queries spends Melon's budget without touching Genius's. A single
semaphore bounds how many scrapes run at once across all hosts.

Primitives are bound to the event loop that created them and are kept per
loop; ``reset_rate_limiting`` drops them between tests.
"""

import asyncio
import logging
from urllib.parse import urlsplit

from aiolimiter import AsyncLimiter

from config.settings import get_settings

logger = logging.getLogger(__name__)

_rate_limiters: dict[tuple[asyncio.AbstractEventLoop, str], AsyncLimiter] = {}
_semaphores: dict[asyncio.AbstractEventLoop, asyncio.Semaphore] = {}


def host_of(url: str) -> str:
    """Bucket name for a URL: its lowercased host."""
    return (urlsplit(url).hostname or "").lower()


def get_rate_limiter(host: str) -> AsyncLimiter:
    """Get or create the requests-per-minute limiter for ``host`` on the running loop."""
    key = (asyncio.get_running_loop(), host)
    limiter = _rate_limiters.get(key)
    if limiter is None:
        per_minute = get_settings().scraper_rate_limit
        limiter = _rate_limiters[key] = AsyncLimiter(per_minute, 60)
        logger.debug(f"Created rate limiter for {host or '<no host>'}: {per_minute} req/min")
    return limiter


def get_semaphore() -> asyncio.Semaphore:
    """Get or create the shared scrape concurrency semaphore for the running loop."""
    loop = asyncio.get_running_loop()
    if loop not in _semaphores:
        _semaphores[loop] = asyncio.Semaphore(get_settings().scraper_max_concurrent)
    return _semaphores[loop]


def reset_rate_limiting() -> None:
    """Reset rate limiting state for testing."""
    _rate_limiters.clear()
    _semaphores.clear()
