"""Sentry error tracking integration."""

import logging
from typing import Any

import sentry_sdk
from sentry_sdk.integrations.fastapi import FastApiIntegration

logger = logging.getLogger(__name__)


def init_sentry(
    dsn: str | None,
    environment: str = "production",
    release: str | None = None,
    traces_sample_rate: float = 0.2,
) -> None:
    """Initialize Sentry SDK with FastAPI integration.

    Args:
        dsn: Sentry DSN. If None, Sentry is not initialized.
        environment: Deployment environment (e.g., "production", "development")
        release: Optional release version string
        traces_sample_rate: Fraction of resolutions traced; each one fans out widely
    """
    if not dsn:
        logger.info("Sentry DSN not configured, skipping initialization")
        return

    sentry_sdk.init(
        dsn=dsn,
        environment=environment,
        release=release,
        integrations=[FastApiIntegration()],
        traces_sample_rate=traces_sample_rate,
        sample_rate=1.0,
    )

    logger.info(f"Sentry initialized (environment: {environment})")


def add_provider_breadcrumb(
    provider: str,
    outcome: str,
    data: dict[str, Any] | None = None,
    level: str = "info",
) -> None:
    """Record a provider outcome as a breadcrumb.

    A failed resolution then carries the trail of which providers answered,
    timed out, or were rejected.

    Args:
        provider: Provider id (e.g., "lrclib", "melon", "llm_search:groq")
        outcome: Short outcome tag ("found", "empty", "timeout", "http_503", ...)
        data: Optional dictionary of contextual data
        level: Severity level ("debug", "info", "warning", "error")
    """
    sentry_sdk.add_breadcrumb(
        category="provider",
        message=f"{provider}: {outcome}",
        data=data or {},
        level=level,
    )


def capture_exception(
    error: Exception,
    context: dict[str, Any] | None = None,
) -> None:
    """Capture an exception and send it to Sentry.

    Args:
        error: The exception to capture
        context: Optional query context (artist, title, language) to attach
    """
    if context:
        sentry_sdk.set_context("lyrics_query", context)

    sentry_sdk.capture_exception(error)
