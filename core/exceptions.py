"""Custom exception classes for the lyrics resolution service."""


class LyricsServiceError(Exception):
    """Base exception for all lyrics service errors."""

    def __init__(self, message: str, details: dict | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


class ParseError(LyricsServiceError):
    """Raised when a query cannot be normalized into artist and title."""

    pass


class ProviderFailure(LyricsServiceError):
    """Raised inside a provider or LLM backend when a call fails.

    Never escapes a provider's public ``search``; it is converted to ``None``
    and its ``reason`` is logged.
    """

    def __init__(self, provider: str, reason: str, details: dict | None = None):
        self.provider = provider
        self.reason = reason
        super().__init__(f"{provider}: {reason}", details)


class NoResultError(LyricsServiceError):
    """Raised when every dispatched provider returned nothing."""

    pass


class ConsolidationFailure(LyricsServiceError):
    """Raised when no consolidation backend produced usable text."""

    pass


class CacheUnavailableError(LyricsServiceError):
    """Raised when the lyrics store is unreachable."""

    pass


class ServiceInitializationError(LyricsServiceError):
    """Raised when a service fails to initialize."""

    pass


class ConfigurationError(LyricsServiceError):
    """Raised when there's a configuration error."""

    pass
