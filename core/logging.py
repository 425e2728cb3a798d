"""Centralized logging configuration."""

import logging
import sys
from pathlib import Path

DEFAULT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# httpx and httpcore log every provider request at INFO; a single resolution
# fans out to a dozen of them.
NOISY_LOGGERS = ("httpx", "httpcore")


def setup_logging(
    level: str = "INFO",
    log_file: Path | None = None,
    format_string: str | None = None,
    quiet_http: bool = True,
) -> None:
    """Configure application-wide logging.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional path to log file. If provided, logs to both file and console
        format_string: Custom log format string. Uses default if not provided
        quiet_http: Raise HTTP client loggers to WARNING unless level is DEBUG
    """
    level = level.upper()
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file))

    logging.basicConfig(
        level=getattr(logging, level),
        format=format_string or DEFAULT_FORMAT,
        handlers=handlers,
        force=True,
    )

    if quiet_http and level != "DEBUG":
        for name in NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)

    logging.getLogger(__name__).info(
        f"Logging configured at {level}" + (f", file {log_file}" if log_file else "")
    )


def log_fields(**fields) -> str:
    """Render ``key=value`` pairs for provider and dispatch log lines.

    Floats are shown with two decimals and None values are left out, so
    ``log_fields(provider="lrclib", outcome="found", confidence=0.95)`` gives
    ``provider=lrclib outcome=found confidence=0.95``.
    """
    parts = []
    for key, value in fields.items():
        if value is None:
            continue
        if isinstance(value, float):
            value = f"{value:.2f}"
        parts.append(f"{key}={value}")
    return " ".join(parts)
