"""Structured logging configuration for the chaos rig server.

Logs are JSON lines by default so request and protocol traces can be piped
into other tooling; set LOG_FORMAT=console for coloured human-readable
output while poking at a client by hand.
"""

from __future__ import annotations

import logging
import os
import sys
from typing import Any

import structlog


def configure_logging() -> None:
    """Configure structured logging for the server process.

    Sets up:
    - JSON output (or console rendering when LOG_FORMAT=console)
    - ISO timestamp format
    - Log level filtering (INFO by default, configurable via LOG_LEVEL env var)
    - Exception formatting

    Safe to call more than once; the last call wins.
    """
    log_level = os.environ.get("LOG_LEVEL", "INFO").upper()
    log_format = os.environ.get("LOG_FORMAT", "json").lower()

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level, logging.INFO),
    )

    renderer: Any
    if log_format == "console":
        renderer = structlog.dev.ConsoleRenderer()
    else:
        renderer = structlog.processors.JSONRenderer()

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str | None = None) -> Any:
    """Get a structured logger instance.

    Args:
        name: Logger name (typically __name__ from calling module)

    Example:
        logger = get_logger(__name__)
        logger.info("session_created", session_id="3f2a9c1e")
    """
    return structlog.get_logger(name)


def mask_token(token: str, visible_chars: int = 8) -> str:
    """Mask a token for safe logging.

    Args:
        token: Token string to mask
        visible_chars: Number of characters to show at start/end

    Returns:
        Masked token string (e.g., "eyJhbGci...xyz123ab")
    """
    if len(token) <= visible_chars * 2:
        return "***"
    return f"{token[:visible_chars]}...{token[-visible_chars:]}"
