"""Structlog configuration helpers for structured logging."""

from __future__ import annotations

import logging
from typing import Any, MutableMapping

import structlog

LOG_LEVEL = logging.INFO

REDACTED = "[redacted]"
SENSITIVE_KEYS = frozenset(
    {"access_token", "channel_secret", "authorization", "signature", "reply_token", "token"}
)


def redact_credentials(_: Any, __: str, event_dict: MutableMapping[str, Any]) -> MutableMapping[str, Any]:
    """Mask LINE channel credentials and one-time tokens before rendering."""

    for key in event_dict.keys() & SENSITIVE_KEYS:
        if event_dict[key]:
            event_dict[key] = REDACTED
    return event_dict


def configure_logging() -> None:
    """Configure structlog to emit JSON-formatted logs.

    Thai member names and leave reasons are kept readable in the output.
    """

    timestamper = structlog.processors.TimeStamper(fmt="iso")

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            timestamper,
            redact_credentials,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(ensure_ascii=False),
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(level=LOG_LEVEL)
