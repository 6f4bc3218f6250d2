"""Signed, time-scoped tokens for the substitute registration deep link."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import jwt
import structlog

TOKEN_ALGORITHM = "HS256"
SUBSTITUTE_TOKEN_TYPE = "substitute"

logger = structlog.get_logger(__name__)


def generate_substitute_token(
    participant_id: str,
    tenant_id: str,
    meeting_id: str,
    *,
    secret: str,
    ttl: timedelta,
    now: datetime | None = None,
) -> str:
    """Create a signed token naming who is sending a substitute to which meeting."""

    issued_at = now or datetime.now(UTC)
    payload = {
        "participant_id": participant_id,
        "tenant_id": tenant_id,
        "meeting_id": meeting_id,
        "type": SUBSTITUTE_TOKEN_TYPE,
        "iat": issued_at,
        "exp": issued_at + ttl,
    }
    return jwt.encode(payload, secret, algorithm=TOKEN_ALGORITHM)


def verify_substitute_token(token: str, *, secret: str) -> dict | None:
    """Decode *token*, returning its payload or None when invalid or expired."""

    try:
        decoded = jwt.decode(token, secret, algorithms=[TOKEN_ALGORITHM])
    except jwt.InvalidTokenError as exc:
        logger.info("substitute_token_rejected", error=str(exc))
        return None

    if decoded.get("type") != SUBSTITUTE_TOKEN_TYPE:
        logger.info("substitute_token_rejected", error="wrong token type")
        return None

    return decoded
