"""Signature and bearer-token checks for inbound HTTP calls."""

from __future__ import annotations

import base64
import hmac
from hashlib import sha256

LINE_SIGNATURE_HEADER = "X-Line-Signature"
BEARER_PREFIX = "Bearer "


def compute_signature(channel_secret: str, body: str | bytes) -> str:
    """Return the LINE-compatible signature (base64 HMAC-SHA256) for *body*."""

    raw = body.encode("utf-8") if isinstance(body, str) else body
    digest = hmac.new(channel_secret.encode("utf-8"), raw, sha256).digest()
    return base64.b64encode(digest).decode("ascii")


def is_valid_line_signature(*, channel_secret: str, body: str | bytes, signature: str) -> bool:
    """Validate the webhook signature sent by the LINE platform."""

    if not signature or not channel_secret:
        return False

    expected = compute_signature(channel_secret, body)
    return hmac.compare_digest(expected, signature)


def is_valid_bearer(authorization: str | None, secret: str) -> bool:
    """Return True when the Authorization header carries *secret* as a bearer token."""

    if not authorization or not secret or not authorization.startswith(BEARER_PREFIX):
        return False

    token = authorization[len(BEARER_PREFIX):]
    return hmac.compare_digest(token.encode("utf-8"), secret.encode("utf-8"))
