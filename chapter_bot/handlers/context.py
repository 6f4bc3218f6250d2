"""Per-event context shared by the webhook handlers."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Sequence

import structlog

from chapter_bot.config import AppSettings
from chapter_bot.conversation import ConversationStore
from chapter_bot.line_client import LineApiError
from chapter_bot.templates import text_message

logger = structlog.get_logger(__name__)


@dataclass
class EventContext:
    """Everything a handler needs besides the event itself."""

    tenant_id: str
    client: Any
    conversations: ConversationStore
    settings: AppSettings
    trace_id: str | None = None

    def logger(self, **values: Any):
        bound = logger.bind(tenant_id=self.tenant_id, **values)
        if self.trace_id:
            bound = bound.bind(trace_id=self.trace_id)
        return bound


def safe_reply(
    ctx: EventContext,
    reply_token: str | None,
    messages: str | Mapping[str, Any] | Sequence[Mapping[str, Any]],
) -> bool:
    """Reply to an event, logging instead of raising when LINE refuses it."""

    if not reply_token:
        ctx.logger().warning("reply_token_missing")
        return False

    payload = text_message(messages) if isinstance(messages, str) else messages
    try:
        ctx.client.reply(reply_token, payload)
    except LineApiError as exc:
        ctx.logger().warning("line_reply_failed", status_code=exc.status_code, error=str(exc))
        return False
    return True
