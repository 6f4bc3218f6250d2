"""LINE webhook event handling."""

from .context import EventContext, safe_reply
from .dispatch import POSTBACK_HANDLERS, dispatch_event
from .events import WebhookEvent, WebhookPayload

__all__ = [
    "EventContext",
    "POSTBACK_HANDLERS",
    "WebhookEvent",
    "WebhookPayload",
    "dispatch_event",
    "safe_reply",
]
