"""Route webhook events to the matching handler."""

from __future__ import annotations

from typing import Callable, Dict

from chapter_bot.actions import (
    APPLY_MEMBER_ACTION,
    APPROVE_MEMBER_ACTION,
    REJECT_MEMBER_ACTION,
    RSVP_CONFIRM_ACTION,
    RSVP_LEAVE_ACTION,
    RSVP_SUBSTITUTE_ACTION,
    SKIP_APPLY_ACTION,
    PostbackAction,
    parse_postback_data,
)
from chapter_bot.conversation import STEP_AWAITING_LEAVE_REASON

from . import membership, rsvp
from .context import EventContext
from .events import WebhookEvent


def _rsvp_confirm(event: WebhookEvent, ctx: EventContext, action: PostbackAction) -> None:
    rsvp.handle_rsvp_confirm(event, ctx, meeting_id=action.require("meeting_id"))


def _rsvp_substitute(event: WebhookEvent, ctx: EventContext, action: PostbackAction) -> None:
    rsvp.handle_rsvp_substitute(event, ctx, meeting_id=action.require("meeting_id"))


def _rsvp_leave(event: WebhookEvent, ctx: EventContext, action: PostbackAction) -> None:
    rsvp.handle_rsvp_leave(event, ctx, meeting_id=action.require("meeting_id"))


def _apply_member(event: WebhookEvent, ctx: EventContext, action: PostbackAction) -> None:
    membership.handle_apply_member(event, ctx, participant_id=action.require("participant_id"))


def _skip_apply(event: WebhookEvent, ctx: EventContext, action: PostbackAction) -> None:
    membership.handle_skip_apply(event, ctx)


def _approve_member(event: WebhookEvent, ctx: EventContext, action: PostbackAction) -> None:
    membership.handle_approve_member(
        event,
        ctx,
        participant_id=action.require("participant_id"),
        tenant_id=action.require("tenant_id"),
    )


def _reject_member(event: WebhookEvent, ctx: EventContext, action: PostbackAction) -> None:
    membership.handle_reject_member(
        event,
        ctx,
        participant_id=action.require("participant_id"),
        tenant_id=action.require("tenant_id"),
    )


POSTBACK_HANDLERS: Dict[str, Callable[[WebhookEvent, EventContext, PostbackAction], None]] = {
    RSVP_CONFIRM_ACTION: _rsvp_confirm,
    RSVP_SUBSTITUTE_ACTION: _rsvp_substitute,
    RSVP_LEAVE_ACTION: _rsvp_leave,
    APPLY_MEMBER_ACTION: _apply_member,
    SKIP_APPLY_ACTION: _skip_apply,
    APPROVE_MEMBER_ACTION: _approve_member,
    REJECT_MEMBER_ACTION: _reject_member,
}


def _dispatch_postback(event: WebhookEvent, ctx: EventContext) -> bool:
    log = ctx.logger(line_user_id=event.user_id)
    try:
        action = parse_postback_data(event.postback.data if event.postback else None)
    except ValueError:
        log.warning("postback_invalid")
        return False

    handler = POSTBACK_HANDLERS.get(action.action)
    if handler is None:
        log.info("postback_unhandled", action=action.action)
        return False

    try:
        handler(event, ctx, action)
    except ValueError as exc:
        log.warning("postback_missing_params", action=action.action, error=str(exc))
        return False
    return True


def _dispatch_text(event: WebhookEvent, ctx: EventContext) -> bool:
    state = ctx.conversations.get(ctx.tenant_id, event.user_id)
    if state is not None and state.step == STEP_AWAITING_LEAVE_REASON:
        rsvp.handle_leave_reason(event, ctx, state)
        return True

    ctx.logger(line_user_id=event.user_id).info("text_unhandled")
    return False


def dispatch_event(event: WebhookEvent, ctx: EventContext) -> bool:
    """Handle one webhook event; returns True when a handler acted on it."""

    if not event.user_id:
        ctx.logger().info("event_without_user", event_type=event.type)
        return False

    if event.type == "postback":
        return _dispatch_postback(event, ctx)

    if event.type == "message" and event.text is not None:
        return _dispatch_text(event, ctx)

    ctx.logger(line_user_id=event.user_id).info("event_ignored", event_type=event.type)
    return False
