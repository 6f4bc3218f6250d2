"""RSVP postbacks and the multi-turn leave-reason flow."""

from __future__ import annotations

from datetime import timedelta

from sqlalchemy.exc import SQLAlchemyError

from chapter_bot import approvals, roster
from chapter_bot.actions import RSVP_LEAVE_ACTION
from chapter_bot.conversation import STEP_AWAITING_LEAVE_REASON, ConversationState
from chapter_bot.db import session_scope
from chapter_bot.templates import (
    MSG_GENERIC_ERROR,
    MSG_MEETING_NOT_FOUND,
    MSG_PARTICIPANT_NOT_FOUND,
    build_leave_notice_for_admins,
    build_leave_reason_prompt,
    build_rsvp_confirmation,
    build_substitute_link,
)
from chapter_bot.tokens import generate_substitute_token

from .context import EventContext, safe_reply
from .events import WebhookEvent


def _record_rsvp(
    event: WebhookEvent,
    ctx: EventContext,
    *,
    meeting_id: str,
    status: str,
    leave_reason: str | None = None,
):
    """Validate caller and meeting, then upsert the RSVP.

    Returns ``(participant, meeting)`` or ``None`` after replying with an
    apology.
    """

    log = ctx.logger(meeting_id=meeting_id, line_user_id=event.user_id, rsvp_status=status)
    try:
        with session_scope() as session:
            participant = roster.find_participant_by_line_user(
                session, tenant_id=ctx.tenant_id, line_user_id=event.user_id or ""
            )
            if participant is None:
                log.warning("rsvp_participant_not_found")
                safe_reply(ctx, event.reply_token, MSG_PARTICIPANT_NOT_FOUND)
                return None

            meeting = roster.get_meeting(session, meeting_id=meeting_id, tenant_id=ctx.tenant_id)
            if meeting is None:
                log.warning("rsvp_meeting_not_found")
                safe_reply(ctx, event.reply_token, MSG_MEETING_NOT_FOUND)
                return None

            roster.upsert_rsvp(
                session,
                tenant_id=ctx.tenant_id,
                meeting_id=meeting_id,
                participant_id=participant.participant_id,
                status=status,
                leave_reason=leave_reason,
            )
    except SQLAlchemyError:
        log.exception("rsvp_write_failed")
        safe_reply(ctx, event.reply_token, MSG_GENERIC_ERROR)
        return None

    log.info("rsvp_recorded", participant_id=participant.participant_id)
    return participant, meeting


def handle_rsvp_confirm(event: WebhookEvent, ctx: EventContext, *, meeting_id: str) -> None:
    recorded = _record_rsvp(event, ctx, meeting_id=meeting_id, status="confirmed")
    if recorded is None:
        return

    participant, meeting = recorded
    safe_reply(
        ctx,
        event.reply_token,
        build_rsvp_confirmation(
            outcome="confirmed",
            meeting_date=meeting.meeting_date,
            member_name=participant.display_name,
            theme=meeting.theme,
        ),
    )


def handle_rsvp_substitute(event: WebhookEvent, ctx: EventContext, *, meeting_id: str) -> None:
    """Record a substitute and hand back a signed registration link."""

    recorded = _record_rsvp(event, ctx, meeting_id=meeting_id, status="substitute")
    if recorded is None:
        return

    participant, meeting = recorded
    token = generate_substitute_token(
        participant.participant_id,
        ctx.tenant_id,
        meeting.meeting_id,
        secret=ctx.settings.profile_token_secret,
        ttl=timedelta(hours=ctx.settings.substitute_token_ttl_hours),
    )
    substitute_url = f"{ctx.settings.app_base_url}/substitute/{token}"
    safe_reply(
        ctx,
        event.reply_token,
        [
            build_rsvp_confirmation(
                outcome="substitute",
                meeting_date=meeting.meeting_date,
                member_name=participant.display_name,
                theme=meeting.theme,
            ),
            build_substitute_link(substitute_url),
        ],
    )


def _reply_leave_prompt(event: WebhookEvent, ctx: EventContext) -> None:
    timeout_minutes = max(1, ctx.settings.conversation_timeout_seconds // 60)
    safe_reply(ctx, event.reply_token, build_leave_reason_prompt(timeout_minutes))


def handle_rsvp_leave(event: WebhookEvent, ctx: EventContext, *, meeting_id: str) -> None:
    """Open the leave-reason conversation; nothing is recorded yet."""

    log = ctx.logger(meeting_id=meeting_id, line_user_id=event.user_id)
    try:
        with session_scope() as session:
            participant = roster.find_participant_by_line_user(
                session, tenant_id=ctx.tenant_id, line_user_id=event.user_id or ""
            )
    except SQLAlchemyError:
        log.exception("rsvp_lookup_failed")
        safe_reply(ctx, event.reply_token, MSG_GENERIC_ERROR)
        return

    if participant is None:
        log.warning("rsvp_participant_not_found")
        safe_reply(ctx, event.reply_token, MSG_PARTICIPANT_NOT_FOUND)
        return

    ctx.conversations.start(
        ctx.tenant_id,
        event.user_id,
        step=STEP_AWAITING_LEAVE_REASON,
        action=RSVP_LEAVE_ACTION,
        payload={"meeting_id": meeting_id, "participant_id": participant.participant_id},
    )
    log.info("leave_reason_requested", participant_id=participant.participant_id)
    _reply_leave_prompt(event, ctx)


def notify_admins_of_leave(tenant_id: str, *, member_name: str, meeting_date, reason: str, client=None) -> None:
    approvals.broadcast_to_admins(
        tenant_id,
        build_leave_notice_for_admins(member_name=member_name, meeting_date=meeting_date, reason=reason),
        client=client,
    )


def handle_leave_reason(event: WebhookEvent, ctx: EventContext, state: ConversationState) -> None:
    """Record the leave with *event*'s text as the reason and tell the admins.

    A blank answer re-sends the prompt and keeps the conversation open. The
    admin notice goes out after the member's reply, on the same client.
    """

    reason = (event.text or "").strip()
    if not reason:
        ctx.logger(line_user_id=event.user_id).info("leave_reason_blank")
        _reply_leave_prompt(event, ctx)
        return

    meeting_id = state.payload.get("meeting_id", "")
    recorded = _record_rsvp(event, ctx, meeting_id=meeting_id, status="leave", leave_reason=reason)
    ctx.conversations.clear(ctx.tenant_id, event.user_id)
    if recorded is None:
        return

    participant, meeting = recorded
    safe_reply(
        ctx,
        event.reply_token,
        build_rsvp_confirmation(
            outcome="leave",
            meeting_date=meeting.meeting_date,
            member_name=participant.display_name,
            theme=meeting.theme,
            leave_reason=reason,
        ),
    )

    notify_admins_of_leave(
        ctx.tenant_id,
        member_name=participant.full_name,
        meeting_date=meeting.meeting_date,
        reason=reason,
        client=ctx.client,
    )
