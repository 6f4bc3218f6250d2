"""Membership application postbacks for applicants and chapter admins."""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from chapter_bot import approvals, roster
from chapter_bot.db import session_scope
from chapter_bot.models import MEMBER_STATUS, ChapterJoinRequest
from chapter_bot.templates import (
    MSG_ALREADY_PROCESSED,
    MSG_APPLICANT_NOT_FOUND,
    MSG_GENERIC_ERROR,
    MSG_IDENTITY_MISMATCH,
    MSG_NOT_AUTHORIZED,
    MSG_PARTICIPANT_NOT_FOUND,
)

from .context import EventContext, safe_reply
from .events import WebhookEvent

MSG_ALREADY_MEMBER = "คุณเป็นสมาชิกอยู่แล้ว!"
MSG_REQUEST_PENDING = "คุณมีคำขอสมัครสมาชิกที่รออนุมัติอยู่แล้ว\n\nกรุณารอการอนุมัติจากผู้ดูแลระบบ"
MSG_SKIP_APPLY = "ไม่เป็นไร! เมื่อพร้อมสมัครสมาชิก สามารถพิมพ์ 'สมัครสมาชิก' ได้เลย"
DEFAULT_APPLICANT_NAME = "ผู้สมัคร"


def handle_apply_member(event: WebhookEvent, ctx: EventContext, *, participant_id: str) -> None:
    """Create a pending join request for the sender and alert the admins."""

    log = ctx.logger(participant_id=participant_id, line_user_id=event.user_id)
    try:
        with session_scope() as session:
            participant = roster.get_participant(session, participant_id=participant_id, tenant_id=ctx.tenant_id)
            if participant is None:
                log.warning("applicant_not_found")
                safe_reply(ctx, event.reply_token, MSG_PARTICIPANT_NOT_FOUND)
                return

            if participant.line_user_id != event.user_id:
                log.warning("apply_identity_mismatch", owner_line_user_id=participant.line_user_id)
                safe_reply(ctx, event.reply_token, MSG_IDENTITY_MISMATCH)
                return

            if participant.status == MEMBER_STATUS:
                safe_reply(ctx, event.reply_token, MSG_ALREADY_MEMBER)
                return

            existing = session.scalar(
                select(ChapterJoinRequest.request_id).where(
                    ChapterJoinRequest.participant_id == participant_id,
                    ChapterJoinRequest.tenant_id == ctx.tenant_id,
                    ChapterJoinRequest.status == "pending",
                )
            )
            if existing is not None:
                log.info("join_request_already_pending", request_id=existing)
                safe_reply(ctx, event.reply_token, MSG_REQUEST_PENDING)
                return

            tenant_name = roster.get_tenant_name(session, tenant_id=ctx.tenant_id)
            if tenant_name is None:
                log.error("tenant_not_found")
                safe_reply(ctx, event.reply_token, MSG_GENERIC_ERROR)
                return

            join_request = ChapterJoinRequest(
                tenant_id=ctx.tenant_id,
                participant_id=participant_id,
                user_id=participant.user_id,
                status="pending",
                message=f"สมัครผ่าน LINE: {participant.full_name}",
            )
            session.add(join_request)
            session.flush()
            request_id = join_request.request_id
    except SQLAlchemyError:
        log.exception("join_request_create_failed")
        safe_reply(ctx, event.reply_token, MSG_GENERIC_ERROR)
        return

    log.info("join_request_created", request_id=request_id)
    safe_reply(
        ctx,
        event.reply_token,
        f"ส่งคำขอสมัครสมาชิกแล้ว!\n\nชื่อ: {participant.full_name}\n\nกรุณารอการอนุมัติจากผู้ดูแลระบบ",
    )
    approvals.notify_admins_new_application(ctx.tenant_id, participant, tenant_name, client=ctx.client)


def handle_skip_apply(event: WebhookEvent, ctx: EventContext) -> None:
    safe_reply(ctx, event.reply_token, MSG_SKIP_APPLY)


def _authorize_admin(event: WebhookEvent, ctx: EventContext, *, tenant_id: str, participant_id: str) -> bool:
    log = ctx.logger(participant_id=participant_id, line_user_id=event.user_id)
    if tenant_id != ctx.tenant_id or not event.user_id:
        log.warning("admin_action_tenant_mismatch", postback_tenant_id=tenant_id)
        safe_reply(ctx, event.reply_token, MSG_NOT_AUTHORIZED)
        return False

    try:
        with session_scope() as session:
            allowed = roster.is_chapter_admin(session, tenant_id=tenant_id, line_user_id=event.user_id)
    except SQLAlchemyError:
        log.exception("admin_role_lookup_failed")
        safe_reply(ctx, event.reply_token, MSG_GENERIC_ERROR)
        return False

    if not allowed:
        log.warning("admin_action_not_authorized")
        safe_reply(ctx, event.reply_token, MSG_NOT_AUTHORIZED)
    return allowed


def _admin_and_tenant_names(ctx: EventContext, admin_line_user_id: str) -> tuple[str, str]:
    try:
        with session_scope() as session:
            admin_name = roster.get_admin_display_name(
                session, tenant_id=ctx.tenant_id, line_user_id=admin_line_user_id
            )
            tenant_name = roster.get_tenant_name(session, tenant_id=ctx.tenant_id)
    except SQLAlchemyError:
        ctx.logger().exception("admin_name_lookup_failed")
        return "Admin", "Chapter"
    return admin_name, tenant_name or "Chapter"


def _failure_text(result: approvals.ApprovalResult) -> str:
    if result.error == "participant_not_found":
        return MSG_APPLICANT_NOT_FOUND
    return MSG_GENERIC_ERROR


def handle_approve_member(event: WebhookEvent, ctx: EventContext, *, participant_id: str, tenant_id: str) -> None:
    if not _authorize_admin(event, ctx, tenant_id=tenant_id, participant_id=participant_id):
        return

    result = approvals.approve_member(participant_id, tenant_id, approved_by=event.user_id)
    if not result.success:
        safe_reply(ctx, event.reply_token, _failure_text(result))
        return

    if result.already_processed:
        if result.participant is not None:
            text = f"{result.participant.full_name} เป็นสมาชิกอยู่แล้ว หรือคำขอนี้ได้รับการดำเนินการแล้ว"
        else:
            text = MSG_ALREADY_PROCESSED
        safe_reply(ctx, event.reply_token, text)
        return

    applicant = result.participant
    applicant_name = applicant.display_name if applicant else DEFAULT_APPLICANT_NAME
    admin_name, tenant_name = _admin_and_tenant_names(ctx, event.user_id)

    safe_reply(ctx, event.reply_token, f"อนุมัติแล้ว!\n\n{applicant_name} เป็นสมาชิกเรียบร้อย")
    approvals.broadcast_to_admins(
        tenant_id,
        f"{admin_name} อนุมัติ {applicant_name} เป็นสมาชิกแล้ว",
        exclude_user_id=event.user_id,
        client=ctx.client,
    )
    if applicant is not None and applicant.line_user_id:
        approvals.send_approval_notification_to_applicant(
            tenant_id, applicant.line_user_id, tenant_name, client=ctx.client
        )


def handle_reject_member(event: WebhookEvent, ctx: EventContext, *, participant_id: str, tenant_id: str) -> None:
    if not _authorize_admin(event, ctx, tenant_id=tenant_id, participant_id=participant_id):
        return

    result = approvals.reject_member(participant_id, tenant_id, rejected_by=event.user_id)
    if not result.success:
        safe_reply(ctx, event.reply_token, _failure_text(result))
        return

    if result.already_processed:
        safe_reply(ctx, event.reply_token, MSG_ALREADY_PROCESSED)
        return

    applicant = result.participant
    applicant_name = applicant.display_name if applicant else DEFAULT_APPLICANT_NAME
    admin_name, _ = _admin_and_tenant_names(ctx, event.user_id)

    safe_reply(ctx, event.reply_token, f"ปฏิเสธคำขอของ {applicant_name} เรียบร้อยแล้ว")
    approvals.broadcast_to_admins(
        tenant_id,
        f"{admin_name} ปฏิเสธคำขอสมัครสมาชิกของ {applicant_name}",
        exclude_user_id=event.user_id,
        client=ctx.client,
    )
    if applicant is not None and applicant.line_user_id:
        approvals.send_rejection_notification_to_applicant(tenant_id, applicant.line_user_id, client=ctx.client)
