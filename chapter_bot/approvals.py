"""Membership approval workflow and admin notifications."""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any, Iterator, List, Mapping, Sequence

import structlog
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from chapter_bot import roster
from chapter_bot.config import get_settings
from chapter_bot.db import session_scope
from chapter_bot.line_client import LineApiError, LineClient
from chapter_bot.models import (
    MEMBER_STATUS,
    ChapterJoinRequest,
    Participant,
    UserRole,
    transition_join_request,
)
from chapter_bot.roster import ParticipantSummary
from chapter_bot.templates import (
    build_application_card,
    build_rejection_message,
    build_welcome_message,
    text_message,
)
from chapter_bot.vault import resolve_credentials

logger = structlog.get_logger(__name__)

MEMBER_ROLE = "member"


@dataclass(frozen=True)
class ApprovalResult:
    success: bool
    already_processed: bool = False
    error: str | None = None
    participant: ParticipantSummary | None = None


@dataclass(frozen=True)
class DeliveryReport:
    sent: int = 0
    failed: int = 0


@dataclass(frozen=True)
class InconsistentApproval:
    """An approved join request whose participant never became a member."""

    request_id: str
    tenant_id: str
    participant_id: str


def client_for_tenant(tenant_id: str) -> LineClient | None:
    credentials = resolve_credentials(tenant_id)
    if credentials is None:
        logger.info("line_not_configured", tenant_id=tenant_id)
        return None
    return LineClient(access_token=credentials.access_token, base_url=get_settings().line_api_base)


@contextmanager
def tenant_client(tenant_id: str, client: Any | None = None) -> Iterator[Any | None]:
    """Yield *client* as given, or a client built for the tenant and closed on exit."""

    if client is not None:
        yield client
        return

    built = client_for_tenant(tenant_id)
    try:
        yield built
    finally:
        if built is not None:
            built.close()


def get_admin_line_user_ids(tenant_id: str) -> List[str]:
    with session_scope() as session:
        return roster.get_admin_line_user_ids(session, tenant_id=tenant_id)


def _push_all(
    client: Any,
    recipients: Sequence[str],
    messages: Mapping[str, Any] | Sequence[Mapping[str, Any]],
    *,
    tenant_id: str,
    event: str,
) -> DeliveryReport:
    sent = failed = 0
    for line_user_id in recipients:
        try:
            client.push(line_user_id, messages)
            sent += 1
        except LineApiError as exc:
            failed += 1
            logger.warning(
                f"{event}_push_failed",
                tenant_id=tenant_id,
                line_user_id=line_user_id,
                status_code=exc.status_code,
            )
    return DeliveryReport(sent=sent, failed=failed)


def notify_admins_new_application(
    tenant_id: str,
    participant: ParticipantSummary,
    tenant_name: str,
    *,
    client: Any | None = None,
) -> DeliveryReport:
    """Push an approve/reject card for *participant* to every admin.

    Having no admins or no credentials is a normal state for a new chapter and
    returns an empty report.
    """

    admins = get_admin_line_user_ids(tenant_id)
    if not admins:
        logger.info("no_admin_recipients", tenant_id=tenant_id)
        return DeliveryReport()

    card = build_application_card(
        participant_id=participant.participant_id,
        tenant_id=tenant_id,
        full_name=participant.full_name,
        tenant_name=tenant_name,
        nickname=participant.nickname,
        phone=participant.phone,
        company=participant.company,
    )
    with tenant_client(tenant_id, client) as line:
        if line is None:
            return DeliveryReport()
        report = _push_all(line, admins, card, tenant_id=tenant_id, event="application_card")
    logger.info(
        "application_card_sent",
        tenant_id=tenant_id,
        participant_id=participant.participant_id,
        sent=report.sent,
        failed=report.failed,
    )
    return report


def broadcast_to_admins(
    tenant_id: str,
    message: str | Mapping[str, Any],
    *,
    exclude_user_id: str | None = None,
    client: Any | None = None,
) -> DeliveryReport:
    """Push *message* to every admin except *exclude_user_id*."""

    recipients = [item for item in get_admin_line_user_ids(tenant_id) if item != exclude_user_id]
    if not recipients:
        logger.info("no_admin_recipients", tenant_id=tenant_id, excluded=exclude_user_id)
        return DeliveryReport()

    payload = text_message(message) if isinstance(message, str) else message
    with tenant_client(tenant_id, client) as line:
        if line is None:
            return DeliveryReport()
        report = _push_all(line, recipients, payload, tenant_id=tenant_id, event="admin_broadcast")
    logger.info("admin_broadcast_sent", tenant_id=tenant_id, sent=report.sent, failed=report.failed)
    return report


def _send_single(tenant_id: str, line_user_id: str, message: Mapping[str, Any], *, client: Any, event: str) -> bool:
    with tenant_client(tenant_id, client) as line:
        if line is None:
            return False
        try:
            line.push(line_user_id, message)
        except LineApiError as exc:
            logger.warning(
                f"{event}_failed", tenant_id=tenant_id, line_user_id=line_user_id, status_code=exc.status_code
            )
            return False
    logger.info(f"{event}_sent", tenant_id=tenant_id, line_user_id=line_user_id)
    return True


def send_approval_notification_to_applicant(
    tenant_id: str, line_user_id: str, tenant_name: str, *, client: Any | None = None
) -> bool:
    return _send_single(
        tenant_id,
        line_user_id,
        build_welcome_message(tenant_name=tenant_name),
        client=client,
        event="applicant_welcome",
    )


def send_rejection_notification_to_applicant(tenant_id: str, line_user_id: str, *, client: Any | None = None) -> bool:
    return _send_single(
        tenant_id,
        line_user_id,
        build_rejection_message(),
        client=client,
        event="applicant_rejection",
    )


def _pending_request_id(session, *, participant_id: str, tenant_id: str) -> str | None:
    return session.scalar(
        select(ChapterJoinRequest.request_id)
        .where(
            ChapterJoinRequest.participant_id == participant_id,
            ChapterJoinRequest.tenant_id == tenant_id,
            ChapterJoinRequest.status == "pending",
        )
        .order_by(ChapterJoinRequest.created_at.asc())
        .limit(1)
    )


def _promote_participant(*, participant_id: str, tenant_id: str) -> None:
    """Make the participant a member and give its account a member role.

    An existing role row is left alone so an admin is never downgraded.
    """

    with session_scope() as session:
        participant = session.scalars(
            select(Participant).where(
                Participant.participant_id == participant_id,
                Participant.tenant_id == tenant_id,
            )
        ).one()
        participant.status = MEMBER_STATUS
        if participant.joined_date is None:
            participant.joined_date = datetime.now(UTC).date()

        if participant.user_id:
            existing_role = session.scalar(
                select(UserRole.id).where(
                    UserRole.user_id == participant.user_id,
                    UserRole.tenant_id == tenant_id,
                )
            )
            if existing_role is None:
                session.add(UserRole(user_id=participant.user_id, tenant_id=tenant_id, role=MEMBER_ROLE))


def _revert_request(request_id: str) -> bool:
    with session_scope() as session:
        return transition_join_request(
            session,
            request_id=request_id,
            from_status="approved",
            to_status="pending",
        )


def _claim_request(
    *, participant_id: str, tenant_id: str, to_status: str, decided_by: str | None
) -> tuple[ParticipantSummary | None, str | None, bool]:
    """Load the applicant and conditionally decide its pending request.

    Returns ``(participant, request_id, already_processed)``.
    """

    with session_scope() as session:
        participant = roster.get_participant(session, participant_id=participant_id, tenant_id=tenant_id)
        if participant is None:
            return None, None, False
        if to_status == "approved" and participant.status == MEMBER_STATUS:
            return participant, None, True

        request_id = _pending_request_id(session, participant_id=participant_id, tenant_id=tenant_id)
        if request_id is None:
            return participant, None, True

        claimed = transition_join_request(
            session,
            request_id=request_id,
            from_status="pending",
            to_status=to_status,
            decided_by=decided_by,
        )
        return participant, request_id, not claimed


def approve_member(participant_id: str, tenant_id: str, approved_by: str | None = None) -> ApprovalResult:
    """Approve a pending application.

    Calling this again for the same applicant reports ``already_processed``.
    If promoting the participant fails after the request was marked approved,
    the request is moved back to pending. When that also fails the pair is left
    for ``reconcile_approvals`` and an ``approval_inconsistent`` error is logged.
    """

    log = logger.bind(tenant_id=tenant_id, participant_id=participant_id)
    try:
        participant, request_id, already_processed = _claim_request(
            participant_id=participant_id,
            tenant_id=tenant_id,
            to_status="approved",
            decided_by=approved_by,
        )
    except SQLAlchemyError:
        log.exception("approval_claim_failed")
        return ApprovalResult(success=False, error="database_error")

    if participant is None:
        log.warning("applicant_not_found")
        return ApprovalResult(success=False, error="participant_not_found")
    if already_processed:
        log.info("approval_already_processed")
        return ApprovalResult(success=True, already_processed=True, participant=participant)

    try:
        _promote_participant(participant_id=participant_id, tenant_id=tenant_id)
    except SQLAlchemyError:
        log.exception("participant_promotion_failed", request_id=request_id)
        try:
            reverted = _revert_request(request_id)
        except SQLAlchemyError:
            reverted = False
        if not reverted:
            log.error("approval_inconsistent", request_id=request_id)
        return ApprovalResult(success=False, error="update_failed", participant=participant)

    log.info("member_approved", request_id=request_id, approved_by=approved_by)
    return ApprovalResult(success=True, participant=participant)


def reject_member(participant_id: str, tenant_id: str, rejected_by: str | None = None) -> ApprovalResult:
    log = logger.bind(tenant_id=tenant_id, participant_id=participant_id)
    try:
        participant, request_id, already_processed = _claim_request(
            participant_id=participant_id,
            tenant_id=tenant_id,
            to_status="rejected",
            decided_by=rejected_by,
        )
    except SQLAlchemyError:
        log.exception("rejection_claim_failed")
        return ApprovalResult(success=False, error="database_error")

    if participant is None:
        log.warning("applicant_not_found")
        return ApprovalResult(success=False, error="participant_not_found")
    if already_processed:
        log.info("rejection_already_processed")
        return ApprovalResult(success=True, already_processed=True, participant=participant)

    log.info("member_rejected", request_id=request_id, rejected_by=rejected_by)
    return ApprovalResult(success=True, participant=participant)


def find_inconsistent_approvals(tenant_id: str | None = None) -> List[InconsistentApproval]:
    """Approved requests whose participant is still not a member."""

    statement = (
        select(ChapterJoinRequest.request_id, ChapterJoinRequest.tenant_id, ChapterJoinRequest.participant_id)
        .join(
            Participant,
            (Participant.participant_id == ChapterJoinRequest.participant_id)
            & (Participant.tenant_id == ChapterJoinRequest.tenant_id),
        )
        .where(ChapterJoinRequest.status == "approved", Participant.status != MEMBER_STATUS)
        .order_by(ChapterJoinRequest.created_at.asc())
    )
    if tenant_id is not None:
        statement = statement.where(ChapterJoinRequest.tenant_id == tenant_id)

    with session_scope() as session:
        rows = session.execute(statement).all()
    return [
        InconsistentApproval(request_id=request_id, tenant_id=row_tenant, participant_id=participant_id)
        for request_id, row_tenant, participant_id in rows
    ]


def reconcile_approvals(tenant_id: str | None = None) -> dict:
    """Finish approvals left half-applied by a failed compensation."""

    pending = find_inconsistent_approvals(tenant_id)
    repaired = failed = 0
    for item in pending:
        try:
            _promote_participant(participant_id=item.participant_id, tenant_id=item.tenant_id)
        except SQLAlchemyError:
            failed += 1
            logger.exception(
                "approval_reconcile_failed",
                request_id=item.request_id,
                tenant_id=item.tenant_id,
                participant_id=item.participant_id,
            )
            continue
        repaired += 1
        logger.info(
            "approval_reconciled",
            request_id=item.request_id,
            tenant_id=item.tenant_id,
            participant_id=item.participant_id,
        )

    return {"checked": len(pending), "repaired": repaired, "failed": failed}
