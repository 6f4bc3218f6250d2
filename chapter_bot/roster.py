"""Data access helpers for participants, meetings, RSVPs and admins."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, date, datetime, time
from typing import List

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from chapter_bot.models import (
    ADMIN_ROLES,
    MEMBER_STATUS,
    RSVP_STATUSES,
    Meeting,
    MeetingRsvp,
    Participant,
    Tenant,
    UserRole,
)


@dataclass(frozen=True)
class ParticipantSummary:
    """Detached view of a roster row."""

    participant_id: str
    tenant_id: str
    full_name: str
    nickname: str | None
    phone: str | None
    company: str | None
    line_user_id: str | None
    user_id: str | None
    status: str
    joined_date: date | None

    @property
    def display_name(self) -> str:
        return self.nickname or self.full_name


@dataclass(frozen=True)
class MeetingSummary:
    meeting_id: str
    tenant_id: str
    meeting_date: date
    meeting_time: time | None
    theme: str | None
    venue: str | None


def _participant_summary(row: Participant) -> ParticipantSummary:
    return ParticipantSummary(
        participant_id=row.participant_id,
        tenant_id=row.tenant_id,
        full_name=row.full_name,
        nickname=row.nickname,
        phone=row.phone,
        company=row.company,
        line_user_id=row.line_user_id,
        user_id=row.user_id,
        status=row.status,
        joined_date=row.joined_date,
    )


def _meeting_summary(row: Meeting) -> MeetingSummary:
    return MeetingSummary(
        meeting_id=row.meeting_id,
        tenant_id=row.tenant_id,
        meeting_date=row.meeting_date,
        meeting_time=row.meeting_time,
        theme=row.theme,
        venue=row.venue,
    )


def find_participant_by_line_user(
    session: Session, *, tenant_id: str, line_user_id: str
) -> ParticipantSummary | None:
    row = session.scalars(
        select(Participant)
        .where(Participant.tenant_id == tenant_id, Participant.line_user_id == line_user_id)
        .limit(1)
    ).first()
    return _participant_summary(row) if row is not None else None


def get_participant(session: Session, *, participant_id: str, tenant_id: str) -> ParticipantSummary | None:
    row = session.scalars(
        select(Participant).where(
            Participant.participant_id == participant_id,
            Participant.tenant_id == tenant_id,
        )
    ).first()
    return _participant_summary(row) if row is not None else None


def get_meeting(session: Session, *, meeting_id: str, tenant_id: str) -> MeetingSummary | None:
    row = session.scalars(
        select(Meeting).where(Meeting.meeting_id == meeting_id, Meeting.tenant_id == tenant_id)
    ).first()
    return _meeting_summary(row) if row is not None else None


def list_upcoming_meetings(session: Session, *, tenant_id: str, from_date: date) -> List[MeetingSummary]:
    rows = session.scalars(
        select(Meeting)
        .where(Meeting.tenant_id == tenant_id, Meeting.meeting_date >= from_date)
        .order_by(Meeting.meeting_date.asc())
    ).all()
    return [_meeting_summary(row) for row in rows]


def list_notifiable_members(session: Session, *, tenant_id: str) -> List[ParticipantSummary]:
    """Members of *tenant_id* who have linked a LINE account."""

    rows = session.scalars(
        select(Participant)
        .where(
            Participant.tenant_id == tenant_id,
            Participant.status == MEMBER_STATUS,
            Participant.line_user_id.is_not(None),
        )
        .order_by(Participant.full_name.asc())
    ).all()
    return [_participant_summary(row) for row in rows]


def count_members(session: Session, *, tenant_id: str) -> int:
    return session.scalar(
        select(func.count())
        .select_from(Participant)
        .where(Participant.tenant_id == tenant_id, Participant.status == MEMBER_STATUS)
    ) or 0


def count_confirmed(session: Session, *, meeting_id: str) -> int:
    return session.scalar(
        select(func.count())
        .select_from(MeetingRsvp)
        .where(MeetingRsvp.meeting_id == meeting_id, MeetingRsvp.rsvp_status == "confirmed")
    ) or 0


def get_rsvp(session: Session, *, meeting_id: str, participant_id: str) -> MeetingRsvp | None:
    return session.scalars(
        select(MeetingRsvp).where(
            MeetingRsvp.meeting_id == meeting_id,
            MeetingRsvp.participant_id == participant_id,
        )
    ).first()


def upsert_rsvp(
    session: Session,
    *,
    tenant_id: str,
    meeting_id: str,
    participant_id: str,
    status: str,
    leave_reason: str | None = None,
    responded_via: str = "line",
    now: datetime | None = None,
) -> MeetingRsvp:
    """Record a participant's answer; the latest answer wins."""

    if status not in RSVP_STATUSES:
        raise ValueError(f"Unsupported RSVP status '{status}'")

    now = now or datetime.now(UTC)
    row = get_rsvp(session, meeting_id=meeting_id, participant_id=participant_id)
    if row is None:
        row = MeetingRsvp(tenant_id=tenant_id, meeting_id=meeting_id, participant_id=participant_id)
        session.add(row)

    row.rsvp_status = status
    row.leave_reason = leave_reason if status == "leave" else None
    row.responded_at = now
    row.responded_via = responded_via
    session.flush()
    return row


def record_reminder_sent(
    session: Session,
    *,
    tenant_id: str,
    meeting_id: str,
    participant_id: str,
    now: datetime,
) -> MeetingRsvp:
    """Bump the reminder counters, creating a pending RSVP when none exists.

    An answer the member already gave is kept as is.
    """

    row = get_rsvp(session, meeting_id=meeting_id, participant_id=participant_id)
    if row is None:
        row = MeetingRsvp(
            tenant_id=tenant_id,
            meeting_id=meeting_id,
            participant_id=participant_id,
            rsvp_status="pending",
            notification_count=0,
        )
        session.add(row)

    row.last_notified_at = now
    row.notification_count = (row.notification_count or 0) + 1
    session.flush()
    return row


def get_admin_line_user_ids(session: Session, *, tenant_id: str) -> List[str]:
    """LINE ids of tenant admins: admin roles first, then their roster rows."""

    admin_user_ids = session.scalars(
        select(UserRole.user_id).where(UserRole.tenant_id == tenant_id, UserRole.role.in_(ADMIN_ROLES))
    ).all()
    if not admin_user_ids:
        return []

    line_ids = session.scalars(
        select(Participant.line_user_id).where(
            Participant.tenant_id == tenant_id,
            Participant.user_id.in_(admin_user_ids),
            Participant.line_user_id.is_not(None),
        )
    ).all()
    return list(dict.fromkeys(item for item in line_ids if item))


def is_chapter_admin(session: Session, *, tenant_id: str, line_user_id: str) -> bool:
    participant = find_participant_by_line_user(session, tenant_id=tenant_id, line_user_id=line_user_id)
    if participant is None or not participant.user_id:
        return False

    role = session.scalar(
        select(UserRole.role).where(UserRole.tenant_id == tenant_id, UserRole.user_id == participant.user_id)
    )
    return role in ADMIN_ROLES


def get_admin_display_name(session: Session, *, tenant_id: str, line_user_id: str) -> str:
    participant = find_participant_by_line_user(session, tenant_id=tenant_id, line_user_id=line_user_id)
    if participant is None:
        return "Admin"
    return participant.display_name


def get_tenant_name(session: Session, *, tenant_id: str) -> str | None:
    return session.scalar(select(Tenant.tenant_name).where(Tenant.tenant_id == tenant_id))
