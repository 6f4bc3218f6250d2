"""SQLAlchemy models for tenants, rosters, RSVPs and notification logs."""

from __future__ import annotations

from datetime import UTC, date, datetime, time
from uuid import uuid4

from sqlalchemy import Boolean, Date, DateTime, Integer, String, Text, Time, UniqueConstraint, update
from sqlalchemy.orm import Mapped, Session, mapped_column

from chapter_bot.db import Base

RSVP_STATUSES = ("pending", "confirmed", "substitute", "leave")
ADMIN_ROLES = ("chapter_admin",)
MEMBER_STATUS = "member"


def _new_id() -> str:
    return str(uuid4())


def _utcnow() -> datetime:
    return datetime.now(UTC)


class Tenant(Base):
    """A chapter using the bot."""

    __tablename__ = "tenants"

    tenant_id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    tenant_name: Mapped[str] = mapped_column(String(255), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)


class TenantSecret(Base):
    """One encrypted credential field for a tenant's LINE channel."""

    __tablename__ = "tenant_secrets"
    __table_args__ = (
        UniqueConstraint("tenant_id", "secret_key", name="uq_tenant_secrets_key"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    tenant_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    secret_key: Mapped[str] = mapped_column(String(64), nullable=False)
    secret_value: Mapped[str] = mapped_column(Text, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow
    )


class Participant(Base):
    """A roster entry: visitor, applicant or member of a chapter."""

    __tablename__ = "participants"

    participant_id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    tenant_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    full_name: Mapped[str] = mapped_column(String(255), nullable=False)
    nickname: Mapped[str | None] = mapped_column(String(128), nullable=True)
    phone: Mapped[str | None] = mapped_column(String(32), nullable=True)
    company: Mapped[str | None] = mapped_column(String(255), nullable=True)
    line_user_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    user_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="visitor")
    joined_date: Mapped[date | None] = mapped_column(Date, nullable=True)


class UserRole(Base):
    """Role of a web account inside a tenant."""

    __tablename__ = "user_roles"
    __table_args__ = (
        UniqueConstraint("user_id", "tenant_id", name="uq_user_roles_user_tenant"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(36), nullable=False)
    tenant_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    role: Mapped[str] = mapped_column(String(32), nullable=False)


class Meeting(Base):
    """A scheduled chapter meeting."""

    __tablename__ = "meetings"

    meeting_id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    tenant_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    meeting_date: Mapped[date] = mapped_column(Date, nullable=False)
    meeting_time: Mapped[time | None] = mapped_column(Time, nullable=True)
    theme: Mapped[str | None] = mapped_column(String(255), nullable=True)
    venue: Mapped[str | None] = mapped_column(String(255), nullable=True)


class MeetingRsvp(Base):
    """A participant's response to a meeting; one row per (meeting, participant)."""

    __tablename__ = "meeting_rsvp"
    __table_args__ = (
        UniqueConstraint("meeting_id", "participant_id", name="uq_meeting_rsvp_participant"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    tenant_id: Mapped[str] = mapped_column(String(36), nullable=False)
    meeting_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    participant_id: Mapped[str] = mapped_column(String(36), nullable=False)
    rsvp_status: Mapped[str] = mapped_column(String(16), nullable=False, default="pending")
    leave_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    responded_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    responded_via: Mapped[str | None] = mapped_column(String(16), nullable=True)
    last_notified_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    notification_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


class EventNotificationSettings(Base):
    """Per-tenant switches for the automatic meeting reminders."""

    __tablename__ = "event_notification_settings"

    tenant_id: Mapped[str] = mapped_column(String(36), primary_key=True)
    enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    notify_7_days_before: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    notify_1_day_before: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    notify_2_hours_before: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class EventNotificationLog(Base):
    """Dedupe log for meeting reminders, one row per (meeting, notification type)."""

    __tablename__ = "event_notification_log"
    __table_args__ = (
        UniqueConstraint("meeting_id", "notification_type", name="uq_event_notification_log_type"),
    )

    log_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    tenant_id: Mapped[str] = mapped_column(String(36), nullable=False)
    meeting_id: Mapped[str] = mapped_column(String(36), nullable=False)
    notification_type: Mapped[str] = mapped_column(String(16), nullable=False)
    total_sent: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_failed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    sent_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)


class NotificationLog(Base):
    """Dedupe log for tenant-level notices such as trial expiry."""

    __tablename__ = "notification_logs"
    __table_args__ = (
        UniqueConstraint("tenant_id", "notification_type", "sent_on", name="uq_notification_logs_day"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    tenant_id: Mapped[str] = mapped_column(String(36), nullable=False)
    notification_type: Mapped[str] = mapped_column(String(64), nullable=False)
    sent_on: Mapped[date] = mapped_column(Date, nullable=False)
    details_json: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)


class TenantSubscription(Base):
    """Billing state of a tenant; only the trial fields matter here."""

    __tablename__ = "tenant_subscriptions"

    tenant_id: Mapped[str] = mapped_column(String(36), primary_key=True)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="trialing")
    plan_id: Mapped[str] = mapped_column(String(32), nullable=False, default="pro")
    trial_end: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow
    )


class ChapterJoinRequest(Base):
    """A membership application awaiting an admin decision."""

    __tablename__ = "chapter_join_requests"

    request_id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    tenant_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    participant_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    user_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="pending")
    message: Mapped[str | None] = mapped_column(Text, nullable=True)
    decided_by: Mapped[str | None] = mapped_column(String(64), nullable=True)
    decided_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)


class StatusTransitionError(Exception):
    """Raised when an invalid join-request status transition is attempted."""


_ALLOWED_TRANSITIONS = {
    "pending": {"approved", "rejected"},
    "approved": {"pending"},
    "rejected": set(),
}


def transition_join_request(
    session: Session,
    *,
    request_id: str,
    from_status: str,
    to_status: str,
    decided_by: str | None = None,
) -> bool:
    """Conditionally move a join request between statuses.

    The update only matches a row still in *from_status*, so of two racing
    callers exactly one sees ``True``. The ``approved -> pending`` edge exists
    solely for compensating a failed approval.
    """

    if to_status not in _ALLOWED_TRANSITIONS.get(from_status, set()):
        raise StatusTransitionError(f"Cannot transition from {from_status} to {to_status}")

    values: dict[str, object] = {"status": to_status}
    if to_status == "pending":
        values.update(decided_by=None, decided_at=None)
    else:
        values.update(decided_by=decided_by, decided_at=datetime.now(UTC))

    stmt = (
        update(ChapterJoinRequest)
        .where(ChapterJoinRequest.request_id == request_id, ChapterJoinRequest.status == from_status)
        .values(**values)
    )
    result = session.execute(stmt)
    return result.rowcount == 1
