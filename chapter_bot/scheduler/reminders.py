"""Automatic meeting reminders pushed to chapter members."""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import UTC, date, datetime, time
from typing import Any, Callable, Dict, List
from zoneinfo import ZoneInfo

import structlog
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from chapter_bot import roster
from chapter_bot.approvals import client_for_tenant
from chapter_bot.config import get_settings
from chapter_bot.db import session_scope
from chapter_bot.line_client import LineApiError
from chapter_bot.models import EventNotificationLog, EventNotificationSettings
from chapter_bot.templates import build_event_reminder

logger = structlog.get_logger(__name__)

REMINDER_TYPES = ("7_days", "1_day", "2_hours", "manual")

ClientFactory = Callable[[str], Any]


@dataclass(frozen=True)
class SendResult:
    sent: int = 0
    failed: int = 0


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def meeting_start(meeting_date: date, meeting_time: time | None, tz_name: str) -> datetime:
    """Start of a meeting as an aware UTC datetime; a missing time means midnight."""

    local = datetime.combine(meeting_date, meeting_time or time(0, 0), tzinfo=ZoneInfo(tz_name))
    return local.astimezone(UTC)


def select_reminder_type(
    start: datetime,
    now: datetime,
    *,
    notify_7_days: bool = True,
    notify_1_day: bool = True,
    notify_2_hours: bool = True,
) -> str | None:
    """Pick at most one reminder type for a meeting starting at *start*.

    The 2-hour window is tested first; with ceil rounding it always falls on
    ``days_until == 1`` and would otherwise be shadowed by the 1-day reminder.
    """

    seconds = (_as_utc(start) - _as_utc(now)).total_seconds()
    days_until = math.ceil(seconds / 86400)
    hours_until = math.ceil(seconds / 3600)

    if notify_2_hours and 0 < hours_until <= 2:
        return "2_hours"
    if notify_1_day and days_until == 1:
        return "1_day"
    if notify_7_days and days_until == 7:
        return "7_days"
    return None


def _already_sent(meeting_id: str, notification_type: str) -> bool:
    with session_scope() as session:
        existing = session.scalar(
            select(EventNotificationLog.log_id).where(
                EventNotificationLog.meeting_id == meeting_id,
                EventNotificationLog.notification_type == notification_type,
            )
        )
    return existing is not None


def _record_log(*, tenant_id: str, meeting_id: str, notification_type: str, result: SendResult, now: datetime) -> None:
    try:
        with session_scope() as session:
            session.add(
                EventNotificationLog(
                    tenant_id=tenant_id,
                    meeting_id=meeting_id,
                    notification_type=notification_type,
                    total_sent=result.sent,
                    total_failed=result.failed,
                    sent_at=now,
                )
            )
    except IntegrityError:
        logger.warning(
            "event_notification_duplicate",
            tenant_id=tenant_id,
            meeting_id=meeting_id,
            notification_type=notification_type,
        )


def send_event_notifications(
    meeting_id: str,
    tenant_id: str,
    notification_type: str,
    *,
    now: datetime | None = None,
    client_factory: ClientFactory = client_for_tenant,
) -> SendResult:
    """Push a reminder for *meeting_id* to every linked member and log the batch.

    A failed push for one member is counted and the loop continues. A failed
    RSVP counter write is only logged, since the member already has the
    message. The client from *client_factory* is closed once the batch ends.
    """

    if notification_type not in REMINDER_TYPES:
        raise ValueError(f"Unsupported notification type '{notification_type}'")

    now = _as_utc(now or datetime.now(UTC))
    log = logger.bind(tenant_id=tenant_id, meeting_id=meeting_id, notification_type=notification_type)

    with session_scope() as session:
        meeting = roster.get_meeting(session, meeting_id=meeting_id, tenant_id=tenant_id)
        tenant_name = roster.get_tenant_name(session, tenant_id=tenant_id)
        members = roster.list_notifiable_members(session, tenant_id=tenant_id)
        confirmed = roster.count_confirmed(session, meeting_id=meeting_id)
        total_members = roster.count_members(session, tenant_id=tenant_id)

    if meeting is None:
        log.warning("reminder_meeting_not_found")
        return SendResult()
    if tenant_name is None:
        log.warning("reminder_tenant_not_found")
        return SendResult()

    client = client_factory(tenant_id)
    if client is None:
        log.info("reminder_line_not_configured")
        return SendResult()

    sent = failed = 0
    try:
        for member in members:
            message = build_event_reminder(
                meeting_id=meeting.meeting_id,
                meeting_date=meeting.meeting_date,
                meeting_time=meeting.meeting_time,
                theme=meeting.theme,
                venue=meeting.venue,
                chapter_name=tenant_name,
                member_name=member.full_name,
                notification_type=notification_type,
                confirmed_count=confirmed,
                total_members=total_members,
            )
            try:
                client.push(member.line_user_id, message)
            except LineApiError as exc:
                failed += 1
                log.warning("reminder_member_failed", participant_id=member.participant_id, error=str(exc))
                continue
            sent += 1

            try:
                with session_scope() as session:
                    roster.record_reminder_sent(
                        session,
                        tenant_id=tenant_id,
                        meeting_id=meeting_id,
                        participant_id=member.participant_id,
                        now=now,
                    )
            except SQLAlchemyError:
                log.exception("reminder_marker_failed", participant_id=member.participant_id)
    finally:
        client.close()

    result = SendResult(sent=sent, failed=failed)
    if notification_type != "manual":
        _record_log(
            tenant_id=tenant_id,
            meeting_id=meeting_id,
            notification_type=notification_type,
            result=result,
            now=now,
        )
    log.info("reminders_sent", sent=sent, failed=failed)
    return result


def check_and_send_scheduled_notifications(
    *,
    now: datetime | None = None,
    client_factory: ClientFactory = client_for_tenant,
) -> List[Dict[str, Any]]:
    """Send every reminder that is due and has not been sent before."""

    now = _as_utc(now or datetime.now(UTC))
    tz_name = get_settings().meeting_timezone
    today = now.astimezone(ZoneInfo(tz_name)).date()

    with session_scope() as session:
        settings_rows = session.scalars(
            select(EventNotificationSettings).where(EventNotificationSettings.enabled.is_(True))
        ).all()
        plans = [
            (
                row.tenant_id,
                {
                    "notify_7_days": row.notify_7_days_before,
                    "notify_1_day": row.notify_1_day_before,
                    "notify_2_hours": row.notify_2_hours_before,
                },
                roster.list_upcoming_meetings(session, tenant_id=row.tenant_id, from_date=today),
            )
            for row in settings_rows
        ]

    results: List[Dict[str, Any]] = []
    for tenant_id, flags, meetings in plans:
        for meeting in meetings:
            start = meeting_start(meeting.meeting_date, meeting.meeting_time, tz_name)
            notification_type = select_reminder_type(start, now, **flags)
            if notification_type is None:
                continue

            if _already_sent(meeting.meeting_id, notification_type):
                logger.info(
                    "reminder_already_sent",
                    tenant_id=tenant_id,
                    meeting_id=meeting.meeting_id,
                    notification_type=notification_type,
                )
                continue

            outcome = send_event_notifications(
                meeting.meeting_id,
                tenant_id,
                notification_type,
                now=now,
                client_factory=client_factory,
            )
            results.append(
                {
                    "tenant_id": tenant_id,
                    "meeting_id": meeting.meeting_id,
                    "notification_type": notification_type,
                    "sent": outcome.sent,
                    "failed": outcome.failed,
                }
            )

    return results
