"""Trial expiry notices and the downgrade of expired trials."""

from __future__ import annotations

import json
import math
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any, Callable, Dict, List

import structlog
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from chapter_bot import roster
from chapter_bot.approvals import client_for_tenant
from chapter_bot.config import get_settings
from chapter_bot.db import session_scope
from chapter_bot.line_client import LineApiError
from chapter_bot.models import NotificationLog, Tenant, TenantSubscription
from chapter_bot.templates import build_trial_expired_message, build_trial_expiring_message

logger = structlog.get_logger(__name__)

NOTICE_DAYS = (1, 3, 7)
LOOKAHEAD = timedelta(days=7)
TRIALING = "trialing"

ClientFactory = Callable[[str], Any]


@dataclass(frozen=True)
class ExpiringTrial:
    tenant_id: str
    tenant_name: str
    trial_end: datetime
    days_remaining: int


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def notification_type_for(days_remaining: int) -> str:
    return f"trial_expiring_{days_remaining}d"


def get_expiring_trials(*, now: datetime | None = None) -> List[ExpiringTrial]:
    """Trials ending within a week that sit exactly 1, 3 or 7 days out."""

    now = _as_utc(now or datetime.now(UTC))
    with session_scope() as session:
        rows = session.execute(
            select(TenantSubscription.tenant_id, TenantSubscription.trial_end, Tenant.tenant_name)
            .join(Tenant, Tenant.tenant_id == TenantSubscription.tenant_id, isouter=True)
            .where(
                TenantSubscription.status == TRIALING,
                TenantSubscription.trial_end.is_not(None),
                TenantSubscription.trial_end > now,
                TenantSubscription.trial_end <= now + LOOKAHEAD,
            )
        ).all()

    trials: List[ExpiringTrial] = []
    for tenant_id, trial_end, tenant_name in rows:
        trial_end = _as_utc(trial_end)
        days_remaining = math.ceil((trial_end - now).total_seconds() / 86400)
        if days_remaining not in NOTICE_DAYS:
            continue
        trials.append(
            ExpiringTrial(
                tenant_id=tenant_id,
                tenant_name=tenant_name or "Unknown",
                trial_end=trial_end,
                days_remaining=days_remaining,
            )
        )
    return trials


def _notice_already_sent(tenant_id: str, notification_type: str, sent_on) -> bool:
    with session_scope() as session:
        existing = session.scalar(
            select(NotificationLog.id).where(
                NotificationLog.tenant_id == tenant_id,
                NotificationLog.notification_type == notification_type,
                NotificationLog.sent_on == sent_on,
            )
        )
    return existing is not None


def _record_notice(tenant_id: str, notification_type: str, sent_on, details: Dict[str, Any]) -> None:
    try:
        with session_scope() as session:
            session.add(
                NotificationLog(
                    tenant_id=tenant_id,
                    notification_type=notification_type,
                    sent_on=sent_on,
                    details_json=json.dumps(details),
                )
            )
    except IntegrityError:
        logger.warning("trial_notice_duplicate", tenant_id=tenant_id, notification_type=notification_type)


def _push_admins(client: Any, admins: List[str], message: Dict[str, Any], *, tenant_id: str) -> tuple[int, List[str]]:
    notified = 0
    errors: List[str] = []
    for admin_id in admins:
        try:
            client.push(admin_id, message)
            notified += 1
        except LineApiError as exc:
            errors.append(f"Failed to notify {admin_id}: {exc}")
            logger.warning("trial_notice_push_failed", tenant_id=tenant_id, line_user_id=admin_id, error=str(exc))
    return notified, errors


def send_trial_expiration_notifications(
    *,
    now: datetime | None = None,
    client_factory: ClientFactory = client_for_tenant,
) -> List[Dict[str, Any]]:
    """Warn the admins of every expiring trial, at most once per type per day."""

    now = _as_utc(now or datetime.now(UTC))
    today = now.date()
    app_base_url = get_settings().app_base_url

    results: List[Dict[str, Any]] = []
    for trial in get_expiring_trials(now=now):
        notification_type = notification_type_for(trial.days_remaining)
        log = logger.bind(tenant_id=trial.tenant_id, notification_type=notification_type)
        result: Dict[str, Any] = {
            "tenant_id": trial.tenant_id,
            "tenant_name": trial.tenant_name,
            "days_remaining": trial.days_remaining,
            "admins_notified": 0,
            "errors": [],
        }

        try:
            if _notice_already_sent(trial.tenant_id, notification_type, today):
                log.info("trial_notice_already_sent")
                continue

            client = client_factory(trial.tenant_id)
            if client is None:
                result["errors"].append("No LINE credentials")
                results.append(result)
                continue

            try:
                with session_scope() as session:
                    admins = roster.get_admin_line_user_ids(session, tenant_id=trial.tenant_id)
                if not admins:
                    result["errors"].append("No admin LINE IDs found")
                    results.append(result)
                    continue

                message = build_trial_expiring_message(
                    tenant_name=trial.tenant_name,
                    days_remaining=trial.days_remaining,
                    app_base_url=app_base_url,
                )
                notified, errors = _push_admins(client, admins, message, tenant_id=trial.tenant_id)
            finally:
                client.close()
            result["admins_notified"] = notified
            result["errors"].extend(errors)
            _record_notice(trial.tenant_id, notification_type, today, {"days_remaining": trial.days_remaining})
            log.info("trial_notice_sent", admins_notified=notified)
        except SQLAlchemyError as exc:
            log.exception("trial_notice_failed")
            result["errors"].append(f"Error: {exc.__class__.__name__}")

        results.append(result)

    return results


def _notify_trial_expired(tenant_id: str, tenant_name: str, *, client_factory: ClientFactory) -> int:
    client = client_factory(tenant_id)
    if client is None:
        return 0

    try:
        with session_scope() as session:
            admins = roster.get_admin_line_user_ids(session, tenant_id=tenant_id)
        if not admins:
            return 0

        message = build_trial_expired_message(tenant_name=tenant_name, app_base_url=get_settings().app_base_url)
        notified, _ = _push_admins(client, admins, message, tenant_id=tenant_id)
        return notified
    finally:
        client.close()


def check_and_downgrade_expired_trials(
    *,
    now: datetime | None = None,
    client_factory: ClientFactory = client_for_tenant,
) -> List[Dict[str, Any]]:
    """Move lapsed trials to the free plan and tell their admins once.

    The status change is the one-time gate: a downgraded tenant no longer
    matches the ``trialing`` filter.
    """

    now = _as_utc(now or datetime.now(UTC))
    with session_scope() as session:
        expired = session.execute(
            select(TenantSubscription.tenant_id, Tenant.tenant_name)
            .join(Tenant, Tenant.tenant_id == TenantSubscription.tenant_id, isouter=True)
            .where(
                TenantSubscription.status == TRIALING,
                TenantSubscription.trial_end.is_not(None),
                TenantSubscription.trial_end < now,
            )
        ).all()

    results: List[Dict[str, Any]] = []
    for tenant_id, tenant_name in expired:
        log = logger.bind(tenant_id=tenant_id)
        try:
            with session_scope() as session:
                changed = session.execute(
                    update(TenantSubscription)
                    .where(TenantSubscription.tenant_id == tenant_id, TenantSubscription.status == TRIALING)
                    .values(status="canceled", plan_id="free", updated_at=now)
                ).rowcount
        except SQLAlchemyError as exc:
            log.exception("trial_downgrade_failed")
            results.append({"tenant_id": tenant_id, "status": f"error: {exc.__class__.__name__}"})
            continue

        if changed != 1:
            log.info("trial_downgrade_skipped")
            continue

        log.info("trial_downgraded")
        results.append({"tenant_id": tenant_id, "status": "downgraded_to_free"})
        try:
            _notify_trial_expired(tenant_id, tenant_name or "Your Chapter", client_factory=client_factory)
        except SQLAlchemyError:
            log.exception("trial_expired_notice_failed")

    return results
