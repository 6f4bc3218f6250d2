"""Cron-triggered notification jobs."""

from .reminders import (
    REMINDER_TYPES,
    check_and_send_scheduled_notifications,
    meeting_start,
    select_reminder_type,
    send_event_notifications,
)
from .trials import (
    check_and_downgrade_expired_trials,
    get_expiring_trials,
    send_trial_expiration_notifications,
)

__all__ = [
    "REMINDER_TYPES",
    "check_and_send_scheduled_notifications",
    "meeting_start",
    "select_reminder_type",
    "send_event_notifications",
    "check_and_downgrade_expired_trials",
    "get_expiring_trials",
    "send_trial_expiration_notifications",
]
