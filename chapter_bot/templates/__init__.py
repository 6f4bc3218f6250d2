"""LINE message builders for reminders, RSVPs, membership and trials."""

from .common import (
    MSG_ALREADY_PROCESSED,
    MSG_APPLICANT_NOT_FOUND,
    MSG_GENERIC_ERROR,
    MSG_IDENTITY_MISMATCH,
    MSG_MEETING_NOT_FOUND,
    MSG_NOT_AUTHORIZED,
    MSG_PARTICIPANT_NOT_FOUND,
    format_thai_date,
    format_thai_short_date,
    text_message,
)
from .events import (
    build_event_reminder,
    build_leave_notice_for_admins,
    build_leave_reason_prompt,
    build_rsvp_confirmation,
    build_substitute_link,
)
from .membership import build_application_card, build_rejection_message, build_welcome_message
from .trials import build_trial_expired_message, build_trial_expiring_message

__all__ = [
    "MSG_ALREADY_PROCESSED",
    "MSG_APPLICANT_NOT_FOUND",
    "MSG_GENERIC_ERROR",
    "MSG_IDENTITY_MISMATCH",
    "MSG_MEETING_NOT_FOUND",
    "MSG_NOT_AUTHORIZED",
    "MSG_PARTICIPANT_NOT_FOUND",
    "format_thai_date",
    "format_thai_short_date",
    "text_message",
    "build_event_reminder",
    "build_leave_notice_for_admins",
    "build_leave_reason_prompt",
    "build_rsvp_confirmation",
    "build_substitute_link",
    "build_application_card",
    "build_rejection_message",
    "build_welcome_message",
    "build_trial_expired_message",
    "build_trial_expiring_message",
]
