"""Tests for database schema creation."""

from datetime import date

import pytest
from sqlalchemy import inspect
from sqlalchemy.exc import IntegrityError

from chapter_bot.db import _connect_args, get_engine
from chapter_bot.models import EventNotificationLog, MeetingRsvp, NotificationLog, UserRole


def test_create_all_creates_expected_tables(database):
    inspector = inspect(database)
    tables = set(inspector.get_table_names())

    assert tables.issuperset(
        {
            "tenants",
            "tenant_secrets",
            "participants",
            "user_roles",
            "meetings",
            "meeting_rsvp",
            "event_notification_settings",
            "event_notification_log",
            "notification_logs",
            "tenant_subscriptions",
            "chapter_join_requests",
        }
    )

    rsvp_columns = {column["name"] for column in inspector.get_columns("meeting_rsvp")}
    assert rsvp_columns.issuperset({"rsvp_status", "leave_reason", "last_notified_at", "notification_count"})

    secret_columns = {column["name"] for column in inspector.get_columns("tenant_secrets")}
    assert secret_columns.issuperset({"tenant_id", "secret_key", "secret_value"})


@pytest.mark.parametrize(
    ("table", "row"),
    [
        (
            MeetingRsvp.__table__,
            {"tenant_id": "T1", "meeting_id": "M1", "participant_id": "P1", "rsvp_status": "pending", "notification_count": 0},
        ),
        (
            EventNotificationLog.__table__,
            {"tenant_id": "T1", "meeting_id": "M1", "notification_type": "1_day", "total_sent": 0, "total_failed": 0},
        ),
        (
            NotificationLog.__table__,
            {"tenant_id": "T1", "notification_type": "trial_expiring_3d", "sent_on": date(2026, 10, 19)},
        ),
        (UserRole.__table__, {"user_id": "A1", "tenant_id": "T1", "role": "member"}),
    ],
)
def test_unique_constraints_reject_duplicates(database, table, row):
    engine = get_engine()
    with engine.begin() as connection:
        connection.execute(table.insert(), row)

    with pytest.raises(IntegrityError):
        with engine.begin() as connection:
            connection.execute(table.insert(), row)


@pytest.mark.parametrize(
    ("url", "expected"),
    [
        ("sqlite:///chapter.db", {"check_same_thread": False}),
        ("postgresql+psycopg://bot@db/chapter", {}),
    ],
)
def test_sqlite_connections_are_shared_with_worker_threads(url, expected):
    assert _connect_args(url) == expected
