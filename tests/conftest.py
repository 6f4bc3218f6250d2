"""Shared fixtures: a throwaway SQLite database, seed helpers and fake LINE clients."""

from __future__ import annotations

from datetime import date, time
from pathlib import Path
import sys

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:  # pragma: no cover
    sys.path.insert(0, str(ROOT))

from chapter_bot import config, vault  # noqa: E402
from chapter_bot.db import Base, get_engine, get_session_factory, session_scope  # noqa: E402
from chapter_bot.line_client import LineApiError  # noqa: E402
from chapter_bot.models import (  # noqa: E402
    ChapterJoinRequest,
    EventNotificationSettings,
    Meeting,
    Participant,
    Tenant,
    TenantSubscription,
    UserRole,
)

ENCRYPTION_KEY = "11" * 32
CRON_SECRET = "cron-secret"
PROFILE_TOKEN_SECRET = "profile-secret"


def _clear_caches() -> None:
    config.get_settings.cache_clear()
    get_engine.cache_clear()
    get_session_factory.cache_clear()
    vault.get_cipher.cache_clear()


def seed_env(monkeypatch, tmp_path, **overrides: str) -> None:
    values = {
        "DATABASE_URL": f"sqlite:///{tmp_path / 'chapter.db'}",
        "CRON_SECRET": CRON_SECRET,
        "PROFILE_TOKEN_SECRET": PROFILE_TOKEN_SECRET,
        "LINE_ENCRYPTION_KEY": ENCRYPTION_KEY,
        "APP_BASE_URL": "https://chapter.test",
    }
    values.update(overrides)
    for key, value in values.items():
        monkeypatch.setenv(key, value)
    monkeypatch.delenv("LINE_ENCRYPTION_PREVIOUS_KEYS", raising=False)
    _clear_caches()


@pytest.fixture
def database(monkeypatch, tmp_path):
    seed_env(monkeypatch, tmp_path)
    engine = get_engine()
    Base.metadata.create_all(engine)

    yield engine

    Base.metadata.drop_all(engine)
    _clear_caches()


def run_async_sync(func, /, *args, **kwargs):
    """Execute run_async workloads synchronously while ignoring trace context metadata."""

    kwargs.pop("trace_id", None)
    return func(*args, **kwargs)


class RecordingLineClient:
    """Stand-in for LineClient that records calls and can fail for chosen users."""

    def __init__(self, *, fail_for=()):
        self.pushes = []
        self.replies = []
        self.fail_for = set(fail_for)
        self.closed = 0

    def close(self):
        self.closed += 1

    def push(self, user_id, messages):
        if user_id in self.fail_for:
            raise LineApiError("push failed", status_code=500)
        self.pushes.append((user_id, messages))
        return {}

    def reply(self, reply_token, messages):
        self.replies.append((reply_token, messages))
        return {}

    def pushed_to(self):
        return [user_id for user_id, _ in self.pushes]

    def reply_texts(self):
        texts = []
        for _, messages in self.replies:
            items = messages if isinstance(messages, list) else [messages]
            texts.extend(item.get("text") or item.get("altText") for item in items)
        return texts


class Seeder:
    """Insert rows for a single test tenant."""

    def __init__(self, tenant_id: str = "T1", tenant_name: str = "BNI Test Chapter") -> None:
        self.tenant_id = tenant_id
        with session_scope() as session:
            session.add(Tenant(tenant_id=tenant_id, tenant_name=tenant_name))

    def participant(
        self,
        participant_id: str,
        *,
        full_name: str,
        line_user_id: str | None = None,
        user_id: str | None = None,
        status: str = "member",
        nickname: str | None = None,
        phone: str | None = None,
    ) -> str:
        with session_scope() as session:
            session.add(
                Participant(
                    participant_id=participant_id,
                    tenant_id=self.tenant_id,
                    full_name=full_name,
                    nickname=nickname,
                    phone=phone,
                    line_user_id=line_user_id,
                    user_id=user_id,
                    status=status,
                )
            )
        return participant_id

    def admin(self, participant_id: str, *, full_name: str, line_user_id: str, user_id: str, **kwargs) -> str:
        self.participant(participant_id, full_name=full_name, line_user_id=line_user_id, user_id=user_id, **kwargs)
        with session_scope() as session:
            session.add(UserRole(user_id=user_id, tenant_id=self.tenant_id, role="chapter_admin"))
        return participant_id

    def meeting(
        self,
        meeting_id: str,
        *,
        meeting_date: date,
        meeting_time: time | None = None,
        theme: str | None = "Weekly meeting",
        venue: str | None = "Grand Hall",
    ) -> str:
        with session_scope() as session:
            session.add(
                Meeting(
                    meeting_id=meeting_id,
                    tenant_id=self.tenant_id,
                    meeting_date=meeting_date,
                    meeting_time=meeting_time,
                    theme=theme,
                    venue=venue,
                )
            )
        return meeting_id

    def join_request(self, request_id: str, *, participant_id: str, status: str = "pending") -> str:
        with session_scope() as session:
            session.add(
                ChapterJoinRequest(
                    request_id=request_id,
                    tenant_id=self.tenant_id,
                    participant_id=participant_id,
                    status=status,
                )
            )
        return request_id

    def reminder_settings(self, **flags: bool) -> None:
        with session_scope() as session:
            session.add(EventNotificationSettings(tenant_id=self.tenant_id, **flags))

    def subscription(self, *, trial_end, status: str = "trialing", plan_id: str = "pro") -> None:
        with session_scope() as session:
            session.add(
                TenantSubscription(tenant_id=self.tenant_id, status=status, plan_id=plan_id, trial_end=trial_end)
            )

    def credentials(self, *, channel_id: str = "Ubot1", access_token: str = "token-1", channel_secret: str = "secret-1"):
        vault.save_credentials(
            self.tenant_id,
            access_token=access_token,
            channel_secret=channel_secret,
            channel_id=channel_id,
        )


@pytest.fixture
def seed(database):
    return Seeder()


@pytest.fixture
def line_client():
    return RecordingLineClient()


@pytest.fixture
def make_line_client():
    return RecordingLineClient


@pytest.fixture
def sync_run_async():
    return run_async_sync


@pytest.fixture
def make_seeder(database):
    return Seeder
