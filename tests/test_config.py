"""Tests for configuration helpers."""

from pathlib import Path
import sys

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:  # pragma: no cover
    sys.path.insert(0, str(ROOT))

from chapter_bot import config  # noqa: E402

KEY_A = "aa" * 32
KEY_B = "BB" * 32


def _seed_env(monkeypatch, **extra):
    monkeypatch.setenv("DATABASE_URL", "sqlite:///local.db")
    monkeypatch.setenv("CRON_SECRET", "cron")
    monkeypatch.setenv("PROFILE_TOKEN_SECRET", "profile")
    for name in (
        "LINE_ENCRYPTION_KEY",
        "LINE_ENCRYPTION_PREVIOUS_KEYS",
        "APP_BASE_URL",
        "MEETING_TIMEZONE",
        "CONVERSATION_TIMEOUT_SECONDS",
        "SUBSTITUTE_TOKEN_TTL_HOURS",
        "LINE_API_BASE",
    ):
        monkeypatch.delenv(name, raising=False)
    for key, value in extra.items():
        monkeypatch.setenv(key, value)
    config.get_settings.cache_clear()


def test_get_settings_parses_expected_fields(monkeypatch):
    _seed_env(
        monkeypatch,
        LINE_ENCRYPTION_KEY=KEY_A,
        LINE_ENCRYPTION_PREVIOUS_KEYS=f"{KEY_B}, ",
        APP_BASE_URL="https://example.test/",
    )

    settings = config.get_settings()

    assert settings.database_url == "sqlite:///local.db"
    assert settings.cron_secret == "cron"
    assert settings.profile_token_secret == "profile"
    assert settings.line_encryption_key == KEY_A
    assert settings.line_encryption_previous_keys == [KEY_B.lower()]
    assert settings.app_base_url == "https://example.test"


def test_defaults_apply_when_optional_values_missing(monkeypatch):
    _seed_env(monkeypatch)

    settings = config.get_settings()

    assert settings.line_encryption_key is None
    assert settings.line_encryption_previous_keys == []
    assert settings.app_base_url == "https://meetdup.app"
    assert settings.meeting_timezone == "Asia/Bangkok"
    assert settings.conversation_timeout_seconds == 300
    assert settings.substitute_token_ttl_hours == 24
    assert settings.line_api_base == config.DEFAULT_LINE_API_BASE


def test_settings_are_cached(monkeypatch):
    _seed_env(monkeypatch)

    assert config.get_settings() is config.get_settings()


def test_missing_environment_variables_raise_runtime_error(monkeypatch):
    for var in ("DATABASE_URL", "CRON_SECRET", "PROFILE_TOKEN_SECRET"):
        monkeypatch.delenv(var, raising=False)
    config.get_settings.cache_clear()

    with pytest.raises(RuntimeError) as err:
        config.get_settings()

    message = str(err.value)
    assert message.startswith("Missing required environment variables")
    assert "DATABASE_URL" in message
    assert "CRON_SECRET" in message
    assert "PROFILE_TOKEN_SECRET" in message


@pytest.mark.parametrize("bad_key", ["abc", "zz" * 32])
def test_malformed_encryption_key_is_rejected(monkeypatch, bad_key):
    _seed_env(monkeypatch, LINE_ENCRYPTION_KEY=bad_key)

    with pytest.raises(RuntimeError, match="Invalid configuration"):
        config.get_settings()


def test_non_positive_timeout_is_rejected(monkeypatch):
    _seed_env(monkeypatch, CONVERSATION_TIMEOUT_SECONDS="0")

    with pytest.raises(RuntimeError, match="Invalid configuration"):
        config.get_settings()
