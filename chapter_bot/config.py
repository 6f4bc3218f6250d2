"""Pydantic-based configuration helpers for the chapter LINE bot."""

from __future__ import annotations

import os
from functools import lru_cache
from typing import Iterable, List

from pydantic import BaseModel, Field, ValidationError, field_validator

DEFAULT_LINE_API_BASE = "https://api.line.me/v2"


def _validate_hex_key(value: str) -> str:
    candidate = value.strip().lower()
    if len(candidate) != 64:
        raise ValueError("Encryption keys must be 64 hex characters (32 bytes)")
    try:
        bytes.fromhex(candidate)
    except ValueError as exc:
        raise ValueError("Encryption keys must be hex encoded") from exc
    return candidate


class AppSettings(BaseModel):
    """Settings required to run the webhook, scheduler jobs and credential vault."""

    database_url: str = Field(..., alias="DATABASE_URL")
    cron_secret: str = Field(..., alias="CRON_SECRET")
    profile_token_secret: str = Field(..., alias="PROFILE_TOKEN_SECRET")
    line_encryption_key: str | None = Field(None, alias="LINE_ENCRYPTION_KEY")
    line_encryption_previous_keys: List[str] = Field(default_factory=list, alias="LINE_ENCRYPTION_PREVIOUS_KEYS")
    app_base_url: str = Field("https://meetdup.app", alias="APP_BASE_URL")
    meeting_timezone: str = Field("Asia/Bangkok", alias="MEETING_TIMEZONE")
    conversation_timeout_seconds: int = Field(300, alias="CONVERSATION_TIMEOUT_SECONDS")
    substitute_token_ttl_hours: int = Field(24, alias="SUBSTITUTE_TOKEN_TTL_HOURS")
    line_api_base: str = Field(DEFAULT_LINE_API_BASE, alias="LINE_API_BASE")

    @field_validator("line_encryption_key", mode="before")
    @classmethod
    def _check_key(cls, value: str | None) -> str | None:
        if value is None or not str(value).strip():
            return None
        return _validate_hex_key(str(value))

    @field_validator("line_encryption_previous_keys", mode="before")
    @classmethod
    def _split_keys(cls, value: str | list[str] | None) -> list[str]:
        if value is None:
            return []
        items = value if isinstance(value, list) else value.split(",")
        return [_validate_hex_key(item) for item in items if item.strip()]

    @field_validator("conversation_timeout_seconds", "substitute_token_ttl_hours")
    @classmethod
    def _ensure_positive(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("Timeouts must be greater than zero")
        return value

    @field_validator("app_base_url", "line_api_base")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")


def _format_missing(fields: Iterable[str]) -> str:
    """Return a human-friendly comma-separated list of missing env vars."""

    unique: List[str] = []
    for field in fields:
        if field not in unique:
            unique.append(field)
    return ", ".join(unique)


@lru_cache()
def get_settings() -> AppSettings:
    """Fetch and cache settings from environment variables."""

    try:
        return AppSettings.model_validate(os.environ)
    except ValidationError as exc:
        missing = [str(error["loc"][0]) for error in exc.errors() if error["type"] == "missing"]
        if not missing:
            raise RuntimeError(f"Invalid configuration: {exc}") from exc
        message = (
            "Missing required environment variables: "
            f"{_format_missing(missing)}"
        )
        raise RuntimeError(message) from exc
