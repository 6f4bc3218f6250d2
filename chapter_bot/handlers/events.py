"""Pydantic models for inbound LINE webhook payloads."""

from __future__ import annotations

from typing import List

from pydantic import BaseModel, ConfigDict, Field, field_validator


class EventSource(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    type: str = "user"
    user_id: str | None = Field(None, alias="userId")


class MessageContent(BaseModel):
    model_config = ConfigDict(extra="ignore")

    type: str
    id: str | None = None
    text: str | None = None


class PostbackContent(BaseModel):
    model_config = ConfigDict(extra="ignore")

    data: str


class WebhookEvent(BaseModel):
    """A single event; unknown types parse and are ignored by dispatch."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    type: str
    reply_token: str | None = Field(None, alias="replyToken")
    source: EventSource = Field(default_factory=EventSource)
    message: MessageContent | None = None
    postback: PostbackContent | None = None
    webhook_event_id: str | None = Field(None, alias="webhookEventId")

    @property
    def user_id(self) -> str | None:
        return self.source.user_id

    @property
    def text(self) -> str | None:
        if self.type != "message" or self.message is None or self.message.type != "text":
            return None
        return self.message.text


class WebhookPayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    destination: str
    events: List[WebhookEvent] = Field(default_factory=list)

    @field_validator("destination")
    @classmethod
    def validate_destination(cls, value: str) -> str:
        trimmed = value.strip()
        if not trimmed:
            raise ValueError("destination must be a non-empty bot id")
        return trimmed
