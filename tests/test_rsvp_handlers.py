"""Tests for RSVP postbacks and the leave-reason conversation."""

from datetime import date, timedelta

import pytest

from chapter_bot import roster
from chapter_bot.config import get_settings
from chapter_bot.conversation import InMemoryConversationStore
from chapter_bot.db import session_scope
from chapter_bot.handlers import EventContext, WebhookEvent, dispatch_event
from chapter_bot.line_client import LineApiError
from chapter_bot.templates import MSG_MEETING_NOT_FOUND, MSG_PARTICIPANT_NOT_FOUND
from chapter_bot.tokens import verify_substitute_token


class FakeTimer:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


def _postback(data, *, user_id="U1", reply_token="reply-1"):
    return WebhookEvent.model_validate(
        {
            "type": "postback",
            "replyToken": reply_token,
            "source": {"type": "user", "userId": user_id},
            "postback": {"data": data},
        }
    )


def _text(text, *, user_id="U1", reply_token="reply-2"):
    return WebhookEvent.model_validate(
        {
            "type": "message",
            "replyToken": reply_token,
            "source": {"type": "user", "userId": user_id},
            "message": {"type": "text", "id": "m1", "text": text},
        }
    )


@pytest.fixture
def chapter(seed):
    seed.participant("P1", full_name="Somchai Jaidee", nickname="Chai", line_user_id="U1")
    seed.admin("PA", full_name="Admin One", line_user_id="UA", user_id="A1")
    seed.admin("PB", full_name="Admin Two", line_user_id="UB", user_id="A2")
    seed.meeting("M1", meeting_date=date(2026, 10, 22))
    return seed


@pytest.fixture
def timer():
    return FakeTimer()


@pytest.fixture
def ctx(chapter, line_client, timer):
    return EventContext(
        tenant_id="T1",
        client=line_client,
        conversations=InMemoryConversationStore(timeout=timedelta(minutes=5), timer=timer),
        settings=get_settings(),
        trace_id="trace-1",
    )


def _rsvp_row(meeting_id="M1", participant_id="P1"):
    with session_scope() as session:
        row = roster.get_rsvp(session, meeting_id=meeting_id, participant_id=participant_id)
        return None if row is None else (row.rsvp_status, row.leave_reason)


def test_confirm_records_rsvp_and_replies(ctx, line_client):
    handled = dispatch_event(_postback("action=rsvp_confirm&meeting_id=M1"), ctx)

    assert handled is True
    assert _rsvp_row() == ("confirmed", None)
    assert line_client.reply_texts() == ["ยืนยันเข้าร่วมแล้ว"]
    assert line_client.replies[0][0] == "reply-1"


def test_substitute_replies_with_signed_link(ctx, line_client):
    dispatch_event(_postback("action=rsvp_substitute&meeting_id=M1"), ctx)

    assert _rsvp_row() == ("substitute", None)
    confirmation, link = line_client.replies[0][1]
    assert confirmation["altText"] == "บันทึกตัวแทนแล้ว"
    uri = link["contents"]["footer"]["contents"][0]["action"]["uri"]
    assert uri.startswith("https://chapter.test/substitute/")

    payload = verify_substitute_token(uri.rsplit("/", 1)[1], secret=ctx.settings.profile_token_secret)
    assert payload["participant_id"] == "P1"
    assert payload["tenant_id"] == "T1"
    assert payload["meeting_id"] == "M1"


def test_unknown_sender_gets_not_found_reply(ctx, line_client):
    dispatch_event(_postback("action=rsvp_confirm&meeting_id=M1", user_id="U-stranger"), ctx)

    assert line_client.reply_texts() == [MSG_PARTICIPANT_NOT_FOUND]
    assert _rsvp_row() is None


def test_unknown_meeting_gets_not_found_reply(ctx, line_client):
    dispatch_event(_postback("action=rsvp_confirm&meeting_id=M404"), ctx)

    assert line_client.reply_texts() == [MSG_MEETING_NOT_FOUND]
    assert _rsvp_row(meeting_id="M404") is None


def test_meeting_of_other_tenant_is_not_found(ctx, line_client, make_seeder):
    make_seeder("T2", "Other Chapter").meeting("M2", meeting_date=date(2026, 10, 22))

    dispatch_event(_postback("action=rsvp_confirm&meeting_id=M2"), ctx)

    assert line_client.reply_texts() == [MSG_MEETING_NOT_FOUND]
    assert _rsvp_row(meeting_id="M2") is None


def test_leave_postback_prompts_for_reason_without_recording(ctx, line_client):
    dispatch_event(_postback("action=rsvp_leave&meeting_id=M1"), ctx)

    state = ctx.conversations.get("T1", "U1")
    assert state is not None
    assert state.payload == {"meeting_id": "M1", "participant_id": "P1"}
    assert _rsvp_row() is None
    prompt = line_client.replies[0][1]
    assert prompt["type"] == "text"
    assert "quickReply" in prompt


def test_leave_flow_records_reason_and_notifies_each_admin(ctx, line_client):
    dispatch_event(_postback("action=rsvp_leave&meeting_id=M1"), ctx)
    handled = dispatch_event(_text("ไม่สบาย"), ctx)

    assert handled is True
    assert _rsvp_row() == ("leave", "ไม่สบาย")
    assert ctx.conversations.get("T1", "U1") is None
    assert line_client.reply_texts()[-1] == "บันทึกการลาแล้ว"

    assert sorted(line_client.pushed_to()) == ["UA", "UB"]
    for _, message in line_client.pushes:
        assert "Somchai Jaidee" in message["text"]
        assert "ไม่สบาย" in message["text"]


@pytest.mark.parametrize("text", ["", "   ", "\n\t"])
def test_blank_reason_reprompts_and_keeps_conversation(ctx, line_client, text):
    dispatch_event(_postback("action=rsvp_leave&meeting_id=M1"), ctx)

    handled = dispatch_event(_text(text), ctx)

    assert handled is True
    assert _rsvp_row() is None
    assert ctx.conversations.get("T1", "U1") is not None
    assert len(line_client.replies) == 2
    assert "quickReply" in line_client.replies[-1][1]
    assert line_client.pushes == []

    dispatch_event(_text("ไม่สบาย"), ctx)

    assert _rsvp_row() == ("leave", "ไม่สบาย")


def test_admin_push_failure_does_not_affect_reply(ctx, make_line_client):
    ctx.client = make_line_client(fail_for={"UA"})

    dispatch_event(_postback("action=rsvp_leave&meeting_id=M1"), ctx)
    dispatch_event(_text("ธุระส่วนตัว"), ctx)

    assert _rsvp_row() == ("leave", "ธุระส่วนตัว")
    assert ctx.client.pushed_to() == ["UB"]
    assert ctx.client.reply_texts()[-1] == "บันทึกการลาแล้ว"


def test_text_after_timeout_is_ignored(ctx, line_client, timer):
    dispatch_event(_postback("action=rsvp_leave&meeting_id=M1"), ctx)
    timer.now += 301

    handled = dispatch_event(_text("ไม่สบาย"), ctx)

    assert handled is False
    assert _rsvp_row() is None
    assert len(line_client.replies) == 1
    assert line_client.pushes == []


def test_text_without_conversation_is_unhandled(ctx, line_client):
    assert dispatch_event(_text("hello"), ctx) is False
    assert line_client.replies == []


def test_rejected_reply_is_logged_not_raised(ctx):
    class RefusingClient:
        def reply(self, reply_token, messages):
            raise LineApiError("Invalid reply token", status_code=400)

    ctx.client = RefusingClient()

    assert dispatch_event(_postback("action=rsvp_confirm&meeting_id=M1"), ctx) is True
    assert _rsvp_row() == ("confirmed", None)


@pytest.mark.parametrize(
    "data",
    ["", "meeting_id=M1", "action=unknown_action&meeting_id=M1", "action=rsvp_confirm"],
)
def test_unusable_postbacks_are_ignored(ctx, line_client, data):
    assert dispatch_event(_postback(data), ctx) is False
    assert line_client.replies == []


def test_event_without_user_is_ignored(ctx, line_client):
    event = WebhookEvent.model_validate(
        {"type": "postback", "source": {"type": "group"}, "postback": {"data": "action=rsvp_confirm&meeting_id=M1"}}
    )

    assert dispatch_event(event, ctx) is False
    assert line_client.replies == []
