"""Tests for the Flask application factory, webhook and scheduled-job routes."""

import json
from datetime import UTC, date, datetime, timedelta

import httpx
import pytest

import app as app_module
from chapter_bot import roster
from chapter_bot.db import session_scope
from chapter_bot.line_client import LineClient
from chapter_bot.security import LINE_SIGNATURE_HEADER, compute_signature

CHANNEL_SECRET = "secret-1"


@pytest.fixture
def flask_app(seed, monkeypatch, line_client, sync_run_async):
    seed.participant("P1", full_name="Somchai Jaidee", line_user_id="U1")
    seed.meeting("M1", meeting_date=date(2026, 10, 22))
    seed.credentials(channel_id="Ubot1", channel_secret=CHANNEL_SECRET)

    monkeypatch.setattr(app_module, "_LOGGING_CONFIGURED", True)
    monkeypatch.setattr(app_module, "run_async", sync_run_async)
    monkeypatch.setattr(app_module, "LineClient", lambda **kwargs: line_client)
    return app_module.create_app()


def _webhook_body(destination="Ubot1", data="action=rsvp_confirm&meeting_id=M1"):
    return json.dumps(
        {
            "destination": destination,
            "events": [
                {
                    "type": "postback",
                    "replyToken": "reply-1",
                    "source": {"type": "user", "userId": "U1"},
                    "postback": {"data": data},
                }
            ],
        }
    )


def _post_webhook(flask_app, body, signature):
    client = flask_app.test_client()
    return client.post(
        "/line/webhook",
        data=body,
        content_type="application/json",
        headers={LINE_SIGNATURE_HEADER: signature},
    )


def _rsvp_status():
    with session_scope() as session:
        row = roster.get_rsvp(session, meeting_id="M1", participant_id="P1")
        return None if row is None else row.rsvp_status


def test_signed_webhook_is_dispatched(flask_app, line_client):
    body = _webhook_body()

    response = _post_webhook(flask_app, body, compute_signature(CHANNEL_SECRET, body))

    assert response.status_code == 200
    assert response.data == b""
    assert _rsvp_status() == "confirmed"
    assert line_client.reply_texts() == ["ยืนยันเข้าร่วมแล้ว"]


def test_webhook_closes_its_line_client(flask_app, monkeypatch):
    requests = []
    built = []

    def handler(request):
        requests.append(request.url.path)
        return httpx.Response(200, json={})

    def build_client(**kwargs):
        client = LineClient(transport=httpx.MockTransport(handler), **kwargs)
        built.append(client)
        return client

    monkeypatch.setattr(app_module, "LineClient", build_client)
    body = _webhook_body()

    response = _post_webhook(flask_app, body, compute_signature(CHANNEL_SECRET, body))

    assert response.status_code == 200
    assert requests == ["/v2/bot/message/reply"]
    assert len(built) == 1
    assert built[0].client.is_closed is True


def test_invalid_signature_returns_unauthorised(flask_app, line_client):
    body = _webhook_body()

    response = _post_webhook(flask_app, body, compute_signature("wrong-secret", body))

    assert response.status_code == 401
    assert response.get_json()["error"] == "invalid_signature"
    assert _rsvp_status() is None
    assert line_client.replies == []


def test_unknown_destination_returns_not_found(flask_app):
    body = _webhook_body(destination="Ubot-unknown")

    response = _post_webhook(flask_app, body, compute_signature(CHANNEL_SECRET, body))

    assert response.status_code == 404
    assert response.get_json()["error"] == "unknown_destination"


@pytest.mark.parametrize("body", ["not json", json.dumps({"events": []}), json.dumps({"destination": " "})])
def test_malformed_payload_returns_bad_request(flask_app, body):
    response = _post_webhook(flask_app, body, compute_signature(CHANNEL_SECRET, body))

    assert response.status_code == 400
    assert response.get_json()["error"] == "invalid_payload"


def test_failing_event_does_not_block_later_events(flask_app, line_client, monkeypatch):
    calls = []

    def flaky_dispatch(event, ctx):
        calls.append(event.postback.data)
        if len(calls) == 1:
            raise RuntimeError("handler crashed")
        return True

    monkeypatch.setattr(app_module, "dispatch_event", flaky_dispatch)
    payload = json.loads(_webhook_body())
    payload["events"].append(dict(payload["events"][0], postback={"data": "action=skip_apply"}))
    body = json.dumps(payload)

    response = _post_webhook(flask_app, body, compute_signature(CHANNEL_SECRET, body))

    assert response.status_code == 200
    assert calls == ["action=rsvp_confirm&meeting_id=M1", "action=skip_apply"]


def test_unhandled_error_returns_trace_id(flask_app, monkeypatch):
    def explode(bot_id):
        raise RuntimeError("vault unavailable")

    monkeypatch.setattr(app_module, "resolve_by_bot_id", explode)
    body = _webhook_body()

    response = _post_webhook(flask_app, body, compute_signature(CHANNEL_SECRET, body))

    assert response.status_code == 500
    data = response.get_json()
    assert data["error"] == "internal_server_error"
    assert data["trace_id"]


@pytest.mark.parametrize("header", [None, "Bearer wrong", "cron-secret"])
def test_scheduled_jobs_require_cron_secret(flask_app, header):
    headers = {"Authorization": header} if header else {}

    response = flask_app.test_client().post("/scheduled-jobs/event-reminders", headers=headers)

    assert response.status_code == 401
    assert response.get_json() == {"error": "Unauthorized"}


def test_trial_downgrade_job_reports_count(flask_app, seed):
    seed.subscription(trial_end=datetime.now(UTC) - timedelta(hours=1))

    response = flask_app.test_client().post(
        "/scheduled-jobs/trial-downgrade", headers={"Authorization": "Bearer cron-secret"}
    )

    data = response.get_json()
    assert response.status_code == 200
    assert data["success"] is True
    assert data["downgraded"] == 1
    assert data["results"] == [{"tenant_id": "T1", "status": "downgraded_to_free"}]
    assert "timestamp" in data


def test_run_all_jobs_aggregates_results(flask_app):
    response = flask_app.test_client().post("/scheduled-jobs/all", headers={"Authorization": "Bearer cron-secret"})

    data = response.get_json()
    assert response.status_code == 200
    assert set(data["results"]) == {
        "trial_notifications",
        "trial_downgrade",
        "event_reminders",
        "reconcile_approvals",
        "conversations_purged",
    }
    assert data["results"]["reconcile_approvals"] == {"checked": 0, "repaired": 0, "failed": 0}


def test_failing_job_returns_error(flask_app, monkeypatch):
    def broken():
        raise RuntimeError("database unavailable")

    monkeypatch.setattr(app_module, "reconcile_approvals", broken)

    response = flask_app.test_client().post(
        "/scheduled-jobs/reconcile-approvals", headers={"Authorization": "Bearer cron-secret"}
    )

    assert response.status_code == 500
    assert response.get_json() == {"error": "database unavailable"}
