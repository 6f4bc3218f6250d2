"""Application entry point for the chapter LINE bot."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any, Callable, Iterable
from uuid import uuid4

import structlog
from flask import Flask, jsonify, request
from pydantic import ValidationError
from sqlalchemy import text
from structlog.contextvars import bind_contextvars, unbind_contextvars

from chapter_bot.approvals import reconcile_approvals
from chapter_bot.background import run_async
from chapter_bot.config import AppSettings, get_settings
from chapter_bot.conversation import InMemoryConversationStore
from chapter_bot.db import session_scope
from chapter_bot.handlers import EventContext, WebhookEvent, WebhookPayload, dispatch_event
from chapter_bot.line_client import LineClient
from chapter_bot.logging_config import configure_logging
from chapter_bot.scheduler import (
    check_and_downgrade_expired_trials,
    check_and_send_scheduled_notifications,
    send_trial_expiration_notifications,
)
from chapter_bot.security import LINE_SIGNATURE_HEADER, is_valid_bearer, is_valid_line_signature
from chapter_bot.vault import resolve_by_bot_id

_LOGGING_CONFIGURED = False


def _load_version() -> str:
    version_file = Path(__file__).resolve().parent / "VERSION"
    if version_file.exists():
        return version_file.read_text(encoding="utf-8").strip()
    return "unknown"


def _error(message: str, status: int):
    response = jsonify({"error": message})
    response.status_code = status
    return response


def _register_error_handlers(flask_app: Flask) -> None:
    """Register a JSON error handler that attaches a trace identifier."""

    @flask_app.errorhandler(Exception)
    def handle_unexpected_error(error: Exception):  # type: ignore[override]
        trace_id = str(uuid4())
        flask_app.logger.exception(
            "Unhandled application error", extra={"trace_id": trace_id}, exc_info=error
        )
        response = jsonify({"error": "internal_server_error", "trace_id": trace_id})
        response.status_code = 500
        return response


def _process_events(events: Iterable[WebhookEvent], ctx: EventContext) -> int:
    """Dispatch each event in order; one failing event does not stop the rest.

    The context's client is closed once the batch is done.
    """

    log = structlog.get_logger().bind(tenant_id=ctx.tenant_id, trace_id=ctx.trace_id)
    handled = 0
    try:
        for event in events:
            try:
                if dispatch_event(event, ctx):
                    handled += 1
            except Exception:
                log.exception("event_dispatch_failed", event_type=event.type, line_user_id=event.user_id)
    finally:
        ctx.client.close()
    log.info("webhook_events_processed", handled=handled)
    return handled


def _register_webhook_route(flask_app: Flask, settings: AppSettings, conversations: InMemoryConversationStore) -> None:
    @flask_app.route("/line/webhook", methods=["POST"])
    def line_webhook():
        trace_id = str(uuid4())
        bind_contextvars(trace_id=trace_id)
        log = structlog.get_logger().bind(trace_id=trace_id)
        try:
            raw_body = request.get_data()
            try:
                payload = WebhookPayload.model_validate_json(raw_body)
            except ValidationError:
                log.warning("webhook_payload_invalid")
                return _error("invalid_payload", 400)

            log = log.bind(destination=payload.destination)
            resolved = resolve_by_bot_id(payload.destination)
            if resolved is None:
                log.warning("webhook_destination_unknown")
                return _error("unknown_destination", 404)

            signature = request.headers.get(LINE_SIGNATURE_HEADER, "")
            if not is_valid_line_signature(
                channel_secret=resolved.credentials.channel_secret,
                body=raw_body,
                signature=signature,
            ):
                log.warning("webhook_signature_invalid", tenant_id=resolved.tenant_id)
                return _error("invalid_signature", 401)

            ctx = EventContext(
                tenant_id=resolved.tenant_id,
                client=LineClient(
                    access_token=resolved.credentials.access_token,
                    base_url=settings.line_api_base,
                ),
                conversations=conversations,
                settings=settings,
                trace_id=trace_id,
            )
            log.info("webhook_received", tenant_id=resolved.tenant_id, events=len(payload.events))
            run_async(_process_events, payload.events, ctx, trace_id=trace_id)
            return "", 200
        finally:
            unbind_contextvars("trace_id")


def _job_response(results: Any, **extra: Any):
    body = {"success": True, "timestamp": datetime.now(UTC).isoformat(), "results": results}
    body.update(extra)
    return jsonify(body)


def _register_scheduled_job_routes(
    flask_app: Flask, settings: AppSettings, conversations: InMemoryConversationStore
) -> None:
    def guarded(name: str, job: Callable[[], Any], **extra: Callable[[Any], Any]):
        log = structlog.get_logger().bind(job=name)
        if not is_valid_bearer(request.headers.get("Authorization"), settings.cron_secret):
            log.warning("scheduled_job_unauthorized")
            return _error("Unauthorized", 401)

        log.info("scheduled_job_started")
        try:
            results = job()
        except Exception as exc:
            log.exception("scheduled_job_failed")
            return _error(str(exc), 500)

        log.info("scheduled_job_finished")
        return _job_response(results, **{key: derive(results) for key, derive in extra.items()})

    def _downgraded(results: list) -> int:
        return sum(1 for item in results if item.get("status") == "downgraded_to_free")

    def _run_all() -> dict:
        downgrades = check_and_downgrade_expired_trials()
        return {
            "trial_notifications": send_trial_expiration_notifications(),
            "trial_downgrade": {"downgraded": _downgraded(downgrades), "results": downgrades},
            "event_reminders": check_and_send_scheduled_notifications(),
            "reconcile_approvals": reconcile_approvals(),
            "conversations_purged": conversations.purge_expired(),
        }

    @flask_app.route("/scheduled-jobs/trial-notifications", methods=["POST"])
    def trial_notifications_job():
        return guarded("trial_notifications", send_trial_expiration_notifications)

    @flask_app.route("/scheduled-jobs/trial-downgrade", methods=["POST"])
    def trial_downgrade_job():
        return guarded("trial_downgrade", check_and_downgrade_expired_trials, downgraded=_downgraded)

    @flask_app.route("/scheduled-jobs/event-reminders", methods=["POST"])
    def event_reminders_job():
        return guarded("event_reminders", check_and_send_scheduled_notifications)

    @flask_app.route("/scheduled-jobs/reconcile-approvals", methods=["POST"])
    def reconcile_approvals_job():
        return guarded("reconcile_approvals", reconcile_approvals)

    @flask_app.route("/scheduled-jobs/all", methods=["POST"])
    def all_jobs():
        return guarded("all", _run_all)


def create_app() -> Flask:
    """Create and configure the Flask application."""

    global _LOGGING_CONFIGURED
    if not _LOGGING_CONFIGURED:
        configure_logging()
        _LOGGING_CONFIGURED = True

    settings = get_settings()
    conversations = InMemoryConversationStore(
        timeout=timedelta(seconds=settings.conversation_timeout_seconds)
    )

    flask_app = Flask(__name__)
    flask_app.config["APP_VERSION"] = _load_version()
    flask_app.extensions["conversations"] = conversations
    flask_app.logger.setLevel("INFO")

    _register_error_handlers(flask_app)
    _register_webhook_route(flask_app, settings, conversations)
    _register_scheduled_job_routes(flask_app, settings, conversations)

    @flask_app.route("/healthz", methods=["GET"])
    def healthz():
        health: dict[str, object] = {"ok": True}
        health["version"] = flask_app.config.get("APP_VERSION", "unknown")

        try:
            get_settings()
            health["config"] = "valid"
        except Exception as exc:  # pragma: no cover - configuration is validated at startup
            health["config"] = "invalid"
            health["config_error"] = str(exc)
            health["ok"] = False

        try:
            with session_scope() as session:
                session.execute(text("SELECT 1"))
            health["db"] = "up"
        except Exception as exc:
            health["db"] = "down"
            health["db_error"] = str(exc)
            health["ok"] = False

        status = 200 if health["ok"] else 503
        return jsonify(health), status

    return flask_app


if __name__ == "__main__":  # pragma: no cover - manual execution helper
    application = create_app()
    application.run(host="0.0.0.0", port=3000, debug=True)
