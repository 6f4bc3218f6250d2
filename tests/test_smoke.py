"""Smoke tests for the health endpoint."""

from contextlib import contextmanager

import app as app_module


@contextmanager
def failing_session_scope():
    raise RuntimeError("db down")
    yield


def test_health_endpoint_returns_ok(database, monkeypatch):
    monkeypatch.setattr(app_module, "_LOGGING_CONFIGURED", True)
    flask_app = app_module.create_app()

    with flask_app.test_client() as client:
        response = client.get("/healthz")
        assert response.status_code == 200
        data = response.get_json()
        assert data["ok"] is True
        assert data["config"] == "valid"
        assert data["db"] == "up"
        assert "version" in data


def test_health_endpoint_reports_db_down(database, monkeypatch):
    monkeypatch.setattr(app_module, "_LOGGING_CONFIGURED", True)
    flask_app = app_module.create_app()
    monkeypatch.setattr(app_module, "session_scope", failing_session_scope)

    with flask_app.test_client() as client:
        response = client.get("/healthz")
        data = response.get_json()
        assert response.status_code == 503
        assert data["ok"] is False
        assert data["db"] == "down"
        assert "db_error" in data
