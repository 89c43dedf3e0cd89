# tests/test_health.py
import pytest

from src.backend import db

pytestmark = pytest.mark.unit


def test_healthz(client):
    assert client.get("/healthz").json() == {"status": "ok", "service": "pumptrack"}


def test_readyz_ok(client, monkeypatch):
    monkeypatch.setattr(db, "ping", lambda: True)
    r = client.get("/readyz")
    assert r.status_code == 200
    assert r.json()["db"] == "ok"


def test_readyz_db_down(client, monkeypatch):
    def down():
        raise RuntimeError("connection refused")

    monkeypatch.setattr(db, "ping", down)
    r = client.get("/readyz")
    assert r.status_code == 503
    assert "connection refused" in r.json()["detail"]


def test_request_id_and_security_headers(client):
    r = client.get("/healthz", headers={"X-Request-ID": "abc-123"})
    assert r.headers["X-Request-ID"] == "abc-123"
    assert r.headers["X-Content-Type-Options"] == "nosniff"
    assert "cdn.jsdelivr.net" in r.headers["Content-Security-Policy"]


def test_api_v1_alias(client):
    assert client.get("/api/v1/auth/me").status_code == 401
