from __future__ import annotations

from fastapi.testclient import TestClient

from app.api.routes import health
from app.main import app


def test_health_returns_ok() -> None:
    client = TestClient(app)
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_ready_reports_failed_dependency(monkeypatch) -> None:
    async def _ok_database():
        return {"status": "ok"}

    async def _failed_store():
        return {"status": "failed", "error": "connection refused"}

    monkeypatch.setattr(health, "_check_database", _ok_database)
    monkeypatch.setattr(health, "_check_ephemeral_store", _failed_store)

    client = TestClient(app)
    response = client.get("/ready")

    assert response.status_code == 503
    assert response.json()["status"] == "not_ready"
    assert response.json()["checks"]["ephemeral_store"]["status"] == "failed"


def test_ready_when_all_dependencies_are_up(monkeypatch) -> None:
    async def _ok():
        return {"status": "ok"}

    monkeypatch.setattr(health, "_check_database", _ok)
    monkeypatch.setattr(health, "_check_ephemeral_store", _ok)

    client = TestClient(app)
    response = client.get("/ready")

    assert response.status_code == 200
    assert response.json()["status"] == "ready"
