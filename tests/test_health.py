import pytest
from fastapi.testclient import TestClient

from app.core import health as health_module
from app.main import app

client = TestClient(app)


@pytest.fixture(autouse=True)
def _mock_env(monkeypatch):
    monkeypatch.setattr(health_module.settings, "environment", "test")
    yield


def test_health_live_returns_ok() -> None:
    response = client.get("/api/v1/health/live")
    assert response.status_code == 200
    payload = response.json()["data"]
    assert payload.get("status") == "ok"
    assert "timestamp" in payload


def test_health_ready_ok(monkeypatch) -> None:
    async def ok_check():
        return {"status": "ok"}

    monkeypatch.setattr(health_module, "_check_db", ok_check)
    monkeypatch.setattr(health_module, "_check_redis", ok_check)

    response = client.get("/api/v1/health/ready")
    assert response.status_code == 200
    payload = response.json()["data"]
    assert payload.get("status") == "ok"
    assert payload.get("ready") is True
    assert payload.get("environment") == "test"
    assert payload.get("version") == health_module.APP_VERSION


def test_health_ready_degraded_when_redis_down(monkeypatch) -> None:
    async def ok_db():
        return {"status": "ok"}

    async def bad_redis():
        return {"status": "error", "error": "connection refused"}

    monkeypatch.setattr(health_module, "_check_db", ok_db)
    monkeypatch.setattr(health_module, "_check_redis", bad_redis)

    response = client.get("/api/v1/health/ready")
    assert response.status_code == 200
    payload = response.json()["data"]
    assert payload.get("status") == "degraded"
    assert payload.get("ready") is False
    assert payload["checks"]["redis"]["status"] == "error"


def test_health_ready_reports_unmigrated_schema(monkeypatch) -> None:
    class _Conn:
        async def __aenter__(self):
            return self

        async def __aexit__(self, *exc):
            return False

        async def execute(self, stmt, params):
            assert params["names"] == list(health_module.REQUIRED_TABLES)
            return [("audit_logs",)]

    class _Engine:
        def connect(self):
            return _Conn()

    async def ok_redis():
        return {"status": "ok"}

    monkeypatch.setattr(health_module, "engine", _Engine())
    monkeypatch.setattr(health_module, "_check_redis", ok_redis)

    response = client.get("/api/v1/health/ready")
    assert response.status_code == 200
    payload = response.json()["data"]
    assert payload.get("ready") is False
    assert payload["checks"]["database"]["missing_tables"] == ["audit_logs"]
