from __future__ import annotations

import dataclasses

from fastapi.testclient import TestClient

from frame import config, main
from frame.security.tokens import issue_access_token


def test_app_wires_memory_store_and_metrics(monkeypatch):
    monkeypatch.setattr(main, "settings", dataclasses.replace(main.settings, store_backend="memory"))
    token, _ = issue_access_token(subject="admin-1", scope="admin", name="Ada Admin", groups=["root"])
    headers = {"Authorization": f"Bearer {token}"}

    with TestClient(main.app) as client:
        health = client.get("/healthz")
        created = client.post("/api/accounts", json={"name": "Jane Q Doe"}, headers=headers)
        metrics = client.get("/metrics")

    assert health.json() == {"status": "ok"}
    assert created.status_code == 201
    assert "frame_account_operations_total" in metrics.text


def test_cors_origins_come_from_environment(monkeypatch):
    monkeypatch.setenv("FRAME_CORS_ORIGINS", "https://crm.example.com, ,https://ops.example.com")

    assert config._csv_env("FRAME_CORS_ORIGINS", "http://localhost:3000") == (
        "https://crm.example.com",
        "https://ops.example.com",
    )


def test_cors_preflight_allows_configured_origin():
    origin = main.settings.cors_origins[0]
    client = TestClient(main.app)

    allowed = client.options(
        "/api/accounts", headers={"Origin": origin, "Access-Control-Request-Method": "GET"}
    )
    denied = client.options(
        "/api/accounts",
        headers={"Origin": "https://unknown.example.com", "Access-Control-Request-Method": "GET"},
    )

    assert allowed.status_code == 200
    assert allowed.headers["access-control-allow-origin"] == origin
    assert "access-control-allow-origin" not in denied.headers
