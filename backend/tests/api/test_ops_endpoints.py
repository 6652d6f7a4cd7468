from __future__ import annotations

import pytest

from modengine.settings import settings


@pytest.mark.asyncio
async def test_health_endpoints(api_client) -> None:
    live = await api_client.get("/health/live")
    ready = await api_client.get("/health/ready")

    assert live.json() == {"status": "ok"}
    assert ready.status_code == 200


@pytest.mark.asyncio
async def test_metrics_require_admin_token(api_client, monkeypatch) -> None:
    monkeypatch.setattr(settings, "obs_metrics_public", False)
    monkeypatch.setattr(settings, "obs_admin_token", "ops-secret")

    anonymous = await api_client.get("/metrics")
    wrong = await api_client.get("/metrics", headers={"X-Admin-Token": "nope"})
    allowed = await api_client.get("/metrics", headers={"X-Admin-Token": "ops-secret"})

    assert anonymous.status_code == 403
    assert wrong.status_code == 403
    assert allowed.status_code == 200


@pytest.mark.asyncio
async def test_metrics_expose_moderation_counters(api_client, harness, monkeypatch) -> None:
    monkeypatch.setattr(settings, "obs_metrics_public", True)
    await api_client.post(
        "/api/mod/v1/reports",
        json={"target_kind": "user", "target_id": harness.OWNER, "reason": "spam"},
        headers={"X-User-Id": "viewer-1"},
    )

    response = await api_client.get("/metrics")

    assert response.status_code == 200
    assert "modengine_reports_total" in response.text
