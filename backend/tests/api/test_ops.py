import pytest

from scholium import settings as settings_module


@pytest.mark.asyncio
async def test_liveness(api_client):
	response = await api_client.get("/health/live")
	assert response.status_code == 200
	assert response.json() == {"status": "ok"}


@pytest.mark.asyncio
async def test_readiness_reports_degraded_without_database(api_client):
	response = await api_client.get("/health/ready")
	assert response.status_code == 503
	body = response.json()
	assert body["status"] == "degraded"
	assert body["checks"]["postgres"]["ok"] is False
	assert body["checks"]["realtime"] == {"ok": True, "transport": "memory"}


@pytest.mark.asyncio
async def test_metrics_fail_closed_without_admin_token(api_client, monkeypatch):
	monkeypatch.setattr(settings_module.settings, "obs_metrics_public", False)
	monkeypatch.setattr(settings_module.settings, "obs_admin_token", None)
	response = await api_client.get("/metrics")
	assert response.status_code == 403
	assert response.json()["detail"] == "admin_token_not_configured"


@pytest.mark.asyncio
async def test_metrics_with_admin_token(api_client, monkeypatch):
	monkeypatch.setattr(settings_module.settings, "obs_metrics_public", False)
	monkeypatch.setattr(settings_module.settings, "obs_admin_token", "secret-token")
	wrong = await api_client.get("/metrics", headers={"X-Admin-Token": "nope"})
	assert wrong.status_code == 403

	response = await api_client.get("/metrics", headers={"Authorization": "Bearer secret-token"})
	assert response.status_code == 200
	assert "scholium" in response.text


@pytest.mark.asyncio
async def test_request_id_is_echoed(api_client):
	response = await api_client.get("/health/live", headers={"X-Request-Id": "req-123"})
	assert response.headers.get("X-Request-Id") == "req-123"
