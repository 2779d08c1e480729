"""Tests for operator login, token handling and the health check."""

import pytest
from httpx import AsyncClient

from geoattend.api.v1.deps import get_current_active_user, require_admin
from geoattend.core.security import create_access_token, decode_access_token
from geoattend.main import app
from geoattend.models.audit_log import AuditLog

ADMIN_PASSWORD = "correct-horse-battery"


@pytest.mark.asyncio
async def test_login_returns_bearer_token(async_client: AsyncClient):
    resp = await async_client.post(
        "/api/v1/auth/login",
        data={"username": "ADMIN@example.com ", "password": ADMIN_PASSWORD},
    )
    assert resp.status_code == 200
    data = resp.json()
    assert data["token_type"] == "bearer"
    assert decode_access_token(data["access_token"])["sub"] == "1"


@pytest.mark.asyncio
async def test_login_wrong_password(async_client: AsyncClient):
    resp = await async_client.post(
        "/api/v1/auth/login",
        data={"username": "admin@example.com", "password": "nope"},
    )
    assert resp.status_code == 401
    assert resp.json()["success"] is False


def test_garbage_token_is_rejected():
    assert decode_access_token("not.a.jwt") is None


@pytest.mark.asyncio
async def test_admin_routes_require_token(async_client: AsyncClient):
    overrides = {
        dep: app.dependency_overrides.pop(dep)
        for dep in (get_current_active_user, require_admin)
    }
    try:
        for path in ("/api/v1/alarms", "/api/v1/alarms/stats/summary", "/api/v1/audit-logs", "/api/v1/qrcodes"):
            resp = await async_client.get(path)
            assert resp.status_code == 401, path

        token = create_access_token(1)
        resp = await async_client.get("/api/v1/auth/me", headers={"Authorization": f"Bearer {token}"})
        assert resp.status_code == 200
        assert resp.json()["email"] == "admin@example.com"
        assert resp.json()["role"] == "admin"
    finally:
        app.dependency_overrides.update(overrides)


@pytest.mark.asyncio
async def test_scan_audit_names_token_holder(async_client: AsyncClient, fetch, credential):
    token = create_access_token(1)
    resp = await async_client.post(
        "/api/v1/attendance/scan",
        json={"qrData": credential[1], "lat": 14.5995, "lng": 120.9842},
        headers={"Authorization": f"Bearer {token}"},
    )
    assert resp.status_code == 201
    [entry] = await fetch(AuditLog, AuditLog.action == "ATTENDANCE_RECORDED")
    assert entry.user_id == 1
    assert entry.ip_address is not None


@pytest.mark.asyncio
async def test_health(async_client: AsyncClient):
    resp = await async_client.get("/api/v1/health")
    assert resp.status_code == 200
    assert resp.json() == {"db": True}
