"""Tests for attendance listing and administrative invalidation."""

import pytest
from httpx import AsyncClient

from geoattend.models.audit_log import AuditLog


@pytest.mark.asyncio
async def test_list_attendance(async_client: AsyncClient, scan, clock, credential, employee):
    await scan(credential[1])
    clock.set_local(20, 50)
    await scan(credential[1])

    resp = await async_client.get("/api/v1/attendance", params={"employee_id": employee.id})
    assert resp.status_code == 200
    assert [r["type"] for r in resp.json()] == ["checkout", "checkin"]

    resp = await async_client.get("/api/v1/attendance", params={"type": "checkin"})
    assert len(resp.json()) == 1

    resp = await async_client.get("/api/v1/attendance", params={"type": "lunch"})
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_invalidate_attendance(async_client: AsyncClient, scan, fetch, credential):
    record_id = (await scan(credential[1])).json()["recordId"]

    resp = await async_client.put(
        f"/api/v1/attendance/{record_id}/invalidate", json={"reason": "Buddy punching"}
    )
    assert resp.status_code == 200
    assert resp.json()["is_valid"] is False
    assert resp.json()["invalidation_reason"] == "Buddy punching"

    valid = (await async_client.get("/api/v1/attendance", params={"is_valid": True})).json()
    assert valid == []

    [entry] = await fetch(AuditLog, AuditLog.action == "ATTENDANCE_INVALIDATED")
    assert entry.entity_id == str(record_id)
    assert entry.details == {"reason": "Buddy punching"}


@pytest.mark.asyncio
async def test_invalidate_unknown_record(async_client: AsyncClient):
    resp = await async_client.put("/api/v1/attendance/999/invalidate", json={})
    assert resp.status_code == 404
