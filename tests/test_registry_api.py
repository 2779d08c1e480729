"""Tests for employee, kiosk and QR credential admin endpoints."""

import pytest
from httpx import AsyncClient

from geoattend.core.config import settings
from geoattend.models.audit_log import AuditLog


# ── Employees ───────────────────────────────────────────────────────
@pytest.mark.asyncio
async def test_create_employee(async_client: AsyncClient):
    """POST /employees should create a new employee."""
    resp = await async_client.post("/api/v1/employees", json={
        "name": "Bob Jones",
        "employee_code": "EMP-0100",
        "email": "bob@example.com",
        "department": "Engineering",
    })
    assert resp.status_code == 201
    data = resp.json()
    assert data["name"] == "Bob Jones"
    assert data["employee_code"] == "EMP-0100"
    assert data["is_active"] is True


@pytest.mark.asyncio
async def test_create_duplicate_code_rejected(async_client: AsyncClient):
    await async_client.post("/api/v1/employees", json={"name": "Emp1", "employee_code": "DUP-001"})
    resp = await async_client.post("/api/v1/employees", json={"name": "Emp2", "employee_code": "DUP-001"})
    assert resp.status_code == 400
    assert "already registered" in resp.json()["detail"]


@pytest.mark.asyncio
@pytest.mark.parametrize("code", ["", "x", "<script>", "A" * 65])
async def test_invalid_employee_code_rejected(async_client: AsyncClient, code):
    resp = await async_client.post("/api/v1/employees", json={"name": "Emp", "employee_code": code})
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_list_and_soft_delete_employee(async_client: AsyncClient):
    r1 = await async_client.post("/api/v1/employees", json={"name": "Ann", "employee_code": "L-001"})
    await async_client.post("/api/v1/employees", json={"name": "Ben", "employee_code": "L-002"})

    resp = await async_client.get("/api/v1/employees")
    assert [e["name"] for e in resp.json()] == ["Ann", "Ben"]

    emp_id = r1.json()["id"]
    resp = await async_client.delete(f"/api/v1/employees/{emp_id}")
    assert resp.status_code == 200
    assert resp.json()["success"] is True

    assert (await async_client.get(f"/api/v1/employees/{emp_id}")).status_code == 404
    assert [e["name"] for e in (await async_client.get("/api/v1/employees")).json()] == ["Ben"]


@pytest.mark.asyncio
async def test_search_employees_escapes_wildcards(async_client: AsyncClient):
    await async_client.post("/api/v1/employees", json={"name": "Carla", "employee_code": "S-001"})
    resp = await async_client.get("/api/v1/employees", params={"search": "%"})
    assert resp.json() == []
    resp = await async_client.get("/api/v1/employees", params={"search": "arl"})
    assert len(resp.json()) == 1


# ── Kiosks ──────────────────────────────────────────────────────────
@pytest.mark.asyncio
async def test_create_kiosk_uses_default_radius(async_client: AsyncClient):
    resp = await async_client.post("/api/v1/kiosks", json={"name": "Lobby", "lat": 14.6, "lng": 121.0})
    assert resp.status_code == 201
    assert resp.json()["geofence_radius"] == settings.DEFAULT_GEOFENCE_RADIUS_M


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "body",
    [
        {"name": "Bad", "lat": 91, "lng": 0},
        {"name": "Bad", "lat": 0, "lng": 200},
        {"name": "Bad", "lat": 0, "lng": 0, "geofence_radius": 0},
        {"name": "", "lat": 0, "lng": 0},
    ],
)
async def test_invalid_kiosk_rejected(async_client: AsyncClient, body):
    resp = await async_client.post("/api/v1/kiosks", json=body)
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_get_and_deactivate_kiosk(async_client: AsyncClient, kiosk):
    resp = await async_client.get(f"/api/v1/kiosks/{kiosk.id}")
    assert resp.json()["name"] == "Main Gate"

    await async_client.delete(f"/api/v1/kiosks/{kiosk.id}")
    assert (await async_client.get("/api/v1/kiosks")).json() == []
    listed = (await async_client.get("/api/v1/kiosks", params={"include_inactive": True})).json()
    assert listed[0]["is_active"] is False
    assert (await async_client.get("/api/v1/kiosks/999")).status_code == 404


# ── QR credentials ──────────────────────────────────────────────────
@pytest.mark.asyncio
async def test_generate_qr_code(async_client: AsyncClient, fetch, codec, kiosk, employee):
    resp = await async_client.post(
        "/api/v1/qrcodes/generate",
        json={"kiosk_id": kiosk.id, "employee_code": employee.employee_code},
    )
    assert resp.status_code == 201
    data = resp.json()
    assert data["is_revoked"] is False
    assert data["type"] == "attendance"

    payload = codec.decode(data["payload"])
    assert payload["id"] == data["code_id"]
    assert payload["kioskId"] == kiosk.id
    assert payload["employeeId"] == "EMP-0001"
    assert payload["createdBy"] == 1

    [entry] = await fetch(AuditLog, AuditLog.action == "QR_CODE_GENERATED")
    assert entry.entity_id == str(data["id"])
    assert entry.user_id == 1


@pytest.mark.asyncio
async def test_generated_credential_scans(async_client: AsyncClient, scan, kiosk, employee):
    resp = await async_client.post(
        "/api/v1/qrcodes/generate",
        json={"kiosk_id": kiosk.id, "employee_code": employee.employee_code},
    )
    assert (await scan(resp.json()["payload"])).status_code == 201


@pytest.mark.asyncio
async def test_generate_requires_existing_kiosk_and_employee(async_client: AsyncClient, kiosk, employee):
    resp = await async_client.post("/api/v1/qrcodes/generate", json={"kiosk_id": 999, "employee_code": "EMP-0001"})
    assert resp.status_code == 404
    resp = await async_client.post("/api/v1/qrcodes/generate", json={"kiosk_id": kiosk.id, "employee_code": "NOPE"})
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_revoke_and_restore(async_client: AsyncClient, scan, fetch, clock, credential):
    qr, token = credential

    resp = await async_client.put(f"/api/v1/qrcodes/{qr.id}/revoke", json={"reason": "Badge lost"})
    assert resp.status_code == 200
    assert resp.json()["is_revoked"] is True
    assert resp.json()["revocation_reason"] == "Badge lost"
    assert (await scan(token)).json()["errorCode"] == "QR_REVOKED"

    resp = await async_client.put(f"/api/v1/qrcodes/{qr.id}/restore")
    assert resp.json()["is_revoked"] is False
    assert resp.json()["revocation_reason"] is None
    assert (await scan(token)).status_code == 201

    actions = [a.action for a in await fetch(AuditLog, AuditLog.entity_type == "qr_code")]
    assert actions == ["QR_CODE_REVOKED", "QR_CODE_RESTORED"]


@pytest.mark.asyncio
async def test_revoke_unknown_qr(async_client: AsyncClient):
    resp = await async_client.put("/api/v1/qrcodes/999/revoke", json={})
    assert resp.status_code == 404
    assert resp.json()["success"] is False


@pytest.mark.asyncio
async def test_list_and_get_qr_codes(async_client: AsyncClient, issue_credential, kiosk, employee):
    active, token = await issue_credential(kiosk, employee)
    revoked, _ = await issue_credential(kiosk, employee, revoked=True)

    listed = (await async_client.get("/api/v1/qrcodes")).json()
    assert {q["id"] for q in listed} == {active.id, revoked.id}
    assert all("payload" not in q for q in listed)

    only_revoked = (await async_client.get("/api/v1/qrcodes", params={"is_revoked": True})).json()
    assert [q["id"] for q in only_revoked] == [revoked.id]
    other_kiosk = (await async_client.get("/api/v1/qrcodes", params={"kiosk_id": kiosk.id + 1})).json()
    assert other_kiosk == []

    resp = await async_client.get(f"/api/v1/qrcodes/{active.id}")
    assert resp.status_code == 200
    assert resp.json()["payload"] == token
    assert resp.json()["employee_code"] == employee.employee_code

    assert (await async_client.get("/api/v1/qrcodes/999")).status_code == 404


# ── Updates ─────────────────────────────────────────────────────────
@pytest.mark.asyncio
async def test_update_employee(async_client: AsyncClient, fetch, employee):
    resp = await async_client.put(
        f"/api/v1/employees/{employee.id}",
        json={"name": "  Alice R. Santos ", "department": "Finance"},
    )
    assert resp.status_code == 200
    data = resp.json()
    assert data["name"] == "Alice R. Santos"
    assert data["department"] == "Finance"
    assert data["employee_code"] == "EMP-0001"

    [entry] = await fetch(AuditLog, AuditLog.action == "EMPLOYEE_UPDATED")
    assert entry.entity_id == str(employee.id)
    assert entry.details == {"name": "Alice R. Santos", "department": "Finance"}


@pytest.mark.asyncio
async def test_update_employee_rejects_bad_input(async_client: AsyncClient, employee):
    assert (await async_client.put(f"/api/v1/employees/{employee.id}", json={"name": None})).status_code == 422
    assert (await async_client.put(f"/api/v1/employees/{employee.id}", json={"name": " "})).status_code == 422
    assert (await async_client.put("/api/v1/employees/999", json={"department": "Ops"})).status_code == 404


@pytest.mark.asyncio
async def test_reactivate_employee(async_client: AsyncClient, scan, credential, employee):
    await async_client.delete(f"/api/v1/employees/{employee.id}")
    assert (await scan(credential[1])).status_code == 404

    resp = await async_client.put(f"/api/v1/employees/{employee.id}", json={"is_active": True})
    assert resp.json()["is_active"] is True
    assert (await scan(credential[1])).status_code == 201


@pytest.mark.asyncio
async def test_resizing_kiosk_geofence_changes_scan_outcome(async_client: AsyncClient, scan, fetch, credential, kiosk):
    assert (await scan(credential[1], meters=100)).status_code == 403

    resp = await async_client.put(f"/api/v1/kiosks/{kiosk.id}", json={"geofence_radius": 150})
    assert resp.status_code == 200
    assert resp.json()["geofence_radius"] == 150
    assert resp.json()["lat"] == kiosk.lat

    assert (await scan(credential[1], meters=100)).status_code == 201
    [entry] = await fetch(AuditLog, AuditLog.action == "KIOSK_UPDATED")
    assert entry.details == {"geofence_radius": 150}


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "body",
    [{"lat": 91}, {"lng": -181}, {"geofence_radius": 0}, {"lat": None}, {"name": ""}],
)
async def test_update_kiosk_rejects_bad_input(async_client: AsyncClient, kiosk, body):
    resp = await async_client.put(f"/api/v1/kiosks/{kiosk.id}", json=body)
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_update_unknown_kiosk(async_client: AsyncClient):
    resp = await async_client.put("/api/v1/kiosks/999", json={"name": "Nowhere"})
    assert resp.status_code == 404
