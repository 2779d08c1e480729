"""
Shared test fixtures for the GeoAttend test suite.

Async throughout (aiosqlite + AsyncSession). Every test gets a fresh
in-memory database, a controllable clock and an in-memory scan store.
"""

import os
from collections.abc import AsyncGenerator
from datetime import datetime, timedelta, timezone

import pytest

# Override environment BEFORE importing application modules
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["CORS_ORIGINS"] = '["*"]'
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["QR_ENCRYPTION_KEY"] = "test-suite-qr-encryption-key"

from httpx import ASGITransport, AsyncClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from geoattend.api.v1.deps import (get_clock, get_codec,
                                   get_current_active_user, get_db,
                                   require_admin)
from geoattend.core.clock import ensure_utc
from geoattend.core.exceptions import StoreError
from geoattend.core.security import get_password_hash
from geoattend.db.base import Base
from geoattend.main import app
from geoattend.models.employee import Employee
from geoattend.models.kiosk import Kiosk
from geoattend.models.qr_code import QRCode
from geoattend.models.user import User

LOCAL_TZ = timezone(timedelta(hours=8))
KIOSK_LAT = 14.5995
KIOSK_LNG = 120.9842
ADMIN_PASSWORD = "correct-horse-battery"
_ADMIN_HASH = get_password_hash(ADMIN_PASSWORD)


def north_of_kiosk(meters: float) -> tuple[float, float]:
    """Coordinates ``meters`` due north of the test kiosk."""
    return KIOSK_LAT + meters / 111_195, KIOSK_LNG


# ── Clock ───────────────────────────────────────────────────────────
class FakeClock:
    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)

    def set_local(self, hour: int, minute: int = 0, second: int = 0) -> None:
        self.now = datetime(2025, 1, 15, hour, minute, second, tzinfo=LOCAL_TZ)


@pytest.fixture
def clock() -> FakeClock:
    """07:00 local (+08:00), inside the check-in window."""
    return FakeClock(datetime(2025, 1, 15, 7, 0, tzinfo=LOCAL_TZ))


# ── Database ────────────────────────────────────────────────────────
@pytest.fixture(autouse=True)
async def session_factory(clock: FakeClock) -> AsyncGenerator[async_sessionmaker, None]:
    """Fresh in-memory database per test, wired into the app."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    factory = async_sessionmaker(engine, expire_on_commit=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with factory() as session:
        session.add(User(
            id=1,
            email="admin@example.com",
            hashed_password=_ADMIN_HASH,
            full_name="Test Admin",
            role="admin",
        ))
        await session.commit()

    async def _override_get_db():
        async with factory() as session:
            yield session

    app.dependency_overrides[get_db] = _override_get_db
    app.dependency_overrides[get_clock] = lambda: clock

    yield factory

    app.dependency_overrides.pop(get_db, None)
    app.dependency_overrides.pop(get_clock, None)
    await engine.dispose()


@pytest.fixture
def seed(session_factory):
    """Persist ORM objects in their own session and return them refreshed."""

    async def _seed(*objs):
        async with session_factory() as session:
            session.add_all(objs)
            await session.commit()
            for obj in objs:
                await session.refresh(obj)
        return objs[0] if len(objs) == 1 else objs

    return _seed


@pytest.fixture
def fetch(session_factory):
    """Read rows of a model, optionally filtered."""

    async def _fetch(model, *where):
        stmt = select(model)
        if where:
            stmt = stmt.where(*where)
        async with session_factory() as session:
            result = await session.execute(stmt.order_by(model.id))
            return list(result.scalars().all())

    return _fetch


@pytest.fixture
async def async_client() -> AsyncGenerator[AsyncClient, None]:
    """Return a httpx AsyncClient wired to the app."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


# ── Auth Overrides ──────────────────────────────────────────────────
async def _override_get_current_active_user():
    return User(id=1, email="admin@example.com", is_active=True, role="admin")


async def _override_require_admin():
    return User(id=1, email="admin@example.com", is_active=True, role="admin")


app.dependency_overrides[get_current_active_user] = _override_get_current_active_user
app.dependency_overrides[require_admin] = _override_require_admin


# ── Domain data ─────────────────────────────────────────────────────
@pytest.fixture
def codec():
    return get_codec()


@pytest.fixture
async def kiosk(seed) -> Kiosk:
    return await seed(Kiosk(
        name="Main Gate",
        address="1 Plaza Street",
        lat=KIOSK_LAT,
        lng=KIOSK_LNG,
        geofence_radius=30,
    ))


@pytest.fixture
async def employee(seed) -> Employee:
    return await seed(Employee(employee_code="EMP-0001", name="Alice Reyes", department="Ops"))


@pytest.fixture
def issue_credential(seed, codec):
    """Issue a credential for (kiosk, employee) and persist its record."""

    async def _issue(kiosk: Kiosk, employee: Employee, *, revoked: bool = False):
        issued = codec.issue(kiosk.id, employee.employee_code, 1)
        qr = await seed(QRCode(
            code_id=issued.payload["id"],
            kiosk_id=kiosk.id,
            employee_code=employee.employee_code,
            type="attendance",
            encrypted_data=issued.token,
            signature=issued.payload["signature"],
            created_by=1,
            is_revoked=revoked,
            revocation_reason="Lost badge" if revoked else None,
        ))
        return qr, issued.token

    return _issue


@pytest.fixture
async def credential(issue_credential, kiosk, employee):
    """(QRCode row, encrypted token) for the default kiosk and employee."""
    return await issue_credential(kiosk, employee)


@pytest.fixture
def scan(async_client):
    """POST a scan ``meters`` north of the kiosk."""

    async def _scan(token: str, meters: float = 10, **extra):
        lat, lng = north_of_kiosk(meters)
        body = {"qrData": token, "lat": lat, "lng": lng, "deviceId": "kiosk-tablet-1", **extra}
        return await async_client.post("/api/v1/attendance/scan", json=body)

    return _scan


# ── In-memory scan store ────────────────────────────────────────────
class FakeScanStore:
    """Dict-backed ScanStore with switchable failures."""

    def __init__(self) -> None:
        self.credentials: dict = {}
        self.kiosks: dict = {}
        self.employees: dict = {}
        self.attendance: list = []
        self.alarms: list = []
        self.audit: list = []
        self.fail_alarm = False
        self.fail_audit = False
        self.fail_attendance = False
        self.read_error: Exception | None = None

    async def find_credential(self, code_id):
        if self.read_error is not None:
            raise self.read_error
        return self.credentials.get(code_id)

    async def find_kiosk(self, kiosk_ref):
        try:
            return self.kiosks.get(int(kiosk_ref))
        except (TypeError, ValueError):
            return None

    async def find_employee(self, employee_code):
        return self.employees.get(employee_code)

    def _window(self, employee_id, since, until):
        return [
            r for r in self.attendance
            if r.employee_id == employee_id and since <= ensure_utc(r.scanned_at) <= until
        ]

    async def count_recent_scans(self, employee_id, since, until):
        return len(self._window(employee_id, since, until))

    async def recent_scans(self, employee_id, since, until):
        return sorted(self._window(employee_id, since, until), key=lambda r: r.scanned_at, reverse=True)

    async def most_recent_scan(self, employee_id):
        mine = [r for r in self.attendance if r.employee_id == employee_id]
        return max(mine, key=lambda r: ensure_utc(r.scanned_at)) if mine else None

    async def insert_attendance(self, record):
        if self.fail_attendance:
            raise StoreError("Store failure during insert_attendance")
        record.id = len(self.attendance) + 1
        self.attendance.append(record)
        return record

    async def insert_alarm(self, alarm):
        if self.fail_alarm:
            raise StoreError("Store failure during insert_alarm")
        alarm.id = len(self.alarms) + 1
        self.alarms.append(alarm)
        return alarm

    async def insert_audit_entry(self, entry):
        if self.fail_audit:
            raise StoreError("Store failure during insert_audit_entry")
        entry.id = len(self.audit) + 1
        self.audit.append(entry)
        return entry


@pytest.fixture
def fake_store() -> FakeScanStore:
    return FakeScanStore()
