"""
Record-store collaborator of the scan pipeline.

``ScanStore`` is the contract the pipeline depends on; ``SqlScanStore``
fulfils it over an ``AsyncSession``. Database failures are translated into
``TransientStoreError`` (safe to retry) or ``StoreError`` (permanent).
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from datetime import datetime
from typing import Protocol, TypeVar

from sqlalchemy import func, select
from sqlalchemy.exc import (DBAPIError, InterfaceError, OperationalError,
                            SQLAlchemyError)
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.ext.asyncio import AsyncSession

from geoattend.core.exceptions import StoreError, TransientStoreError
from geoattend.models.alarm import Alarm
from geoattend.models.attendance import AttendanceRecord
from geoattend.models.audit_log import AuditLog
from geoattend.models.employee import Employee
from geoattend.models.kiosk import Kiosk
from geoattend.models.qr_code import QRCode

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ScanStore(Protocol):
    async def find_credential(self, code_id: str) -> QRCode | None: ...

    async def find_kiosk(self, kiosk_ref: str) -> Kiosk | None: ...

    async def find_employee(self, employee_code: str) -> Employee | None: ...

    async def count_recent_scans(self, employee_id: int, since: datetime, until: datetime) -> int: ...

    async def recent_scans(
        self, employee_id: int, since: datetime, until: datetime
    ) -> list[AttendanceRecord]: ...

    async def most_recent_scan(self, employee_id: int) -> AttendanceRecord | None: ...

    async def insert_attendance(self, record: AttendanceRecord) -> AttendanceRecord: ...

    async def insert_alarm(self, alarm: Alarm) -> Alarm: ...

    async def insert_audit_entry(self, entry: AuditLog) -> AuditLog: ...


def _is_transient(exc: SQLAlchemyError) -> bool:
    if isinstance(exc, (OperationalError, InterfaceError, PoolTimeoutError)):
        return True
    return isinstance(exc, DBAPIError) and exc.connection_invalidated


class SqlScanStore:
    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def _guard(self, op: str, call: Callable[[], Awaitable[T]]) -> T:
        try:
            return await call()
        except SQLAlchemyError as exc:
            await self.db.rollback()
            if _is_transient(exc):
                logger.warning("Transient store failure during %s: %s", op, exc)
                raise TransientStoreError(f"Store unavailable during {op}") from exc
            logger.error("Store failure during %s: %s", op, exc)
            raise StoreError(f"Store failure during {op}") from exc

    async def _add(self, obj: T) -> T:
        self.db.add(obj)
        await self.db.commit()
        await self.db.refresh(obj)
        return obj

    # ── Reads ───────────────────────────────────────────────────────
    async def find_credential(self, code_id: str) -> QRCode | None:
        async def _q() -> QRCode | None:
            result = await self.db.execute(select(QRCode).where(QRCode.code_id == code_id))
            return result.scalar_one_or_none()

        return await self._guard("find_credential", _q)

    async def find_kiosk(self, kiosk_ref: str) -> Kiosk | None:
        try:
            kiosk_id = int(kiosk_ref)
        except (TypeError, ValueError):
            return None

        async def _q() -> Kiosk | None:
            result = await self.db.execute(select(Kiosk).where(Kiosk.id == kiosk_id))
            return result.scalar_one_or_none()

        return await self._guard("find_kiosk", _q)

    async def find_employee(self, employee_code: str) -> Employee | None:
        async def _q() -> Employee | None:
            result = await self.db.execute(
                select(Employee).where(Employee.employee_code == employee_code)
            )
            return result.scalar_one_or_none()

        return await self._guard("find_employee", _q)

    async def count_recent_scans(self, employee_id: int, since: datetime, until: datetime) -> int:
        async def _q() -> int:
            result = await self.db.execute(
                select(func.count(AttendanceRecord.id)).where(
                    AttendanceRecord.employee_id == employee_id,
                    AttendanceRecord.scanned_at >= since,
                    AttendanceRecord.scanned_at <= until,
                )
            )
            return result.scalar() or 0

        return await self._guard("count_recent_scans", _q)

    async def recent_scans(
        self, employee_id: int, since: datetime, until: datetime
    ) -> list[AttendanceRecord]:
        async def _q() -> list[AttendanceRecord]:
            result = await self.db.execute(
                select(AttendanceRecord)
                .where(
                    AttendanceRecord.employee_id == employee_id,
                    AttendanceRecord.scanned_at >= since,
                    AttendanceRecord.scanned_at <= until,
                )
                .order_by(AttendanceRecord.scanned_at.desc())
            )
            return list(result.scalars().all())

        return await self._guard("recent_scans", _q)

    async def most_recent_scan(self, employee_id: int) -> AttendanceRecord | None:
        async def _q() -> AttendanceRecord | None:
            result = await self.db.execute(
                select(AttendanceRecord)
                .where(AttendanceRecord.employee_id == employee_id)
                .order_by(AttendanceRecord.scanned_at.desc())
                .limit(1)
            )
            return result.scalar_one_or_none()

        return await self._guard("most_recent_scan", _q)

    # ── Writes ──────────────────────────────────────────────────────
    async def insert_attendance(self, record: AttendanceRecord) -> AttendanceRecord:
        return await self._guard("insert_attendance", lambda: self._add(record))

    async def insert_alarm(self, alarm: Alarm) -> Alarm:
        return await self._guard("insert_alarm", lambda: self._add(alarm))

    async def insert_audit_entry(self, entry: AuditLog) -> AuditLog:
        return await self._guard("insert_audit_entry", lambda: self._add(entry))
