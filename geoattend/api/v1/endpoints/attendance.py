"""
Attendance endpoints.

- POST /attendance/scan is PUBLIC; kiosks scan without logging in. A
  bearer token, when present, only names the audit actor.
- GET /attendance requires any authenticated user.
- PUT /attendance/{id}/invalidate requires admin role.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import JSONResponse
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from geoattend.api.v1.deps import (get_current_active_user, get_db,
                                   get_optional_user, get_pipeline,
                                   require_admin)
from geoattend.models.attendance import AttendanceRecord
from geoattend.models.user import User
from geoattend.schemas.attendance import (AttendanceInvalidate, AttendanceRead,
                                          ScanEmployee, ScanFailureResponse,
                                          ScanKiosk, ScanLocation, ScanRequest,
                                          ScanSuccessResponse)
from geoattend.services.alarms import AuditAction, AuditWriter
from geoattend.services.pipeline import CHECKIN, ScanPipeline
from geoattend.services.pipeline import ScanRequest as PipelineScanRequest
from geoattend.services.pipeline import ScanRejected
from geoattend.services.store import SqlScanStore

router = APIRouter(prefix="/attendance", tags=["attendance"])
logger = logging.getLogger(__name__)


# ── Scan (PUBLIC) ───────────────────────────────────────────────────
@router.post(
    "/scan",
    status_code=201,
    response_model=ScanSuccessResponse,
    responses={
        400: {"model": ScanFailureResponse},
        403: {"model": ScanFailureResponse},
        404: {"model": ScanFailureResponse},
        429: {"model": ScanFailureResponse},
        500: {"model": ScanFailureResponse},
    },
)
async def scan(
    body: ScanRequest,
    request: Request,
    pipeline: ScanPipeline = Depends(get_pipeline),
    actor: User | None = Depends(get_optional_user),
):
    """Verify one QR + GPS scan and record it as a check-in or check-out."""
    outcome = await pipeline.submit(
        PipelineScanRequest(
            qr_data=body.qr_data,
            lat=body.lat,
            lng=body.lng,
            employee_id_hint=body.employee_id,
            device_id=body.device_id,
            device_info=body.device_info,
            actor_id=actor.id if actor else None,
            ip_address=request.client.host if request.client else None,
        )
    )

    if isinstance(outcome, ScanRejected):
        failure = ScanFailureResponse(
            error_code=outcome.error_code,
            detail=outcome.message,
            alarm_triggered=outcome.alarm_triggered,
            retryable=outcome.retryable,
            distance_meters=outcome.distance_meters,
            allowed_radius_meters=outcome.allowed_radius_meters,
        )
        return JSONResponse(
            status_code=outcome.status_code,
            content=failure.model_dump(by_alias=True, exclude_none=True),
        )

    record, employee, kiosk = outcome.record, outcome.employee, outcome.kiosk
    return ScanSuccessResponse(
        message="Check-in successful" if record.type == CHECKIN else "Check-out successful",
        type=record.type,
        record_id=record.id,
        scanned_at=record.scanned_at,
        employee=ScanEmployee(id=employee.id, name=employee.name, employee_code=employee.employee_code),
        kiosk=ScanKiosk(id=kiosk.id, name=kiosk.name, address=kiosk.address),
        location=ScanLocation(lat=record.lat, lng=record.lng),
        geofence_distance_meters=record.geofence_distance,
        spoofing_flagged=outcome.spoofing.is_suspicious,
    )


# ── Listing ─────────────────────────────────────────────────────────
@router.get("", response_model=list[AttendanceRead])
async def list_attendance(
    skip: int = 0,
    limit: int = Query(default=50, le=500),
    employee_id: int | None = None,
    kiosk_id: int | None = None,
    type: str | None = Query(default=None, pattern="^(checkin|checkout)$"),
    is_valid: bool | None = None,
    db: AsyncSession = Depends(get_db),
    _user: User = Depends(get_current_active_user),
) -> list[AttendanceRecord]:
    query = select(AttendanceRecord).order_by(AttendanceRecord.scanned_at.desc())
    if employee_id is not None:
        query = query.where(AttendanceRecord.employee_id == employee_id)
    if kiosk_id is not None:
        query = query.where(AttendanceRecord.kiosk_id == kiosk_id)
    if type is not None:
        query = query.where(AttendanceRecord.type == type)
    if is_valid is not None:
        query = query.where(AttendanceRecord.is_valid.is_(is_valid))
    result = await db.execute(query.offset(skip).limit(limit))
    return list(result.scalars().all())


# ── Administrative invalidation ─────────────────────────────────────
@router.put("/{record_id}/invalidate", response_model=AttendanceRead)
async def invalidate_attendance(
    record_id: int,
    body: AttendanceInvalidate,
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin),
) -> AttendanceRecord:
    result = await db.execute(select(AttendanceRecord).where(AttendanceRecord.id == record_id))
    record = result.scalar_one_or_none()
    if record is None:
        raise HTTPException(status_code=404, detail="Attendance record not found")

    record.is_valid = False
    record.invalidation_reason = body.reason or "Manually invalidated by admin"
    await db.commit()
    await db.refresh(record)
    logger.info("Attendance %d invalidated by user %d", record_id, admin.id)

    await AuditWriter(SqlScanStore(db)).record(
        AuditAction.ATTENDANCE_INVALIDATED,
        "attendance",
        record_id,
        actor_id=admin.id,
        details={"reason": record.invalidation_reason},
    )
    return record
