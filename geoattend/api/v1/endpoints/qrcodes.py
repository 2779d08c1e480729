"""
QR credential issuance and revocation lifecycle.

Listing requires any authenticated user; everything else is admin only.

Rendering the payload into an image is left to the client.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from geoattend.api.v1.deps import (get_codec, get_current_active_user, get_db,
                                   require_admin)
from geoattend.models.employee import Employee
from geoattend.models.kiosk import Kiosk
from geoattend.models.qr_code import QRCode
from geoattend.models.user import User
from geoattend.schemas.registry import (QRCodeGenerate, QRCodeIssued,
                                        QRCodeRead, QRCodeRevoke)
from geoattend.services.alarms import AuditAction, AuditWriter
from geoattend.services.credentials import CREDENTIAL_TYPE, CredentialCodec
from geoattend.services.store import SqlScanStore

router = APIRouter(prefix="/qrcodes", tags=["qrcodes"])
logger = logging.getLogger(__name__)


async def _get_qr_or_404(db: AsyncSession, qr_id: int) -> QRCode:
    result = await db.execute(select(QRCode).where(QRCode.id == qr_id))
    qr = result.scalar_one_or_none()
    if qr is None:
        raise HTTPException(status_code=404, detail="QR code not found")
    return qr


@router.get("", response_model=list[QRCodeRead])
async def list_qr_codes(
    skip: int = 0,
    limit: int = Query(default=20, le=500),
    kiosk_id: int | None = None,
    employee_code: str | None = None,
    is_revoked: bool | None = None,
    db: AsyncSession = Depends(get_db),
    _user: User = Depends(get_current_active_user),
) -> list[QRCode]:
    query = select(QRCode).order_by(QRCode.created_at.desc(), QRCode.id.desc())
    if kiosk_id is not None:
        query = query.where(QRCode.kiosk_id == kiosk_id)
    if employee_code:
        query = query.where(QRCode.employee_code == employee_code)
    if is_revoked is not None:
        query = query.where(QRCode.is_revoked.is_(is_revoked))
    result = await db.execute(query.offset(skip).limit(limit))
    return list(result.scalars().all())


@router.get("/{qr_id}", response_model=QRCodeIssued)
async def get_qr_code(
    qr_id: int,
    db: AsyncSession = Depends(get_db),
    _admin: User = Depends(require_admin),
) -> QRCodeIssued:
    """One credential with its payload, for re-printing a lost QR image."""
    qr = await _get_qr_or_404(db, qr_id)
    return QRCodeIssued(**QRCodeRead.model_validate(qr).model_dump(), payload=qr.encrypted_data)


@router.post("/generate", response_model=QRCodeIssued, status_code=201)
async def generate_qr_code(
    body: QRCodeGenerate,
    db: AsyncSession = Depends(get_db),
    codec: CredentialCodec = Depends(get_codec),
    admin: User = Depends(require_admin),
) -> QRCodeIssued:
    kiosk = (await db.execute(select(Kiosk).where(Kiosk.id == body.kiosk_id))).scalar_one_or_none()
    if kiosk is None:
        raise HTTPException(status_code=404, detail="Kiosk not found")
    employee = (
        await db.execute(select(Employee).where(Employee.employee_code == body.employee_code))
    ).scalar_one_or_none()
    if employee is None:
        raise HTTPException(status_code=404, detail="Employee not found")

    issued = codec.issue(kiosk.id, employee.employee_code, admin.id)
    qr = QRCode(
        code_id=issued.payload["id"],
        kiosk_id=kiosk.id,
        employee_code=employee.employee_code,
        type=CREDENTIAL_TYPE,
        encrypted_data=issued.token,
        signature=issued.payload["signature"],
        created_by=admin.id,
        is_revoked=False,
    )
    db.add(qr)
    await db.commit()
    await db.refresh(qr)
    logger.info("Issued QR %s for %s at kiosk %d", qr.code_id, employee.employee_code, kiosk.id)

    await AuditWriter(SqlScanStore(db)).record(
        AuditAction.QR_CODE_GENERATED,
        "qr_code",
        qr.id,
        actor_id=admin.id,
        details={"kioskId": kiosk.id, "kioskName": kiosk.name, "employeeId": employee.employee_code},
    )
    return QRCodeIssued(**QRCodeRead.model_validate(qr).model_dump(), payload=issued.token)


@router.put("/{qr_id}/revoke", response_model=QRCodeRead)
async def revoke_qr_code(
    qr_id: int,
    body: QRCodeRevoke,
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin),
) -> QRCode:
    qr = await _get_qr_or_404(db, qr_id)
    qr.is_revoked = True
    qr.revoked_at = datetime.now(timezone.utc)
    qr.revocation_reason = body.reason or "Revoked by admin"
    await db.commit()
    await db.refresh(qr)
    logger.info("QR %s revoked by user %d", qr.code_id, admin.id)

    await AuditWriter(SqlScanStore(db)).record(
        AuditAction.QR_CODE_REVOKED, "qr_code", qr.id,
        actor_id=admin.id, details={"reason": qr.revocation_reason},
    )
    return qr


@router.put("/{qr_id}/restore", response_model=QRCodeRead)
async def restore_qr_code(
    qr_id: int,
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin),
) -> QRCode:
    qr = await _get_qr_or_404(db, qr_id)
    qr.is_revoked = False
    qr.revoked_at = None
    qr.revocation_reason = None
    await db.commit()
    await db.refresh(qr)
    logger.info("QR %s restored by user %d", qr.code_id, admin.id)

    await AuditWriter(SqlScanStore(db)).record(
        AuditAction.QR_CODE_RESTORED, "qr_code", qr.id, actor_id=admin.id,
    )
    return qr
