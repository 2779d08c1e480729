"""
Kiosk registry.

- GET operations require any authenticated user.
- POST / PUT / DELETE require admin role.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from geoattend.api.v1.deps import get_current_active_user, get_db, require_admin
from geoattend.core.config import settings
from geoattend.models.kiosk import Kiosk
from geoattend.models.user import User
from geoattend.schemas.attendance import DeleteResponse
from geoattend.schemas.registry import KioskCreate, KioskRead, KioskUpdate
from geoattend.services.alarms import AuditAction, AuditWriter
from geoattend.services.store import SqlScanStore

router = APIRouter(prefix="/kiosks", tags=["kiosks"])
logger = logging.getLogger(__name__)


@router.get("", response_model=list[KioskRead])
async def list_kiosks(
    skip: int = 0,
    limit: int = Query(default=50, le=500),
    include_inactive: bool = False,
    db: AsyncSession = Depends(get_db),
    _user: User = Depends(get_current_active_user),
) -> list[Kiosk]:
    query = select(Kiosk).order_by(Kiosk.name)
    if not include_inactive:
        query = query.where(Kiosk.is_active.is_(True))
    result = await db.execute(query.offset(skip).limit(limit))
    return list(result.scalars().all())


@router.post("", response_model=KioskRead, status_code=201)
async def create_kiosk(
    body: KioskCreate,
    db: AsyncSession = Depends(get_db),
    _admin: User = Depends(require_admin),
) -> Kiosk:
    data = body.model_dump()
    if data["geofence_radius"] is None:
        data["geofence_radius"] = settings.DEFAULT_GEOFENCE_RADIUS_M
    kiosk = Kiosk(**data)
    db.add(kiosk)
    await db.commit()
    await db.refresh(kiosk)
    logger.info(
        "Created kiosk %s at (%.6f, %.6f) radius %dm",
        kiosk.name, kiosk.lat, kiosk.lng, kiosk.geofence_radius,
    )
    return kiosk


@router.get("/{kiosk_id}", response_model=KioskRead)
async def get_kiosk(
    kiosk_id: int,
    db: AsyncSession = Depends(get_db),
    _user: User = Depends(get_current_active_user),
) -> Kiosk:
    result = await db.execute(select(Kiosk).where(Kiosk.id == kiosk_id))
    kiosk = result.scalar_one_or_none()
    if kiosk is None:
        raise HTTPException(status_code=404, detail="Kiosk not found")
    return kiosk


@router.put("/{kiosk_id}", response_model=KioskRead)
async def update_kiosk(
    kiosk_id: int,
    body: KioskUpdate,
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin),
) -> Kiosk:
    """Partial update: rename, move the geofence centre, resize or reactivate."""
    result = await db.execute(select(Kiosk).where(Kiosk.id == kiosk_id))
    kiosk = result.scalar_one_or_none()
    if kiosk is None:
        raise HTTPException(status_code=404, detail="Kiosk not found")

    updates = body.model_dump(exclude_unset=True)
    for field, value in updates.items():
        setattr(kiosk, field, value)

    await db.commit()
    await db.refresh(kiosk)
    logger.info(
        "Updated kiosk %d: now (%.6f, %.6f) radius %dm",
        kiosk_id, kiosk.lat, kiosk.lng, kiosk.geofence_radius,
    )

    await AuditWriter(SqlScanStore(db)).record(
        AuditAction.KIOSK_UPDATED, "kiosk", kiosk_id,
        actor_id=admin.id, details=updates,
    )
    return kiosk


@router.delete("/{kiosk_id}", response_model=DeleteResponse)
async def deactivate_kiosk(
    kiosk_id: int,
    db: AsyncSession = Depends(get_db),
    _admin: User = Depends(require_admin),
) -> DeleteResponse:
    """Deactivate a kiosk. Scans against it are then rejected as not found."""
    result = await db.execute(select(Kiosk).where(Kiosk.id == kiosk_id))
    kiosk = result.scalar_one_or_none()
    if kiosk is None:
        raise HTTPException(status_code=404, detail="Kiosk not found")

    kiosk.is_active = False
    await db.commit()
    logger.info("Deactivated kiosk %d (%s)", kiosk_id, kiosk.name)
    return DeleteResponse(success=True, message=f"Kiosk '{kiosk.name}' deactivated")
