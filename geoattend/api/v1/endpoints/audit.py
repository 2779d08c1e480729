"""
Audit trail viewer (read only; entries are written by the pipeline and admin actions).
"""

from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from geoattend.api.v1.deps import get_db, require_admin
from geoattend.core.clock import to_utc
from geoattend.models.audit_log import AuditLog
from geoattend.models.user import User
from geoattend.schemas.audit import AuditLogRead
from geoattend.services.alarms import AuditAction

router = APIRouter(prefix="/audit-logs", tags=["audit"])


@router.get("", response_model=list[AuditLogRead])
async def list_audit_logs(
    skip: int = 0,
    limit: int = Query(default=50, le=500),
    action: AuditAction | None = None,
    entity_type: str | None = None,
    entity_id: str | None = None,
    user_id: int | None = None,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
    db: AsyncSession = Depends(get_db),
    _admin: User = Depends(require_admin),
) -> list[AuditLog]:
    """Newest first. Naive ``date_from`` / ``date_to`` are read as UTC."""
    if date_from and date_to and to_utc(date_from) > to_utc(date_to):
        raise HTTPException(status_code=400, detail="date_from must not be after date_to")

    query = select(AuditLog).order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
    if action is not None:
        query = query.where(AuditLog.action == action.value)
    if entity_type:
        query = query.where(AuditLog.entity_type == entity_type)
    if entity_id:
        query = query.where(AuditLog.entity_id == entity_id)
    if user_id is not None:
        query = query.where(AuditLog.user_id == user_id)
    if date_from:
        query = query.where(AuditLog.created_at >= to_utc(date_from))
    if date_to:
        query = query.where(AuditLog.created_at <= to_utc(date_to))
    result = await db.execute(query.offset(skip).limit(limit))
    return list(result.scalars().all())
