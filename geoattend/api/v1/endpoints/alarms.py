"""
Alarm endpoints: review and resolution of raised anomalies.

Alarms are created only by the scan pipeline; this router never inserts.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from geoattend.api.v1.deps import (get_clock, get_current_active_user, get_db,
                                   require_admin)
from geoattend.core.clock import Clock, to_utc
from geoattend.models.alarm import Alarm
from geoattend.models.user import User
from geoattend.schemas.alarm import (AlarmBulkResolve, AlarmRead, AlarmResolve,
                                    AlarmStats, BulkResolveResult,
                                    UnresolvedCount)
from geoattend.services.alarms import AlarmType, AuditAction, AuditWriter, Severity
from geoattend.services.store import SqlScanStore

router = APIRouter(prefix="/alarms", tags=["alarms"])
logger = logging.getLogger(__name__)

STATS_DEFAULT_DAYS = 30


@router.get("", response_model=list[AlarmRead])
async def list_alarms(
    skip: int = 0,
    limit: int = Query(default=50, le=500),
    type: AlarmType | None = None,
    severity: Severity | None = None,
    is_resolved: bool | None = None,
    db: AsyncSession = Depends(get_db),
    _user: User = Depends(get_current_active_user),
) -> list[Alarm]:
    query = select(Alarm).order_by(Alarm.triggered_at.desc(), Alarm.id.desc())
    if type is not None:
        query = query.where(Alarm.type == type.value)
    if severity is not None:
        query = query.where(Alarm.severity == severity.value)
    if is_resolved is not None:
        query = query.where(Alarm.is_resolved.is_(is_resolved))
    result = await db.execute(query.offset(skip).limit(limit))
    return list(result.scalars().all())


@router.get("/unresolved/count", response_model=UnresolvedCount)
async def unresolved_count(
    db: AsyncSession = Depends(get_db),
    _user: User = Depends(get_current_active_user),
) -> UnresolvedCount:
    """Open alarms, total and per severity (notification badge)."""
    result = await db.execute(
        select(Alarm.severity, func.count(Alarm.id))
        .where(Alarm.is_resolved.is_(False))
        .group_by(Alarm.severity)
    )
    by_severity = {s.value: 0 for s in Severity}
    for severity, count in result.all():
        by_severity[severity] = count
    return UnresolvedCount(total=sum(by_severity.values()), by_severity=by_severity)


@router.get("/stats/summary", response_model=AlarmStats)
async def alarm_stats(
    date_from: datetime | None = None,
    date_to: datetime | None = None,
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
    _user: User = Depends(get_current_active_user),
) -> AlarmStats:
    """Alarm counts by type, severity and resolution over a period (default: last 30 days)."""
    end = to_utc(date_to) if date_to else to_utc(clock())
    start = to_utc(date_from) if date_from else end - timedelta(days=STATS_DEFAULT_DAYS)
    if start > end:
        raise HTTPException(status_code=400, detail="date_from must not be after date_to")

    result = await db.execute(
        select(Alarm.type, Alarm.severity, Alarm.is_resolved, func.count(Alarm.id))
        .where(Alarm.triggered_at >= start, Alarm.triggered_at <= end)
        .group_by(Alarm.type, Alarm.severity, Alarm.is_resolved)
    )
    by_type: dict[str, int] = {}
    by_severity = {s.value: 0 for s in Severity}
    resolved = unresolved = 0
    for alarm_type, severity, is_resolved, count in result.all():
        by_type[alarm_type] = by_type.get(alarm_type, 0) + count
        by_severity[severity] = by_severity.get(severity, 0) + count
        if is_resolved:
            resolved += count
        else:
            unresolved += count
    return AlarmStats(
        date_from=start,
        date_to=end,
        total=resolved + unresolved,
        resolved=resolved,
        unresolved=unresolved,
        by_type=by_type,
        by_severity=by_severity,
    )


@router.put("/resolve/bulk", response_model=BulkResolveResult)
async def bulk_resolve_alarms(
    body: AlarmBulkResolve,
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin),
) -> BulkResolveResult:
    requested = list(dict.fromkeys(body.alarm_ids))
    result = await db.execute(
        select(Alarm).where(Alarm.id.in_(requested), Alarm.is_resolved.is_(False))
    )
    alarms = list(result.scalars().all())

    now = datetime.now(timezone.utc)
    resolution = body.resolution or "Bulk resolved by admin"
    for alarm in alarms:
        alarm.is_resolved = True
        alarm.resolved_at = now
        alarm.resolved_by = admin.id
        alarm.resolution = resolution
        alarm.resolution_notes = body.notes
    await db.commit()

    resolved_ids = sorted(a.id for a in alarms)
    done = set(resolved_ids)
    skipped_ids = [i for i in requested if i not in done]
    logger.info("User %d bulk-resolved %d alarms (%d skipped)", admin.id, len(resolved_ids), len(skipped_ids))

    await AuditWriter(SqlScanStore(db)).record(
        AuditAction.ALARMS_BULK_RESOLVED,
        "alarm",
        None,
        actor_id=admin.id,
        details={"alarmIds": resolved_ids, "count": len(resolved_ids), "resolution": resolution},
    )
    return BulkResolveResult(
        resolved_count=len(resolved_ids),
        resolved_ids=resolved_ids,
        skipped_ids=skipped_ids,
    )


@router.get("/{alarm_id}", response_model=AlarmRead)
async def get_alarm(
    alarm_id: int,
    db: AsyncSession = Depends(get_db),
    _user: User = Depends(get_current_active_user),
) -> Alarm:
    result = await db.execute(select(Alarm).where(Alarm.id == alarm_id))
    alarm = result.scalar_one_or_none()
    if alarm is None:
        raise HTTPException(status_code=404, detail="Alarm not found")
    return alarm


@router.put("/{alarm_id}/resolve", response_model=AlarmRead)
async def resolve_alarm(
    alarm_id: int,
    body: AlarmResolve,
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin),
) -> Alarm:
    result = await db.execute(select(Alarm).where(Alarm.id == alarm_id))
    alarm = result.scalar_one_or_none()
    if alarm is None:
        raise HTTPException(status_code=404, detail="Alarm not found")
    if alarm.is_resolved:
        raise HTTPException(status_code=409, detail="Alarm already resolved")

    alarm.is_resolved = True
    alarm.resolved_at = datetime.now(timezone.utc)
    alarm.resolved_by = admin.id
    alarm.resolution = body.resolution or "Resolved by admin"
    alarm.resolution_notes = body.notes
    await db.commit()
    await db.refresh(alarm)
    logger.info("Alarm %d (%s) resolved by user %d", alarm.id, alarm.type, admin.id)

    await AuditWriter(SqlScanStore(db)).record(
        AuditAction.ALARM_RESOLVED,
        "alarm",
        alarm.id,
        actor_id=admin.id,
        details={"resolution": alarm.resolution, "notes": body.notes},
    )
    return alarm
