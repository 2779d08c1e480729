"""
Anomaly reporting and the audit trail.

``AnomalyReporter.raise_alarm`` persists an alarm and then audits it. A
failure to persist the alarm is fatal for the scan (``AlarmPersistenceError``);
a failure to write the audit entry never is. ``AuditWriter.record`` reports
the latter through its return value instead of raising, so callers decide
explicitly whether they care.
"""

from __future__ import annotations

import enum
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from geoattend.core.clock import Clock, to_utc, utc_now
from geoattend.core.exceptions import AlarmPersistenceError, StoreError
from geoattend.models.alarm import Alarm
from geoattend.models.audit_log import AuditLog
from geoattend.services.store import ScanStore

logger = logging.getLogger(__name__)


class AlarmType(str, enum.Enum):
    INVALID_QR = "INVALID_QR"
    REVOKED_QR = "REVOKED_QR"
    OUTSIDE_GEOFENCE = "OUTSIDE_GEOFENCE"
    MULTIPLE_SCANS = "MULTIPLE_SCANS"
    GPS_SPOOFING = "GPS_SPOOFING"
    DEVICE_TAMPERING = "DEVICE_TAMPERING"
    UNKNOWN_DEVICE = "UNKNOWN_DEVICE"


class Severity(str, enum.Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class AuditAction(str, enum.Enum):
    ATTENDANCE_RECORDED = "ATTENDANCE_RECORDED"
    ATTENDANCE_INVALIDATED = "ATTENDANCE_INVALIDATED"
    ALARM_TRIGGERED = "ALARM_TRIGGERED"
    ALARM_RESOLVED = "ALARM_RESOLVED"
    ALARMS_BULK_RESOLVED = "ALARMS_BULK_RESOLVED"
    QR_CODE_GENERATED = "QR_CODE_GENERATED"
    QR_CODE_REVOKED = "QR_CODE_REVOKED"
    QR_CODE_RESTORED = "QR_CODE_RESTORED"
    EMPLOYEE_UPDATED = "EMPLOYEE_UPDATED"
    KIOSK_UPDATED = "KIOSK_UPDATED"


_SEVERITY: dict[AlarmType, Severity] = {
    AlarmType.INVALID_QR: Severity.MEDIUM,
    AlarmType.REVOKED_QR: Severity.HIGH,
    AlarmType.OUTSIDE_GEOFENCE: Severity.MEDIUM,
    AlarmType.MULTIPLE_SCANS: Severity.MEDIUM,
    AlarmType.GPS_SPOOFING: Severity.CRITICAL,
    AlarmType.DEVICE_TAMPERING: Severity.CRITICAL,
    AlarmType.UNKNOWN_DEVICE: Severity.LOW,
}


def severity_for(alarm_type: AlarmType) -> Severity:
    return _SEVERITY[alarm_type]


@dataclass(frozen=True)
class AlarmContext:
    """Fields interpolated into alarm messages. All optional."""

    kiosk_id: Any = None
    employee_id: Any = None
    employee_name: str | None = None
    distance: int | None = None
    scan_count: int | None = None
    window_minutes: int | None = None
    reason: str | None = None
    speed: int | None = None


def _v(value: Any, default: str) -> Any:
    return default if value is None or value == "" else value


_TEMPLATES: dict[AlarmType, Callable[[AlarmContext], str]] = {
    AlarmType.INVALID_QR: lambda c: f"Invalid QR code scanned at kiosk {_v(c.kiosk_id, 'unknown')}",
    AlarmType.REVOKED_QR: lambda c: (
        f"Revoked QR code used by employee {_v(c.employee_name or c.employee_id, 'unknown')}"
    ),
    AlarmType.OUTSIDE_GEOFENCE: lambda c: (
        f"Employee {_v(c.employee_name or c.employee_id, 'unknown')} scanned "
        f"{_v(c.distance, '?')}m outside geofence"
    ),
    AlarmType.MULTIPLE_SCANS: lambda c: (
        f"Employee {_v(c.employee_name or c.employee_id, 'unknown')} has "
        f"{_v(c.scan_count, '?')} scans within {_v(c.window_minutes, '?')} minutes"
    ),
    AlarmType.GPS_SPOOFING: lambda c: f"Potential GPS spoofing detected: {_v(c.reason, 'Unknown reason')}",
    AlarmType.DEVICE_TAMPERING: lambda c: f"Device tampering detected at kiosk {_v(c.kiosk_id, 'unknown')}",
    AlarmType.UNKNOWN_DEVICE: lambda c: (
        f"Unknown device attempted scan at kiosk {_v(c.kiosk_id, 'unknown')}"
    ),
}


def format_message(alarm_type: AlarmType, context: AlarmContext | None = None) -> str:
    return _TEMPLATES[alarm_type](context or AlarmContext())


@dataclass(frozen=True)
class AlarmSignal:
    """Everything needed to raise one alarm."""

    type: AlarmType
    context: AlarmContext = field(default_factory=AlarmContext)
    severity: Severity | None = None  # overrides the type default
    message: str | None = None  # overrides the template
    employee_id: int | None = None
    kiosk_id: int | None = None
    device_id: str | None = None
    lat: float | None = None
    lng: float | None = None
    metadata: dict = field(default_factory=dict)


@dataclass(frozen=True)
class AuditOutcome:
    entry: AuditLog | None = None
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class AuditWriter:
    """Best-effort audit trail. Never raises on store failure."""

    def __init__(self, store: ScanStore) -> None:
        self.store = store

    async def record(
        self,
        action: AuditAction,
        entity_type: str,
        entity_id: Any,
        *,
        actor_id: int | None = None,
        details: dict | None = None,
        ip_address: str | None = None,
    ) -> AuditOutcome:
        entry = AuditLog(
            action=action.value,
            entity_type=entity_type,
            entity_id=None if entity_id is None else str(entity_id),
            user_id=actor_id,
            details=details or {},
            ip_address=ip_address,
        )
        try:
            saved = await self.store.insert_audit_entry(entry)
        except StoreError as exc:
            logger.error("Audit entry %s for %s %s not written: %s", action.value, entity_type, entity_id, exc)
            return AuditOutcome(error=exc)
        return AuditOutcome(entry=saved)


class AnomalyReporter:
    def __init__(self, store: ScanStore, audit: AuditWriter, clock: Clock = utc_now) -> None:
        self.store = store
        self.audit = audit
        self.clock = clock

    async def raise_alarm(self, signal: AlarmSignal) -> Alarm:
        severity = signal.severity or severity_for(signal.type)
        message = signal.message or format_message(signal.type, signal.context)
        triggered_at = to_utc(self.clock())
        alarm = Alarm(
            type=signal.type.value,
            severity=severity.value,
            message=message,
            employee_id=signal.employee_id,
            kiosk_id=signal.kiosk_id,
            device_id=signal.device_id,
            location_lat=signal.lat,
            location_lng=signal.lng,
            details=signal.metadata,
            is_resolved=False,
            triggered_at=triggered_at,
        )
        try:
            saved = await self.store.insert_alarm(alarm)
        except StoreError as exc:
            raise AlarmPersistenceError(signal.type.value, exc) from exc

        logger.warning("Alarm %s [%s] #%s: %s", signal.type.value, severity.value, saved.id, message)

        await self.audit.record(
            AuditAction.ALARM_TRIGGERED,
            "alarm",
            saved.id,
            details={
                "type": signal.type.value,
                "severity": severity.value,
                "message": message,
                "employee_id": signal.employee_id,
                "kiosk_id": signal.kiosk_id,
                "device_id": signal.device_id,
                "lat": signal.lat,
                "lng": signal.lng,
                "metadata": signal.metadata,
                "triggered_at": triggered_at.isoformat(),
            },
        )
        return saved
