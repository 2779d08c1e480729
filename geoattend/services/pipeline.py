"""
Scan verification pipeline.

One GPS-tagged QR scan goes through a fixed sequence of guarded steps::

    RECEIVED → COORD_VALIDATED → CREDENTIAL_DECODED → CREDENTIAL_FOUND
      → CREDENTIAL_ACTIVE → KIOSK_FOUND → GEOFENCE_OK → EMPLOYEE_FOUND
      → RATE_OK → ACCEPTED

Each step either advances the state or raises a ``ScanError`` (after raising
an alarm where the failure is an anomaly). ``ScanPipeline.submit`` turns
every ``ScanError`` into a ``ScanRejected`` outcome, so callers always get a
value back. The only exception allowed out is ``AlarmPersistenceError``.

The spoofing check is advisory: it may raise an alarm but never rejects.
"""

from __future__ import annotations

import enum
import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, time, tzinfo
from typing import Any

from geoattend.core.clock import Clock, ensure_utc, parse_offset, to_utc, utc_now
from geoattend.core.exceptions import (AuthorizationError, CorruptionError,
                                       NotFoundError, PolicyViolation,
                                       ScanError, ScanValidationError)
from geoattend.models.alarm import Alarm
from geoattend.models.attendance import AttendanceRecord
from geoattend.models.employee import Employee
from geoattend.models.kiosk import Kiosk
from geoattend.models.qr_code import QRCode
from geoattend.services import geofence, spoofing
from geoattend.services.alarms import (AlarmContext, AlarmSignal, AlarmType,
                                       AnomalyReporter, AuditAction,
                                       AuditWriter, Severity)
from geoattend.services.credentials import Credential, CredentialCodec
from geoattend.services.rate_guard import (DEFAULT_MAX_SCANS,
                                           DEFAULT_WINDOW_MINUTES, RateGuard)
from geoattend.services.store import ScanStore

logger = logging.getLogger(__name__)

CHECKIN = "checkin"
CHECKOUT = "checkout"


class ScanState(str, enum.Enum):
    RECEIVED = "RECEIVED"
    COORD_VALIDATED = "COORD_VALIDATED"
    CREDENTIAL_DECODED = "CREDENTIAL_DECODED"
    CREDENTIAL_FOUND = "CREDENTIAL_FOUND"
    CREDENTIAL_ACTIVE = "CREDENTIAL_ACTIVE"
    KIOSK_FOUND = "KIOSK_FOUND"
    GEOFENCE_OK = "GEOFENCE_OK"
    EMPLOYEE_FOUND = "EMPLOYEE_FOUND"
    RATE_OK = "RATE_OK"
    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"


def _hhmm(value: str) -> time:
    hour, minute = value.split(":")
    return time(int(hour), int(minute))


@dataclass(frozen=True)
class ScanWindowPolicy:
    """Local-time windows in which a scan is a check-in or a check-out.

    Check-in is ``[checkin_start, checkin_end)``; check-out is
    ``[checkout_start, checkout_end]`` with the end minute included whole.
    """

    tz: tzinfo = field(default_factory=lambda: parse_offset("+08:00"))
    checkin_start: time = time(6, 0)
    checkin_end: time = time(9, 0)
    checkout_start: time = time(20, 45)
    checkout_end: time = time(21, 10)

    @classmethod
    def from_settings(cls, settings: Any) -> "ScanWindowPolicy":
        return cls(
            tz=parse_offset(settings.SCAN_TIMEZONE_OFFSET),
            checkin_start=_hhmm(settings.CHECKIN_WINDOW_START),
            checkin_end=_hhmm(settings.CHECKIN_WINDOW_END),
            checkout_start=_hhmm(settings.CHECKOUT_WINDOW_START),
            checkout_end=_hhmm(settings.CHECKOUT_WINDOW_END),
        )

    def classify(self, moment: datetime) -> str | None:
        local = ensure_utc(moment).astimezone(self.tz)
        hm = time(local.hour, local.minute)
        if self.checkin_start <= hm < self.checkin_end:
            return CHECKIN
        if self.checkout_start <= hm <= self.checkout_end:
            return CHECKOUT
        return None

    def describe(self) -> str:
        return (
            f"Attendance scanning is only allowed between "
            f"{self.checkin_start:%H:%M}-{self.checkin_end:%H:%M} (check-in) and "
            f"{self.checkout_start:%H:%M}-{self.checkout_end:%H:%M} (check-out)."
        )


@dataclass(frozen=True)
class ScanRequest:
    qr_data: Any
    lat: Any
    lng: Any
    employee_id_hint: str | None = None
    device_id: str | None = None
    device_info: dict | None = None
    actor_id: int | None = None
    ip_address: str | None = None


@dataclass(frozen=True)
class ScanAccepted:
    record: AttendanceRecord
    employee: Employee
    kiosk: Kiosk
    geofence: geofence.GeofenceResult
    spoofing: spoofing.SpoofingResult
    alarms: list[Alarm] = field(default_factory=list)
    state: ScanState = ScanState.ACCEPTED

    @property
    def type(self) -> str:
        return self.record.type


@dataclass(frozen=True)
class ScanRejected:
    status_code: int
    error_code: str
    message: str
    last_state: ScanState
    alarm_triggered: bool = False
    alarm_ids: list[int] = field(default_factory=list)
    distance_meters: int | None = None
    allowed_radius_meters: float | None = None
    retryable: bool = False
    state: ScanState = ScanState.REJECTED


ScanOutcome = ScanAccepted | ScanRejected


@dataclass
class _ScanRun:
    """Mutable state threaded through one pipeline run."""

    request: ScanRequest
    now: datetime
    state: ScanState = ScanState.RECEIVED
    credential: Credential | None = None
    qr_record: QRCode | None = None
    employee: Employee | None = None
    kiosk: Kiosk | None = None
    fence: geofence.GeofenceResult | None = None
    spoof: spoofing.SpoofingResult = spoofing.NOT_SUSPICIOUS
    alarms: list[Alarm] = field(default_factory=list)

    @property
    def employee_code(self) -> str | None:
        if self.credential is not None:
            return self.credential.employee_ref
        return self.request.employee_id_hint


def _finite(value: Any) -> float | None:
    if isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value):
        return float(value)
    return None


class ScanPipeline:
    def __init__(
        self,
        store: ScanStore,
        codec: CredentialCodec,
        *,
        clock: Clock = utc_now,
        window_policy: ScanWindowPolicy | None = None,
        rate_window_minutes: int = DEFAULT_WINDOW_MINUTES,
        rate_max_scans: int = DEFAULT_MAX_SCANS,
        max_speed_kmh: float = spoofing.DEFAULT_MAX_SPEED_KMH,
    ) -> None:
        self.store = store
        self.codec = codec
        self.clock = clock
        self.window_policy = window_policy or ScanWindowPolicy()
        self.max_speed_kmh = max_speed_kmh
        self.audit = AuditWriter(store)
        self.reporter = AnomalyReporter(store, self.audit, clock)
        self.rate_guard = RateGuard(store, rate_window_minutes, rate_max_scans)

    async def submit(self, request: ScanRequest) -> ScanOutcome:
        run = _ScanRun(request=request, now=to_utc(self.clock()))
        try:
            return await self._run(run)
        except ScanError as exc:
            logger.warning(
                "Scan rejected at %s: %s (%s, device=%s)",
                run.state.value, exc.code, exc.message, request.device_id,
            )
            return ScanRejected(
                status_code=exc.status_code,
                error_code=exc.code,
                message=exc.message,
                last_state=run.state,
                alarm_triggered=bool(run.alarms),
                alarm_ids=[a.id for a in run.alarms],
                distance_meters=exc.details.get("distance"),
                allowed_radius_meters=exc.details.get("allowed_radius"),
                retryable=exc.retryable,
            )

    async def _run(self, run: _ScanRun) -> ScanAccepted:
        await self._check_coordinates(run)
        await self._decode_credential(run)
        await self._resolve_employee(run)
        await self._check_credential_record(run)
        await self._check_not_revoked(run)
        await self._resolve_kiosk(run)
        await self._check_geofence(run)
        self._require_employee(run)
        await self._check_rate(run)
        await self._check_spoofing(run)
        scan_type = self._classify(run)
        return await self._record(run, scan_type)

    async def _alarm(self, run: _ScanRun, signal: AlarmSignal) -> Alarm:
        alarm = await self.reporter.raise_alarm(signal)
        run.alarms.append(alarm)
        return alarm

    # ── Step 1 ──────────────────────────────────────────────────────
    async def _check_coordinates(self, run: _ScanRun) -> None:
        req = run.request
        if not geofence.valid_coordinates(req.lat, req.lng):
            # Malformed coordinates are treated as tampering, not user error
            await self._alarm(run, AlarmSignal(
                type=AlarmType.GPS_SPOOFING,
                severity=Severity.HIGH,
                context=AlarmContext(reason="Invalid coordinates"),
                device_id=req.device_id,
                lat=_finite(req.lat),
                lng=_finite(req.lng),
                metadata={
                    "reason": "Invalid GPS coordinates format",
                    "lat": repr(req.lat),
                    "lng": repr(req.lng),
                },
            ))
            raise ScanValidationError("Invalid GPS coordinates", code="INVALID_COORDINATES")
        run.state = ScanState.COORD_VALIDATED

    # ── Step 2 ──────────────────────────────────────────────────────
    async def _decode_credential(self, run: _ScanRun) -> None:
        req = run.request
        payload = self.codec.decode(req.qr_data)
        if payload is None or not self.codec.validate_structure(payload):
            await self._alarm(run, AlarmSignal(
                type=AlarmType.INVALID_QR,
                context=AlarmContext(
                    kiosk_id=payload.get("kioskId") if payload else None,
                    employee_id=req.employee_id_hint,
                ),
                device_id=req.device_id,
                lat=req.lat,
                lng=req.lng,
                metadata={
                    "reason": "undecodable" if payload is None else "missing_fields",
                    "employeeIdHint": req.employee_id_hint,
                },
            ))
            raise CorruptionError("Invalid QR code")
        run.credential = Credential.from_payload(payload)
        run.state = ScanState.CREDENTIAL_DECODED

    # ── Step 3 (best effort, checked again in step 8) ──────────────
    async def _resolve_employee(self, run: _ScanRun) -> None:
        code = run.employee_code
        if code:
            run.employee = await self.store.find_employee(code)

    def _employee_pk(self, run: _ScanRun) -> int | None:
        return run.employee.id if run.employee is not None else None

    # ── Step 4 ──────────────────────────────────────────────────────
    async def _check_credential_record(self, run: _ScanRun) -> None:
        req, cred = run.request, run.credential
        run.qr_record = await self.store.find_credential(cred.code_id)
        if run.qr_record is None:
            await self._alarm(run, AlarmSignal(
                type=AlarmType.INVALID_QR,
                message="QR code not found in system",
                employee_id=self._employee_pk(run),
                device_id=req.device_id,
                lat=req.lat,
                lng=req.lng,
                metadata={
                    "codeId": cred.code_id,
                    "kioskRef": cred.kiosk_ref,
                    "employeeCode": run.employee_code,
                },
            ))
            raise ScanValidationError("QR code not recognized", code="QR_NOT_FOUND")
        run.state = ScanState.CREDENTIAL_FOUND

    # ── Step 5 ──────────────────────────────────────────────────────
    async def _check_not_revoked(self, run: _ScanRun) -> None:
        req, cred = run.request, run.credential
        if run.qr_record.is_revoked:
            await self._alarm(run, AlarmSignal(
                type=AlarmType.REVOKED_QR,
                context=AlarmContext(
                    employee_id=run.employee_code,
                    employee_name=run.employee.name if run.employee else None,
                ),
                employee_id=self._employee_pk(run),
                device_id=req.device_id,
                lat=req.lat,
                lng=req.lng,
                metadata={
                    "codeId": cred.code_id,
                    "kioskRef": cred.kiosk_ref,
                    "employeeCode": run.employee_code,
                    "revocationReason": run.qr_record.revocation_reason,
                },
            ))
            raise AuthorizationError("QR code has been revoked", code="QR_REVOKED")
        run.state = ScanState.CREDENTIAL_ACTIVE

    # ── Step 6 ──────────────────────────────────────────────────────
    async def _resolve_kiosk(self, run: _ScanRun) -> None:
        kiosk = await self.store.find_kiosk(run.credential.kiosk_ref)
        if kiosk is None or not kiosk.is_active:
            raise NotFoundError("Kiosk not found", code="KIOSK_NOT_FOUND")
        run.kiosk = kiosk
        run.state = ScanState.KIOSK_FOUND

    # ── Step 7 ──────────────────────────────────────────────────────
    async def _check_geofence(self, run: _ScanRun) -> None:
        req, kiosk = run.request, run.kiosk
        result = geofence.evaluate(
            geofence.GeoPoint(req.lat, req.lng),
            geofence.GeoPoint(kiosk.lat, kiosk.lng),
            kiosk.geofence_radius,
        )
        run.fence = result
        if not result.is_within:
            await self._alarm(run, AlarmSignal(
                type=AlarmType.OUTSIDE_GEOFENCE,
                context=AlarmContext(
                    employee_id=run.employee_code,
                    employee_name=run.employee.name if run.employee else None,
                    distance=result.exceeded_by,
                ),
                employee_id=self._employee_pk(run),
                kiosk_id=kiosk.id,
                device_id=req.device_id,
                lat=req.lat,
                lng=req.lng,
                metadata={**result.as_dict(), "employeeCode": run.employee_code},
            ))
            raise PolicyViolation(
                f"You are outside the allowed area: {result.distance}m away, "
                f"allowed {kiosk.geofence_radius}m",
                code="OUTSIDE_GEOFENCE",
                details={"distance": result.distance, "allowed_radius": kiosk.geofence_radius},
            )
        run.state = ScanState.GEOFENCE_OK

    # ── Step 8 ──────────────────────────────────────────────────────
    def _require_employee(self, run: _ScanRun) -> None:
        if run.employee is None or not run.employee.is_active:
            raise NotFoundError("Employee not found", code="EMPLOYEE_NOT_FOUND")
        run.state = ScanState.EMPLOYEE_FOUND

    # ── Step 9 ──────────────────────────────────────────────────────
    async def _check_rate(self, run: _ScanRun) -> None:
        req, employee = run.request, run.employee
        check = await self.rate_guard.check_rate(employee.id, run.now)
        if check.is_violation:
            await self._alarm(run, AlarmSignal(
                type=AlarmType.MULTIPLE_SCANS,
                context=AlarmContext(
                    employee_name=employee.name,
                    scan_count=check.scan_count,
                    window_minutes=check.window_minutes,
                ),
                employee_id=employee.id,
                kiosk_id=run.kiosk.id,
                device_id=req.device_id,
                lat=req.lat,
                lng=req.lng,
                metadata=check.as_dict(),
            ))
            raise PolicyViolation(
                "Too many scans in a short period",
                code="TOO_MANY_SCANS",
                status_code=429,
                details={"scan_count": check.scan_count, "window_minutes": check.window_minutes},
            )
        run.state = ScanState.RATE_OK

    # ── Step 10 (advisory) ──────────────────────────────────────────
    async def _check_spoofing(self, run: _ScanRun) -> None:
        req, employee = run.request, run.employee
        last = await self.store.most_recent_scan(employee.id)
        if last is None or last.lat is None or last.lng is None:
            return
        result = spoofing.detect(
            spoofing.LocationFix(last.lat, last.lng, ensure_utc(last.scanned_at)),
            spoofing.LocationFix(req.lat, req.lng, run.now),
            self.max_speed_kmh,
        )
        run.spoof = result
        if result.is_suspicious:
            await self._alarm(run, AlarmSignal(
                type=AlarmType.GPS_SPOOFING,
                context=AlarmContext(reason=result.reason, speed=result.speed_kmh),
                employee_id=employee.id,
                kiosk_id=run.kiosk.id,
                device_id=req.device_id,
                lat=req.lat,
                lng=req.lng,
                metadata={**result.as_dict(), "previousScanId": last.id},
            ))

    # ── Step 11 ─────────────────────────────────────────────────────
    def _classify(self, run: _ScanRun) -> str:
        scan_type = self.window_policy.classify(run.now)
        if scan_type is None:
            raise PolicyViolation(self.window_policy.describe(), code="OUTSIDE_SCAN_WINDOW")
        return scan_type

    # ── Step 12 ─────────────────────────────────────────────────────
    async def _record(self, run: _ScanRun, scan_type: str) -> ScanAccepted:
        req, employee, kiosk = run.request, run.employee, run.kiosk
        record = await self.store.insert_attendance(AttendanceRecord(
            employee_id=employee.id,
            kiosk_id=kiosk.id,
            qr_code_id=run.qr_record.id,
            type=scan_type,
            scanned_at=run.now,
            lat=req.lat,
            lng=req.lng,
            device_id=req.device_id,
            device_info=req.device_info,
            is_valid=True,
            geofence_distance=run.fence.distance,
        ))
        run.state = ScanState.ACCEPTED

        # Best effort; a failed audit write is logged by the writer and ignored here
        await self.audit.record(
            AuditAction.ATTENDANCE_RECORDED,
            "attendance",
            record.id,
            actor_id=req.actor_id,
            ip_address=req.ip_address,
            details={
                "type": scan_type,
                "employeeId": employee.employee_code,
                "kioskName": kiosk.name,
                "spoofingFlagged": run.spoof.is_suspicious,
            },
        )
        logger.info(
            "Scan %s recorded for %s at kiosk %s (%sm from center)",
            scan_type, employee.employee_code, kiosk.id, run.fence.distance,
        )
        return ScanAccepted(
            record=record,
            employee=employee,
            kiosk=kiosk,
            geofence=run.fence,
            spoofing=run.spoof,
            alarms=list(run.alarms),
        )
