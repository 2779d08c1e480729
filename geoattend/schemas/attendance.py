"""Pydantic schemas for scans and attendance records."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


# ── Scan ────────────────────────────────────────────────────────────
class KioskModel(BaseModel):
    """Kiosk-facing bodies use camelCase both ways."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ScanRequest(KioskModel):
    # Untyped so that anything the kiosk sends reaches the pipeline checks
    # (and raises an alarm) instead of failing schema coercion
    qr_data: Any = Field(...)
    employee_id: str | None = Field(default=None, max_length=64)
    lat: Any = None
    lng: Any = None
    device_id: str | None = Field(default=None, max_length=200)
    device_info: dict[str, Any] | None = None

    @field_validator("qr_data")
    @classmethod
    def _qr(cls, v: Any) -> Any:
        if isinstance(v, str):
            v = v.strip()
            if not v:
                raise ValueError("QR data must not be empty")
        return v


class ScanEmployee(KioskModel):
    id: int
    name: str
    employee_code: str


class ScanKiosk(KioskModel):
    id: int
    name: str
    address: str | None = None


class ScanLocation(KioskModel):
    lat: float
    lng: float


class ScanSuccessResponse(KioskModel):
    success: bool = True
    message: str
    type: Literal["checkin", "checkout"]
    record_id: int
    scanned_at: datetime
    employee: ScanEmployee
    kiosk: ScanKiosk
    location: ScanLocation
    geofence_distance_meters: int
    spoofing_flagged: bool = False


class ScanFailureResponse(KioskModel):
    success: bool = False
    error_code: str
    detail: str
    alarm_triggered: bool
    retryable: bool = False
    distance_meters: int | None = None
    allowed_radius_meters: float | None = None


# ── Attendance records ──────────────────────────────────────────────
class AttendanceRead(BaseModel):
    id: int
    employee_id: int
    kiosk_id: int
    qr_code_id: int
    type: str
    scanned_at: datetime | None
    lat: float
    lng: float
    device_id: str | None
    is_valid: bool
    geofence_distance: int
    invalidation_reason: str | None = None

    model_config = {"from_attributes": True}


class AttendanceInvalidate(BaseModel):
    reason: str | None = Field(default=None, max_length=500)


# ── Generic ────────────────────────────────────────────────────────
class DeleteResponse(BaseModel):
    success: bool
    message: str


class HealthResponse(BaseModel):
    db: bool
