"""Pydantic schemas for employees, kiosks and QR credentials."""

from __future__ import annotations

import re
from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field, field_validator

_CODE_RE = re.compile(r"^[A-Za-z0-9:_-]{2,64}$")


def _clean_name(v: str) -> str:
    v = v.strip()
    if not v:
        raise ValueError("Name must not be empty")
    if len(v) > 200:
        raise ValueError("Name must not exceed 200 characters")
    return v


# ── Employee ────────────────────────────────────────────────────────
class EmployeeCreate(BaseModel):
    name: str
    employee_code: str
    email: str | None = None
    contact_number: str | None = None
    department: str | None = None

    @field_validator("employee_code")
    @classmethod
    def _code(cls, v: str) -> str:
        v = v.strip()
        if not _CODE_RE.match(v):
            raise ValueError("Employee code must be 2-64 alphanumeric chars (colons / hyphens allowed)")
        return v

    @field_validator("name")
    @classmethod
    def _name(cls, v: str) -> str:
        return _clean_name(v)


class EmployeeUpdate(BaseModel):
    name: str | None = None
    email: str | None = None
    contact_number: str | None = None
    department: str | None = None
    is_active: bool | None = None

    @field_validator("name")
    @classmethod
    def _name(cls, v: str | None) -> str:
        if v is None:
            raise ValueError("Name cannot be cleared")
        return _clean_name(v)


class EmployeeRead(BaseModel):
    id: int
    name: str
    employee_code: str
    email: str | None
    contact_number: str | None
    department: str | None
    is_active: bool
    created_at: datetime | None

    model_config = {"from_attributes": True}


# ── Kiosk ───────────────────────────────────────────────────────────
class KioskCreate(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    address: str | None = Field(default=None, max_length=500)
    lat: float = Field(ge=-90, le=90)
    lng: float = Field(ge=-180, le=180)
    geofence_radius: int | None = Field(default=None, gt=0)


class KioskUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=200)
    address: str | None = Field(default=None, max_length=500)
    lat: float | None = Field(default=None, ge=-90, le=90)
    lng: float | None = Field(default=None, ge=-180, le=180)
    geofence_radius: int | None = Field(default=None, gt=0)
    is_active: bool | None = None

    @field_validator("name", "lat", "lng", "geofence_radius")
    @classmethod
    def _required(cls, v: Any) -> Any:
        # Only nullable columns may be sent as null
        if v is None:
            raise ValueError("Field cannot be cleared")
        return v


class KioskRead(BaseModel):
    id: int
    name: str
    address: str | None
    lat: float
    lng: float
    geofence_radius: int
    is_active: bool
    created_at: datetime | None

    model_config = {"from_attributes": True}


# ── QR credential ───────────────────────────────────────────────────
class QRCodeGenerate(BaseModel):
    kiosk_id: int
    employee_code: str


class QRCodeRevoke(BaseModel):
    reason: str | None = Field(default=None, max_length=500)


class QRCodeRead(BaseModel):
    id: int
    code_id: str
    kiosk_id: int
    employee_code: str
    type: str
    is_revoked: bool
    revoked_at: datetime | None
    revocation_reason: str | None
    created_at: datetime | None

    model_config = {"from_attributes": True}


class QRCodeIssued(QRCodeRead):
    # Opaque payload to render into the QR image
    payload: str
