"""Pydantic schemas for alarms."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field


class AlarmRead(BaseModel):
    id: int
    type: str
    severity: str
    message: str
    employee_id: int | None
    kiosk_id: int | None
    device_id: str | None
    location_lat: float | None
    location_lng: float | None
    details: dict = Field(default_factory=dict, serialization_alias="metadata")
    is_resolved: bool
    triggered_at: datetime | None
    resolved_at: datetime | None = None
    resolved_by: int | None = None
    resolution: str | None = None
    resolution_notes: str | None = None

    model_config = {"from_attributes": True}


class AlarmResolve(BaseModel):
    resolution: str | None = Field(default=None, max_length=200)
    notes: str | None = Field(default=None, max_length=1000)


class UnresolvedCount(BaseModel):
    total: int
    by_severity: dict[str, int]


class AlarmBulkResolve(BaseModel):
    alarm_ids: list[int] = Field(min_length=1, max_length=500)
    resolution: str | None = Field(default=None, max_length=200)
    notes: str | None = Field(default=None, max_length=1000)


class BulkResolveResult(BaseModel):
    resolved_count: int
    resolved_ids: list[int]
    # Already resolved or unknown ids are left untouched
    skipped_ids: list[int]


class AlarmStats(BaseModel):
    date_from: datetime
    date_to: datetime
    total: int
    resolved: int
    unresolved: int
    by_type: dict[str, int]
    by_severity: dict[str, int]
