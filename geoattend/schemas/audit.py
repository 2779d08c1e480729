"""Pydantic schemas for the audit trail."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel


class AuditLogRead(BaseModel):
    id: int
    action: str
    entity_type: str
    entity_id: str | None
    user_id: int | None
    details: dict
    ip_address: str | None
    created_at: datetime | None

    model_config = {"from_attributes": True}
