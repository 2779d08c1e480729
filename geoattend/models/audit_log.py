"""
Audit trail entry. Write-only from the scan pipeline's point of view.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import JSON, Column, DateTime, Integer, String

from geoattend.db.base import Base


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id: int = Column(Integer, primary_key=True, index=True)  # type: ignore[assignment]
    action: str = Column(String(50), nullable=False, index=True)  # type: ignore[assignment]
    entity_type: str = Column(String(50), nullable=False)  # type: ignore[assignment]
    entity_id: str | None = Column(String(64), nullable=True)  # type: ignore[assignment]
    # NULL for scans from unauthenticated kiosks
    user_id: int | None = Column(Integer, nullable=True)  # type: ignore[assignment]
    details: dict = Column(JSON, nullable=False, default=dict)  # type: ignore[assignment]
    ip_address: str | None = Column(String(64), nullable=True)  # type: ignore[assignment]
    created_at: datetime = Column(  # type: ignore[assignment]
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        index=True,
    )
