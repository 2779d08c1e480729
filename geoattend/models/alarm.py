"""
Alarm model: persisted anomaly with a resolution lifecycle.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import (JSON, Boolean, Column, DateTime, Float, ForeignKey,
                        Integer, String)

from geoattend.db.base import Base


class Alarm(Base):
    __tablename__ = "alarms"

    id: int = Column(Integer, primary_key=True, index=True)  # type: ignore[assignment]
    type: str = Column(String(40), nullable=False, index=True)  # type: ignore[assignment]
    severity: str = Column(String(10), nullable=False)  # type: ignore[assignment]  # low | medium | high | critical
    message: str = Column(String(1000), nullable=False)  # type: ignore[assignment]
    employee_id: int | None = Column(Integer, ForeignKey("employees.id"), nullable=True)  # type: ignore[assignment]
    kiosk_id: int | None = Column(Integer, ForeignKey("kiosks.id"), nullable=True)  # type: ignore[assignment]
    device_id: str | None = Column(String(200), nullable=True)  # type: ignore[assignment]
    location_lat: float | None = Column(Float, nullable=True)  # type: ignore[assignment]
    location_lng: float | None = Column(Float, nullable=True)  # type: ignore[assignment]
    # "metadata" is reserved on declarative classes
    details: dict = Column("metadata", JSON, nullable=False, default=dict)  # type: ignore[assignment]
    is_resolved: bool = Column(Boolean, default=False, server_default="false", index=True)  # type: ignore[assignment]
    triggered_at: datetime = Column(  # type: ignore[assignment]
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        index=True,
    )
    resolved_at: datetime | None = Column(DateTime(timezone=True), nullable=True)  # type: ignore[assignment]
    resolved_by: int | None = Column(Integer, ForeignKey("users.id"), nullable=True)  # type: ignore[assignment]
    resolution: str | None = Column(String(200), nullable=True)  # type: ignore[assignment]
    resolution_notes: str | None = Column(String(1000), nullable=True)  # type: ignore[assignment]
