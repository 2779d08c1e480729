"""
Attendance record: written exactly once per accepted scan.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import (JSON, Boolean, Column, DateTime, Float, ForeignKey,
                        Index, Integer, String)
from sqlalchemy.orm import relationship

from geoattend.db.base import Base


class AttendanceRecord(Base):
    __tablename__ = "attendance_logs"
    __table_args__ = (Index("ix_attendance_employee_scanned", "employee_id", "scanned_at"),)

    id: int = Column(Integer, primary_key=True, index=True)  # type: ignore[assignment]
    employee_id: int = Column(Integer, ForeignKey("employees.id"), nullable=False)  # type: ignore[assignment]
    kiosk_id: int = Column(Integer, ForeignKey("kiosks.id"), nullable=False)  # type: ignore[assignment]
    qr_code_id: int = Column(Integer, ForeignKey("qr_codes.id"), nullable=False)  # type: ignore[assignment]
    type: str = Column(String(20), nullable=False)  # type: ignore[assignment]  # checkin | checkout
    scanned_at: datetime = Column(  # type: ignore[assignment]
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        index=True,
    )
    lat: float = Column(Float, nullable=False)  # type: ignore[assignment]
    lng: float = Column(Float, nullable=False)  # type: ignore[assignment]
    device_id: str | None = Column(String(200), nullable=True)  # type: ignore[assignment]
    device_info: dict | None = Column(JSON, nullable=True)  # type: ignore[assignment]
    is_valid: bool = Column(Boolean, default=True, server_default="true")  # type: ignore[assignment]
    geofence_distance: int = Column(Integer, nullable=False)  # type: ignore[assignment]  # meters
    invalidation_reason: str | None = Column(String(500), nullable=True)  # type: ignore[assignment]

    employee = relationship("Employee", back_populates="attendances")
