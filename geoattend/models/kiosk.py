"""
Kiosk model: a physical scan point with a circular geofence.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import Boolean, CheckConstraint, Column, DateTime, Float, Integer, String

from geoattend.db.base import Base


class Kiosk(Base):
    __tablename__ = "kiosks"
    __table_args__ = (CheckConstraint("geofence_radius > 0", name="ck_kiosk_radius_positive"),)

    id: int = Column(Integer, primary_key=True, index=True)  # type: ignore[assignment]
    name: str = Column(String(200), nullable=False)  # type: ignore[assignment]
    address: str | None = Column(String(500), nullable=True)  # type: ignore[assignment]
    lat: float = Column(Float, nullable=False)  # type: ignore[assignment]
    lng: float = Column(Float, nullable=False)  # type: ignore[assignment]
    geofence_radius: int = Column(Integer, nullable=False, default=30)  # type: ignore[assignment]  # meters
    is_active: bool = Column(Boolean, default=True, server_default="true")  # type: ignore[assignment]
    created_at: datetime = Column(  # type: ignore[assignment]
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )
