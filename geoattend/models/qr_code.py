"""
QR credential record: the persisted side of an issued credential.

The scan pipeline only reads ``is_revoked``; issuance and the revocation
lifecycle are handled by the admin endpoints.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, Text

from geoattend.db.base import Base


class QRCode(Base):
    __tablename__ = "qr_codes"

    id: int = Column(Integer, primary_key=True, index=True)  # type: ignore[assignment]
    code_id: str = Column(String(64), unique=True, nullable=False, index=True)  # type: ignore[assignment]
    kiosk_id: int = Column(Integer, ForeignKey("kiosks.id"), nullable=False)  # type: ignore[assignment]
    employee_code: str = Column(String(64), nullable=False, index=True)  # type: ignore[assignment]
    type: str = Column(String(20), nullable=False, default="attendance")  # type: ignore[assignment]
    encrypted_data: str = Column(Text, nullable=False)  # type: ignore[assignment]
    signature: str = Column(String(64), nullable=False)  # type: ignore[assignment]
    created_by: int | None = Column(Integer, ForeignKey("users.id"), nullable=True)  # type: ignore[assignment]
    is_revoked: bool = Column(Boolean, default=False, server_default="false")  # type: ignore[assignment]
    revoked_at: datetime | None = Column(DateTime(timezone=True), nullable=True)  # type: ignore[assignment]
    revocation_reason: str | None = Column(String(500), nullable=True)  # type: ignore[assignment]
    created_at: datetime = Column(  # type: ignore[assignment]
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )
