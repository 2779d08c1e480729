"""
FastAPI dependencies: database session, auth guards and the scan pipeline.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from functools import lru_cache
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from geoattend.core.clock import Clock, utc_now
from geoattend.core.config import settings
from geoattend.core.security import decode_access_token
from geoattend.db.session import async_session_factory
from geoattend.models.user import User
from geoattend.services.credentials import CredentialCodec
from geoattend.services.pipeline import ScanPipeline, ScanWindowPolicy
from geoattend.services.store import SqlScanStore

# auto_error=False: kiosk scans are anonymous, so a missing token is not an error everywhere
oauth2_scheme = OAuth2PasswordBearer(tokenUrl=f"{settings.API_V1_PREFIX}/auth/login", auto_error=False)


# ── Database session ────────────────────────────────────────────────
async def get_db() -> AsyncGenerator[AsyncSession, None]:
    async with async_session_factory() as session:
        try:
            yield session
        finally:
            await session.close()


# ── Auth dependencies ───────────────────────────────────────────────
async def _user_from_token(token: str | None, db: AsyncSession) -> User | None:
    if not token:
        return None
    payload = decode_access_token(token)
    if payload is None or payload.get("sub") is None:
        return None
    try:
        user_id = int(payload["sub"])
    except (TypeError, ValueError):
        return None
    result = await db.execute(select(User).where(User.id == user_id))
    return result.scalar_one_or_none()


async def get_current_user(
    token: Optional[str] = Depends(oauth2_scheme),
    db: AsyncSession = Depends(get_db),
) -> User:
    """Decode the bearer JWT and look up the operator."""
    user = await _user_from_token(token, db)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user


async def get_optional_user(
    token: Optional[str] = Depends(oauth2_scheme),
    db: AsyncSession = Depends(get_db),
) -> User | None:
    """Operator behind the request, if any. Used as the audit actor."""
    user = await _user_from_token(token, db)
    if user is not None and not user.is_active:
        return None
    return user


async def get_current_active_user(
    current_user: User = Depends(get_current_user),
) -> User:
    """Reject inactive accounts."""
    if not current_user.is_active:
        raise HTTPException(status_code=400, detail="Inactive user account")
    return current_user


async def require_admin(
    current_user: User = Depends(get_current_active_user),
) -> User:
    """Only allow admin role to proceed."""
    if current_user.role != "admin":
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin privileges required",
        )
    return current_user


# ── Scan pipeline ───────────────────────────────────────────────────
def get_clock() -> Clock:
    return utc_now


@lru_cache
def get_codec() -> CredentialCodec:
    return CredentialCodec(settings.QR_ENCRYPTION_KEY)


def get_pipeline(
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
    codec: CredentialCodec = Depends(get_codec),
) -> ScanPipeline:
    return ScanPipeline(
        SqlScanStore(db),
        codec,
        clock=clock,
        window_policy=ScanWindowPolicy.from_settings(settings),
        rate_window_minutes=settings.SCAN_RATE_WINDOW_MINUTES,
        rate_max_scans=settings.SCAN_RATE_MAX_SCANS,
        max_speed_kmh=settings.SPOOFING_MAX_SPEED_KMH,
    )
