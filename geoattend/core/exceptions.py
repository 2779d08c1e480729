"""
Scan error taxonomy and global exception handlers.

Pipeline steps raise ``ScanError`` subclasses; the pipeline converts them
into rejection outcomes at its own boundary. The HTTP handlers below only
see what escapes that boundary (``AlarmPersistenceError``, database and
programming errors) and never leak stack traces to clients.
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

logger = logging.getLogger(__name__)


# ── Domain errors ───────────────────────────────────────────────────
class ScanError(Exception):
    """A pipeline step failed; carries the HTTP-equivalent status and a stable code."""

    status_code: int = 400
    code: str = "SCAN_REJECTED"
    retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        code: str | None = None,
        status_code: int | None = None,
        details: dict | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        if status_code is not None:
            self.status_code = status_code
        self.details = details or {}


class ScanValidationError(ScanError):
    status_code = 400
    code = "INVALID_REQUEST"


class CorruptionError(ScanValidationError):
    """Ciphertext or payload could not be decrypted / parsed."""

    code = "INVALID_QR"


class AuthorizationError(ScanError):
    status_code = 403
    code = "FORBIDDEN"


class NotFoundError(ScanError):
    status_code = 404
    code = "NOT_FOUND"


class PolicyViolation(ScanError):
    status_code = 403
    code = "POLICY_VIOLATION"


class StoreError(ScanError):
    status_code = 500
    code = "STORE_ERROR"


class TransientStoreError(StoreError):
    """Timeout / dropped connection. The client may retry the whole scan."""

    code = "STORE_UNAVAILABLE"
    retryable = True


class AlarmPersistenceError(Exception):
    """An anomaly was detected but could not be recorded."""

    def __init__(self, alarm_type: str, cause: Exception) -> None:
        super().__init__(f"Failed to persist {alarm_type} alarm: {cause}")
        self.alarm_type = alarm_type
        self.cause = cause


# ── HTTP handlers ───────────────────────────────────────────────────
async def _http_exception_handler(_request: Request, exc: HTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail, "success": False},
    )


async def _alarm_persistence_handler(_request: Request, exc: AlarmPersistenceError) -> JSONResponse:
    logger.critical("Scan aborted, anomaly not recorded: %s", exc, exc_info=exc.cause)
    return JSONResponse(
        status_code=500,
        content={"detail": "Anomaly could not be recorded", "success": False},
    )


async def _integrity_error_handler(_request: Request, exc: IntegrityError) -> JSONResponse:
    logger.error("Database integrity error: %s", exc, exc_info=True)
    return JSONResponse(
        status_code=409,
        content={"detail": "Database constraint violation", "success": False},
    )


async def _sqlalchemy_error_handler(_request: Request, exc: SQLAlchemyError) -> JSONResponse:
    logger.error("Database error: %s", exc, exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal database error", "success": False},
    )


async def _generic_exception_handler(_request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled exception: %s", exc)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error", "success": False},
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Attach all exception handlers to the FastAPI app."""
    app.add_exception_handler(HTTPException, _http_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(AlarmPersistenceError, _alarm_persistence_handler)  # type: ignore[arg-type]
    app.add_exception_handler(IntegrityError, _integrity_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(SQLAlchemyError, _sqlalchemy_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, _generic_exception_handler)
