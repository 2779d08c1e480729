"""
QR credential codec.

A credential is a small JSON document encrypted with Fernet under a
pre-shared key. Decoding is expected to fail routinely (photos of random
QR codes, stale keys, truncated scans), so ``decode`` returns ``None``
instead of raising.

The ``signature`` field is a random uniqueness tag, not a cryptographic
signature; authenticity comes from the Fernet MAC alone.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import json
import logging
import uuid
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from cryptography.fernet import Fernet, InvalidToken

logger = logging.getLogger(__name__)

CREDENTIAL_TYPE = "attendance"
REQUIRED_FIELDS = ("id", "kioskId", "employeeId", "createdAt", "signature")


@dataclass(frozen=True)
class Credential:
    """Structurally valid, decoded credential."""

    code_id: str
    kiosk_ref: str
    employee_ref: str
    issued_at: str
    issued_by: str | None
    signature: str

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "Credential":
        created_by = payload.get("createdBy")
        return cls(
            code_id=str(payload["id"]),
            kiosk_ref=str(payload["kioskId"]),
            employee_ref=str(payload["employeeId"]),
            issued_at=str(payload["createdAt"]),
            issued_by=None if created_by is None else str(created_by),
            signature=str(payload["signature"]),
        )


@dataclass(frozen=True)
class IssuedCredential:
    token: str
    payload: dict


def _fernet_key(secret: str) -> bytes:
    """Use ``secret`` directly if it is a Fernet key, else stretch it into one."""
    raw = secret.encode("utf-8")
    try:
        if len(base64.urlsafe_b64decode(raw)) == 32:
            return raw
    except (binascii.Error, ValueError):
        pass
    return base64.urlsafe_b64encode(hashlib.sha256(raw).digest())


class CredentialCodec:
    def __init__(self, secret: str) -> None:
        self._fernet = Fernet(_fernet_key(secret))

    def encode(self, payload: Mapping[str, Any]) -> str:
        data = json.dumps(dict(payload), separators=(",", ":"), sort_keys=True)
        return self._fernet.encrypt(data.encode("utf-8")).decode("ascii")

    def decode(self, token: str) -> dict | None:
        """Decrypt and parse ``token``; ``None`` on any failure."""
        if not isinstance(token, str) or not token:
            return None
        try:
            plaintext = self._fernet.decrypt(token.encode("utf-8"))
            payload = json.loads(plaintext.decode("utf-8"))
        except (InvalidToken, ValueError, TypeError) as exc:
            logger.debug("Credential decode failed: %s", type(exc).__name__)
            return None
        if not isinstance(payload, dict):
            return None
        return payload

    @staticmethod
    def validate_structure(payload: Mapping[str, Any] | None) -> bool:
        if not payload:
            return False
        missing = [f for f in REQUIRED_FIELDS if payload.get(f) in (None, "")]
        if missing:
            logger.info("Credential rejected, missing fields: %s", missing)
            return False
        return True

    def issue(self, kiosk_id: int | str, employee_code: str, issued_by: int | str | None) -> IssuedCredential:
        payload = {
            "id": str(uuid.uuid4()),
            "kioskId": kiosk_id,
            "employeeId": employee_code,
            "type": CREDENTIAL_TYPE,
            "createdAt": datetime.now(timezone.utc).isoformat(),
            "createdBy": issued_by,
            "signature": str(uuid.uuid4()),
        }
        return IssuedCredential(token=self.encode(payload), payload=payload)
