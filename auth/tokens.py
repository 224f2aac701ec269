"""Signed bearer tokens carrying identity claims."""

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from functools import lru_cache
from typing import Any, Dict, Optional, Protocol, Sequence, Tuple

from fastapi import Request

from auth.rights import UserRights, is_entitled
from settings import get_settings

logger = logging.getLogger(__name__)

_BEARER_PREFIX = "bearer "


@dataclass(frozen=True)
class Claims:
    user_id: str
    device_id: Optional[str] = None
    rights: Tuple[str, ...] = field(default_factory=tuple)
    expires_at: Optional[datetime] = None


class IdentityVerifier(Protocol):
    def verify_request(self, request: Request) -> Optional[Claims]: ...

    def is_entitled(self, claims: Claims, required: UserRights) -> bool: ...


def _b64encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def _b64decode(text: str) -> bytes:
    padding = "=" * (-len(text) % 4)
    return base64.urlsafe_b64decode(text + padding)


class TokenAuthenticator:
    """Issues and verifies ``<payload>.<signature>`` tokens signed with HMAC-SHA256."""

    def __init__(self, secret: str) -> None:
        if not secret:
            raise ValueError("Token secret must not be empty.")
        self._secret = secret.encode("utf-8")

    def sign(
        self,
        user_id: str,
        rights: Sequence[UserRights | str] = (),
        device_id: Optional[str] = None,
        expires_in: timedelta = timedelta(hours=24),
        now: Optional[datetime] = None,
    ) -> str:
        issued = now or datetime.now(timezone.utc)
        payload: Dict[str, Any] = {
            "userId": user_id,
            "rights": [getattr(right, "value", right) for right in rights],
            "exp": int((issued + expires_in).timestamp()),
        }
        if device_id is not None:
            payload["deviceId"] = device_id
        body = _b64encode(json.dumps(payload, sort_keys=True).encode("utf-8"))
        return f"{body}.{self._signature(body)}"

    def verify(self, token: str, now: Optional[datetime] = None) -> Optional[Claims]:
        body, _, signature = token.strip().partition(".")
        if not body or not signature:
            return None
        expected = self._signature(body)
        if not hmac.compare_digest(signature.encode("utf-8"), expected.encode("utf-8")):
            return None

        try:
            payload = json.loads(_b64decode(body))
        except (binascii.Error, ValueError):
            return None
        if not isinstance(payload, dict):
            return None

        user_id = payload.get("userId")
        if not isinstance(user_id, str) or not user_id:
            return None

        expires_at: Optional[datetime] = None
        exp = payload.get("exp")
        if exp is not None:
            if not isinstance(exp, (int, float)):
                return None
            expires_at = datetime.fromtimestamp(exp, tz=timezone.utc)
            if expires_at <= (now or datetime.now(timezone.utc)):
                return None

        device_id = payload.get("deviceId")
        rights = payload.get("rights") or []
        return Claims(
            user_id=user_id,
            device_id=device_id if isinstance(device_id, str) else None,
            rights=tuple(str(right) for right in rights if isinstance(right, str)),
            expires_at=expires_at,
        )

    def verify_request(self, request: Request) -> Optional[Claims]:
        header = request.headers.get("authorization", "")
        if not header.lower().startswith(_BEARER_PREFIX):
            return None
        claims = self.verify(header[len(_BEARER_PREFIX):])
        if claims is None:
            logger.warning("Rejected bearer token", extra={"path": request.url.path})
        return claims

    def is_entitled(self, claims: Claims, required: UserRights) -> bool:
        return is_entitled(claims.rights, required)

    def _signature(self, body: str) -> str:
        digest = hmac.new(self._secret, body.encode("utf-8"), hashlib.sha256).digest()
        return _b64encode(digest)


@lru_cache
def build_default_authenticator(secret: Optional[str] = None) -> TokenAuthenticator:
    return TokenAuthenticator(secret or get_settings().auth_secret)
