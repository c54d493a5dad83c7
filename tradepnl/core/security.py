"""JWT helpers carrying the tenant and actor of each API call."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any, Literal
from uuid import uuid4

from cryptography.hazmat.primitives import serialization
from jose import JWTError, jwt  # type: ignore[import-untyped]
from pydantic import BaseModel, ValidationError

from tradepnl.core.config import Settings, get_settings

RoleName = Literal["ADMIN", "FINANCE", "ANALYST"]
ROLE_VALUES: set[str] = {"ADMIN", "FINANCE", "ANALYST"}


class InvalidTokenError(ValueError):
    """Raised when a bearer token cannot be decoded or fails validation."""


class TokenPayload(BaseModel):
    sub: str
    tid: str
    role: RoleName
    type: Literal["access"]
    iat: datetime
    exp: datetime
    jti: str


@dataclass(frozen=True)
class AuthenticatedUser:
    email: str
    tenant_id: str
    role: RoleName
    token_id: str


def _load_signing_key(settings: Settings) -> Any:
    if not settings.jwt_algorithm.startswith("RS"):
        return settings.jwt_private_key
    return serialization.load_pem_private_key(
        settings.jwt_private_key.encode("utf-8"),
        password=None,
    )


def create_access_token(
    *,
    subject: str,
    tenant_id: str,
    role: RoleName = "ADMIN",
    settings: Settings | None = None,
    expires_delta: timedelta | None = None,
) -> str:
    """Issue a signed access token for ``subject`` scoped to ``tenant_id``."""

    settings = settings or get_settings()
    if role not in ROLE_VALUES:
        raise ValueError(f"Unknown role '{role}'")
    now = datetime.now(UTC)
    lifetime = expires_delta or timedelta(minutes=settings.access_token_expire_minutes)
    payload = {
        "sub": subject,
        "iat": int(now.timestamp()),
        "exp": int((now + lifetime).timestamp()),
        "tid": tenant_id,
        "role": role,
        "type": "access",
        "jti": uuid4().hex,
    }
    return jwt.encode(payload, _load_signing_key(settings), algorithm=settings.jwt_algorithm)


def decode_access_token(token: str, *, settings: Settings | None = None) -> AuthenticatedUser:
    settings = settings or get_settings()
    try:
        payload = jwt.decode(token, settings.jwt_private_key, algorithms=[settings.jwt_algorithm])
    except JWTError as exc:
        raise InvalidTokenError("Invalid token") from exc
    try:
        validated = TokenPayload(**payload)
    except ValidationError as exc:
        raise InvalidTokenError("Invalid token") from exc
    return AuthenticatedUser(
        email=validated.sub,
        tenant_id=validated.tid,
        role=validated.role,
        token_id=validated.jti,
    )


__all__ = [
    "AuthenticatedUser",
    "InvalidTokenError",
    "ROLE_VALUES",
    "RoleName",
    "TokenPayload",
    "create_access_token",
    "decode_access_token",
]
