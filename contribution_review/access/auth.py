"""
Bearer token verification.

Tokens are HS256 JWTs carrying `sub` (principal id) and `role`. Issuing
tokens belongs to the account service; create_access_token() exists for
tooling and tests.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any

import jwt

from contribution_review.access.capabilities import Principal, Role
from contribution_review.core.exceptions import AuthenticationError
from contribution_review.review_logging import get_logger

logger = get_logger(__name__)

ACCESS_TOKEN_EXPIRE_MINUTES = 600


def create_access_token(
    principal_id: str,
    role: Role | str,
    *,
    secret: str,
    algorithm: str = "HS256",
    expires_in: timedelta = timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES),
) -> str:
    role_value = role.value if isinstance(role, Role) else str(role)
    payload = {
        "sub": principal_id,
        "role": role_value,
        "exp": datetime.now(timezone.utc) + expires_in,
    }
    return jwt.encode(payload, secret, algorithm=algorithm)


def decode_principal(token: str, *, secret: str, algorithm: str = "HS256") -> Principal:
    """Verify the token and return its principal; AuthenticationError on any failure."""
    try:
        payload: dict[str, Any] = jwt.decode(token, secret, algorithms=[algorithm])
    except jwt.ExpiredSignatureError as e:
        raise AuthenticationError("token has expired, please login again") from e
    except jwt.InvalidTokenError as e:
        logger.info("token_rejected", error=str(e))
        raise AuthenticationError("invalid token, authorization denied") from e

    principal_id = str(payload.get("sub") or "").strip()
    if not principal_id:
        raise AuthenticationError("token has no subject")
    try:
        role = Role(str(payload.get("role") or Role.USER.value))
    except ValueError as e:
        raise AuthenticationError(f"unknown role {payload.get('role')!r}") from e
    return Principal(id=principal_id, role=role)


def principal_from_authorization(header: str | None, *, secret: str, algorithm: str = "HS256") -> Principal:
    """Parse an `Authorization: Bearer <token>` header value."""
    if not header:
        raise AuthenticationError("no token provided, authorization denied")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise AuthenticationError("invalid token format, authorization denied")
    return decode_principal(token.strip(), secret=secret, algorithm=algorithm)
