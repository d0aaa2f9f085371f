from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

from jose import JWTError, jwt

ACCESS = "access"
RESERVED_CLAIMS = frozenset({"sub", "role", "type", "iat", "exp"})


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class JwtSettings:
    secret_key: str
    algorithm: str
    access_ttl: timedelta

    @classmethod
    def from_env(cls) -> "JwtSettings":
        secret_key = os.getenv("SECRET_KEY") or ""
        if len(secret_key) < 32:
            raise RuntimeError("SECRET_KEY must be set to at least 32 characters")
        return cls(
            secret_key=secret_key,
            algorithm=os.getenv("ALGORITHM", "HS256"),
            access_ttl=timedelta(minutes=int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "15"))),
        )


def issue_access_token(
    user_id: int,
    role: str,
    email: str | None = None,
    ttl: timedelta | None = None,
    extra_claims: dict[str, Any] | None = None,
) -> str:
    """
    Sign an access token with the identity provider's claim layout
    (sub, role, type, iat, exp, optional email).

    Tokens are issued by the authentication service in production; this is
    used by tooling and tests.
    """
    settings = JwtSettings.from_env()
    clashing = RESERVED_CLAIMS.intersection(extra_claims or {})
    if clashing:
        raise ValueError(f"extra_claims may not set {', '.join(sorted(clashing))}")

    issued = utcnow()
    claims: dict[str, Any] = {
        **(extra_claims or {}),
        "sub": str(user_id),
        "role": role,
        "type": ACCESS,
        "iat": int(issued.timestamp()),
        "exp": int((issued + (ttl or settings.access_ttl)).timestamp()),
    }
    if email is not None:
        claims["email"] = email
    return jwt.encode(claims, settings.secret_key, algorithm=settings.algorithm)


def decode_access_token(token: str) -> dict[str, Any]:
    """
    Claims of a valid access token.

    Raises ValueError for a bad signature, an expired token, a non-access
    token, or a subject that is not a positive integer.
    """
    if not token:
        raise ValueError("Empty token")
    settings = JwtSettings.from_env()

    try:
        claims = jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])
    except JWTError as e:
        raise ValueError(f"Invalid token: {e}") from e

    if claims.get("type") != ACCESS:
        raise ValueError(f"Not an access token (type={claims.get('type')!r})")
    sub = str(claims.get("sub") or "")
    if not sub.isdigit() or int(sub) <= 0:
        raise ValueError(f"Invalid subject {sub!r}")
    return claims
