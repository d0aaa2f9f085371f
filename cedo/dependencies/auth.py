from __future__ import annotations

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from cedo.exceptions import ForbiddenError
from cedo.schemas.auth import AuthContext
from cedo.utils.security import decode_access_token


# Reads: Authorization: Bearer <token>
security = HTTPBearer(auto_error=False)


def _unauthorized() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Not authenticated",
        headers={"WWW-Authenticate": "Bearer"},
    )


def get_auth_context(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
) -> AuthContext:
    """
    Caller identity from the access token

    Claims: sub (integer user id), role, email. Users live in the
    authentication service; nothing is looked up here.
    """
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise _unauthorized()

    try:
        claims = decode_access_token(credentials.credentials)
    except ValueError:
        raise _unauthorized()

    return AuthContext(
        user_id=int(claims["sub"]),
        role=str(claims.get("role") or "student"),
        email=claims.get("email"),
    )


def require_admin(auth: AuthContext = Depends(get_auth_context)) -> AuthContext:
    if not auth.is_admin:
        raise ForbiddenError(
            message="Administrator role required",
            detail=f"Role {auth.role!r} cannot perform admin actions"
        )
    return auth
