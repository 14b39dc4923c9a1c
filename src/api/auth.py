"""Bearer-token verification and RBAC dependencies for the alerting API.

Provides:
- verify_jwt(): FastAPI dependency that validates the caller's JWT
- CurrentUser: typed alias for routes that only need an authenticated caller
- require_role(): factory returning a dependency that enforces a role
- Role enum: ADMIN, COORDINATOR, VOLUNTEER

Tokens are issued by the volunteer-app auth service and signed with the
shared ``JWT_SECRET_KEY``; this service never issues them.  Every token
must carry ``sub`` and ``exp``.  With DEBUG=true authentication is bypassed
and every request acts as "dev-user" with the ADMIN role.
"""

import logging
from enum import Enum
from typing import Annotated

import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from src.core.config import settings

logger = logging.getLogger(__name__)
security = HTTPBearer(auto_error=False)

DEV_USER = {"sub": "dev-user", "role": "ADMIN"}


# ---------------------------------------------------------------------------
# Roles
# ---------------------------------------------------------------------------
class Role(str, Enum):
    """Roles issued by the volunteer platform.

    ADMIN:       Platform operators; full access to alerting and APM.
    COORDINATOR: Organization staff managing opportunities and volunteers.
    VOLUNTEER:   Regular authenticated users.
    """

    ADMIN = "ADMIN"
    COORDINATOR = "COORDINATOR"
    VOLUNTEER = "VOLUNTEER"


# Roles each role may act as
_GRANTS: dict[Role, frozenset[Role]] = {
    Role.ADMIN: frozenset(Role),
    Role.COORDINATOR: frozenset({Role.COORDINATOR, Role.VOLUNTEER}),
    Role.VOLUNTEER: frozenset({Role.VOLUNTEER}),
}


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


# ---------------------------------------------------------------------------
# Token verification dependency
# ---------------------------------------------------------------------------
async def verify_jwt(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
) -> dict:
    """Decode the bearer token into its claims.

    The ``role`` claim is upper-cased and defaults to VOLUNTEER.
    """
    if settings.debug:
        return dict(DEV_USER)

    if credentials is None:
        raise _unauthorized("Missing authentication token")

    try:
        claims = jwt.decode(
            credentials.credentials,
            settings.jwt_secret_key,
            algorithms=[settings.jwt_algorithm],
            options={"require": ["exp", "sub"]},
        )
    except jwt.ExpiredSignatureError:
        raise _unauthorized("Token has expired")
    except jwt.InvalidTokenError:
        raise _unauthorized("Invalid authentication token")

    claims["role"] = str(claims.get("role") or Role.VOLUNTEER.value).upper()
    return claims


CurrentUser = Annotated[dict, Depends(verify_jwt)]


# ---------------------------------------------------------------------------
# Role-based access control dependency
# ---------------------------------------------------------------------------
def require_role(*allowed_roles: Role):
    """Return a dependency that admits callers holding any of *allowed_roles*.

    Usage::

        admin_only = require_role(Role.ADMIN)

        @router.get("/stats", dependencies=[Depends(admin_only)])
        async def stats(...): ...
    """
    allowed = frozenset(allowed_roles)
    required = ", ".join(r.value for r in allowed_roles)

    async def _check_role(user: CurrentUser) -> dict:
        try:
            role = Role(user["role"])
        except ValueError:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Unknown role: {user['role']}",
            )

        if not _GRANTS[role] & allowed:
            logger.warning("Forbidden: %s (%s) lacks %s", user.get("sub"), role.value, required)
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Insufficient permissions. Required: {required}. Your role: {role.value}.",
            )
        return user

    return _check_role
