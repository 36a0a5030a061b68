"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication and roles.

get_current_principal() reads the Authorization header. Both the raw token
and the "Bearer <token>" form are accepted. The token is verified against
the JWT secret of the configuration stored on app.state.config, so the app
never reaches for a global.

On success the Principal is returned and also copied onto request.state
(user_id, organization_id, role) for handlers that prefer plain attributes.

Role gates are simple predicates over Principal.role:
  require_admin       -- "admin" or "super_admin"
  require_super_admin -- "super_admin" only
Both return 401 when unauthenticated and 403 on a role mismatch.

Layer rule: no imports from api/ or audit/. auth/dependencies.py may import
from fastapi because it is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

from collections.abc import Callable

from fastapi import HTTPException, Request

from auth.models import Principal
from auth.tokens import InvalidTokenError, decode_access_token

ADMIN_ROLES = frozenset({"admin", "super_admin"})
SUPER_ADMIN_ROLES = frozenset({"super_admin"})


def _bearer_token(request: Request) -> str:
    header = request.headers.get("Authorization", "").strip()
    if header[:7].lower() == "bearer ":
        return header[7:].strip()
    return header


def get_current_principal(request: Request) -> Principal:
    """Require a valid access token. Raises HTTP 401 otherwise.

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(principal: Principal = Depends(get_current_principal)): ...
    """
    token = _bearer_token(request)
    if not token:
        raise HTTPException(
            status_code=401,
            detail={"code": "unauthorized", "message": "Authentication required."},
        )
    try:
        principal = decode_access_token(token, secret=request.app.state.config.jwt_secret)
    except InvalidTokenError as exc:
        raise HTTPException(
            status_code=500 if exc.code == "server_misconfigured" else 401,
            detail={"code": exc.code, "message": exc.message},
        ) from exc

    request.state.user_id = principal.user_id
    request.state.organization_id = principal.organization_id
    request.state.role = principal.role
    return principal


def require_roles(roles: frozenset[str], message: str) -> Callable[[Request], Principal]:
    """Build a dependency that admits only principals whose role is in roles."""

    def dependency(request: Request) -> Principal:
        principal = get_current_principal(request)
        if principal.role not in roles:
            raise HTTPException(
                status_code=403,
                detail={"code": "forbidden", "message": message},
            )
        return principal

    return dependency


require_admin = require_roles(ADMIN_ROLES, "Admin privileges required.")
require_super_admin = require_roles(SUPER_ADMIN_ROLES, "Super admin privileges required.")
