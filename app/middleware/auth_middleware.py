"""
Route-level access control.

Decodes the Bearer JWT once per request and checks its role claim against
the longest matching path prefix. Account state (suspended, locked) is
checked later by the ``get_current_user`` dependency, which loads the user.
"""

from typing import Any, Dict, Optional, Tuple

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from app.core.security import decode_token
from app.middleware.error_handler import error_response
from app.models.user import UserRole
from app.utils.logger import get_logger

logger = get_logger(__name__)

API_PREFIX = "/api/v1"

ALL_ROLES = tuple(role.value for role in UserRole)

ROUTE_ROLES: Dict[str, Tuple[str, ...]] = {
    f"{API_PREFIX}/stories": (UserRole.CHILD.value, UserRole.MENTOR.value, UserRole.ADMIN.value),
    f"{API_PREFIX}/comments": (UserRole.CHILD.value, UserRole.MENTOR.value, UserRole.ADMIN.value),
    f"{API_PREFIX}/users": ALL_ROLES,
    f"{API_PREFIX}/notifications": ALL_ROLES,
    f"{API_PREFIX}/subscriptions": ALL_ROLES,
    f"{API_PREFIX}/ai": ALL_ROLES,
    f"{API_PREFIX}/export": ALL_ROLES,
    f"{API_PREFIX}/mentor": (UserRole.MENTOR.value, UserRole.ADMIN.value),
    f"{API_PREFIX}/admin": (UserRole.ADMIN.value,),
}

PUBLIC_PREFIXES = (f"{API_PREFIX}/auth/",)
PUBLIC_PATHS = (
    f"{API_PREFIX}/health",
    f"{API_PREFIX}/subscriptions/tiers",
    f"{API_PREFIX}/subscriptions/webhook",
)


def _matches(path: str, prefix: str) -> bool:
    return path == prefix or path.startswith(prefix + "/")


def is_public_path(path: str) -> bool:
    path = path.rstrip("/") or "/"
    if not _matches(path, API_PREFIX):
        return True
    if path == f"{API_PREFIX}/auth" or path.startswith(PUBLIC_PREFIXES):
        return True
    return path in PUBLIC_PATHS


def allowed_roles(path: str) -> Optional[Tuple[str, ...]]:
    """Roles allowed on ``path`` by the longest matching prefix, or None if unlisted."""
    path = path.rstrip("/")
    matches = [prefix for prefix in ROUTE_ROLES if _matches(path, prefix)]
    if not matches:
        return None
    return ROUTE_ROLES[max(matches, key=len)]


def bearer_token(request: Request) -> Optional[str]:
    authorization = request.headers.get("authorization", "")
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


class RouteAccessMiddleware(BaseHTTPMiddleware):
    """Rejects unauthenticated or wrong-role requests before routing."""

    async def dispatch(self, request: Request, call_next: Any) -> Response:
        path = request.url.path
        if request.method == "OPTIONS" or is_public_path(path):
            return await call_next(request)

        token = bearer_token(request)
        if token is None:
            return error_response(401, "Authentication required", "AUTHENTICATION_ERROR")

        try:
            payload = decode_token(token)
        except ValueError as e:
            logger.info(f"Rejected token on {path}: {e}")
            return error_response(401, "Invalid or expired token", "AUTHENTICATION_ERROR")

        roles = allowed_roles(path)
        role = payload.get("role")
        if roles is not None and role not in roles:
            logger.warning(
                f"Role '{role}' denied on {path}",
                extra={"extra_data": {"user_id": payload.get("sub"), "path": path}},
            )
            return error_response(
                403,
                "You don't have permission to access this resource",
                "AUTHORIZATION_ERROR",
                details={"required_roles": list(roles)},
            )

        request.state.token_payload = payload
        return await call_next(request)
