"""
Shared application dependencies.
Supports both Firebase mode and local development mode.
"""

import os
from datetime import datetime, timedelta
from typing import Any, Callable, Optional

from fastapi import Depends, Request, Response

from app.config import get_settings
from app.core.security import decode_token
from app.crud.user import UserCRUD
from app.middleware.auth_middleware import bearer_token
from app.models.security_event import SecurityEventType, Severity
from app.models.user import UserModel
from app.services.ai.story_assistant import StoryAssistant, get_story_assistant
from app.services.email.email_service import EmailQueue, get_email_queue
from app.services.moderation import StoryPublisher
from app.services.notification_service import NotificationService
from app.services.rate_limit import get_rate_limiter
from app.services.security_logger import SecurityLogger, client_ip
from app.utils.exceptions import AuthenticationError, AuthorizationError, RateLimitError
from app.utils.logger import get_logger

logger = get_logger(__name__)

# Global Instances
_db_client = None
_is_local_mode = None

LAST_ACTIVE_RESOLUTION = timedelta(minutes=5)


def _check_local_mode() -> bool:
    """Determine if we should use local mode (no Firebase)."""
    global _is_local_mode
    if _is_local_mode is not None:
        return _is_local_mode

    cred_path = get_settings().firebase_credentials_path
    if not cred_path or not os.path.exists(cred_path):
        logger.info("Firebase credentials not found - running in LOCAL DEV mode")
        _is_local_mode = True
    else:
        _is_local_mode = False
    return _is_local_mode


def get_db_client() -> Any:
    """Get database client - Firestore in prod, LocalStore in dev."""
    global _db_client
    if _db_client is not None:
        return _db_client

    if _check_local_mode():
        from app.services.local_store import get_local_store
        _db_client = get_local_store()
        logger.info("Using LocalStore (JSON files) database")
    else:
        import firebase_admin
        from firebase_admin import credentials, firestore

        if not firebase_admin._apps:
            cred = credentials.Certificate(get_settings().firebase_credentials_path)
            firebase_admin.initialize_app(cred)
        _db_client = firestore.client()
        logger.info("Using Firestore database")

    return _db_client


def get_story_assistant_dep(db_client=Depends(get_db_client)) -> StoryAssistant:
    return get_story_assistant(db_client)


def get_email_queue_dep() -> EmailQueue:
    return get_email_queue()


def get_notification_service(
    db_client=Depends(get_db_client),
    email_queue: EmailQueue = Depends(get_email_queue_dep),
) -> NotificationService:
    return NotificationService(db_client, email_queue)


def get_security_logger(db_client=Depends(get_db_client)) -> SecurityLogger:
    return SecurityLogger(db_client)


# ── Authentication ───────────────────────────────────────────────────

def _token_payload(request: Request) -> dict:
    """Claims decoded by RouteAccessMiddleware, or decoded here for unlisted routes."""
    payload = getattr(request.state, "token_payload", None)
    if payload is not None:
        return payload

    token = bearer_token(request)
    if token is None:
        raise AuthenticationError("Authentication required")
    try:
        payload = decode_token(token)
    except ValueError as e:
        raise AuthenticationError("Invalid or expired token") from e
    request.state.token_payload = payload
    return payload


async def get_current_user(
    request: Request,
    db_client=Depends(get_db_client),
) -> UserModel:
    """
    Load the user named by the access token.

    Raises:
        AuthenticationError: If the token is missing or invalid, or the user
            no longer exists.
        AuthorizationError: If the account is inactive, suspended or locked.
    """
    payload = _token_payload(request)
    user = UserCRUD(db_client).get_model(payload.get("sub", ""))
    if user is None:
        raise AuthenticationError("User not found")
    if not user.can_sign_in():
        raise AuthorizationError(
            "Account is not active",
            details={"account_status": user.account_status, "locked": user.is_locked()},
        )

    now = datetime.utcnow()
    if user.last_active_at is None or now - user.last_active_at > LAST_ACTIVE_RESOLUTION:
        UserCRUD(db_client).touch_last_active(user.id, now)
        user.last_active_at = now
    return user


async def get_optional_user(
    request: Request,
    db_client=Depends(get_db_client),
) -> Optional[UserModel]:
    """Get current user if authenticated, otherwise None."""
    if bearer_token(request) is None:
        return None
    try:
        return await get_current_user(request, db_client)
    except (AuthenticationError, AuthorizationError):
        return None


def require_roles(*roles: str) -> Callable:
    """Dependency that admits only users whose role is in ``roles``."""

    async def dependency(user: UserModel = Depends(get_current_user)) -> UserModel:
        if user.role not in roles:
            raise AuthorizationError(
                "You don't have permission to perform this action",
                details={"required_roles": list(roles)},
            )
        return user

    return dependency


# ── Rate limiting ────────────────────────────────────────────────────

def rate_limit(name: str) -> Callable:
    """
    Dependency enforcing the named window from ``RATE_LIMITS``.

    The key is the authenticated user id when a valid token is present,
    otherwise the client IP.
    """

    async def dependency(
        request: Request,
        response: Response,
        db_client=Depends(get_db_client),
    ) -> None:
        user_id = None
        if bearer_token(request) is not None:
            try:
                user_id = _token_payload(request).get("sub")
            except AuthenticationError:
                user_id = None
        key = f"user:{user_id}" if user_id else f"ip:{client_ip(request)}"

        result = get_rate_limiter(name).check(key)
        if not result.allowed:
            SecurityLogger(db_client).log_event(
                SecurityEventType.RATE_LIMIT_EXCEEDED,
                Severity.MEDIUM,
                request=request,
                user_id=user_id,
                details={"limit": name},
            )
            raise RateLimitError(
                "Too many requests. Please try again later.",
                retry_after=result.retry_after,
                details={"limit": name},
                headers=result.headers(),
            )

        for header, value in result.headers().items():
            response.headers[header] = value

    return dependency


def get_story_publisher(
    db_client=Depends(get_db_client),
    assistant: StoryAssistant = Depends(get_story_assistant_dep),
    notifier: NotificationService = Depends(get_notification_service),
) -> StoryPublisher:
    return StoryPublisher(db_client, assistant, notifier)
