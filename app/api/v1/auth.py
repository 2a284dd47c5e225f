"""Authentication endpoints: registration, login, tokens and password recovery."""

from typing import Any

from fastapi import APIRouter, HTTPException, Depends, Request, status
from pydantic import BaseModel

from app.core.security import (
    REFRESH_TOKEN_TYPE,
    decode_token,
    hash_one_time_token,
    hash_password,
    issue_token_pair,
)
from app.crud.subscription import SubscriptionCRUD
from app.crud.user import UserCRUD
from app.dependencies import (
    get_db_client,
    get_email_queue_dep,
    get_notification_service,
    get_security_logger,
    rate_limit,
)
from app.models.notification import NotificationType
from app.models.security_event import SecurityEventType, Severity
from app.models.user import UserModel, UserRole
from app.schemas.user_schema import (
    ForgotPasswordRequest,
    LoginRequest,
    RefreshRequest,
    RegisterRequest,
    ResetPasswordRequest,
    VerifyEmailRequest,
)
from app.services.content_filter import InputSanitizer
from app.services.email.email_service import EmailQueue
from app.services.notification_service import NotificationService
from app.services.security_logger import SecurityLogger
from app.utils.exceptions import (
    AuthenticationError,
    AuthorizationError,
    ConflictError,
    MintoonsException,
    ValidationError,
)
from app.utils.logger import get_logger

logger = get_logger(__name__)
router = APIRouter()

INVALID_CREDENTIALS = "Invalid email or password"


# ── Response Models ──────────────────────────────────────────────────

class AuthResponse(BaseModel):
    """Response model for auth operations."""
    success: bool
    data: Any = None
    message: str


# ── Endpoints ────────────────────────────────────────────────────────

@router.post(
    "/register",
    response_model=AuthResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(rate_limit("register"))],
)
async def register(
    request: RegisterRequest,
    db_client=Depends(get_db_client),
    email_queue: EmailQueue = Depends(get_email_queue_dep),
    notifier: NotificationService = Depends(get_notification_service),
) -> AuthResponse:
    """
    Create a child account.

    Children under 13 must give a parent email; their account stays pending
    until a parent consents. A free subscription is created and welcome and
    verification emails are queued.

    Args:
        request: RegisterRequest with name, email, password and age
        db_client: Database client
        email_queue: Outgoing email queue
        notifier: Notification service

    Returns:
        AuthResponse with the public user and a token pair

    Raises:
        ConflictError: If the email is already registered
        ValidationError: If a parent email is required but missing
    """
    try:
        users = UserCRUD(db_client)
        if users.get_by_email(request.email):
            raise ConflictError("An account with this email already exists")

        if request.age < 13 and not request.parent_email:
            raise ValidationError(
                "Parent email is required for users under 13",
                details={"field": "parent_email"},
            )

        user = UserModel(
            name=InputSanitizer.sanitize_text(request.name, 50),
            email=request.email,
            password_hash=hash_password(request.password),
            role=UserRole.CHILD,
            age=request.age,
            age_group=UserModel.calculate_age_group(request.age),
            parent_email=request.parent_email,
        )
        verification_token = user.generate_email_verification_token()
        users.create_user(user)
        SubscriptionCRUD(db_client).get_or_create_for_user(user.id)

        email_queue.enqueue(user.email, "welcome", {"name": user.name})
        email_queue.enqueue(
            user.email, "email_verification", {"name": user.name, "token": verification_token}
        )
        if user.requires_parent_consent:
            email_queue.enqueue(
                user.parent_email, "parent_consent", {"child_name": user.name, "user_id": user.id}
            )

        notifier.notify(
            user.id,
            NotificationType.WELCOME,
            "Welcome to Mintoons! 🎉",
            "Pick your story elements and start your first adventure.",
            action_url="/create-stories",
        )

        logger.info(f"User registered: {user.id}")
        stored = users.get_by_id(user.id)
        return AuthResponse(
            success=True,
            data={"user": user.to_public_dict(), **issue_token_pair(stored)},
            message="Account created successfully",
        )

    except HTTPException:
        raise
    except MintoonsException:
        raise
    except Exception as e:
        logger.error(f"Error registering user: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create account",
        )


@router.post("/login", response_model=AuthResponse, dependencies=[Depends(rate_limit("login"))])
async def login(
    request: LoginRequest,
    http_request: Request,
    db_client=Depends(get_db_client),
    security_logger: SecurityLogger = Depends(get_security_logger),
) -> AuthResponse:
    """
    Exchange email and password for tokens.

    Five consecutive failures lock the account for two hours.

    Raises:
        AuthenticationError: On bad credentials
        AuthorizationError: If the account is locked, suspended or inactive
    """
    try:
        users = UserCRUD(db_client)
        data = users.get_by_email(request.email)
        if not data:
            security_logger.log_event(
                SecurityEventType.FAILED_LOGIN, Severity.LOW, http_request,
                details={"email": request.email, "reason": "unknown_email"},
            )
            raise AuthenticationError(INVALID_CREDENTIALS)

        user = UserModel.from_dict(data)
        if user.is_locked():
            raise AuthorizationError(
                "Account is temporarily locked after too many failed logins",
                details={"locked_until": user.locked_until.isoformat()},
            )

        if not user.verify_password(request.password):
            locked = user.increment_login_attempts()
            users.save_model(user)
            security_logger.log_event(
                SecurityEventType.FAILED_LOGIN, Severity.MEDIUM, http_request,
                user_id=user.id, details={"attempts": user.login_attempts},
            )
            if locked:
                security_logger.log_event(
                    SecurityEventType.ACCOUNT_LOCKED, Severity.HIGH, http_request, user_id=user.id,
                )
            raise AuthenticationError(INVALID_CREDENTIALS)

        if not user.can_sign_in():
            raise AuthorizationError("Account is not active", details={"account_status": user.account_status})

        user.reset_login_attempts()
        user.last_active_at = user.last_login_at
        users.save_model(user)

        logger.info(f"User logged in: {user.id}")
        return AuthResponse(
            success=True,
            data={"user": user.to_public_dict(), **issue_token_pair(user.to_dict())},
            message="Login successful",
        )

    except HTTPException:
        raise
    except MintoonsException:
        raise
    except Exception as e:
        logger.error(f"Error logging in: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Login failed",
        )


@router.post("/refresh", response_model=AuthResponse)
async def refresh_tokens(
    request: RefreshRequest,
    db_client=Depends(get_db_client),
) -> AuthResponse:
    """Issue a new token pair from a valid refresh token."""
    try:
        payload = decode_token(request.refresh_token, REFRESH_TOKEN_TYPE)
    except ValueError as e:
        raise AuthenticationError("Invalid or expired refresh token") from e

    user = UserCRUD(db_client).get_model(payload.get("sub", ""))
    if user is None:
        raise AuthenticationError("User not found")
    if not user.can_sign_in():
        raise AuthorizationError("Account is not active")

    return AuthResponse(success=True, data=issue_token_pair(user.to_dict()), message="Tokens refreshed")


@router.post(
    "/forgot-password",
    response_model=AuthResponse,
    dependencies=[Depends(rate_limit("forgot_password"))],
)
async def forgot_password(
    request: ForgotPasswordRequest,
    db_client=Depends(get_db_client),
    email_queue: EmailQueue = Depends(get_email_queue_dep),
) -> AuthResponse:
    """
    Queue a password reset email.

    Always answers 200 so the endpoint cannot be used to probe for accounts.
    """
    message = "If an account exists for that email, a reset link has been sent"
    try:
        users = UserCRUD(db_client)
        data = users.get_by_email(request.email)
        if data:
            user = UserModel.from_dict(data)
            token = user.generate_password_reset_token()
            users.save_model(user)
            email_queue.enqueue(user.email, "password_reset", {"name": user.name, "token": token})
            logger.info(f"Password reset requested for user {user.id}")
        return AuthResponse(success=True, message=message)

    except MintoonsException:
        raise
    except Exception as e:
        logger.error(f"Error handling forgot-password: {str(e)}")
        return AuthResponse(success=True, message=message)


@router.post("/reset-password", response_model=AuthResponse)
async def reset_password(
    request: ResetPasswordRequest,
    db_client=Depends(get_db_client),
) -> AuthResponse:
    """
    Set a new password with a one-time reset token.

    Raises:
        ValidationError: If the token is unknown or expired
    """
    users = UserCRUD(db_client)
    data = users.get_by_reset_token_hash(hash_one_time_token(request.token))
    if not data:
        raise ValidationError("Invalid or expired reset token")

    user = UserModel.from_dict(data)
    if not user.is_password_reset_token_valid(request.token):
        raise ValidationError("Invalid or expired reset token")

    user.password_hash = hash_password(request.password)
    user.clear_password_reset_token()
    user.login_attempts = 0
    user.locked_until = None
    users.save_model(user)

    logger.info(f"Password reset completed for user {user.id}")
    return AuthResponse(success=True, message="Password has been reset. You can now log in.")


@router.post("/verify-email", response_model=AuthResponse)
async def verify_email(
    request: VerifyEmailRequest,
    db_client=Depends(get_db_client),
) -> AuthResponse:
    """Confirm an email address with the token from the verification email."""
    users = UserCRUD(db_client)
    data = users.get_by_verification_token_hash(hash_one_time_token(request.token))
    if not data:
        raise ValidationError("Invalid or expired verification link")

    user = UserModel.from_dict(data)
    if not user.verify_email(request.token):
        raise ValidationError("Invalid or expired verification link")
    users.save_model(user)

    return AuthResponse(
        success=True,
        data={"account_status": user.account_status, "email_verified": True},
        message="Email verified",
    )
