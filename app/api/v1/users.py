"""
User API Endpoints
Profile, preferences, password and progress for the signed-in user.
"""

from typing import Any

from fastapi import APIRouter, HTTPException, Depends, Request, status
from pydantic import BaseModel

from app.core.security import hash_password
from app.crud.story import StoryCRUD
from app.crud.subscription import SubscriptionCRUD
from app.crud.user import UserCRUD
from app.dependencies import get_current_user, get_db_client, get_security_logger
from app.models.security_event import SecurityEventType, Severity
from app.models.user import UserModel, UserRole
from app.schemas.user_schema import (
    ChangePasswordRequest,
    ParentConsentRequest,
    UpdatePreferencesRequest,
    UpdateProfileRequest,
)
from app.services.achievements import achievement_progress
from app.services.content_filter import InputSanitizer
from app.services.security_logger import SecurityLogger
from app.utils.exceptions import (
    AuthenticationError,
    AuthorizationError,
    MintoonsException,
    NotFoundError,
    ValidationError,
)
from app.utils.logger import get_logger

logger = get_logger(__name__)
router = APIRouter()


# ── Response Models ──────────────────────────────────────────────────

class UserResponse(BaseModel):
    """Generic user response wrapper."""
    success: bool
    data: Any = None
    message: str = ""


# ── Endpoints ────────────────────────────────────────────────────────

@router.get("/profile", response_model=UserResponse)
async def get_profile(user: UserModel = Depends(get_current_user)) -> UserResponse:
    """Get the current user's profile."""
    return UserResponse(success=True, data=user.to_public_dict(), message="Profile retrieved")


@router.put("/profile", response_model=UserResponse)
async def update_profile(
    request: UpdateProfileRequest,
    user: UserModel = Depends(get_current_user),
    db_client=Depends(get_db_client),
) -> UserResponse:
    """
    Update profile fields.

    Only fields present in the request are changed. Changing the age also
    recomputes the age group.
    """
    try:
        updates = request.model_dump(exclude_none=True)
        if not updates:
            raise ValidationError("No profile fields to update")

        for field in ("name", "bio", "school", "grade"):
            if field in updates:
                setattr(user, field, InputSanitizer.sanitize_text(updates[field], 500))
        if "avatar" in updates:
            user.avatar = updates["avatar"]
        if "age" in updates:
            user.age = updates["age"]
            user.age_group = UserModel.calculate_age_group(user.age)
        if "favorite_genres" in updates:
            user.preferences.writing.preferred_genres = updates["favorite_genres"]

        UserCRUD(db_client).save_model(user)
        logger.info(f"Profile updated for user {user.id}")
        return UserResponse(success=True, data=user.to_public_dict(), message="Profile updated")

    except HTTPException:
        raise
    except MintoonsException:
        raise
    except Exception as e:
        logger.error(f"Error updating profile: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to update profile",
        )


@router.put("/preferences", response_model=UserResponse)
async def update_preferences(
    request: UpdatePreferencesRequest,
    user: UserModel = Depends(get_current_user),
    db_client=Depends(get_db_client),
) -> UserResponse:
    """Merge theme, language, email and writing preferences."""
    try:
        prefs = user.preferences
        if request.theme is not None:
            prefs.theme = request.theme
        if request.language is not None:
            prefs.language = request.language
        if request.email_notifications is not None:
            for key, value in request.email_notifications.model_dump(exclude_none=True).items():
                setattr(prefs.email_notifications, key, value)
        if request.writing is not None:
            writing = prefs.writing.model_dump()
            writing.update(request.writing.model_dump(exclude_none=True))
            prefs.writing = type(prefs.writing)(**writing)

        UserCRUD(db_client).save_model(user)
        return UserResponse(success=True, data=prefs.to_dict(), message="Preferences updated")

    except HTTPException:
        raise
    except MintoonsException:
        raise
    except ValueError as e:
        raise ValidationError(str(e))
    except Exception as e:
        logger.error(f"Error updating preferences: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to update preferences",
        )


@router.post("/change-password", response_model=UserResponse)
async def change_password(
    request: ChangePasswordRequest,
    http_request: Request,
    user: UserModel = Depends(get_current_user),
    db_client=Depends(get_db_client),
    security_logger: SecurityLogger = Depends(get_security_logger),
) -> UserResponse:
    """
    Change the password after confirming the current one.

    Raises:
        AuthenticationError: If the current password is wrong
        ValidationError: If the new password equals the old one
    """
    if not user.verify_password(request.current_password):
        security_logger.log_event(
            SecurityEventType.FAILED_LOGIN, Severity.MEDIUM, http_request,
            user_id=user.id, details={"reason": "change_password"},
        )
        raise AuthenticationError("Current password is incorrect")
    if request.current_password == request.new_password:
        raise ValidationError("New password must be different from the current password")

    user.password_hash = hash_password(request.new_password)
    UserCRUD(db_client).save_model(user)
    logger.info(f"Password changed for user {user.id}")
    return UserResponse(success=True, message="Password changed")


@router.get("/stats", response_model=UserResponse)
async def get_stats(
    user: UserModel = Depends(get_current_user),
    db_client=Depends(get_db_client),
) -> UserResponse:
    """Writing progress, achievements and the subscription's remaining allowance."""
    try:
        stories = StoryCRUD(db_client)
        subscription = SubscriptionCRUD(db_client).get_or_create_for_user(user.id)
        total_stories = stories.count_by_author(user.id)

        data = user.stats.model_dump(mode="json")
        data["stories_created"] = total_stories
        data["stories_published"] = stories.count([
            ("author_id", "==", user.id),
            ("status", "==", "published"),
        ])
        data["subscription_tier"] = subscription.tier
        data["remaining"] = subscription.get_remaining_limits(total_stories)
        data["achievements"] = achievement_progress(user)

        return UserResponse(success=True, data=data, message="Stats retrieved")

    except HTTPException:
        raise
    except MintoonsException:
        raise
    except Exception as e:
        logger.error(f"Error getting user stats: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to get stats",
        )


@router.post("/parent-consent", response_model=UserResponse)
async def grant_parent_consent(
    request: ParentConsentRequest,
    user: UserModel = Depends(get_current_user),
    db_client=Depends(get_db_client),
) -> UserResponse:
    """
    Record parental consent for a child under 13.

    The caller must be the child or an admin, and the parent email must
    match the one given at registration.
    """
    users = UserCRUD(db_client)
    child = user if user.id == request.child_id else users.get_model(request.child_id)
    if child is None:
        raise NotFoundError("Child account not found")

    if child.id != user.id and user.role != UserRole.ADMIN:
        raise AuthorizationError("You cannot give consent for this account")
    if not child.parent_email or child.parent_email != request.parent_email:
        raise ValidationError("Parent email does not match our records")

    child.grant_parent_consent()
    users.save_model(child)
    logger.info(f"Parent consent recorded for user {child.id}")
    return UserResponse(
        success=True,
        data={"parent_consent": True, "account_status": child.account_status},
        message="Parent consent recorded",
    )
