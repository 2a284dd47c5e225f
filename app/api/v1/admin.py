"""
Admin API Endpoints
User management, moderation queue, analytics, AI keys and system status.
"""

from collections import Counter
from datetime import datetime, timedelta
from typing import Any, List, Optional

from fastapi import APIRouter, HTTPException, Depends, Query, status
from pydantic import BaseModel

from app.crud.ai_keys import AIKeyCRUD
from app.crud.security_event import SecurityEventCRUD
from app.crud.story import StoryCRUD
from app.crud.subscription import SubscriptionCRUD
from app.crud.user import UserCRUD
from app.dependencies import (
    get_db_client,
    get_email_queue_dep,
    get_notification_service,
    get_story_publisher,
    rate_limit,
    require_roles,
)
from app.models.ai_keys import AIKeyModel
from app.models.security_event import Severity, SecurityEventType
from app.models.story import ModerationStatus, StoryModel
from app.models.subscription import SubscriptionTier
from app.models.user import AccountStatus, UserModel, UserRole
from app.schemas.admin_schema import (
    AdminNotificationRequest,
    AIKeyCreateRequest,
    AdminUserUpdateRequest,
    BulkAction,
    BulkUserActionRequest,
    ModerationAction,
    ModerationRequest,
)
from app.schemas.responses import PaginatedResponse
from app.services.email.email_service import EmailQueue
from app.services.moderation import StoryPublisher
from app.services.notification_service import NotificationService
from app.services.story_access import load_story
from app.utils.exceptions import (
    ConflictError,
    MintoonsException,
    NotFoundError,
    ValidationError,
)
from app.utils.logger import get_logger

logger = get_logger(__name__)
router = APIRouter(dependencies=[Depends(rate_limit("admin"))])

require_admin = require_roles(UserRole.ADMIN.value)

TIMEFRAMES = {
    "7d": timedelta(days=7),
    "30d": timedelta(days=30),
    "90d": timedelta(days=90),
    "1y": timedelta(days=365),
}


class AdminResponse(BaseModel):
    """Response model for admin operations."""
    success: bool
    data: Any = None
    message: str = ""


def _get_user_or_404(users: UserCRUD, user_id: str) -> UserModel:
    user = users.get_model(user_id)
    if user is None:
        raise NotFoundError("User not found", details={"user_id": user_id})
    return user


def _check_mentor(users: UserCRUD, mentor_id: str) -> None:
    mentor = users.get_model(mentor_id)
    if mentor is None or mentor.role != UserRole.MENTOR:
        raise ValidationError("mentor_id must belong to a mentor account", details={"mentor_id": mentor_id})


def _set_account_status(user: UserModel, account_status: str) -> None:
    user.account_status = AccountStatus(account_status).value
    user.is_active = user.account_status != AccountStatus.INACTIVE


# ── Users ────────────────────────────────────────────────────────────

@router.get("/users", response_model=AdminResponse)
async def list_users(
    role: Optional[UserRole] = Query(None),
    account_status: Optional[AccountStatus] = Query(None, alias="status"),
    search: Optional[str] = Query(None, max_length=100, description="Match name or email"),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    admin: UserModel = Depends(require_admin),
    db_client=Depends(get_db_client),
) -> AdminResponse:
    """List users with optional role, status and text filters."""
    try:
        users = UserCRUD(db_client)
        filters = []
        if role:
            filters.append(("role", "==", role.value))
        if account_status:
            filters.append(("account_status", "==", account_status.value))

        if search:
            needle = search.strip().lower()
            matches = [
                u for u in users.list_all(filters or None, order_by="created_at", direction="DESCENDING")
                if needle in u.get("name", "").lower() or needle in u.get("email", "")
            ]
            start = (page - 1) * page_size
            result = {
                "items": matches[start:start + page_size],
                "total": len(matches),
                "page": page,
                "page_size": page_size,
                "has_more": start + page_size < len(matches),
            }
        else:
            result = users.list(filters or None, page, page_size, order_by="created_at", direction="DESCENDING")

        items = [UserModel.from_dict(item).to_public_dict() for item in result["items"]]
        return AdminResponse(success=True, data=PaginatedResponse.from_result(result, items))

    except HTTPException:
        raise
    except MintoonsException:
        raise
    except Exception as e:
        logger.error(f"Error listing users: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to list users",
        )


@router.get("/users/stats", response_model=AdminResponse)
async def user_stats(
    admin: UserModel = Depends(require_admin),
    db_client=Depends(get_db_client),
) -> AdminResponse:
    data = UserCRUD(db_client).get_user_stats()
    data["subscriptions"] = SubscriptionCRUD(db_client).get_subscription_stats()
    return AdminResponse(success=True, data=data, message="User stats retrieved")


@router.post("/users/bulk", response_model=AdminResponse)
async def bulk_update_users(
    request: BulkUserActionRequest,
    admin: UserModel = Depends(require_admin),
    db_client=Depends(get_db_client),
) -> AdminResponse:
    """
    Apply one change to many users.

    The calling admin is skipped for role and status changes. Unknown ids
    are reported back rather than failing the whole batch.
    """
    users = UserCRUD(db_client)
    action = BulkAction(request.action)
    if action == BulkAction.ASSIGN_MENTOR:
        _check_mentor(users, request.mentor_id)

    updated: List[str] = []
    skipped: List[str] = []
    for user_id in dict.fromkeys(request.user_ids):
        user = users.get_model(user_id)
        if user is None or (user.id == admin.id and action != BulkAction.ASSIGN_MENTOR):
            skipped.append(user_id)
            continue

        if action == BulkAction.UPDATE_ROLE:
            user.role = UserRole(request.role).value
        elif action == BulkAction.UPDATE_STATUS:
            _set_account_status(user, request.account_status)
        else:
            user.mentor_id = request.mentor_id
            user.mentor_assigned_at = datetime.utcnow()
        users.save_model(user)
        updated.append(user_id)

    logger.info(f"Admin {admin.id} ran {action.value} on {len(updated)} users")
    return AdminResponse(
        success=True,
        data={"updated": updated, "skipped": skipped},
        message=f"Updated {len(updated)} users",
    )


@router.patch("/users/{user_id}", response_model=AdminResponse)
async def update_user(
    user_id: str,
    request: AdminUserUpdateRequest,
    admin: UserModel = Depends(require_admin),
    db_client=Depends(get_db_client),
) -> AdminResponse:
    """
    Change a user's role, status, mentor, verification or plan, or clear
    their daily and monthly usage counters.

    Raises:
        NotFoundError: If the user does not exist
        ValidationError: If an admin changes their own role or status, or
            the mentor id is not a mentor
    """
    users = UserCRUD(db_client)
    user = _get_user_or_404(users, user_id)
    updates = request.model_dump(exclude_none=True)
    if not updates:
        raise ValidationError("No fields to update")
    if user.id == admin.id and ({"role", "account_status", "is_active"} & updates.keys()):
        raise ValidationError("You can't change your own role or status")

    if "role" in updates:
        user.role = UserRole(updates["role"]).value
    if "account_status" in updates:
        _set_account_status(user, updates["account_status"])
    if "is_active" in updates:
        user.is_active = updates["is_active"]
    if "email_verified" in updates:
        user.email_verified = updates["email_verified"]
    if "mentor_id" in updates:
        _check_mentor(users, updates["mentor_id"])
        user.mentor_id = updates["mentor_id"]
        user.mentor_assigned_at = datetime.utcnow()
    if "subscription_tier" in updates or updates.get("reset_usage"):
        subscriptions = SubscriptionCRUD(db_client)
        subscription = subscriptions.get_or_create_for_user(user.id)
        if "subscription_tier" in updates:
            subscription.change_tier(updates["subscription_tier"])
            subscription.reactivate()
        if updates.get("reset_usage"):
            subscription.reset_usage()
        subscriptions.save_model(subscription)
        user.subscription_tier = subscription.tier
        user.subscription_status = subscription.status

    users.save_model(user)
    logger.info(f"Admin {admin.id} updated user {user.id}: {sorted(updates)}")
    return AdminResponse(success=True, data=user.to_public_dict(), message="User updated")


@router.delete("/users/{user_id}", response_model=AdminResponse)
async def deactivate_user(
    user_id: str,
    admin: UserModel = Depends(require_admin),
    db_client=Depends(get_db_client),
) -> AdminResponse:
    """Retire an account; the record is kept with status ``inactive``."""
    if user_id == admin.id:
        raise ValidationError("You can't delete your own account")

    users = UserCRUD(db_client)
    user = _get_user_or_404(users, user_id)
    _set_account_status(user, AccountStatus.INACTIVE)
    users.save_model(user)

    logger.info(f"Admin {admin.id} deactivated user {user.id}")
    return AdminResponse(success=True, data={"id": user.id, "account_status": user.account_status},
                         message="User deactivated")


# ── Moderation ───────────────────────────────────────────────────────

@router.get("/moderation", response_model=AdminResponse)
async def moderation_queue(
    moderation_status: ModerationStatus = Query(ModerationStatus.PENDING, alias="status"),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    admin: UserModel = Depends(require_admin),
    db_client=Depends(get_db_client),
) -> AdminResponse:
    """Stories awaiting review; published drafts are left out of the pending queue."""
    crud = StoryCRUD(db_client)
    filters = [("moderation_status", "==", moderation_status.value)]
    if moderation_status == ModerationStatus.PENDING:
        filters.append(("status", "==", "needs_review"))
    result = crud.list(filters, page, page_size, order_by="updated_at", direction="DESCENDING")
    items = [StoryModel.from_dict(item).to_public_dict() for item in result["items"]]
    return AdminResponse(success=True, data=PaginatedResponse.from_result(result, items))


@router.post("/moderation", response_model=AdminResponse)
async def moderate_story(
    request: ModerationRequest,
    admin: UserModel = Depends(require_admin),
    db_client=Depends(get_db_client),
    publisher: StoryPublisher = Depends(get_story_publisher),
) -> AdminResponse:
    """Approve, reject or escalate a story."""
    story = load_story(db_client, request.story_id)
    story = publisher.moderate(story, ModerationAction(request.action).value, admin, request.notes)
    return AdminResponse(success=True, data=story.to_public_dict(), message=f"Story {story.moderation_status}")


# ── Analytics ────────────────────────────────────────────────────────

@router.get("/analytics", response_model=AdminResponse)
async def analytics(
    timeframe: str = Query("30d", pattern="^(7d|30d|90d|1y)$"),
    admin: UserModel = Depends(require_admin),
    db_client=Depends(get_db_client),
) -> AdminResponse:
    """
    Platform activity over a time window.

    Returns:
        AdminResponse with user, story, subscription and security totals
        and a per-day count of new stories
    """
    try:
        since = datetime.utcnow() - TIMEFRAMES[timeframe]
        users = UserCRUD(db_client)
        stories = StoryCRUD(db_client)

        new_users = users.list_all([("created_at", ">=", since)])
        new_stories = stories.list_all([("created_at", ">=", since)])
        per_day = Counter(story["created_at"].date().isoformat() for story in new_stories)

        data = {
            "timeframe": timeframe,
            "since": since.isoformat(),
            "users": {
                "total": users.count(),
                "new": len(new_users),
                "new_by_role": dict(Counter(u.get("role", UserRole.CHILD.value) for u in new_users)),
            },
            "stories": {
                "total": stories.count(),
                "new": len(new_stories),
                "published": stories.count([
                    ("status", "==", "published"),
                    ("published_at", ">=", since),
                ]),
                "awaiting_review": stories.count([("status", "==", "needs_review")]),
                "words_written": sum(s.get("word_count", 0) for s in new_stories),
                "per_day": dict(sorted(per_day.items())),
            },
            "subscriptions": SubscriptionCRUD(db_client).get_subscription_stats(),
            "security": {
                "failed_logins": SecurityEventCRUD(db_client).count_since(SecurityEventType.FAILED_LOGIN.value, since),
                "rate_limited": SecurityEventCRUD(db_client).count_since(
                    SecurityEventType.RATE_LIMIT_EXCEEDED.value, since
                ),
            },
        }
        return AdminResponse(success=True, data=data, message="Analytics retrieved")

    except HTTPException:
        raise
    except MintoonsException:
        raise
    except Exception as e:
        logger.error(f"Error building analytics: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to build analytics",
        )


# ── AI keys ──────────────────────────────────────────────────────────

@router.get("/ai-keys", response_model=AdminResponse)
async def list_ai_keys(
    admin: UserModel = Depends(require_admin),
    db_client=Depends(get_db_client),
) -> AdminResponse:
    keys = [key.to_public_dict() for key in AIKeyCRUD(db_client).list_models()]
    return AdminResponse(success=True, data={"keys": keys, "total": len(keys)})


@router.post("/ai-keys", response_model=AdminResponse, status_code=status.HTTP_201_CREATED)
async def create_ai_key(
    request: AIKeyCreateRequest,
    admin: UserModel = Depends(require_admin),
    db_client=Depends(get_db_client),
) -> AdminResponse:
    """
    Store a provider key encrypted at rest.

    Raises:
        ConflictError: If a key with the same name exists
        ValidationError: If ENCRYPTION_KEY is missing or invalid
    """
    crud = AIKeyCRUD(db_client)
    if crud.get_by_name(request.key_name):
        raise ConflictError("An AI key with this name already exists")

    key = AIKeyModel(
        provider=request.provider,
        key_name=request.key_name,
        daily_limit=request.daily_limit,
        monthly_limit=request.monthly_limit,
        priority=request.priority,
        environment=request.environment,
        created_by=admin.id,
    )
    try:
        key.set_api_key(request.api_key)
    except ValueError as e:
        raise ValidationError(str(e)) from e

    crud.create_key(key)
    logger.info(f"Admin {admin.id} added {key.provider} key {key.key_name}")
    return AdminResponse(success=True, data=key.to_public_dict(), message="AI key added")


@router.delete("/ai-keys/{key_id}", response_model=AdminResponse)
async def delete_ai_key(
    key_id: str,
    admin: UserModel = Depends(require_admin),
    db_client=Depends(get_db_client),
) -> AdminResponse:
    if not AIKeyCRUD(db_client).delete(key_id):
        raise NotFoundError("AI key not found", details={"key_id": key_id})
    logger.info(f"Admin {admin.id} removed AI key {key_id}")
    return AdminResponse(success=True, data={"id": key_id}, message="AI key removed")


# ── System ───────────────────────────────────────────────────────────

@router.post("/notifications", response_model=AdminResponse)
async def send_notification(
    request: AdminNotificationRequest,
    admin: UserModel = Depends(require_admin),
    db_client=Depends(get_db_client),
    notifier: NotificationService = Depends(get_notification_service),
    email_queue: EmailQueue = Depends(get_email_queue_dep),
) -> AdminResponse:
    """
    Send an announcement to listed users, one role, one plan tier or everyone.

    With ``send_email`` the announcement is also emailed right away in
    batches, and the delivery counts are returned.
    """
    if request.user_ids:
        user_ids = list(dict.fromkeys(request.user_ids))
    elif request.role:
        user_ids = [u["id"] for u in UserCRUD(db_client).list_by_role(UserRole(request.role).value)]
    elif request.tier:
        tier = SubscriptionTier(request.tier).value
        user_ids = [s["user_id"] for s in SubscriptionCRUD(db_client).list_by_tier(tier)]
    else:
        user_ids = [u["id"] for u in UserCRUD(db_client).list_all()]

    sent = notifier.broadcast(
        user_ids,
        request.type,
        request.title,
        request.message,
        priority=request.priority,
        action_url=request.action_url,
    )
    data = {"sent": sent, "requested": len(user_ids)}
    if request.send_email:
        users = UserCRUD(db_client)
        recipients = [u.email for u in (users.get_model(uid) for uid in user_ids) if u is not None]
        data["email"] = await email_queue.service.send_bulk_email(
            recipients,
            "announcement",
            {"title": request.title, "message": request.message, "action_url": request.action_url},
        )

    logger.info(f"Admin {admin.id} sent '{request.title}' to {sent} users")
    return AdminResponse(success=True, data=data, message=f"Notification sent to {sent} users")


@router.get("/email-queue", response_model=AdminResponse)
async def email_queue_status(
    admin: UserModel = Depends(require_admin),
    email_queue: EmailQueue = Depends(get_email_queue_dep),
) -> AdminResponse:
    return AdminResponse(success=True, data=email_queue.status())


@router.get("/security-events", response_model=AdminResponse)
async def security_events(
    event_type: Optional[SecurityEventType] = Query(None, alias="type"),
    severity: Optional[Severity] = Query(None),
    user_id: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=200),
    admin: UserModel = Depends(require_admin),
    db_client=Depends(get_db_client),
) -> AdminResponse:
    """Recent audit events, newest first."""
    result = SecurityEventCRUD(db_client).list_recent(
        page=page,
        page_size=page_size,
        event_type=event_type.value if event_type else None,
        severity=severity.value if severity else None,
        user_id=user_id,
    )
    return AdminResponse(success=True, data=PaginatedResponse.from_result(result))
