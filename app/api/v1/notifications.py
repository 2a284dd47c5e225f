"""Notification endpoints for the signed-in user."""

from typing import Any, Optional

from fastapi import APIRouter, HTTPException, Depends, Query, status
from pydantic import BaseModel

from app.crud.notification import NotificationCRUD
from app.dependencies import get_current_user, get_db_client
from app.models.notification import NotificationModel, NotificationType
from app.models.user import UserModel
from app.schemas.responses import PaginatedResponse
from app.utils.exceptions import MintoonsException, NotFoundError
from app.utils.logger import get_logger

logger = get_logger(__name__)
router = APIRouter()


class NotificationResponse(BaseModel):
    """Response model for notification operations."""
    success: bool
    data: Any = None
    message: str = ""


@router.get("", response_model=NotificationResponse)
async def list_notifications(
    page: int = Query(1, ge=1, description="Page number"),
    page_size: int = Query(20, ge=1, le=100, description="Items per page"),
    unread_only: bool = Query(False, description="Only unread notifications"),
    notification_type: Optional[NotificationType] = Query(None, alias="type"),
    user: UserModel = Depends(get_current_user),
    db_client=Depends(get_db_client),
) -> NotificationResponse:
    """
    Get the user's notifications, newest first.

    Returns:
        NotificationResponse with a page of notifications and the unread count
    """
    try:
        result = NotificationCRUD(db_client).list_for_user(
            user.id,
            page=page,
            page_size=page_size,
            unread_only=unread_only,
            notification_type=notification_type.value if notification_type else None,
        )
        items = [NotificationModel.from_dict(item).to_public_dict() for item in result["items"]]
        data = PaginatedResponse.from_result(result, items)
        data["unread_count"] = result["unread_count"]
        return NotificationResponse(success=True, data=data, message=f"Retrieved {len(items)} notifications")

    except HTTPException:
        raise
    except MintoonsException:
        raise
    except Exception as e:
        logger.error(f"Error listing notifications: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to get notifications",
        )


@router.get("/unread-count", response_model=NotificationResponse)
async def unread_count(
    user: UserModel = Depends(get_current_user),
    db_client=Depends(get_db_client),
) -> NotificationResponse:
    count = NotificationCRUD(db_client).unread_count(user.id)
    return NotificationResponse(success=True, data={"unread_count": count})


@router.put("/read-all", response_model=NotificationResponse)
async def mark_all_read(
    user: UserModel = Depends(get_current_user),
    db_client=Depends(get_db_client),
) -> NotificationResponse:
    updated = NotificationCRUD(db_client).mark_all_read(user.id)
    return NotificationResponse(
        success=True,
        data={"updated": updated},
        message=f"Marked {updated} notifications as read",
    )


@router.put("/{notification_id}/read", response_model=NotificationResponse)
async def mark_read(
    notification_id: str,
    user: UserModel = Depends(get_current_user),
    db_client=Depends(get_db_client),
) -> NotificationResponse:
    """Mark one notification read. Other users' notifications are reported as missing."""
    crud = NotificationCRUD(db_client)
    notification = crud.get_for_user(notification_id, user.id)
    if notification is None:
        raise NotFoundError("Notification not found", details={"notification_id": notification_id})

    crud.mark_read(notification)
    return NotificationResponse(success=True, data=notification.to_public_dict(), message="Marked as read")


@router.delete("", response_model=NotificationResponse)
async def clear_notifications(
    include_unread: bool = Query(False, description="Also delete unread notifications"),
    older_than_days: Optional[int] = Query(None, ge=0, description="Only delete older notifications"),
    user: UserModel = Depends(get_current_user),
    db_client=Depends(get_db_client),
) -> NotificationResponse:
    """Delete read notifications, or every notification with ``include_unread``."""
    deleted = NotificationCRUD(db_client).clear(user.id, include_unread, older_than_days)
    logger.info(f"Cleared {deleted} notifications for user {user.id}")
    return NotificationResponse(success=True, data={"deleted": deleted}, message=f"Deleted {deleted} notifications")
