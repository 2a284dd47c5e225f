"""
Notification CRUD Operations
"""

from datetime import datetime, timedelta
from typing import Optional, Dict, Any

from app.crud.base import BaseCRUD
from app.models.notification import NotificationModel


class NotificationCRUD(BaseCRUD):
    """CRUD operations for per-user notifications."""

    @property
    def collection_name(self) -> str:
        return "notifications"

    def create_notification(self, notification: NotificationModel) -> str:
        return self.create(notification.to_dict(), doc_id=notification.id)

    def get_for_user(self, notification_id: str, user_id: str) -> Optional[NotificationModel]:
        data = self.get_by_id(notification_id)
        if not data or data.get("user_id") != user_id:
            return None
        return NotificationModel.from_dict(data)

    def list_for_user(
        self,
        user_id: str,
        page: int = 1,
        page_size: int = 20,
        unread_only: bool = False,
        notification_type: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Newest-first notifications for one user.

        Args:
            user_id: Owner of the notifications
            page: Page number (1-indexed)
            page_size: Items per page
            unread_only: Only return unread notifications
            notification_type: Restrict to a single type

        Returns:
            Paginated result with an extra ``unread_count``
        """
        filters = [("user_id", "==", user_id)]
        if unread_only:
            filters.append(("is_read", "==", False))
        if notification_type:
            filters.append(("type", "==", notification_type))
        result = self.list(filters, page, page_size, order_by="created_at", direction="DESCENDING")
        result["unread_count"] = self.unread_count(user_id)
        return result

    def unread_count(self, user_id: str) -> int:
        return self.count([("user_id", "==", user_id), ("is_read", "==", False)])

    def mark_read(self, notification: NotificationModel) -> None:
        notification.mark_read()
        self.update(notification.id, {"is_read": True, "read_at": notification.read_at})

    def mark_all_read(self, user_id: str) -> int:
        now = datetime.utcnow()
        unread = self.list_all([("user_id", "==", user_id), ("is_read", "==", False)])
        for item in unread:
            self.update(item["id"], {"is_read": True, "read_at": now})
        return len(unread)

    def clear(self, user_id: str, include_unread: bool = False, older_than_days: Optional[int] = None) -> int:
        """Delete read notifications (or all of them), optionally only older ones."""
        filters = [("user_id", "==", user_id)]
        if not include_unread:
            filters.append(("is_read", "==", True))
        if older_than_days is not None:
            filters.append(("created_at", "<", datetime.utcnow() - timedelta(days=older_than_days)))
        items = self.list_all(filters)
        for item in items:
            self.delete(item["id"])
        return len(items)

    def cleanup_expired(self, now: Optional[datetime] = None) -> int:
        expired = self.list_all([("expires_at", "<=", now or datetime.utcnow())])
        for item in expired:
            self.delete(item["id"])
        return len(expired)
