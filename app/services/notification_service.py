"""In-app notifications with optional follow-up email."""

from typing import Any, Dict, List, Optional

from app.crud.notification import NotificationCRUD
from app.crud.user import UserCRUD
from app.models.notification import NotificationModel, NotificationPriority, NotificationType
from app.models.user import UserModel
from app.services.email.email_service import EmailQueue
from app.utils.logger import get_logger

logger = get_logger(__name__)

# notification type -> (email template, preference flag on EmailNotificationSettings)
EMAIL_FOLLOW_UPS = {
    NotificationType.STORY_COMPLETED.value: ("story_completed", "story_completed"),
    NotificationType.MENTOR_COMMENT.value: ("mentor_comment", "mentor_comments"),
    NotificationType.ACHIEVEMENT_UNLOCKED.value: ("achievement_unlocked", "achievements"),
}


class NotificationService:
    """Creates notifications and queues matching emails the user opted into."""

    def __init__(self, db: Any, email_queue: Optional[EmailQueue] = None):
        self.notifications = NotificationCRUD(db)
        self.users = UserCRUD(db)
        self.email_queue = email_queue

    def _queue_email(self, user: UserModel, notification_type: str, email_data: Dict[str, Any]) -> None:
        follow_up = EMAIL_FOLLOW_UPS.get(notification_type)
        if follow_up is None or self.email_queue is None:
            return
        template, preference = follow_up
        if not getattr(user.preferences.email_notifications, preference, False):
            return
        self.email_queue.enqueue(user.email, template, {"name": user.name, **email_data})

    def notify(
        self,
        user_id: str,
        notification_type: NotificationType,
        title: str,
        message: str,
        data: Optional[Dict[str, Any]] = None,
        action_url: Optional[str] = None,
        priority: NotificationPriority = NotificationPriority.NORMAL,
        email_data: Optional[Dict[str, Any]] = None,
    ) -> Optional[NotificationModel]:
        """
        Create an in-app notification for one user.

        Args:
            user_id: Recipient.
            notification_type: Controls category, icon and expiry.
            title: Short heading.
            message: Body text.
            data: Extra payload for the client.
            action_url: Link the client opens on tap.
            priority: Display priority.
            email_data: Template variables; when given, a follow-up email is
                queued if the user's preferences allow it.

        Returns:
            The stored notification, or None if the user does not exist.
        """
        user = self.users.get_model(user_id)
        if user is None:
            logger.warning(f"Notification for unknown user {user_id} dropped")
            return None

        notification = NotificationModel(
            user_id=user_id,
            type=notification_type,
            title=title[:100],
            message=message[:500],
            data=data or {},
            action_url=action_url,
            priority=priority,
        )
        self.notifications.create_notification(notification)

        if email_data is not None:
            self._queue_email(user, notification.type, email_data)
        return notification

    def broadcast(
        self,
        user_ids: List[str],
        notification_type: NotificationType,
        title: str,
        message: str,
        priority: NotificationPriority = NotificationPriority.NORMAL,
        action_url: Optional[str] = None,
    ) -> int:
        """Send the same notification to several users; returns how many were created."""
        sent = 0
        for user_id in user_ids:
            if self.notify(user_id, notification_type, title, message, priority=priority, action_url=action_url):
                sent += 1
        logger.info(f"Broadcast '{title}' to {sent}/{len(user_ids)} users")
        return sent
