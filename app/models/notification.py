"""
Notification Model
In-app messages with read state and a per-type expiry.
"""

import uuid
from datetime import datetime, timedelta
from enum import Enum
from typing import Optional, Dict, Any

from pydantic import BaseModel, ConfigDict, Field

from app.utils.dates import to_naive_utc


class NotificationType(str, Enum):
    STORY_COMPLETED = "story_completed"
    MENTOR_COMMENT = "mentor_comment"
    ACHIEVEMENT_UNLOCKED = "achievement_unlocked"
    STORY_PUBLISHED = "story_published"
    MENTOR_ONLINE = "mentor_online"
    PROGRESS_MILESTONE = "progress_milestone"
    SUBSCRIPTION_UPDATE = "subscription_update"
    SYSTEM_ANNOUNCEMENT = "system_announcement"
    MAINTENANCE_ALERT = "maintenance_alert"
    WELCOME = "welcome"
    REMINDER = "reminder"
    EXPORT_READY = "export_ready"


class NotificationPriority(str, Enum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"


# type -> (category, icon, expiry days)
NOTIFICATION_DEFAULTS: Dict[NotificationType, tuple] = {
    NotificationType.STORY_COMPLETED: ("story", "📚", 7),
    NotificationType.MENTOR_COMMENT: ("mentor", "💬", 30),
    NotificationType.ACHIEVEMENT_UNLOCKED: ("achievement", "🏆", 14),
    NotificationType.STORY_PUBLISHED: ("story", "🌟", 1),
    NotificationType.MENTOR_ONLINE: ("mentor", "👋", 30),
    NotificationType.PROGRESS_MILESTONE: ("achievement", "📈", 14),
    NotificationType.SUBSCRIPTION_UPDATE: ("account", "💳", 7),
    NotificationType.SYSTEM_ANNOUNCEMENT: ("system", "📢", 30),
    NotificationType.MAINTENANCE_ALERT: ("system", "🔧", 3),
    NotificationType.WELCOME: ("account", "🎉", 7),
    NotificationType.REMINDER: ("reminder", "⏰", 1),
    NotificationType.EXPORT_READY: ("story", "📄", 3),
}


class NotificationModel(BaseModel):
    """Notification document."""

    model_config = ConfigDict(use_enum_values=True, validate_default=True)

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    user_id: str
    type: NotificationType
    title: str = Field(min_length=1, max_length=100)
    message: str = Field(min_length=1, max_length=500)
    data: Dict[str, Any] = Field(default_factory=dict)
    action_url: Optional[str] = None
    priority: NotificationPriority = NotificationPriority.NORMAL
    category: str = ""
    icon: str = ""
    is_read: bool = False
    read_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)

    def model_post_init(self, __context: Any) -> None:
        category, icon, expiry_days = NOTIFICATION_DEFAULTS[NotificationType(self.type)]
        if not self.category:
            self.category = category
        if not self.icon:
            self.icon = icon
        if self.expires_at is None:
            self.expires_at = self.created_at + timedelta(days=expiry_days)

    def mark_read(self, now: Optional[datetime] = None) -> None:
        if not self.is_read:
            self.is_read = True
            self.read_at = now or datetime.utcnow()

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return self.expires_at is not None and (now or datetime.utcnow()) >= self.expires_at

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode="python")

    def to_public_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode="json")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "NotificationModel":
        return cls(**to_naive_utc(data))
