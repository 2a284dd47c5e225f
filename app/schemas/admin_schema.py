"""
Admin Request Schemas
"""

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, model_validator

from app.models.ai_keys import AIProvider
from app.models.notification import NotificationPriority, NotificationType
from app.models.subscription import SubscriptionTier
from app.models.user import AccountStatus, UserRole


class AdminUserUpdateRequest(BaseModel):
    role: Optional[UserRole] = None
    account_status: Optional[AccountStatus] = None
    is_active: Optional[bool] = None
    mentor_id: Optional[str] = None
    subscription_tier: Optional[SubscriptionTier] = None
    email_verified: Optional[bool] = None
    reset_usage: Optional[bool] = None


class BulkAction(str, Enum):
    UPDATE_ROLE = "update_role"
    UPDATE_STATUS = "update_status"
    ASSIGN_MENTOR = "assign_mentor"


class BulkUserActionRequest(BaseModel):
    """Apply one change to many users."""

    action: BulkAction
    user_ids: List[str] = Field(min_length=1, max_length=100)
    role: Optional[UserRole] = None
    account_status: Optional[AccountStatus] = None
    mentor_id: Optional[str] = None

    @model_validator(mode="after")
    def check_action_value(self) -> "BulkUserActionRequest":
        required = {
            BulkAction.UPDATE_ROLE: self.role,
            BulkAction.UPDATE_STATUS: self.account_status,
            BulkAction.ASSIGN_MENTOR: self.mentor_id,
        }
        if required[self.action] is None:
            raise ValueError(f"{self.action.value} requires a value")
        return self


class ModerationAction(str, Enum):
    APPROVE = "approve"
    REJECT = "reject"
    ESCALATE = "escalate"


class ModerationRequest(BaseModel):
    story_id: str = Field(min_length=1)
    action: ModerationAction
    notes: Optional[str] = Field(default=None, max_length=1000)


class AIKeyCreateRequest(BaseModel):
    provider: AIProvider
    key_name: str = Field(min_length=1, max_length=100)
    api_key: str = Field(min_length=8, max_length=500)
    daily_limit: int = Field(default=1000, ge=-1)
    monthly_limit: int = Field(default=30000, ge=-1)
    priority: int = Field(default=1, ge=1, le=10)
    environment: str = Field(default="production", pattern="^(development|staging|production)$")


class AdminNotificationRequest(BaseModel):
    """Announcement to specific users, a role, a plan tier or everyone."""

    title: str = Field(min_length=1, max_length=100)
    message: str = Field(min_length=1, max_length=500)
    type: NotificationType = NotificationType.SYSTEM_ANNOUNCEMENT
    priority: NotificationPriority = NotificationPriority.NORMAL
    user_ids: Optional[List[str]] = None
    role: Optional[UserRole] = None
    tier: Optional[SubscriptionTier] = None
    action_url: Optional[str] = None
    send_email: bool = False
