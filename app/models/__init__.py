"""
Mintoons Models
Stored document representations and their business rules.
"""

from app.models.user import UserModel, UserPreferences, UserRole, AccountStatus, AgeGroup
from app.models.story import (
    StoryModel,
    StoryElements,
    StoryStatus,
    ModerationStatus,
    AIAssessment,
    MentorAssessment,
    AIResponseType,
)
from app.models.comment import CommentModel, CommentType, CommentCategory
from app.models.subscription import (
    SubscriptionModel,
    SubscriptionTier,
    SubscriptionStatus,
    TierLimits,
    TIER_LIMITS,
    UsageType,
    ExportFormat,
)
from app.models.notification import NotificationModel, NotificationType, NotificationPriority
from app.models.ai_keys import AIKeyModel, AIProvider
from app.models.security_event import SecurityEvent, SecurityEventType, Severity

__all__ = [
    "UserModel",
    "UserPreferences",
    "UserRole",
    "AccountStatus",
    "AgeGroup",
    "StoryModel",
    "StoryElements",
    "StoryStatus",
    "ModerationStatus",
    "AIAssessment",
    "MentorAssessment",
    "AIResponseType",
    "CommentModel",
    "CommentType",
    "CommentCategory",
    "SubscriptionModel",
    "SubscriptionTier",
    "SubscriptionStatus",
    "TierLimits",
    "TIER_LIMITS",
    "UsageType",
    "ExportFormat",
    "NotificationModel",
    "NotificationType",
    "NotificationPriority",
    "AIKeyModel",
    "AIProvider",
    "SecurityEvent",
    "SecurityEventType",
    "Severity",
]
