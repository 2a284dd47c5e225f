"""
Mintoons Schemas
Pydantic request/response schemas for API validation and documentation.
"""

from app.schemas.user_schema import (
    RegisterRequest,
    LoginRequest,
    RefreshRequest,
    ForgotPasswordRequest,
    ResetPasswordRequest,
    VerifyEmailRequest,
    ChangePasswordRequest,
    UpdateProfileRequest,
    UpdatePreferencesRequest,
    ParentConsentRequest,
    TokenResponse,
)
from app.schemas.story_schema import (
    CreateStoryRequest,
    UpdateStoryRequest,
    CreateCommentRequest,
    ReactionRequest,
    ChildResponseRequest,
    HideCommentRequest,
    AIGenerateRequest,
    AICollaborateRequest,
    AIAssessRequest,
    MentorAssessmentRequest,
)
from app.schemas.responses import (
    ApiResponse,
    PaginatedResponse,
)
from app.schemas.subscription_schema import (
    UpgradeRequest,
    CancelRequest,
)
from app.schemas.admin_schema import (
    AdminUserUpdateRequest,
    BulkAction,
    BulkUserActionRequest,
    ModerationAction,
    ModerationRequest,
    AIKeyCreateRequest,
    AdminNotificationRequest,
)

__all__ = [
    "RegisterRequest",
    "LoginRequest",
    "RefreshRequest",
    "ForgotPasswordRequest",
    "ResetPasswordRequest",
    "VerifyEmailRequest",
    "ChangePasswordRequest",
    "UpdateProfileRequest",
    "UpdatePreferencesRequest",
    "ParentConsentRequest",
    "TokenResponse",
    "CreateStoryRequest",
    "UpdateStoryRequest",
    "CreateCommentRequest",
    "ReactionRequest",
    "ChildResponseRequest",
    "HideCommentRequest",
    "AIGenerateRequest",
    "AICollaborateRequest",
    "AIAssessRequest",
    "MentorAssessmentRequest",
    "ApiResponse",
    "PaginatedResponse",
    "UpgradeRequest",
    "CancelRequest",
    "AdminUserUpdateRequest",
    "BulkAction",
    "BulkUserActionRequest",
    "ModerationAction",
    "ModerationRequest",
    "AIKeyCreateRequest",
    "AdminNotificationRequest",
]
