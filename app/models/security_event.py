"""
Security Event Model
Audit records for logins, rate limits, permission failures and content violations.
"""

import uuid
from datetime import datetime, timedelta
from enum import Enum
from typing import Optional, Dict, Any

from pydantic import BaseModel, ConfigDict, Field

EVENT_RETENTION = timedelta(days=30)


class SecurityEventType(str, Enum):
    FAILED_LOGIN = "failed_login"
    SUSPICIOUS_ACTIVITY = "suspicious_activity"
    CONTENT_VIOLATION = "content_violation"
    RATE_LIMIT_EXCEEDED = "rate_limit_exceeded"
    INVALID_TOKEN = "invalid_token"
    PERMISSION_DENIED = "permission_denied"
    ACCOUNT_LOCKED = "account_locked"


class Severity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class SecurityEvent(BaseModel):
    model_config = ConfigDict(use_enum_values=True, validate_default=True)

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    type: SecurityEventType
    severity: Severity = Severity.LOW
    user_id: Optional[str] = None
    ip: Optional[str] = None
    user_agent: Optional[str] = None
    path: Optional[str] = None
    details: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=datetime.utcnow)
    expires_at: Optional[datetime] = None

    def model_post_init(self, __context: Any) -> None:
        if self.expires_at is None:
            self.expires_at = self.created_at + EVENT_RETENTION

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode="python")
