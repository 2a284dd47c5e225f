"""
AI Key Model
Encrypted third-party provider keys with usage and cost counters.
"""

import uuid
from datetime import datetime
from enum import Enum
from typing import Optional, Dict, Any

from pydantic import BaseModel, ConfigDict, Field

from app.core.security import decrypt_secret, encrypt_secret
from app.utils.dates import to_naive_utc


class AIProvider(str, Enum):
    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    GOOGLE = "google"
    GROQ = "groq"


class CostTracking(BaseModel):
    total_cost: float = 0.0
    monthly_cost: float = 0.0
    daily_cost: float = 0.0


class AIKeyModel(BaseModel):
    """Stored provider key. The plaintext key never leaves this object unencrypted."""

    model_config = ConfigDict(use_enum_values=True, validate_default=True)

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    provider: AIProvider
    key_name: str = Field(min_length=1, max_length=100)
    encrypted_key: str = ""
    is_active: bool = True
    usage_count: int = 0
    last_used: Optional[datetime] = None
    daily_limit: int = Field(default=1000, ge=-1)
    monthly_limit: int = Field(default=30000, ge=-1)
    daily_usage: int = 0
    monthly_usage: int = 0
    cost_tracking: CostTracking = Field(default_factory=CostTracking)
    environment: str = Field(default="production", description="development, staging or production")
    priority: int = Field(default=1, ge=1, le=10, description="1 is tried first")
    created_by: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    def set_api_key(self, api_key: str) -> None:
        self.encrypted_key = encrypt_secret(api_key)

    def get_api_key(self) -> str:
        return decrypt_secret(self.encrypted_key)

    def is_within_limits(self) -> bool:
        """Active and under both the daily and monthly request caps."""
        if not self.is_active:
            return False
        if self.daily_limit != -1 and self.daily_usage >= self.daily_limit:
            return False
        if self.monthly_limit != -1 and self.monthly_usage >= self.monthly_limit:
            return False
        return True

    def increment_usage(self, cost: float = 0.0, now: Optional[datetime] = None) -> None:
        self.usage_count += 1
        self.daily_usage += 1
        self.monthly_usage += 1
        self.cost_tracking.total_cost += cost
        self.cost_tracking.monthly_cost += cost
        self.cost_tracking.daily_cost += cost
        self.last_used = now or datetime.utcnow()

    def reset_daily(self) -> None:
        self.daily_usage = 0
        self.cost_tracking.daily_cost = 0.0

    def reset_monthly(self) -> None:
        self.monthly_usage = 0
        self.cost_tracking.monthly_cost = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode="python")

    def to_public_dict(self) -> Dict[str, Any]:
        """Metadata safe for the admin UI; the encrypted key is never returned."""
        return self.model_dump(mode="json", exclude={"encrypted_key"})

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AIKeyModel":
        return cls(**to_naive_utc(data))
