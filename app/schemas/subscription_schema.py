"""
Subscription Request Schemas
API schemas for subscription management.
"""

from typing import Optional

from pydantic import BaseModel, Field

from app.models.subscription import BillingInterval, SubscriptionTier


class UpgradeRequest(BaseModel):
    """Request to change subscription tier."""

    tier: SubscriptionTier = Field(description="Target subscription tier")
    billing_interval: BillingInterval = BillingInterval.MONTH
    payment_method_id: Optional[str] = Field(default=None, max_length=255)


class CancelRequest(BaseModel):
    immediate: bool = Field(default=False, description="End now instead of at period end")
    reason: Optional[str] = Field(default=None, max_length=500)
