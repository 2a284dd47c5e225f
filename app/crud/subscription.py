"""
Subscription CRUD Operations
One subscription document per user, created on demand at the free tier.
"""

from datetime import datetime, timedelta
from typing import Optional, Dict, Any, List

from app.crud.base import BaseCRUD
from app.models.subscription import (
    SubscriptionModel,
    SubscriptionStatus,
    SubscriptionTier,
)
from app.utils.logger import get_logger

logger = get_logger(__name__)


class SubscriptionCRUD(BaseCRUD):
    """CRUD operations for subscription documents."""

    @property
    def collection_name(self) -> str:
        return "subscriptions"

    def get_by_user(self, user_id: str) -> Optional[SubscriptionModel]:
        data = self.find_one([("user_id", "==", user_id)])
        return SubscriptionModel.from_dict(data) if data else None

    def get_by_stripe_id(self, stripe_subscription_id: str) -> Optional[SubscriptionModel]:
        data = self.find_one([("stripe_subscription_id", "==", stripe_subscription_id)])
        return SubscriptionModel.from_dict(data) if data else None

    def get_by_stripe_customer(self, stripe_customer_id: str) -> Optional[SubscriptionModel]:
        data = self.find_one([("stripe_customer_id", "==", stripe_customer_id)])
        return SubscriptionModel.from_dict(data) if data else None

    def get_or_create_for_user(self, user_id: str) -> SubscriptionModel:
        """
        Get the user's subscription, creating a free one if none exists.

        The lazy window reset is persisted here, so every caller sees
        fresh daily and monthly counters.
        """
        subscription = self.get_by_user(user_id)
        if subscription is None:
            subscription = SubscriptionModel(user_id=user_id)
            subscription.prepare_for_save()
            self.create(subscription.to_dict(), doc_id=subscription.id)
            logger.info(f"Created free subscription for user {user_id}")
            return subscription

        previous_tier = subscription.tier
        if subscription.refresh_usage_windows() or (
            subscription.tier != SubscriptionTier.FREE and subscription.is_expired()
        ):
            self.save_model(subscription)
            if subscription.tier != previous_tier:
                logger.info(f"Subscription for user {user_id} expired, now on free tier")
        return subscription

    def save_model(self, subscription: SubscriptionModel) -> None:
        subscription.prepare_for_save()
        self.save(subscription.id, subscription.to_dict())

    def record_usage(self, user_id: str, usage_type: str, amount: float = 1) -> SubscriptionModel:
        subscription = self.get_or_create_for_user(user_id)
        subscription.update_usage(usage_type, amount)
        self.save_model(subscription)
        return subscription

    def list_active(self) -> List[Dict[str, Any]]:
        return self.list_all([("status", "==", SubscriptionStatus.ACTIVE.value)])

    def list_by_tier(self, tier: str) -> List[Dict[str, Any]]:
        return self.list_all([("tier", "==", tier)])

    def list_expiring_soon(self, days: int = 7, now: Optional[datetime] = None) -> List[Dict[str, Any]]:
        """Active renewals whose current period ends within ``days``."""
        now = now or datetime.utcnow()
        cutoff = now + timedelta(days=days)
        return [
            sub for sub in self.list_all([
                ("status", "==", SubscriptionStatus.ACTIVE.value),
                ("current_period_end", "<=", cutoff),
            ])
            if not sub.get("cancel_at_period_end") and sub.get("tier") != SubscriptionTier.FREE.value
        ]

    def get_subscription_stats(self) -> Dict[str, Any]:
        subscriptions = self.list_all()
        by_tier = {tier.value: 0 for tier in SubscriptionTier}
        by_status = {status.value: 0 for status in SubscriptionStatus}
        revenue = 0
        paid = 0
        for sub in subscriptions:
            by_tier[sub.get("tier", "free")] = by_tier.get(sub.get("tier", "free"), 0) + 1
            by_status[sub.get("status", "active")] = by_status.get(sub.get("status", "active"), 0) + 1
            if sub.get("status") == SubscriptionStatus.ACTIVE.value and sub.get("amount", 0) > 0:
                revenue += sub["amount"]
                paid += 1
        return {
            "total": len(subscriptions),
            "active": by_status[SubscriptionStatus.ACTIVE.value],
            "canceled": by_status[SubscriptionStatus.CANCELED.value],
            "by_tier": by_tier,
            "by_status": by_status,
            "total_revenue_cents": revenue,
            "average_amount_cents": round(revenue / paid) if paid else 0,
        }
