"""
Periodic housekeeping run from the application lifespan.

Each sweep removes expired notifications and security events, moves lapsed
paid plans to free and resets AI key counters when the day or month has
rolled over. Once a day it reminds users whose plan renews soon, and once a
week it emails young writers a summary of what they wrote.
"""

from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from app.crud.ai_keys import AIKeyCRUD
from app.crud.notification import NotificationCRUD
from app.crud.security_event import SecurityEventCRUD
from app.crud.story import StoryCRUD
from app.crud.subscription import SubscriptionCRUD
from app.crud.user import UserCRUD
from app.models.notification import NotificationType
from app.models.subscription import SubscriptionModel, SubscriptionTier
from app.models.user import AccountStatus, UserModel, UserRole
from app.services.email.email_service import EmailQueue
from app.services.notification_service import NotificationService
from app.utils.logger import get_logger

logger = get_logger(__name__)

RENEWAL_REMINDER_DAYS = (7, 1)


class MaintenanceSweep:
    """Remembers when each periodic job last ran so it runs once per window."""

    def __init__(self, db: Any, started_at: Optional[datetime] = None, email_queue: Optional[EmailQueue] = None):
        self.db = db
        self.email_queue = email_queue
        self.notifier = NotificationService(db, email_queue)
        started_at = started_at or datetime.utcnow()
        self.last_daily_reset = started_at.date()
        self.last_monthly_reset = (started_at.year, started_at.month)
        self.last_reminder_date = None
        self.last_digest_week = started_at.isocalendar()[:2]

    def run(self, now: Optional[datetime] = None) -> Dict[str, int]:
        now = now or datetime.utcnow()
        result = {
            "notifications_removed": NotificationCRUD(self.db).cleanup_expired(now),
            "security_events_removed": SecurityEventCRUD(self.db).cleanup_expired(now),
            "subscriptions_expired": self.expire_lapsed_subscriptions(now),
            "ai_keys_reset": 0,
            "renewal_reminders": 0,
            "weekly_digests": 0,
        }

        new_day = now.date() > self.last_daily_reset
        new_month = (now.year, now.month) > self.last_monthly_reset
        if new_day or new_month:
            result["ai_keys_reset"] = AIKeyCRUD(self.db).reset_counters(daily=new_day, monthly=new_month)
            self.last_daily_reset = now.date()
            self.last_monthly_reset = (now.year, now.month)

        if self.last_reminder_date != now.date():
            result["renewal_reminders"] = self.send_renewal_reminders(now)
            self.last_reminder_date = now.date()

        week = now.isocalendar()[:2]
        if week > self.last_digest_week:
            result["weekly_digests"] = self.send_weekly_digests(now)
            self.last_digest_week = week

        if any(result.values()):
            logger.info("Maintenance sweep", extra={"extra_data": result})
        return result

    def expire_lapsed_subscriptions(self, now: datetime) -> int:
        """Downgrade active paid plans whose end date has passed."""
        subscriptions = SubscriptionCRUD(self.db)
        users = UserCRUD(self.db)
        expired = 0
        for data in subscriptions.list_active():
            subscription = SubscriptionModel.from_dict(data)
            if subscription.tier == SubscriptionTier.FREE or not subscription.is_expired(now):
                continue
            subscription.prepare_for_save(now)
            subscriptions.save_model(subscription)
            user = users.get_model(subscription.user_id)
            if user is not None:
                user.subscription_tier = subscription.tier
                user.subscription_status = subscription.status
                users.save_model(user)
            expired += 1
        return expired

    def send_renewal_reminders(self, now: datetime) -> int:
        sent = 0
        for data in SubscriptionCRUD(self.db).list_expiring_soon(days=max(RENEWAL_REMINDER_DAYS), now=now):
            subscription = SubscriptionModel.from_dict(data)
            days = subscription.days_remaining_in_period(now)
            if days not in RENEWAL_REMINDER_DAYS:
                continue
            notification = self.notifier.notify(
                subscription.user_id,
                NotificationType.SUBSCRIPTION_UPDATE,
                "Your plan renews soon 💳",
                f"Your {subscription.limits.name} plan renews in {days} day{'s' if days != 1 else ''}.",
                data={"subscription_id": subscription.id, "days_remaining": days},
                action_url="/subscription",
            )
            if notification is not None:
                sent += 1
        return sent

    def send_weekly_digests(self, now: datetime) -> int:
        """Queue a progress email for each active child who wrote this week."""
        if self.email_queue is None:
            return 0
        since = now - timedelta(days=7)
        stories = StoryCRUD(self.db)
        queued = 0
        for data in UserCRUD(self.db).list_by_role(UserRole.CHILD.value):
            user = UserModel.from_dict(data)
            if user.account_status != AccountStatus.ACTIVE:
                continue
            if not user.preferences.email_notifications.weekly_progress:
                continue
            written = stories.list_all([("author_id", "==", user.id), ("created_at", ">=", since)])
            if not written:
                continue
            self.email_queue.enqueue(user.email, "weekly_progress", {
                "name": user.name,
                "stories_this_week": len(written),
                "words_this_week": sum(story.get("word_count", 0) for story in written),
                "current_streak": user.stats.current_streak,
            })
            queued += 1
        return queued
