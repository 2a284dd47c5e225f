"""
Subscription Models
Defines subscription tiers, their usage limits and the per-user billing record.
"""

import math
import uuid
from datetime import datetime, timedelta
from enum import Enum
from typing import Dict, Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.utils.dates import to_naive_utc

UNLIMITED = -1
DEFAULT_PERIOD = timedelta(days=30)


class SubscriptionTier(str, Enum):
    """Subscription tier enumeration."""
    FREE = "free"
    BASIC = "basic"
    PREMIUM = "premium"
    PRO = "pro"


class SubscriptionStatus(str, Enum):
    ACTIVE = "active"
    CANCELED = "canceled"
    PAST_DUE = "past_due"
    UNPAID = "unpaid"
    PAUSED = "paused"
    INCOMPLETE = "incomplete"


class BillingInterval(str, Enum):
    MONTH = "month"
    YEAR = "year"


class UsageType(str, Enum):
    """Counters that :meth:`SubscriptionModel.update_usage` knows how to bump."""
    STORY_CREATED = "story_created"
    EXPORT_CREATED = "export_created"
    AI_REQUEST = "ai_request"
    MENTOR_SESSION = "mentor_session"
    STORAGE_USED = "storage_used"


class ExportFormat(str, Enum):
    PDF = "pdf"
    WORD = "word"
    TXT = "txt"


class TierLimits(BaseModel):
    """Static limits for one tier. -1 means unlimited."""

    tier: SubscriptionTier = Field(description="Subscription tier")
    name: str = Field(description="Display name")
    description: str = Field(description="Plan description")
    monthly_price_cents: int = Field(ge=0)
    max_stories: int = Field(ge=-1)
    max_story_length: int = Field(ge=1, description="Words per story")
    max_stories_per_day: int = Field(ge=-1)
    max_stories_per_month: int = Field(ge=-1)
    max_exports_per_month: int = Field(ge=-1)
    max_file_size_mb: int = Field(ge=1)
    export_formats: List[ExportFormat]
    max_ai_requests_per_day: int = Field(ge=-1)
    max_ai_requests_per_month: int = Field(ge=-1)
    ai_models: List[str]
    can_access_mentor_feedback: bool
    max_mentor_sessions: int = Field(ge=-1)
    priority_support: bool
    advanced_editor: bool
    custom_templates: bool
    public_stories: bool
    analytics: bool
    max_storage_mb: int = Field(ge=0)
    retention_days: int = Field(ge=-1)

    def price_cents(self, interval: str = BillingInterval.MONTH) -> int:
        """Yearly billing charges ten months."""
        if interval == BillingInterval.YEAR:
            return self.monthly_price_cents * 10
        return self.monthly_price_cents

    def to_dict(self) -> dict:
        """Convert plan to dictionary."""
        return self.model_dump(mode="json")


TIER_LIMITS: Dict[SubscriptionTier, TierLimits] = {
    SubscriptionTier.FREE: TierLimits(
        tier=SubscriptionTier.FREE,
        name="Free",
        description="Start writing with a few stories a day",
        monthly_price_cents=0,
        max_stories=50,
        max_story_length=600,
        max_stories_per_day=3,
        max_stories_per_month=50,
        max_exports_per_month=5,
        max_file_size_mb=5,
        export_formats=[ExportFormat.PDF],
        max_ai_requests_per_day=10,
        max_ai_requests_per_month=100,
        ai_models=["gpt-4.1-nano"],
        can_access_mentor_feedback=False,
        max_mentor_sessions=0,
        priority_support=False,
        advanced_editor=False,
        custom_templates=False,
        public_stories=False,
        analytics=False,
        max_storage_mb=100,
        retention_days=30,
    ),
    SubscriptionTier.BASIC: TierLimits(
        tier=SubscriptionTier.BASIC,
        name="Basic",
        description="Mentor feedback and public stories",
        monthly_price_cents=499,
        max_stories=100,
        max_story_length=1200,
        max_stories_per_day=5,
        max_stories_per_month=100,
        max_exports_per_month=20,
        max_file_size_mb=10,
        export_formats=[ExportFormat.PDF, ExportFormat.WORD],
        max_ai_requests_per_day=25,
        max_ai_requests_per_month=300,
        ai_models=["gpt-4.1-nano", "claude-haiku-3.5"],
        can_access_mentor_feedback=True,
        max_mentor_sessions=5,
        priority_support=False,
        advanced_editor=True,
        custom_templates=False,
        public_stories=True,
        analytics=True,
        max_storage_mb=500,
        retention_days=365,
    ),
    SubscriptionTier.PREMIUM: TierLimits(
        tier=SubscriptionTier.PREMIUM,
        name="Premium",
        description="More stories, more AI help and every export format",
        monthly_price_cents=999,
        max_stories=200,
        max_story_length=1600,
        max_stories_per_day=10,
        max_stories_per_month=200,
        max_exports_per_month=50,
        max_file_size_mb=25,
        export_formats=[ExportFormat.PDF, ExportFormat.WORD, ExportFormat.TXT],
        max_ai_requests_per_day=50,
        max_ai_requests_per_month=800,
        ai_models=["gpt-4.1-nano", "gpt-4.1-mini", "claude-haiku-3.5", "claude-sonnet-4"],
        can_access_mentor_feedback=True,
        max_mentor_sessions=15,
        priority_support=True,
        advanced_editor=True,
        custom_templates=True,
        public_stories=True,
        analytics=True,
        max_storage_mb=2048,
        retention_days=UNLIMITED,
    ),
    SubscriptionTier.PRO: TierLimits(
        tier=SubscriptionTier.PRO,
        name="Pro",
        description="Unlimited daily writing and AI help",
        monthly_price_cents=1999,
        max_stories=300,
        max_story_length=2000,
        max_stories_per_day=UNLIMITED,
        max_stories_per_month=300,
        max_exports_per_month=UNLIMITED,
        max_file_size_mb=50,
        export_formats=[ExportFormat.PDF, ExportFormat.WORD, ExportFormat.TXT],
        max_ai_requests_per_day=UNLIMITED,
        max_ai_requests_per_month=UNLIMITED,
        ai_models=[
            "gpt-4.1", "gpt-4.1-mini", "gpt-4.1-nano",
            "claude-opus-4", "claude-sonnet-4", "claude-haiku-3.5", "gemini-pro",
        ],
        can_access_mentor_feedback=True,
        max_mentor_sessions=UNLIMITED,
        priority_support=True,
        advanced_editor=True,
        custom_templates=True,
        public_stories=True,
        analytics=True,
        max_storage_mb=10240,
        retention_days=UNLIMITED,
    ),
}


def get_tier_limits(tier: str) -> TierLimits:
    """Limits for a tier name; unknown names fall back to free."""
    try:
        return TIER_LIMITS[SubscriptionTier(tier)]
    except ValueError:
        return TIER_LIMITS[SubscriptionTier.FREE]


def _under_limit(used: float, limit: int) -> bool:
    return limit == UNLIMITED or used < limit


def _remaining(used: float, limit: int) -> float:
    return UNLIMITED if limit == UNLIMITED else max(0, limit - used)


def _midnight(now: datetime) -> datetime:
    return datetime(now.year, now.month, now.day)


class SubscriptionUsage(BaseModel):
    """Rolling-window and lifetime usage counters."""

    stories_today: int = 0
    stories_this_month: int = 0
    exports_this_month: int = 0
    ai_requests_today: int = 0
    ai_requests_this_month: int = 0
    mentor_sessions_this_month: int = 0
    storage_used_mb: float = 0.0
    total_stories_created: int = 0
    total_exports: int = 0
    total_ai_requests: int = 0
    total_mentor_sessions: int = 0
    daily_reset_date: datetime = Field(default_factory=datetime.utcnow)
    monthly_reset_date: datetime = Field(default_factory=datetime.utcnow)
    last_calculated: datetime = Field(default_factory=datetime.utcnow)


class PaymentMethod(BaseModel):
    type: str = Field(default="card", description="card, bank or paypal")
    card_brand: Optional[str] = None
    card_last4: Optional[str] = Field(default=None, min_length=4, max_length=4)
    card_exp_month: Optional[int] = Field(default=None, ge=1, le=12)
    card_exp_year: Optional[int] = None
    is_default: bool = True
    is_valid: bool = True


class SubscriptionModel(BaseModel):
    """Per-user billing and usage-limit record."""

    model_config = ConfigDict(use_enum_values=True, validate_default=True)

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    user_id: str
    stripe_subscription_id: Optional[str] = None
    stripe_customer_id: Optional[str] = None
    stripe_price_id: Optional[str] = None
    tier: SubscriptionTier = SubscriptionTier.FREE
    status: SubscriptionStatus = SubscriptionStatus.ACTIVE
    billing_interval: BillingInterval = BillingInterval.MONTH
    amount: int = Field(default=0, ge=0, description="Cents per billing interval")
    currency: str = Field(default="USD")

    start_date: datetime = Field(default_factory=datetime.utcnow)
    end_date: Optional[datetime] = None
    current_period_start: datetime = Field(default_factory=datetime.utcnow)
    current_period_end: Optional[datetime] = None
    canceled_at: Optional[datetime] = None
    cancel_at_period_end: bool = False
    trial_start: Optional[datetime] = None
    trial_end: Optional[datetime] = None
    is_trial_active: bool = False

    usage: SubscriptionUsage = Field(default_factory=SubscriptionUsage)
    payment_method: Optional[PaymentMethod] = None
    last_payment_date: Optional[datetime] = None
    next_payment_date: Optional[datetime] = None
    notes: Optional[str] = Field(default=None, max_length=500)

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    @field_validator("currency")
    @classmethod
    def validate_currency(cls, v: str) -> str:
        v = v.upper()
        if len(v) != 3 or not v.isalpha():
            raise ValueError("currency must be a 3-letter code")
        return v

    def model_post_init(self, __context: Any) -> None:
        if self.current_period_end is None:
            self.current_period_end = self.current_period_start + DEFAULT_PERIOD

    # ── Limits ───────────────────────────────────────────────────────

    @property
    def limits(self) -> TierLimits:
        return get_tier_limits(self.tier)

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        now = now or datetime.utcnow()
        return self.end_date is not None and now > self.end_date

    def is_active(self, now: Optional[datetime] = None) -> bool:
        return self.status == SubscriptionStatus.ACTIVE and not self.is_expired(now)

    def story_creation_block(self, total_stories: Optional[int] = None, now: Optional[datetime] = None) -> Optional[str]:
        """Reason a new story is not allowed, or None if it is."""
        self.refresh_usage_windows(now)
        if not self.is_active(now):
            return "Subscription is not active"
        limits = self.limits
        usage = self.usage
        total = usage.total_stories_created if total_stories is None else total_stories
        if not _under_limit(total, limits.max_stories):
            return f"Story limit of {limits.max_stories} reached for the {limits.name} plan"
        if not _under_limit(usage.stories_this_month, limits.max_stories_per_month):
            return f"Monthly story limit of {limits.max_stories_per_month} reached"
        if not _under_limit(usage.stories_today, limits.max_stories_per_day):
            return f"Daily story limit of {limits.max_stories_per_day} reached"
        return None

    def can_create_story(self, total_stories: Optional[int] = None, now: Optional[datetime] = None) -> bool:
        return self.story_creation_block(total_stories, now) is None

    def export_block(self, export_format: Optional[str] = None, now: Optional[datetime] = None) -> Optional[str]:
        self.refresh_usage_windows(now)
        if not self.is_active(now):
            return "Subscription is not active"
        limits = self.limits
        if not _under_limit(self.usage.exports_this_month, limits.max_exports_per_month):
            return f"Monthly export limit of {limits.max_exports_per_month} reached"
        if export_format is not None and export_format not in limits.export_formats:
            return f"{export_format} export is not available on the {limits.name} plan"
        return None

    def can_export_story(self, export_format: Optional[str] = None, now: Optional[datetime] = None) -> bool:
        return self.export_block(export_format, now) is None

    def ai_block(self, now: Optional[datetime] = None) -> Optional[str]:
        self.refresh_usage_windows(now)
        if not self.is_active(now):
            return "Subscription is not active"
        limits = self.limits
        if not _under_limit(self.usage.ai_requests_today, limits.max_ai_requests_per_day):
            return f"Daily AI limit of {limits.max_ai_requests_per_day} requests reached"
        if not _under_limit(self.usage.ai_requests_this_month, limits.max_ai_requests_per_month):
            return f"Monthly AI limit of {limits.max_ai_requests_per_month} requests reached"
        return None

    def can_use_ai(self, now: Optional[datetime] = None) -> bool:
        return self.ai_block(now) is None

    def mentor_session_block(self, now: Optional[datetime] = None) -> Optional[str]:
        self.refresh_usage_windows(now)
        if not self.is_active(now):
            return "Subscription is not active"
        limits = self.limits
        if not limits.can_access_mentor_feedback:
            return f"Mentor feedback is not included in the {limits.name} plan"
        if not _under_limit(self.usage.mentor_sessions_this_month, limits.max_mentor_sessions):
            return f"Monthly mentor session limit of {limits.max_mentor_sessions} reached"
        return None

    def can_start_mentor_session(self, now: Optional[datetime] = None) -> bool:
        return self.mentor_session_block(now) is None

    # ── Usage counters ───────────────────────────────────────────────

    def update_usage(self, usage_type: str, amount: float = 1, now: Optional[datetime] = None) -> None:
        """
        Add to the counters for one kind of usage.

        Args:
            usage_type: One of :class:`UsageType`.
            amount: Increment; storage may be negative when files are removed.
            now: Clock override.

        Raises:
            ValueError: If ``usage_type`` is unknown.
        """
        now = now or datetime.utcnow()
        self.refresh_usage_windows(now)
        usage = self.usage
        usage_type = UsageType(usage_type)

        if usage_type == UsageType.STORY_CREATED:
            usage.total_stories_created += int(amount)
            usage.stories_this_month += int(amount)
            usage.stories_today += int(amount)
        elif usage_type == UsageType.EXPORT_CREATED:
            usage.total_exports += int(amount)
            usage.exports_this_month += int(amount)
        elif usage_type == UsageType.AI_REQUEST:
            usage.total_ai_requests += int(amount)
            usage.ai_requests_today += int(amount)
            usage.ai_requests_this_month += int(amount)
        elif usage_type == UsageType.MENTOR_SESSION:
            usage.total_mentor_sessions += int(amount)
            usage.mentor_sessions_this_month += int(amount)
        elif usage_type == UsageType.STORAGE_USED:
            usage.storage_used_mb = max(0.0, usage.storage_used_mb + amount)

        usage.last_calculated = now

    def get_remaining_limits(self, total_stories: Optional[int] = None, now: Optional[datetime] = None) -> Dict[str, float]:
        """Remaining allowance per counter; -1 means unlimited."""
        self.refresh_usage_windows(now)
        limits = self.limits
        usage = self.usage
        total = usage.total_stories_created if total_stories is None else total_stories
        return {
            "stories": _remaining(total, limits.max_stories),
            "stories_today": _remaining(usage.stories_today, limits.max_stories_per_day),
            "stories_this_month": _remaining(usage.stories_this_month, limits.max_stories_per_month),
            "exports_this_month": _remaining(usage.exports_this_month, limits.max_exports_per_month),
            "ai_requests_today": _remaining(usage.ai_requests_today, limits.max_ai_requests_per_day),
            "ai_requests_this_month": _remaining(usage.ai_requests_this_month, limits.max_ai_requests_per_month),
            "mentor_sessions_this_month": _remaining(
                usage.mentor_sessions_this_month, limits.max_mentor_sessions
            ),
            "storage_mb": max(0.0, limits.max_storage_mb - usage.storage_used_mb),
        }

    def _reset_daily(self, now: datetime) -> None:
        self.usage.stories_today = 0
        self.usage.ai_requests_today = 0
        self.usage.daily_reset_date = now

    def _reset_monthly(self, now: datetime) -> None:
        self.usage.stories_this_month = 0
        self.usage.exports_this_month = 0
        self.usage.ai_requests_this_month = 0
        self.usage.mentor_sessions_this_month = 0
        self.usage.monthly_reset_date = now

    def reset_usage(self, now: Optional[datetime] = None) -> None:
        """Zero every daily and monthly counter; lifetime totals are kept."""
        now = now or datetime.utcnow()
        self._reset_daily(now)
        self._reset_monthly(now)
        self.usage.last_calculated = now

    def refresh_usage_windows(self, now: Optional[datetime] = None) -> bool:
        """
        Lazily roll the daily and monthly windows.

        Daily counters reset once the last reset is before today's midnight.
        Monthly counters reset once ``now`` is in a later calendar month.

        Returns:
            True if any counter was reset.
        """
        now = now or datetime.utcnow()
        changed = False
        if self.usage.daily_reset_date < _midnight(now):
            self._reset_daily(now)
            changed = True
        last = self.usage.monthly_reset_date
        if (now.year, now.month) > (last.year, last.month):
            self._reset_monthly(now)
            changed = True
        return changed

    # ── Lifecycle ────────────────────────────────────────────────────

    def days_until_expiry(self, now: Optional[datetime] = None) -> int:
        if self.end_date is None:
            return -1
        now = now or datetime.utcnow()
        if now >= self.end_date:
            return 0
        return math.ceil((self.end_date - now).total_seconds() / 86400)

    @property
    def is_paid(self) -> bool:
        return self.tier != SubscriptionTier.FREE and self.amount > 0

    def days_in_current_period(self) -> int:
        return max(0, (self.current_period_end - self.current_period_start).days)

    def days_remaining_in_period(self, now: Optional[datetime] = None) -> int:
        now = now or datetime.utcnow()
        return max(0, math.ceil((self.current_period_end - now).total_seconds() / 86400))

    def cancel(self, immediate: bool = False, now: Optional[datetime] = None) -> None:
        """Cancel now, or keep access until the end of the paid period."""
        now = now or datetime.utcnow()
        self.canceled_at = now
        self.cancel_at_period_end = not immediate
        if immediate:
            self.status = SubscriptionStatus.CANCELED.value
            self.end_date = now
        else:
            self.end_date = self.current_period_end

    def reactivate(self) -> None:
        self.status = SubscriptionStatus.ACTIVE.value
        self.cancel_at_period_end = False
        self.canceled_at = None
        self.end_date = None

    def start_paid_period(self, start: datetime, end: datetime) -> None:
        """
        Begin a fresh paid period.

        Without a linked Stripe subscription nothing renews the plan, so
        access ends with the period unless a payment extends it.
        """
        self.reactivate()
        self.apply_billing_period(start, end)
        if not self.stripe_subscription_id:
            self.end_date = end

    def change_tier(self, tier: str, interval: Optional[str] = None) -> None:
        limits = get_tier_limits(tier)
        self.tier = limits.tier.value
        if interval:
            self.billing_interval = BillingInterval(interval).value
        self.amount = limits.price_cents(self.billing_interval)

    def downgrade_to_free(self, now: Optional[datetime] = None) -> None:
        """Drop to a fresh free plan; usage counters carry over."""
        now = now or datetime.utcnow()
        self.tier = SubscriptionTier.FREE.value
        self.status = SubscriptionStatus.ACTIVE.value
        self.amount = 0
        self.stripe_subscription_id = None
        self.stripe_price_id = None
        self.end_date = None
        self.cancel_at_period_end = False
        self.next_payment_date = None
        self.current_period_start = now
        self.current_period_end = now + DEFAULT_PERIOD

    def apply_billing_period(self, start: datetime, end: datetime) -> None:
        """Move to a new paid period; a new period start resets monthly counters."""
        if start != self.current_period_start:
            self._reset_monthly(start)
        self.current_period_start = start
        self.current_period_end = end

    def prepare_for_save(self, now: Optional[datetime] = None) -> None:
        """Derived fields recomputed before every write."""
        now = now or datetime.utcnow()
        self.is_trial_active = self.trial_end is not None and now <= self.trial_end
        if self.tier != SubscriptionTier.FREE and self.is_expired(now):
            self.downgrade_to_free(now)
        if self.status == SubscriptionStatus.ACTIVE and not self.cancel_at_period_end and self.is_paid:
            self.next_payment_date = self.current_period_end
        elif not self.is_paid:
            self.next_payment_date = None
        self.refresh_usage_windows(now)
        self.updated_at = now

    def to_dict(self) -> Dict[str, Any]:
        """Convert subscription to dictionary for storage."""
        return self.model_dump(mode="python")

    def to_public_dict(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        data = self.model_dump(mode="json", exclude={"stripe_customer_id"})
        data["limits"] = self.limits.to_dict()
        data["is_active"] = self.is_active(now)
        data["is_paid"] = self.is_paid
        data["days_until_expiry"] = self.days_until_expiry(now)
        data["days_in_current_period"] = self.days_in_current_period()
        data["days_remaining_in_period"] = self.days_remaining_in_period(now)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SubscriptionModel":
        """Create subscription from stored dictionary."""
        return cls(**to_naive_utc(data))
