"""
User Model
Represents a child, mentor or admin account.
"""

import uuid
from datetime import datetime, timedelta
from enum import Enum
from typing import Optional, Dict, Any, List

from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.core.security import generate_one_time_token, hash_one_time_token, verify_password
from app.utils.dates import to_naive_utc

MAX_LOGIN_ATTEMPTS = 5
LOCK_DURATION = timedelta(hours=2)
PASSWORD_RESET_TTL = timedelta(hours=1)
EMAIL_VERIFICATION_TTL = timedelta(hours=24)
COPPA_AGE = 13
XP_PER_LEVEL = 1000


class UserRole(str, Enum):
    """Account role enumeration."""
    CHILD = "child"
    MENTOR = "mentor"
    ADMIN = "admin"


class AccountStatus(str, Enum):
    """Account lifecycle status."""
    ACTIVE = "active"
    INACTIVE = "inactive"
    SUSPENDED = "suspended"
    PENDING_VERIFICATION = "pending_verification"


class AgeGroup(str, Enum):
    """Writing age bands used for prompts and reading levels."""
    TODDLER = "2-5"
    EARLY = "6-8"
    MIDDLE = "9-12"
    TEEN = "13-15"
    OLDER_TEEN = "16-18"


class EmailNotificationSettings(BaseModel):
    """Which emails the user wants."""

    story_completed: bool = True
    mentor_comments: bool = True
    weekly_progress: bool = True
    achievements: bool = True
    marketing: bool = False


class WritingSettings(BaseModel):
    """Editor behaviour preferences."""

    auto_save: bool = True
    show_word_count: bool = True
    ai_assistance_level: str = Field(default="normal", description="minimal, normal or maximum")
    preferred_genres: List[str] = Field(default_factory=list)

    @field_validator("ai_assistance_level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        if v not in ("minimal", "normal", "maximum"):
            raise ValueError("ai_assistance_level must be minimal, normal or maximum")
        return v


class UserPreferences(BaseModel):
    """User preference settings."""

    theme: str = Field(default="light", description="UI theme")
    language: str = Field(default="en", description="Interface language")
    email_notifications: EmailNotificationSettings = Field(default_factory=EmailNotificationSettings)
    writing: WritingSettings = Field(default_factory=WritingSettings)

    def to_dict(self) -> Dict[str, Any]:
        """Convert preferences to dictionary for storage."""
        return self.model_dump()

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "UserPreferences":
        """Create preferences from stored dictionary."""
        return cls(**data)


class UserStats(BaseModel):
    """Writing progress counters shown on the student dashboard."""

    stories_created: int = 0
    stories_published: int = 0
    total_word_count: int = 0
    average_grammar_score: float = 0.0
    average_creativity_score: float = 0.0
    assessed_stories: int = 0
    current_streak: int = 0
    longest_streak: int = 0
    last_writing_date: Optional[datetime] = None
    achievements_unlocked: List[str] = Field(default_factory=list)
    experience_points: int = 0
    current_level: int = 1


class UserModel(BaseModel):
    """User model representing an account in the store."""

    model_config = ConfigDict(use_enum_values=True, validate_default=True)

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), description="User ID")
    email: str = Field(description="Login email, stored lowercase")
    name: str = Field(min_length=2, max_length=50, description="Display name")
    password_hash: str = Field(default="", description="bcrypt hash")
    role: UserRole = Field(default=UserRole.CHILD)
    age: Optional[int] = Field(default=None, ge=2, le=18)
    age_group: AgeGroup = Field(default=AgeGroup.MIDDLE)
    school: Optional[str] = None
    grade: Optional[str] = None
    bio: Optional[str] = Field(default=None, max_length=500)
    avatar: Optional[str] = None

    is_active: bool = True
    email_verified: bool = False
    account_status: AccountStatus = Field(default=AccountStatus.PENDING_VERIFICATION)

    subscription_tier: str = Field(default="free")
    subscription_status: str = Field(default="active")

    mentor_id: Optional[str] = None
    mentor_assigned_at: Optional[datetime] = None

    parent_email: Optional[str] = None
    parent_consent: bool = False
    parent_consent_date: Optional[datetime] = None

    preferences: UserPreferences = Field(default_factory=UserPreferences)
    stats: UserStats = Field(default_factory=UserStats)

    login_attempts: int = 0
    locked_until: Optional[datetime] = None
    reset_password_token_hash: Optional[str] = None
    reset_password_expires: Optional[datetime] = None
    email_verification_token_hash: Optional[str] = None
    email_verification_expires: Optional[datetime] = None
    last_login_at: Optional[datetime] = None
    last_active_at: Optional[datetime] = None

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    @field_validator("email", "parent_email")
    @classmethod
    def normalize_email(cls, v: Optional[str]) -> Optional[str]:
        return v.strip().lower() if v else v

    # ── Age / COPPA ──────────────────────────────────────────────────

    @staticmethod
    def calculate_age_group(age: Optional[int]) -> AgeGroup:
        """Map an age in years to its writing age group."""
        if age is None:
            return AgeGroup.MIDDLE
        if age <= 5:
            return AgeGroup.TODDLER
        if age <= 8:
            return AgeGroup.EARLY
        if age <= 12:
            return AgeGroup.MIDDLE
        if age <= 15:
            return AgeGroup.TEEN
        return AgeGroup.OLDER_TEEN

    @property
    def requires_parent_consent(self) -> bool:
        return self.role == UserRole.CHILD and self.age is not None and self.age < COPPA_AGE

    # ── Login lockout ────────────────────────────────────────────────

    def verify_password(self, password: str) -> bool:
        return verify_password(password, self.password_hash)

    def is_locked(self, now: Optional[datetime] = None) -> bool:
        now = now or datetime.utcnow()
        return self.locked_until is not None and self.locked_until > now

    def increment_login_attempts(self, now: Optional[datetime] = None) -> bool:
        """
        Record a failed login.

        An expired lock restarts the count at 1. Reaching the limit locks the
        account for two hours.

        Returns:
            True if this attempt locked the account.
        """
        now = now or datetime.utcnow()
        if self.locked_until is not None and self.locked_until <= now:
            self.login_attempts = 1
            self.locked_until = None
            return False

        self.login_attempts += 1
        if self.login_attempts >= MAX_LOGIN_ATTEMPTS and not self.is_locked(now):
            self.locked_until = now + LOCK_DURATION
            return True
        return False

    def reset_login_attempts(self, now: Optional[datetime] = None) -> None:
        self.login_attempts = 0
        self.locked_until = None
        self.last_login_at = now or datetime.utcnow()

    # ── One-time tokens ──────────────────────────────────────────────

    def generate_password_reset_token(self, now: Optional[datetime] = None) -> str:
        """Store a hashed reset token and return the raw value for the email link."""
        raw, hashed = generate_one_time_token()
        self.reset_password_token_hash = hashed
        self.reset_password_expires = (now or datetime.utcnow()) + PASSWORD_RESET_TTL
        return raw

    def is_password_reset_token_valid(self, token: str, now: Optional[datetime] = None) -> bool:
        now = now or datetime.utcnow()
        return (
            self.reset_password_token_hash is not None
            and self.reset_password_expires is not None
            and self.reset_password_expires > now
            and hash_one_time_token(token) == self.reset_password_token_hash
        )

    def clear_password_reset_token(self) -> None:
        self.reset_password_token_hash = None
        self.reset_password_expires = None

    def generate_email_verification_token(self, now: Optional[datetime] = None) -> str:
        raw, hashed = generate_one_time_token()
        self.email_verification_token_hash = hashed
        self.email_verification_expires = (now or datetime.utcnow()) + EMAIL_VERIFICATION_TTL
        return raw

    def verify_email(self, token: str, now: Optional[datetime] = None) -> bool:
        """Mark the email verified if the token matches and has not expired."""
        now = now or datetime.utcnow()
        if (
            self.email_verification_token_hash is None
            or self.email_verification_expires is None
            or self.email_verification_expires <= now
            or hash_one_time_token(token) != self.email_verification_token_hash
        ):
            return False
        self.email_verified = True
        self.email_verification_token_hash = None
        self.email_verification_expires = None
        if self.account_status == AccountStatus.PENDING_VERIFICATION and not (
            self.requires_parent_consent and not self.parent_consent
        ):
            self.account_status = AccountStatus.ACTIVE.value
        return True

    def grant_parent_consent(self, now: Optional[datetime] = None) -> None:
        self.parent_consent = True
        self.parent_consent_date = now or datetime.utcnow()
        if self.account_status == AccountStatus.PENDING_VERIFICATION and self.email_verified:
            self.account_status = AccountStatus.ACTIVE.value

    # ── Access ───────────────────────────────────────────────────────

    def can_sign_in(self, now: Optional[datetime] = None) -> bool:
        """Pending accounts may sign in; inactive or suspended ones may not."""
        return (
            self.is_active
            and self.account_status not in (AccountStatus.SUSPENDED, AccountStatus.INACTIVE)
            and not self.is_locked(now)
        )

    # ── Progress ─────────────────────────────────────────────────────

    def record_story_completed(self, word_count: int, now: Optional[datetime] = None) -> None:
        """Update word totals, experience and the daily writing streak."""
        now = now or datetime.utcnow()
        stats = self.stats
        stats.total_word_count += word_count
        self.add_experience(50 + word_count // 10)

        last = stats.last_writing_date
        if last is None:
            stats.current_streak = 1
        else:
            gap = (now.date() - last.date()).days
            if gap == 1:
                stats.current_streak += 1
            elif gap > 1:
                stats.current_streak = 1
        stats.longest_streak = max(stats.longest_streak, stats.current_streak)
        stats.last_writing_date = now

    def add_experience(self, points: int) -> None:
        self.stats.experience_points += points
        self.stats.current_level = 1 + self.stats.experience_points // XP_PER_LEVEL

    def unlock_achievement(self, name: str, points: int = 0) -> bool:
        """Record a newly earned badge; False if the user already has it."""
        if name in self.stats.achievements_unlocked:
            return False
        self.stats.achievements_unlocked.append(name)
        self.add_experience(points)
        return True

    def record_assessment(self, grammar_score: float, creativity_score: float) -> None:
        """Fold a new assessment into the running score averages."""
        stats = self.stats
        n = stats.assessed_stories
        stats.average_grammar_score = round((stats.average_grammar_score * n + grammar_score) / (n + 1), 1)
        stats.average_creativity_score = round((stats.average_creativity_score * n + creativity_score) / (n + 1), 1)
        stats.assessed_stories = n + 1

    # ── Serialization ────────────────────────────────────────────────

    def to_dict(self) -> Dict[str, Any]:
        """Convert user to dictionary for storage."""
        return self.model_dump(mode="python")

    def to_public_dict(self) -> Dict[str, Any]:
        """User fields safe to return from the API."""
        data = self.model_dump(
            mode="json",
            exclude={
                "password_hash",
                "reset_password_token_hash",
                "reset_password_expires",
                "email_verification_token_hash",
                "email_verification_expires",
                "login_attempts",
                "locked_until",
            },
        )
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "UserModel":
        """Create user from stored dictionary."""
        return cls(**to_naive_utc(data))
