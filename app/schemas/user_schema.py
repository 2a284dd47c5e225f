"""
User Request/Response Schemas
API schemas for authentication and profile management.
"""

import re
from typing import Optional, List

from pydantic import BaseModel, EmailStr, Field, field_validator, model_validator

NAME_RE = re.compile(r"^[A-Za-z\s]+$")
PASSWORD_RE = re.compile(r"^(?=.*[a-z])(?=.*[A-Z])(?=.*\d)")


def _check_password(v: str) -> str:
    if not PASSWORD_RE.match(v):
        raise ValueError("Password must contain at least one uppercase letter, one lowercase letter, and one number")
    return v


def _lower_email(v: Optional[str]) -> Optional[str]:
    return v.lower() if v else v


def _check_name(v: str) -> str:
    v = " ".join(v.split())
    if not NAME_RE.match(v):
        raise ValueError("Name can only contain letters and spaces")
    return v


class RegisterRequest(BaseModel):
    """Account signup request."""

    name: str = Field(min_length=2, max_length=50)
    email: EmailStr
    password: str = Field(min_length=8, max_length=128)
    age: int = Field(ge=2, le=18)
    parent_email: Optional[EmailStr] = None
    agreed_to_terms: bool = Field(description="Must be true")

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        return _check_name(v)

    @field_validator("password")
    @classmethod
    def validate_password(cls, v: str) -> str:
        return _check_password(v)

    @field_validator("email", "parent_email")
    @classmethod
    def normalize_email(cls, v: Optional[str]) -> Optional[str]:
        return _lower_email(v)

    @field_validator("agreed_to_terms")
    @classmethod
    def validate_terms(cls, v: bool) -> bool:
        if not v:
            raise ValueError("You must agree to the terms of service")
        return v


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(min_length=1)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        return _lower_email(v)


class RefreshRequest(BaseModel):
    refresh_token: str = Field(min_length=1)


class ForgotPasswordRequest(BaseModel):
    email: EmailStr

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        return _lower_email(v)


class ResetPasswordRequest(BaseModel):
    """Password reset with the emailed one-time token."""

    token: str = Field(min_length=1)
    password: str = Field(min_length=8, max_length=128)
    confirm_password: str = Field(min_length=1)

    @field_validator("password")
    @classmethod
    def validate_password(cls, v: str) -> str:
        return _check_password(v)

    @model_validator(mode="after")
    def passwords_match(self) -> "ResetPasswordRequest":
        if self.password != self.confirm_password:
            raise ValueError("Passwords do not match")
        return self


class VerifyEmailRequest(BaseModel):
    token: str = Field(min_length=1)


class ChangePasswordRequest(BaseModel):
    current_password: str = Field(min_length=1)
    new_password: str = Field(min_length=8, max_length=128)

    @field_validator("new_password")
    @classmethod
    def validate_password(cls, v: str) -> str:
        return _check_password(v)


class UpdateProfileRequest(BaseModel):
    """Profile fields a user may change about themselves."""

    name: Optional[str] = Field(default=None, min_length=2, max_length=50)
    age: Optional[int] = Field(default=None, ge=2, le=18)
    bio: Optional[str] = Field(default=None, max_length=500)
    school: Optional[str] = Field(default=None, max_length=100)
    grade: Optional[str] = Field(default=None, max_length=20)
    avatar: Optional[str] = Field(default=None, max_length=500)
    favorite_genres: Optional[List[str]] = Field(default=None, max_length=5)

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: Optional[str]) -> Optional[str]:
        return _check_name(v) if v is not None else v


class EmailNotificationUpdate(BaseModel):
    story_completed: Optional[bool] = None
    mentor_comments: Optional[bool] = None
    weekly_progress: Optional[bool] = None
    achievements: Optional[bool] = None
    marketing: Optional[bool] = None


class WritingSettingsUpdate(BaseModel):
    auto_save: Optional[bool] = None
    show_word_count: Optional[bool] = None
    ai_assistance_level: Optional[str] = None
    preferred_genres: Optional[List[str]] = None


class UpdatePreferencesRequest(BaseModel):
    """Partial update; only provided fields change."""

    theme: Optional[str] = Field(default=None, pattern="^(light|dark|auto)$")
    language: Optional[str] = Field(default=None, min_length=2, max_length=5)
    email_notifications: Optional[EmailNotificationUpdate] = None
    writing: Optional[WritingSettingsUpdate] = None


class ParentConsentRequest(BaseModel):
    """Parent confirms consent for a child under 13."""

    child_id: str = Field(min_length=1)
    parent_email: EmailStr

    @field_validator("parent_email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        return _lower_email(v)


class TokenResponse(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
