"""
Configuration module for Mintoons backend.
Loads settings from .env file and environment variables.
"""

import os
from pathlib import Path
from typing import List

from dotenv import load_dotenv

# Existing environment variables win over .env values
_env_path = Path(__file__).parent.parent / ".env"
if _env_path.exists():
    load_dotenv(_env_path, override=False)


def _as_bool(value: str) -> bool:
    return value.lower() in ("true", "1", "yes")


class Settings:
    """Application configuration loaded from environment variables."""

    def __init__(self):
        self.app_name: str = os.getenv("APP_NAME", "Mintoons")
        self.api_version: str = os.getenv("API_VERSION", "v1")
        self.debug: bool = _as_bool(os.getenv("DEBUG", "true"))
        self.environment: str = os.getenv("ENVIRONMENT", "development")
        self.app_url: str = os.getenv("APP_URL", "http://localhost:3000").rstrip("/")

        # Storage
        self.firebase_credentials_path: str = os.getenv("FIREBASE_CREDENTIALS_PATH", "")
        self.data_dir: str = os.getenv(
            "DATA_DIR", str(Path(__file__).parent.parent / "data")
        )

        # CORS
        cors_raw = os.getenv("CORS_ORIGINS", "*")
        self.cors_origins: List[str] = [s.strip() for s in cors_raw.split(",")]

        # Security
        self.secret_key: str = os.getenv("SECRET_KEY", "mintoons-dev-secret")
        self.algorithm: str = os.getenv("ALGORITHM", "HS256")
        self.access_token_expire_minutes: int = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "60"))
        self.refresh_token_expire_days: int = int(os.getenv("REFRESH_TOKEN_EXPIRE_DAYS", "7"))
        self.bcrypt_rounds: int = int(os.getenv("BCRYPT_ROUNDS", "12"))
        # Fernet key (urlsafe base64, 32 bytes) for stored provider API keys
        self.encryption_key: str = os.getenv("ENCRYPTION_KEY", "")

        # SMTP
        self.smtp_host: str = os.getenv("SMTP_HOST", "")
        self.smtp_port: int = int(os.getenv("SMTP_PORT", "587"))
        self.smtp_user: str = os.getenv("SMTP_USER", "")
        self.smtp_password: str = os.getenv("SMTP_PASSWORD", "")
        self.smtp_from: str = os.getenv("SMTP_FROM", "Mintoons <noreply@mintoons.com>")
        self.smtp_use_tls: bool = _as_bool(os.getenv("SMTP_USE_TLS", "true"))
        self.email_queue_poll_seconds: float = float(os.getenv("EMAIL_QUEUE_POLL_SECONDS", "5"))

        # Billing
        self.stripe_webhook_secret: str = os.getenv("STRIPE_WEBHOOK_SECRET", "")

        # AI providers
        self.anthropic_api_key: str = os.getenv("ANTHROPIC_API_KEY", "")
        self.groq_api_key: str = os.getenv("GROQ_API_KEY", "")

        # Background maintenance sweep
        self.maintenance_interval_seconds: int = int(os.getenv("MAINTENANCE_INTERVAL_SECONDS", "3600"))

    @property
    def smtp_configured(self) -> bool:
        return bool(self.smtp_host)


_settings = None


def get_settings() -> Settings:
    """Get application settings singleton."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
