"""
Security utilities: JWT tokens, password hashing and secret encryption.
"""

import hashlib
import secrets
from datetime import datetime, timedelta
from typing import Any, Dict, Optional, Tuple

import bcrypt
import jwt
from cryptography.fernet import Fernet, InvalidToken

from app.config import get_settings

ACCESS_TOKEN_TYPE = "access"
REFRESH_TOKEN_TYPE = "refresh"


def create_access_token(data: Dict[str, Any], expires_delta: Optional[timedelta] = None) -> str:
    """Create a signed access token carrying the user's id and role."""
    settings = get_settings()
    to_encode = data.copy()
    expire = datetime.utcnow() + (expires_delta or timedelta(minutes=settings.access_token_expire_minutes))
    to_encode.update({"exp": expire, "type": ACCESS_TOKEN_TYPE})
    return jwt.encode(to_encode, settings.secret_key, algorithm=settings.algorithm)


def create_refresh_token(data: Dict[str, Any], expires_delta: Optional[timedelta] = None) -> str:
    """Create a refresh token."""
    settings = get_settings()
    to_encode = data.copy()
    expire = datetime.utcnow() + (expires_delta or timedelta(days=settings.refresh_token_expire_days))
    to_encode.update({"exp": expire, "type": REFRESH_TOKEN_TYPE})
    return jwt.encode(to_encode, settings.secret_key, algorithm=settings.algorithm)


def decode_token(token: str, token_type: str = ACCESS_TOKEN_TYPE) -> Dict[str, Any]:
    """
    Decode and verify a token.

    Args:
        token: Encoded JWT.
        token_type: Expected ``type`` claim.

    Returns:
        Token payload.

    Raises:
        ValueError: If the token is expired, tampered with or of the wrong type.
    """
    settings = get_settings()
    try:
        payload = jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])
    except jwt.ExpiredSignatureError as e:
        raise ValueError("Token has expired") from e
    except jwt.PyJWTError as e:
        raise ValueError(f"Token decode failed: {e}") from e

    if payload.get("type") != token_type:
        raise ValueError(f"Expected {token_type} token")
    return payload


def issue_token_pair(user: Dict[str, Any]) -> Dict[str, str]:
    """Build access and refresh tokens for a stored user document."""
    claims = {"sub": user["id"], "role": user.get("role", "child"), "email": user.get("email", "")}
    return {
        "access_token": create_access_token(claims),
        "refresh_token": create_refresh_token({"sub": user["id"]}),
        "token_type": "bearer",
    }


# ── Passwords ────────────────────────────────────────────────────────

def hash_password(password: str) -> str:
    rounds = get_settings().bcrypt_rounds
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=rounds)).decode("utf-8")


def verify_password(password: str, hashed: str) -> bool:
    if not hashed:
        return False
    try:
        return bcrypt.checkpw(password.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        return False


# ── One-time tokens (password reset, email verification) ─────────────

def hash_one_time_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def generate_one_time_token() -> Tuple[str, str]:
    """Return ``(raw_token, sha256_hash)``; only the hash is stored."""
    raw = secrets.token_hex(32)
    return raw, hash_one_time_token(raw)


# ── Secret encryption (stored provider API keys) ─────────────────────

def _get_cipher() -> Fernet:
    key = get_settings().encryption_key
    if not key:
        raise ValueError("ENCRYPTION_KEY is not configured")
    return Fernet(key.encode("utf-8"))


def encrypt_secret(plaintext: str) -> str:
    return _get_cipher().encrypt(plaintext.encode("utf-8")).decode("utf-8")


def decrypt_secret(ciphertext: str) -> str:
    """Decrypt a value produced by :func:`encrypt_secret`."""
    try:
        return _get_cipher().decrypt(ciphertext.encode("utf-8")).decode("utf-8")
    except InvalidToken as e:
        raise ValueError("Stored secret could not be decrypted with the current key") from e
