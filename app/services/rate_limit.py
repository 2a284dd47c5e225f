"""
In-memory sliding-window rate limiting.

Limits are per process; running several workers multiplies the effective
allowance.
"""

import threading
import time
from dataclasses import dataclass
from typing import Dict, List, Optional


@dataclass(frozen=True)
class RateLimitConfig:
    window_seconds: int
    max_requests: int


@dataclass
class RateLimitResult:
    allowed: bool
    limit: int
    remaining: int
    reset_at: float
    retry_after: int

    def headers(self) -> Dict[str, str]:
        headers = {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(int(self.reset_at)),
        }
        if not self.allowed:
            headers["Retry-After"] = str(self.retry_after)
        return headers


RATE_LIMITS: Dict[str, RateLimitConfig] = {
    "login": RateLimitConfig(15 * 60, 5),
    "register": RateLimitConfig(60 * 60, 3),
    "forgot_password": RateLimitConfig(60 * 60, 3),
    "api_general": RateLimitConfig(15 * 60, 100),
    "ai_generate": RateLimitConfig(60 * 60, 20),
    "ai_assess": RateLimitConfig(60 * 60, 30),
    "story_create": RateLimitConfig(60 * 60, 10),
    "story_update": RateLimitConfig(15 * 60, 50),
    "comment_create": RateLimitConfig(15 * 60, 20),
    "export": RateLimitConfig(60 * 60, 10),
    "admin": RateLimitConfig(60 * 60, 200),
}


class RateLimiter:
    """Sliding window of request timestamps per key."""

    def __init__(self, max_requests: int = 100, window_seconds: int = 60):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.requests: Dict[str, List[float]] = {}
        self._lock = threading.Lock()

    def check(self, key: str, now: Optional[float] = None) -> RateLimitResult:
        """Record a request for ``key`` if it fits in the window."""
        now = time.time() if now is None else now
        cutoff = now - self.window_seconds
        with self._lock:
            timestamps = [t for t in self.requests.get(key, []) if t > cutoff]
            allowed = len(timestamps) < self.max_requests
            if allowed:
                timestamps.append(now)
            self.requests[key] = timestamps

            reset_at = (timestamps[0] if timestamps else now) + self.window_seconds
            return RateLimitResult(
                allowed=allowed,
                limit=self.max_requests,
                remaining=max(0, self.max_requests - len(timestamps)),
                reset_at=reset_at,
                retry_after=0 if allowed else max(1, int(reset_at - now + 0.999)),
            )

    def is_allowed(self, key: str) -> bool:
        return self.check(key).allowed

    def reset(self, key: Optional[str] = None) -> None:
        with self._lock:
            if key is None:
                self.requests.clear()
            else:
                self.requests.pop(key, None)


_limiters: Dict[str, RateLimiter] = {}


def get_rate_limiter(name: str) -> RateLimiter:
    """Shared limiter for a named policy from :data:`RATE_LIMITS`."""
    if name not in _limiters:
        config = RATE_LIMITS[name]
        _limiters[name] = RateLimiter(config.max_requests, config.window_seconds)
    return _limiters[name]


def reset_all_limiters() -> None:
    for limiter in _limiters.values():
        limiter.reset()
