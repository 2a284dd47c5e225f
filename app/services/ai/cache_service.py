"""Assessment caching with TTL support."""

import hashlib
import json
import threading
from typing import Optional, Dict, Any

from cachetools import TTLCache

from app.utils.logger import get_logger

logger = get_logger(__name__)


class AssessmentCache:
    """In-memory cache of AI assessments keyed by story text."""

    DEFAULT_TTL = 86400  # 24 hours
    MAX_CACHE_SIZE = 1000

    def __init__(self, max_size: int = MAX_CACHE_SIZE, default_ttl: int = DEFAULT_TTL):
        """
        Initialize the cache.

        Args:
            max_size: Maximum number of items to cache
            default_ttl: Time-to-live in seconds
        """
        self.max_size = max_size
        self.default_ttl = default_ttl
        self.cache: TTLCache = TTLCache(maxsize=max_size, ttl=default_ttl)
        self._lock = threading.Lock()

    @staticmethod
    def cache_key(content: str, age: Optional[int] = None, elements: Optional[Dict[str, Any]] = None) -> str:
        """
        Generate a cache key from the assessed text and its context.

        Returns:
            Hash-based cache key
        """
        params = {"content": content.strip(), "age": age, "elements": elements or {}}
        digest = hashlib.sha256(json.dumps(params, sort_keys=True, default=str).encode()).hexdigest()
        return f"assessment_{digest}"

    def get_cached(self, key: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            item = self.cache.get(key)
        if item is None:
            logger.debug("Cache miss for key: %s", key)
        else:
            logger.debug("Cache hit for key: %s", key)
        return item

    def set_cached(self, key: str, content: Dict[str, Any]) -> None:
        with self._lock:
            self.cache[key] = content

    def invalidate(self, key: str) -> None:
        with self._lock:
            self.cache.pop(key, None)

    def clear_all(self) -> None:
        with self._lock:
            self.cache.clear()
        logger.info("Assessment cache cleared")

    def get_stats(self) -> Dict[str, Any]:
        """
        Get cache statistics.

        Returns:
            Dictionary with cache stats
        """
        with self._lock:
            self.cache.expire()
            total = len(self.cache)
        return {
            "total_items": total,
            "max_size": self.max_size,
            "usage_percent": (total / self.max_size) * 100,
            "default_ttl_seconds": self.default_ttl,
        }
