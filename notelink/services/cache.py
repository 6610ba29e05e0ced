"""
Cache for public note listings: Redis when reachable, else an in-process dict
"""
import json
import os
import time
from typing import Any, Optional

import redis
import structlog

logger = structlog.get_logger()

REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379/0")
NOTE_LIST_CACHE_TTL = int(os.getenv("NOTE_LIST_CACHE_TTL", "60"))
NOTE_LIST_PREFIX = "notes:public:"


class CacheService:
    def __init__(self, redis_url: str = REDIS_URL):
        # key -> (expires_at, value); only used without Redis
        self._memory_cache = {}
        try:
            self.redis_client = redis.from_url(redis_url, decode_responses=True, socket_connect_timeout=1)
            self.redis_client.ping()
            logger.info("cache_connected", backend="redis")
        except redis.RedisError as e:
            logger.warning("cache_unavailable_using_memory", error=str(e))
            self.redis_client = None

    def get(self, key: str) -> Optional[Any]:
        if self.redis_client is None:
            entry = self._memory_cache.get(key)
            if entry is None:
                return None
            expires_at, value = entry
            if expires_at < time.monotonic():
                self._memory_cache.pop(key, None)
                return None
            return value
        try:
            value = self.redis_client.get(key)
            return json.loads(value) if value else None
        except redis.RedisError as e:
            logger.error("cache_get_failed", key=key, error=str(e))
            return None

    def _purge_expired(self, now: float) -> None:
        # Listing keys are per filter, so unread ones would otherwise pile up
        for key in [k for k, (expires_at, _) in self._memory_cache.items() if expires_at < now]:
            del self._memory_cache[key]

    def set(self, key: str, value: Any, expire: int = NOTE_LIST_CACHE_TTL) -> bool:
        if self.redis_client is None:
            now = time.monotonic()
            self._purge_expired(now)
            self._memory_cache[key] = (now + expire, value)
            return True
        try:
            return bool(self.redis_client.setex(key, expire, json.dumps(value, ensure_ascii=False, default=str)))
        except redis.RedisError as e:
            logger.error("cache_set_failed", key=key, error=str(e))
            return False

    def delete(self, key: str) -> bool:
        if self.redis_client is None:
            return self._memory_cache.pop(key, None) is not None
        try:
            return bool(self.redis_client.delete(key))
        except redis.RedisError as e:
            logger.error("cache_delete_failed", key=key, error=str(e))
            return False

    def clear_prefix(self, prefix: str) -> int:
        """Drop every key starting with ``prefix``; returns how many went."""
        if self.redis_client is None:
            stale = [k for k in self._memory_cache if k.startswith(prefix)]
            for key in stale:
                del self._memory_cache[key]
            return len(stale)
        try:
            keys = list(self.redis_client.scan_iter(match=f"{prefix}*"))
            return self.redis_client.delete(*keys) if keys else 0
        except redis.RedisError as e:
            logger.error("cache_clear_failed", prefix=prefix, error=str(e))
            return 0


def public_notes_key(university_name: str, course: str) -> str:
    return f"{NOTE_LIST_PREFIX}{university_name}:{course}"


def invalidate_public_notes() -> int:
    return cache.clear_prefix(NOTE_LIST_PREFIX)


cache = CacheService()
