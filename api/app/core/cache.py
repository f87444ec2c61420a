import json
import logging
import time
from dataclasses import dataclass
from typing import Any
from uuid import uuid4

from redis import Redis
from redis.exceptions import LockError, RedisError
from redis.lock import Lock

from app.core.config import get_settings

logger = logging.getLogger(__name__)


@dataclass
class CacheResult:
    hit: bool
    value: Any | None


class CacheClient:
    def __init__(self) -> None:
        self.settings = get_settings()
        self._fallback: dict[str, tuple[str, float]] = {}
        self._redis: Redis | None = None
        self._held_locks: dict[str, Lock] = {}
        if self.settings.cache_enabled:
            try:
                self._redis = Redis.from_url(self.settings.redis_url, decode_responses=True)
                self._redis.ping()
            except RedisError:
                self._redis = None

    def _fallback_get(self, key: str) -> str | None:
        entry = self._fallback.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at <= time.monotonic():
            self._fallback.pop(key, None)
            return None
        return value

    def _fallback_set(self, key: str, value: str, ttl_seconds: int) -> None:
        self._fallback[key] = (value, time.monotonic() + ttl_seconds)

    def get_json(self, key: str) -> CacheResult:
        value: str | None = None
        try:
            if self._redis:
                value = self._redis.get(key)
            else:
                value = self._fallback_get(key)
        except RedisError:
            value = self._fallback_get(key)
        if value is None:
            return CacheResult(hit=False, value=None)
        return CacheResult(hit=True, value=json.loads(value))

    def set_json(self, key: str, payload: Any, ttl_seconds: int) -> None:
        encoded = json.dumps(payload, default=str)
        try:
            if self._redis:
                self._redis.setex(key, ttl_seconds, encoded)
            else:
                self._fallback_set(key, encoded, ttl_seconds)
        except RedisError:
            self._fallback_set(key, encoded, ttl_seconds)

    def acquire_lock(self, key: str, ttl_seconds: int) -> str | None:
        """Claim ``key`` for one holder; returns the holder token or None when taken."""
        token = uuid4().hex
        try:
            if self._redis:
                lock = self._redis.lock(key, timeout=ttl_seconds, thread_local=False)
                if not lock.acquire(blocking=False, token=token):
                    return None
                self._held_locks[token] = lock
                return token
        except RedisError:
            pass
        if self._fallback_get(key) is not None:
            return None
        self._fallback_set(key, token, ttl_seconds)
        return token

    def release_lock(self, key: str, token: str) -> None:
        lock = self._held_locks.pop(token, None)
        if lock is not None:
            try:
                lock.release()
            except LockError:
                logger.warning("Lock %s expired before release", key)
            except RedisError:
                logger.warning("Could not release lock %s; it will expire on its own", key)
            return
        if self._fallback_get(key) == token:
            self._fallback.pop(key, None)


cache_client = CacheClient()
