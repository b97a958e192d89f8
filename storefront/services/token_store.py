# storefront/services/token_store.py
"""
Keyed store for short-lived tokens (password reset and similar).

Callers only see get/set/delete; expiry is checked at read time, so a
backend can be swapped without touching call sites.
"""
from abc import ABC, abstractmethod
import json
import threading
import time
from typing import Any, Callable, Dict, Tuple

import redis

from storefront.utils.retry import redis_retry
from storefront.utils.settings import REDIS_URL


class TokenStore(ABC):
    @abstractmethod
    def get(self, token: str) -> Any | None:
        """Stored value, or None when missing or expired."""

    @abstractmethod
    def set(self, token: str, value: Any, ttl: int) -> None:
        ...

    @abstractmethod
    def delete(self, token: str) -> None:
        ...


class MemoryTokenStore(TokenStore):
    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self.clock = clock
        self._items: Dict[str, Tuple[Any, float]] = {}
        self._lock = threading.Lock()

    def get(self, token: str) -> Any | None:
        with self._lock:
            entry = self._items.get(token)
            if entry is None:
                return None
            value, expires_at = entry
            if expires_at <= self.clock():
                del self._items[token]
                return None
            return value

    def set(self, token: str, value: Any, ttl: int) -> None:
        with self._lock:
            self._items[token] = (value, self.clock() + ttl)

    def delete(self, token: str) -> None:
        with self._lock:
            self._items.pop(token, None)


class RedisTokenStore(TokenStore):
    def __init__(self, url: str | None = None, prefix: str = "token:", client: redis.Redis | None = None):
        self.redis = client or redis.Redis.from_url(url or REDIS_URL, decode_responses=True)
        self.prefix = prefix

    def _key(self, token: str) -> str:
        return f"{self.prefix}{token}"

    @redis_retry()
    def get(self, token: str) -> Any | None:
        raw = self.redis.get(self._key(token))
        return None if raw is None else json.loads(raw)

    @redis_retry()
    def set(self, token: str, value: Any, ttl: int) -> None:
        self.redis.set(self._key(token), json.dumps(value), ex=ttl)

    @redis_retry()
    def delete(self, token: str) -> None:
        self.redis.delete(self._key(token))
