import uuid
from contextlib import contextmanager

import redis

from storefront.domain.errors import StateConflictError
from storefront.utils.retry import redis_retry
from storefront.utils.settings import REDIS_URL, ORDER_LOCK_TTL_SECONDS
from storefront.utils.logging import get_logger

logger = get_logger(__name__)

# compare-and-delete, runs atomically inside redis so nobody can slip in between GET and DEL
_RELEASE_LUA = """
if redis.call('GET', KEYS[1]) == ARGV[1] then
    return redis.call('DEL', KEYS[1])
else
    return 0
end
"""


class LockService:
    """
    Short-lived per-order locks that serialize mutations of one order
    across worker processes.
    """

    def __init__(self, url: str | None = None, client: redis.Redis | None = None):
        self.redis = client or redis.Redis.from_url(
            url or REDIS_URL,
            decode_responses=True,
        )

    @staticmethod
    def _key(order_id: int) -> str:
        return f"order:{order_id}:lock"

    @redis_retry()
    def acquire_order_lock(self, order_id: int, token: str, ttl: int = ORDER_LOCK_TTL_SECONDS) -> bool:
        key = self._key(order_id)
        logger.info(f"Acquire lock {key}")
        # SET order:1:lock <token> NX EX 30
        return bool(self.redis.set(name=key, value=token, nx=True, ex=ttl))

    @redis_retry()
    def release_order_lock(self, order_id: int, token: str) -> bool:
        key = self._key(order_id)
        logger.info(f"Release lock {key}")
        return bool(self.redis.eval(_RELEASE_LUA, 1, key, token))

    @contextmanager
    def order_lock(self, order_id: int):
        token = uuid.uuid4().hex
        if not self.acquire_order_lock(order_id, token):
            raise StateConflictError(f"Order {order_id} is being modified by another request")
        try:
            yield
        finally:
            self.release_order_lock(order_id, token)
