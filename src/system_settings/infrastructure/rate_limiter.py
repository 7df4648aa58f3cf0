from __future__ import annotations

from typing import Optional

from src.shared.exceptions import RateLimitedError
from src.shared.logging import get_logger
from src.shared.redis import RedisClient

logger = get_logger(__name__)


class RateLimiter:
    """
    Fixed-window counters in Redis: INCR, start the window on the first hit,
    reject once the count passes the limit. Counting is approximate under
    concurrency. When Redis is unavailable the call is allowed.
    """

    def __init__(self, redis: RedisClient, *, window_seconds: int = 3600) -> None:
        self._redis = redis
        self._window = window_seconds

    @staticmethod
    def key(scope: str, tenant_id: Optional[str], actor_id: Optional[str] = None) -> str:
        parts = ["ratelimit", scope, tenant_id or "global"]
        if actor_id:
            parts.append(actor_id)
        return ":".join(parts)

    async def hit(self, scope: str, tenant_id: Optional[str], *, limit: int, actor_id: Optional[str] = None) -> int:
        key = self.key(scope, tenant_id, actor_id)
        count = await self._redis.incr_with_expire(key, self._window)
        if count is None:
            logger.warning("rate_limit_unavailable", scope=scope, tenant_id=tenant_id)
            return 0
        if count > limit:
            retry_after = await self._redis.ttl(key) or self._window
            logger.info("rate_limited", scope=scope, tenant_id=tenant_id, count=count, limit=limit)
            raise RateLimitedError(retry_after=retry_after, details={"scope": scope, "limit": limit})
        return count
