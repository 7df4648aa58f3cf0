# src/shared/redis.py
from __future__ import annotations

import asyncio
import json
from typing import Any, AsyncIterator, Awaitable, Callable, Optional, TypeVar
from uuid import UUID

import redis.asyncio as redis
from redis.asyncio import Redis
from redis.exceptions import RedisError

from src.shared.config import get_settings
from src.shared.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

# Failures that put the client in degraded mode instead of surfacing to callers.
_DEGRADED_ERRORS = (RedisError, OSError, asyncio.TimeoutError)


def _default_json_serializer(obj: Any) -> Any:
    if isinstance(obj, UUID):
        return str(obj)
    if hasattr(obj, "isoformat"):
        return obj.isoformat()
    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


class RedisClient:
    """
    Async Redis client with namespaced keys and a degraded-mode contract.

    Every call is bounded by a timeout. Connection errors, Redis errors and
    timeouts are logged and converted to the call's neutral result (None,
    False, 0, empty set), so a cache outage never reaches the caller. With no
    URL configured the client stays permanently disabled.
    """

    def __init__(
        self,
        url: Optional[str] = None,
        *,
        namespace: Optional[str] = None,
        timeout: Optional[float] = None,
        client: Optional[Redis] = None,
    ) -> None:
        settings = get_settings()
        self._url = url if url is not None else settings.REDIS_URL
        self._ns = (namespace if namespace is not None else settings.REDIS_NAMESPACE).strip(":")
        self._timeout = timeout if timeout is not None else settings.REDIS_TIMEOUT_SECONDS
        self.redis: Optional[Redis] = client

    # ---------- connection management ----------

    def connect(self) -> None:
        """Create the client lazily; from_url does not open a socket."""
        if self.redis is not None:
            return
        if not self._url:
            logger.info("redis_disabled", reason="REDIS_URL not configured")
            return
        self.redis = redis.from_url(
            self._url,
            encoding="utf-8",
            decode_responses=True,
            socket_connect_timeout=self._timeout,
            socket_timeout=self._timeout,
            health_check_interval=30,
        )

    @property
    def enabled(self) -> bool:
        return self.redis is not None

    async def ping(self) -> bool:
        return bool(await self._guard("ping", lambda: self.redis.ping(), False))  # type: ignore[union-attr]

    async def close(self) -> None:
        if self.redis is None:
            return
        try:
            await self.redis.aclose()
        except _DEGRADED_ERRORS as e:
            logger.warning("cache_degraded", op="close", error=str(e))
        self.redis = None

    # ---------- low-level helpers ----------

    def _k(self, key: str) -> str:
        return f"{self._ns}:{key}" if self._ns else key

    async def _guard(self, op: str, fn: Callable[[], Awaitable[T]], default: T) -> T:
        if self.redis is None:
            return default
        try:
            return await asyncio.wait_for(fn(), timeout=self._timeout)
        except _DEGRADED_ERRORS as e:
            logger.warning("cache_degraded", op=op, error=str(e) or e.__class__.__name__)
            return default

    # ---------- string & json ----------

    async def get_json(self, key: str) -> Optional[Any]:
        raw = await self._guard("get", lambda: self.redis.get(self._k(key)), None)  # type: ignore[union-attr]
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except (TypeError, json.JSONDecodeError):
            logger.warning("cache_corrupt_entry", key=key)
            return None

    async def set_json(self, key: str, value: Any, ttl_seconds: Optional[int] = None) -> bool:
        payload = json.dumps(value, default=_default_json_serializer)
        return bool(await self._guard("set", lambda: self.redis.set(self._k(key), payload, ex=ttl_seconds), False))  # type: ignore[union-attr]

    async def get(self, key: str) -> Optional[str]:
        return await self._guard("get", lambda: self.redis.get(self._k(key)), None)  # type: ignore[union-attr]

    async def set(self, key: str, value: str, ttl_seconds: Optional[int] = None) -> bool:
        return bool(await self._guard("set", lambda: self.redis.set(self._k(key), value, ex=ttl_seconds), False))  # type: ignore[union-attr]

    async def delete(self, *keys: str) -> int:
        if not keys:
            return 0
        full = [self._k(k) for k in keys]
        return int(await self._guard("delete", lambda: self.redis.delete(*full), 0))  # type: ignore[union-attr]

    # ---------- sets (key index) ----------

    async def sadd(self, key: str, *members: str) -> int:
        return int(await self._guard("sadd", lambda: self.redis.sadd(self._k(key), *members), 0))  # type: ignore[union-attr]

    async def smembers(self, key: str) -> set[str]:
        return set(await self._guard("smembers", lambda: self.redis.smembers(self._k(key)), set()))  # type: ignore[union-attr]

    # ---------- counters ----------

    async def incr(self, key: str) -> Optional[int]:
        value = await self._guard("incr", lambda: self.redis.incr(self._k(key)), None)  # type: ignore[union-attr]
        return int(value) if value is not None else None

    async def incr_with_expire(self, key: str, ttl_seconds: int) -> Optional[int]:
        """INCR the counter and start its window on the first hit. None when unavailable."""
        count = await self._guard("incr", lambda: self.redis.incr(self._k(key)), None)  # type: ignore[union-attr]
        if count is None:
            return None
        if int(count) == 1:
            await self._guard("expire", lambda: self.redis.expire(self._k(key), ttl_seconds), False)  # type: ignore[union-attr]
        return int(count)

    async def ttl(self, key: str) -> Optional[int]:
        value = await self._guard("ttl", lambda: self.redis.ttl(self._k(key)), None)  # type: ignore[union-attr]
        return int(value) if value is not None and int(value) >= 0 else None

    # ---------- pub/sub ----------

    async def publish(self, channel: str, message: Any) -> int:
        payload = message if isinstance(message, str) else json.dumps(message, default=_default_json_serializer)
        return int(await self._guard("publish", lambda: self.redis.publish(channel, payload), 0))  # type: ignore[union-attr]

    async def subscribe(self, channel: str) -> AsyncIterator[Any]:
        """Yield decoded messages from a channel until the caller stops iterating."""
        if self.redis is None:
            return
        pubsub = self.redis.pubsub()
        try:
            await pubsub.subscribe(channel)
            async for message in pubsub.listen():
                if message.get("type") != "message":
                    continue
                try:
                    yield json.loads(message["data"])
                except (TypeError, json.JSONDecodeError):
                    yield message["data"]
        except _DEGRADED_ERRORS as e:
            logger.warning("cache_degraded", op="subscribe", channel=channel, error=str(e))
        finally:
            await pubsub.aclose()
