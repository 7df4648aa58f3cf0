from __future__ import annotations

from typing import Any, Awaitable, Callable, Optional, Union

from src.shared.logging import get_logger
from src.shared.redis import RedisClient
from src.system_settings.domain.modules import SettingsModule, tenant_key

logger = get_logger(__name__)

ModuleName = Union[SettingsModule, str]


def _module_name(module: ModuleName) -> str:
    return module.value if isinstance(module, SettingsModule) else str(module)


class SettingsCache:
    """
    Read-through, write-invalidate cache for settings reads.

    Keys:
      - settings:{module}:{tenant_key}[:{qualifier}...]   (JSON value, TTL)
      - settings:index:{module}:{tenant_key}              (SET of live keys)
      - settings:gen:{module}:{tenant_key}                (INCR on every invalidate)

    The index makes "everything for this module and tenant" deletable without
    pattern scans. A key is indexed before it is written, so a value can never
    exist without an index entry pointing at it. Values carry the generation
    read before they were loaded; an entry from an older generation is a miss,
    so a slow read racing a write cannot resurrect the pre-write state.
    """

    def __init__(self, redis: RedisClient, *, default_ttl: int = 300) -> None:
        self._redis = redis
        self._ttl = default_ttl

    @staticmethod
    def key(module: ModuleName, tenant_id: Optional[str], *qualifiers: Any) -> str:
        parts = ["settings", _module_name(module), tenant_key(tenant_id)]
        parts.extend(str(q) for q in qualifiers)
        return ":".join(parts)

    @staticmethod
    def index_key(module: ModuleName, tenant_id: Optional[str]) -> str:
        return f"settings:index:{_module_name(module)}:{tenant_key(tenant_id)}"

    @staticmethod
    def generation_key(module: ModuleName, tenant_id: Optional[str]) -> str:
        return f"settings:gen:{_module_name(module)}:{tenant_key(tenant_id)}"

    async def generation(self, module: ModuleName, tenant_id: Optional[str]) -> int:
        value = await self._redis.get_json(self.generation_key(module, tenant_id))
        return value if isinstance(value, int) else 0

    async def get(self, module: ModuleName, tenant_id: Optional[str], key: str) -> Optional[Any]:
        """Return the cached value, or None when absent or written under an older generation."""
        return await self._lookup(key, await self.generation(module, tenant_id))

    async def _lookup(self, key: str, generation: int) -> Optional[Any]:
        entry = await self._redis.get_json(key)
        if not isinstance(entry, dict) or "value" not in entry:
            return None
        if entry.get("gen") != generation:
            logger.debug("cache_stale", key=key)
            return None
        logger.debug("cache_hit", key=key)
        return entry["value"]

    async def set(
        self,
        module: ModuleName,
        tenant_id: Optional[str],
        key: str,
        value: Any,
        ttl: Optional[int] = None,
        *,
        generation: int = 0,
    ) -> None:
        if not await self._redis.sadd(self.index_key(module, tenant_id), key):
            # already indexed keys return 0 from SADD; only skip when the index is unreachable
            if key not in await self._redis.smembers(self.index_key(module, tenant_id)):
                return
        await self._redis.set_json(key, {"gen": generation, "value": value}, ttl or self._ttl)

    async def read_through(
        self,
        module: ModuleName,
        tenant_id: Optional[str],
        key: str,
        load: Callable[[], Awaitable[Any]],
        ttl: Optional[int] = None,
    ) -> Any:
        # generation is read before loading: a write committed meanwhile bumps it,
        # so the value stored below is never served
        generation = await self.generation(module, tenant_id)
        cached = await self._lookup(key, generation)
        if cached is not None:
            return cached
        value = await load()
        await self.set(module, tenant_id, key, value, ttl, generation=generation)
        return value

    async def delete(self, key: str) -> None:
        await self._redis.delete(key)

    async def invalidate(self, module: ModuleName, tenant_id: Optional[str]) -> None:
        await self._redis.incr(self.generation_key(module, tenant_id))
        index = self.index_key(module, tenant_id)
        keys = await self._redis.smembers(index)
        await self._redis.delete(*keys, index)
        logger.debug("cache_invalidated", module=_module_name(module), tenant_id=tenant_id, keys=len(keys))
