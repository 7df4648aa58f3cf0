from __future__ import annotations

from typing import Any, AsyncIterator, Optional

from src.shared.logging import get_logger
from src.shared.redis import RedisClient
from src.system_settings.domain.events import SettingsChanged

logger = get_logger(__name__)


class ChangeNotifier:
    """Fire-and-forget fan-out on `settings:<module>`; delivery is at most once."""

    def __init__(self, redis: RedisClient) -> None:
        self._redis = redis

    async def publish(self, event: SettingsChanged) -> None:
        receivers = await self._redis.publish(event.channel, event.to_message())
        logger.debug("settings_change_published", channel=event.channel, action=event.action, receivers=receivers)

    async def subscribe(self, module: str) -> AsyncIterator[Any]:
        """Stream change messages for one module (for sibling processes)."""
        async for message in self._redis.subscribe(f"settings:{module}"):
            yield message
