import fnmatch
from typing import Any, Dict, List, Optional, Set

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient
from redis.exceptions import ConnectionError as RedisConnectionError
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

from src.shared.config import get_settings
from src.shared.database import DatabaseSessionFactory
from src.shared.redis import RedisClient
from src.shared.security import create_access_token
from src.system_settings.application.context import ActorContext
from src.system_settings.container import Providers, build_container
from src.system_settings.domain.modules import PERMISSIONS
from src.system_settings.domain.repositories import HistoryFilter
from src.system_settings.infrastructure.providers.geoip import GeoLocation
from src.system_settings.infrastructure.providers.ntp import NtpReading, NtpUnavailable
from src.system_settings.infrastructure.providers.translation import StaticTranslationProvider

MEMORY_DB_URL = "sqlite+aiosqlite://"

ACTOR = ActorContext(actor_id="admin-1", ip_address="10.0.0.1")


# ---------------------------------------------------------------------------
# Redis doubles (replace the redis.asyncio client inside RedisClient)
# ---------------------------------------------------------------------------

class FakeRedis:
    """In-process stand-in for the subset of redis.asyncio.Redis the client uses."""

    def __init__(self) -> None:
        self.data: Dict[str, Any] = {}
        self.expiry: Dict[str, int] = {}
        self.published: List[tuple] = []

    async def ping(self) -> bool:
        return True

    async def get(self, key: str) -> Optional[str]:
        value = self.data.get(key)
        return value if isinstance(value, str) else None

    async def set(self, key: str, value: str, ex: Optional[int] = None) -> bool:
        self.data[key] = value
        if ex:
            self.expiry[key] = ex
        return True

    async def delete(self, *keys: str) -> int:
        removed = 0
        for key in keys:
            if self.data.pop(key, None) is not None:
                removed += 1
            self.expiry.pop(key, None)
        return removed

    async def sadd(self, key: str, *members: str) -> int:
        current: Set[str] = self.data.setdefault(key, set())
        before = len(current)
        current.update(members)
        return len(current) - before

    async def smembers(self, key: str) -> Set[str]:
        return set(self.data.get(key, set()))

    async def incr(self, key: str) -> int:
        self.data[key] = str(int(self.data.get(key, "0")) + 1)
        return int(self.data[key])

    async def expire(self, key: str, seconds: int) -> bool:
        self.expiry[key] = seconds
        return True

    async def ttl(self, key: str) -> int:
        if key not in self.data:
            return -2
        return self.expiry.get(key, -1)

    async def publish(self, channel: str, message: str) -> int:
        self.published.append((channel, message))
        return 1

    async def aclose(self) -> None:
        return None

    def pubsub(self) -> "FakePubSub":
        return FakePubSub(self)

    def keys_matching(self, pattern: str) -> List[str]:
        return [k for k in self.data if fnmatch.fnmatch(k, pattern)]


class FakePubSub:
    """Replays whatever was already published on the subscribed channels, then ends."""

    def __init__(self, redis: FakeRedis) -> None:
        self._redis = redis
        self._channels: Set[str] = set()
        self.closed = False

    async def subscribe(self, *channels: str) -> None:
        self._channels.update(channels)

    async def listen(self):
        for channel in self._channels:
            yield {"type": "subscribe", "channel": channel, "data": 1}
        for channel, message in list(self._redis.published):
            if channel in self._channels:
                yield {"type": "message", "channel": channel, "data": message}

    async def aclose(self) -> None:
        self.closed = True


class FailingRedis:
    """Every command fails the way an unreachable server does."""

    def __getattr__(self, name: str):
        async def _fail(*args, **kwargs):
            raise RedisConnectionError(f"{name}: connection refused")
        return _fail


# ---------------------------------------------------------------------------
# External provider doubles
# ---------------------------------------------------------------------------

class FakeEmailSender:
    def __init__(self) -> None:
        self.sent: List[Dict[str, Any]] = []

    async def send(self, *, to: str, subject: str, body: str, host: str, port: int) -> None:
        self.sent.append({"to": to, "subject": subject, "body": body, "host": host, "port": port})


class FakeSmsSender:
    def __init__(self) -> None:
        self.sent: List[Dict[str, Any]] = []

    async def send(self, *, to: str, body: str) -> None:
        self.sent.append({"to": to, "body": body})


class FakeNtp:
    def __init__(self, timestamp: float = 1_700_000_000.0) -> None:
        self.down: Set[str] = set()
        self.asked: List[str] = []
        self.timestamp = timestamp

    async def query(self, server: str) -> NtpReading:
        self.asked.append(server)
        if server in self.down:
            raise NtpUnavailable(f"{server}: timed out")
        return NtpReading(server=server, timestamp=self.timestamp, offset=0.01)


class FakeGeoIp:
    def __init__(self) -> None:
        self.known: Dict[str, GeoLocation] = {}

    async def lookup(self, ip: str, database: Optional[str] = None) -> Optional[GeoLocation]:
        return self.known.get(ip)


def otp_from(body: str) -> str:
    return "".join(ch for ch in body.split("OTP is ", 1)[1] if ch.isdigit())[:6]


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

def memory_db() -> DatabaseSessionFactory:
    engine = create_async_engine(MEMORY_DB_URL, poolclass=StaticPool, connect_args={"check_same_thread": False})
    return DatabaseSessionFactory(MEMORY_DB_URL, engine=engine)


@pytest.fixture
def providers():
    return Providers(
        email=FakeEmailSender(),
        sms=FakeSmsSender(),
        ntp=FakeNtp(),
        geoip=FakeGeoIp(),
        translator=StaticTranslationProvider(),
    )


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest_asyncio.fixture
async def db():
    factory = memory_db()
    await factory.create_all()
    yield factory
    await factory.dispose()


@pytest.fixture
def redis_client(fake_redis):
    return RedisClient("redis://fake", namespace="test", timeout=0.5, client=fake_redis)


@pytest.fixture
def container(db, redis_client, providers):
    return build_container(get_settings(), db=db, redis=redis_client, providers=providers)


@pytest.fixture
def degraded_container(db, providers):
    redis = RedisClient("redis://down", namespace="test", timeout=0.5, client=FailingRedis())
    return build_container(get_settings(), db=db, redis=redis, providers=providers)


@pytest.fixture
def client(fake_redis, providers):
    redis = RedisClient("redis://fake", namespace="test", timeout=0.5, client=fake_redis)
    container = build_container(get_settings(), db=memory_db(), redis=redis, providers=providers)

    from src.main import create_app

    with TestClient(create_app(container)) as c:
        yield c


def bearer(tenant_id: Optional[str] = "tenant-api", permissions=PERMISSIONS, sub: str = "user-1") -> Dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(sub, tenant_id, permissions)}"}


async def history(container, tenant_id, **flt) -> List[Dict[str, Any]]:
    """Newest-first history items for a tenant, through the audit service."""
    page = await container.audit.get_audit_log(tenant_id, HistoryFilter(**flt), limit=100)
    return page["items"]
