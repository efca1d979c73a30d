"""Fixtures shared by unit and integration tests."""

import math
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional, Tuple

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from obanet.core.auth.entities import DiasporaProfile, User
from obanet.infrastructure.cache.redis_client import RedisClient
from obanet.settings import Settings


class FrozenClock:
    """Clock that only moves when told to."""

    def __init__(self, start: Optional[datetime] = None) -> None:
        self.now = start or datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class InMemoryRedis:
    """
    Async stand-in for ``redis.asyncio.Redis`` with decoded responses.

    Expiry follows the injected clock. Setting ``fail`` makes every
    command raise a connection error, like an unreachable server.
    """

    def __init__(self, clock: FrozenClock) -> None:
        self._clock = clock
        self._data: Dict[str, Tuple[str, Optional[datetime]]] = {}
        self.fail = False
        self.closed = False

    def _check(self) -> None:
        if self.fail:
            raise RedisConnectionError("Connection refused")

    def _live(self, key: str) -> Optional[Tuple[str, Optional[datetime]]]:
        entry = self._data.get(key)
        if entry is None:
            return None
        if entry[1] is not None and entry[1] <= self._clock():
            del self._data[key]
            return None
        return entry

    def keys_matching(self, prefix: str) -> list:
        return [key for key in list(self._data) if key.startswith(prefix) and self._live(key)]

    async def get(self, key: str) -> Optional[str]:
        self._check()
        entry = self._live(key)
        return entry[0] if entry else None

    async def set(self, key: str, value: Any) -> bool:
        self._check()
        self._data[key] = (str(value), None)
        return True

    async def setex(self, key: str, ttl: int, value: Any) -> bool:
        self._check()
        self._data[key] = (str(value), self._clock() + timedelta(seconds=ttl))
        return True

    async def delete(self, *keys: str) -> int:
        self._check()
        removed = 0
        for key in keys:
            if self._live(key):
                del self._data[key]
                removed += 1
        return removed

    async def exists(self, *keys: str) -> int:
        self._check()
        return sum(1 for key in keys if self._live(key))

    async def expire(self, key: str, ttl: int) -> bool:
        self._check()
        entry = self._live(key)
        if entry is None:
            return False
        self._data[key] = (entry[0], self._clock() + timedelta(seconds=ttl))
        return True

    async def incrby(self, key: str, amount: int = 1) -> int:
        self._check()
        entry = self._live(key)
        value = int(entry[0]) + amount if entry else amount
        self._data[key] = (str(value), entry[1] if entry else None)
        return value

    async def ttl(self, key: str) -> int:
        self._check()
        entry = self._live(key)
        if entry is None:
            return -2
        if entry[1] is None:
            return -1
        return math.ceil((entry[1] - self._clock()).total_seconds())

    async def ping(self) -> bool:
        self._check()
        return True

    async def info(self) -> Dict[str, Any]:
        self._check()
        return {"used_memory_human": "1.00M", "connected_clients": 1}

    async def aclose(self) -> None:
        self.closed = True


@pytest.fixture
def frozen_clock():
    """Controllable clock."""
    return FrozenClock()


@pytest.fixture
def fake_redis(frozen_clock):
    """In-memory Redis following the frozen clock."""
    return InMemoryRedis(frozen_clock)


@pytest.fixture
def redis_client(fake_redis):
    """RedisClient wrapping the in-memory Redis."""
    return RedisClient("redis://unused:6379/0", client=fake_redis)


@pytest.fixture
def test_settings(tmp_path):
    """Settings with fast hashing and isolated storage."""
    return Settings(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'obanet_test.db'}",
        jwt_secret_key="test-access-secret",
        jwt_refresh_secret_key="test-refresh-secret",
        access_token_expire_minutes=15,
        refresh_token_expire_days=7,
        bcrypt_rounds=4,
        log_file=str(tmp_path / "logs" / "obanet.log"),
        log_format="text",
        log_level="WARNING",
    )


@pytest.fixture
def diaspora_profile():
    """Diaspora profile of a Berlin-based user."""
    return DiasporaProfile(
        current_country="Germany",
        current_city="Berlin",
        origin_city="Trabzon",
        languages=[{"language": "tr", "level": "native"}],
    )


@pytest.fixture
def make_user(diaspora_profile, frozen_clock):
    """Factory for user entities."""

    def _make_user(**overrides) -> User:
        values = dict(
            id="3f1c7a52-8c1e-4d55-9b0e-2f5a1c9d7e10",
            first_name="Ayşe",
            last_name="Yılmaz",
            username="ayse_berlin",
            email="ayse@example.com",
            hashed_password="$2b$04$placeholderplaceholderplaceholderplaceholde",
            diaspora_profile=diaspora_profile,
            created_at=frozen_clock(),
            updated_at=frozen_clock(),
        )
        values.update(overrides)
        return User(**values)

    return _make_user
