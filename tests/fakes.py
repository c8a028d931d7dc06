"""In-memory stand-ins for the Redis client used by the cache tests."""

from __future__ import annotations

import asyncio


class FakeRedis:
    """In-memory stand-in for ``redis.asyncio.Redis``.

    Records every command so tests can assert on TTLs and call counts.
    """

    def __init__(self) -> None:
        self.store: dict[str, bytes] = {}
        self.ttls: dict[str, int | None] = {}
        self.closed = False
        self.ping_calls = 0

    async def ping(self) -> bool:
        self.ping_calls += 1
        return True

    async def get(self, key: str) -> bytes | None:
        return self.store.get(key)

    async def set(self, key: str, value: bytes, ex: int | None = None) -> bool:
        self.store[key] = value
        self.ttls[key] = ex
        return True

    async def delete(self, key: str) -> int:
        return 1 if self.store.pop(key, None) is not None else 0

    async def aclose(self) -> None:
        self.closed = True


class HangingRedis(FakeRedis):
    """A store whose data commands never answer."""

    async def get(self, key: str) -> bytes | None:
        await asyncio.sleep(3600)
        return None

    async def set(self, key: str, value: bytes, ex: int | None = None) -> bool:
        await asyncio.sleep(3600)
        return True

