"""Tests for the streaming fetch-and-cache proxy.

Covers:
- Bytes delivered to the caller equal the bytes later read from cache
- Cache hits never touch the upstream
- Upstream HTTP errors surface as UpstreamFetchError and are not cached
- Fallback to a buffered GET only when the stream cannot be opened
- Caller disconnects and cache write failures do not break population
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Callable

import httpx
import pytest

from historic_borders.core.cache import CacheConfig, ResilientCache
from historic_borders.core.exceptions import UpstreamFetchError
from historic_borders.core.streaming import StreamingCacheProxy
from tests.fakes import FakeRedis, HangingRedis

URL = "https://files.example.org/districts.geojson"
KEY = "historic-borders:pa-school-districts:2025_10:raw"
CHUNKS = [b'{"type":"FeatureCollection",', b'"features":[', b"]}"]


async def _chunked(chunks: list[bytes]) -> AsyncIterator[bytes]:
    for chunk in chunks:
        yield chunk


class _Upstream:
    """Counts requests and answers them with *respond*."""

    def __init__(self, respond: Callable[[httpx.Request, int], httpx.Response]) -> None:
        self.respond = respond
        self.calls = 0

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.calls += 1
        return self.respond(request, self.calls)

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))


def _ok(chunks: list[bytes] = CHUNKS) -> _Upstream:
    return _Upstream(lambda _req, _n: httpx.Response(200, content=_chunked(chunks)))


def _proxy(cache: ResilientCache, upstream: _Upstream) -> StreamingCacheProxy:
    return StreamingCacheProxy(cache, http_client_factory=upstream.client)


async def _collect(iterator: AsyncIterator[bytes]) -> list[bytes]:
    return [chunk async for chunk in iterator]


class TestCacheMiss:
    """On a miss, chunks are forwarded and then cached."""

    @pytest.mark.asyncio()
    async def test_chunks_forwarded_in_order(self, fake_cache: ResilientCache) -> None:
        proxy = _proxy(fake_cache, _ok())
        assert await _collect(proxy.stream(KEY, URL)) == CHUNKS

    @pytest.mark.asyncio()
    async def test_delivered_bytes_equal_cached_bytes(
        self, fake_cache: ResilientCache, fake_redis: FakeRedis
    ) -> None:
        proxy = _proxy(fake_cache, _ok())

        delivered = b"".join(await _collect(proxy.stream(KEY, URL, ttl_seconds=120)))
        await proxy.drain()

        assert fake_redis.store[KEY] == delivered
        assert fake_redis.ttls[KEY] == 120

    @pytest.mark.asyncio()
    async def test_fetch_collects_payload(self, fake_cache: ResilientCache) -> None:
        proxy = _proxy(fake_cache, _ok())
        assert await proxy.fetch(KEY, URL) == b"".join(CHUNKS)

    @pytest.mark.asyncio()
    async def test_works_without_cache(self, disabled_cache: ResilientCache) -> None:
        upstream = _ok()
        proxy = _proxy(disabled_cache, upstream)

        assert await proxy.fetch(KEY, URL) == b"".join(CHUNKS)
        assert await proxy.fetch(KEY, URL) == b"".join(CHUNKS)
        await proxy.drain()
        assert upstream.calls == 2


class TestCacheHit:
    @pytest.mark.asyncio()
    async def test_hit_skips_upstream(self, fake_cache: ResilientCache, fake_redis: FakeRedis) -> None:
        upstream = _ok()
        proxy = _proxy(fake_cache, upstream)
        await fake_cache.set_bytes(KEY, b"cached-payload")

        assert await proxy.fetch(KEY, URL) == b"cached-payload"
        assert upstream.calls == 0

    @pytest.mark.asyncio()
    async def test_second_request_is_served_from_cache(self, fake_cache: ResilientCache) -> None:
        upstream = _ok()
        proxy = _proxy(fake_cache, upstream)

        first = await proxy.fetch(KEY, URL)
        await proxy.drain()
        second = await proxy.fetch(KEY, URL)

        assert first == second
        assert upstream.calls == 1


class TestUpstreamFailures:
    """Upstream failures are hard errors and never cached."""

    @pytest.mark.asyncio()
    async def test_not_found(self, fake_cache: ResilientCache, fake_redis: FakeRedis) -> None:
        upstream = _Upstream(lambda _req, _n: httpx.Response(404, text="Not Found"))
        proxy = _proxy(fake_cache, upstream)

        with pytest.raises(UpstreamFetchError) as exc_info:
            await proxy.fetch(KEY, URL)
        await proxy.drain()

        assert exc_info.value.status_code == 404
        assert exc_info.value.retryable is False
        assert KEY not in fake_redis.store
        assert upstream.calls == 1

    @pytest.mark.asyncio()
    async def test_server_error_is_retryable(self, fake_cache: ResilientCache) -> None:
        proxy = _proxy(fake_cache, _Upstream(lambda _req, _n: httpx.Response(503)))
        with pytest.raises(UpstreamFetchError) as exc_info:
            await proxy.fetch(KEY, URL)
        assert exc_info.value.retryable is True

    @pytest.mark.asyncio()
    async def test_mid_stream_failure(self, fake_cache: ResilientCache, fake_redis: FakeRedis) -> None:
        async def _broken() -> AsyncIterator[bytes]:
            yield CHUNKS[0]
            msg = "connection dropped"
            raise httpx.ReadError(msg)

        proxy = _proxy(fake_cache, _Upstream(lambda _req, _n: httpx.Response(200, content=_broken())))
        received: list[bytes] = []

        with pytest.raises(UpstreamFetchError):
            async for chunk in proxy.stream(KEY, URL):
                received.append(chunk)
        await proxy.drain()

        assert received == [CHUNKS[0]]
        assert KEY not in fake_redis.store

    @pytest.mark.asyncio()
    async def test_falls_back_to_buffered_fetch(self, fake_cache: ResilientCache) -> None:
        def _respond(request: httpx.Request, call: int) -> httpx.Response:
            if call == 1:
                msg = "stream refused"
                raise httpx.ConnectError(msg, request=request)
            return httpx.Response(200, content=b"".join(CHUNKS))

        upstream = _Upstream(_respond)
        proxy = _proxy(fake_cache, upstream)

        assert await proxy.fetch(KEY, URL) == b"".join(CHUNKS)
        assert upstream.calls == 2

    @pytest.mark.asyncio()
    async def test_unreachable_upstream(self, fake_cache: ResilientCache) -> None:
        def _respond(request: httpx.Request, _call: int) -> httpx.Response:
            msg = "name resolution failed"
            raise httpx.ConnectError(msg, request=request)

        proxy = _proxy(fake_cache, _Upstream(_respond))
        with pytest.raises(UpstreamFetchError) as exc_info:
            await proxy.fetch(KEY, URL)
        assert exc_info.value.status_code is None


class TestBackgroundPopulation:
    """Cache population outlives the caller and never fails the response."""

    @pytest.mark.asyncio()
    async def test_caller_disconnect_still_populates(
        self, fake_cache: ResilientCache, fake_redis: FakeRedis
    ) -> None:
        proxy = _proxy(fake_cache, _ok())

        stream = proxy.stream(KEY, URL)
        assert await anext(stream) == CHUNKS[0]
        await stream.aclose()
        await proxy.drain()

        assert fake_redis.store[KEY] == b"".join(CHUNKS)

    @pytest.mark.asyncio()
    async def test_cache_write_failure_is_not_surfaced(self) -> None:
        cache = ResilientCache(
            CacheConfig(url="redis://cache.test:6379/0", op_timeout_s=0.05, connect_wait_s=0.2),
            client_factory=lambda _cfg: HangingRedis(),
        )
        proxy = _proxy(cache, _ok())

        assert await proxy.fetch(KEY, URL, write_timeout=0.05) == b"".join(CHUNKS)
        await proxy.drain()


class _SlowGetRedis(FakeRedis):
    async def get(self, key: str) -> bytes | None:
        await asyncio.sleep(0.2)
        return await super().get(key)


class TestLargeCachedPayload:
    """Reads of large cached payloads use the caller's longer timeout."""

    @pytest.mark.asyncio()
    async def test_slow_read_is_still_a_hit(self) -> None:
        store = _SlowGetRedis()
        store.store[KEY] = b"cached-payload"
        cache = ResilientCache(
            CacheConfig(url="redis://cache.test:6379/0", op_timeout_s=0.1, connect_wait_s=0.5),
            client_factory=lambda _cfg: store,
        )
        upstream = _ok()
        proxy = _proxy(cache, upstream)

        assert await proxy.fetch(KEY, URL, read_timeout=5.0) == b"cached-payload"
        assert upstream.calls == 0
