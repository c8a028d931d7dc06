"""Streaming fetch-and-cache proxy for very large upstream payloads.

On a cache miss a single producer task reads the upstream body chunk by
chunk.  Each chunk is forwarded to the caller immediately and appended to
an accumulation buffer; when the upstream finishes, the caller receives
end-of-stream first and the producer then writes the whole payload to the
cache with an extended timeout.  The cache write never delays the
response and its failure is only logged.

If the caller goes away mid-stream the producer keeps reading so the
cache still gets populated, but it stops forwarding chunks.

Fetch strategies are tried in order (``streamed`` then ``buffered``); the
buffered single GET is used only when a streamed read cannot be opened at
the transport level.  HTTP status errors are never retried.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import httpx

from historic_borders.core.constants import (
    DEFAULT_CACHE_TTL_SECONDS,
    DEFAULT_LARGE_OP_TIMEOUT_S,
)
from historic_borders.core.exceptions import UpstreamFetchError

if TYPE_CHECKING:
    from historic_borders.core.cache import ResilientCache

logger = logging.getLogger("historic_borders.core.streaming")

_END = object()


class _StreamUnavailable(Exception):
    """The streamed read could not be opened; try the next strategy."""


@dataclass(slots=True)
class _Relay:
    """Hand-off between the producer task and the caller's iterator."""

    queue: asyncio.Queue[object] = field(default_factory=asyncio.Queue)
    detached: bool = False

    def forward(self, item: object) -> None:
        if not self.detached:
            self.queue.put_nowait(item)


FetchStrategy = Callable[[httpx.AsyncClient, str], AsyncIterator[bytes]]


async def _streamed(client: httpx.AsyncClient, url: str) -> AsyncIterator[bytes]:
    request = client.build_request("GET", url)
    try:
        response = await client.send(request, stream=True)
    except httpx.TransportError as exc:
        raise _StreamUnavailable(str(exc)) from exc

    try:
        _raise_for_status(response, url)
        async for chunk in response.aiter_bytes():
            yield chunk
    finally:
        await response.aclose()


async def _buffered(client: httpx.AsyncClient, url: str) -> AsyncIterator[bytes]:
    try:
        response = await client.get(url)
    except httpx.TransportError as exc:
        msg = f"Upstream request failed: {exc}"
        raise UpstreamFetchError(url, msg) from exc
    _raise_for_status(response, url)
    yield response.content


DEFAULT_STRATEGIES: tuple[FetchStrategy, ...] = (_streamed, _buffered)


def _raise_for_status(response: httpx.Response, url: str) -> None:
    if response.is_success:
        return
    status = response.status_code
    msg = f"Upstream returned HTTP {status}"
    raise UpstreamFetchError(url, msg, status_code=status, retryable=status >= 500)


def _default_http_client(timeout: float) -> httpx.AsyncClient:
    return httpx.AsyncClient(timeout=timeout, follow_redirects=True)


class StreamingCacheProxy:
    """Serve a large upstream file through the cache without full buffering.

    Args:
        cache: The ``ResilientCache`` used for lookups and population.
        http_client_factory: Zero-argument callable returning an
            ``httpx.AsyncClient``; the proxy closes it after each fetch.
        upstream_timeout_s: Timeout for the default HTTP client.
        strategies: Ordered fetch strategies (first that opens wins).
    """

    def __init__(
        self,
        cache: ResilientCache,
        *,
        http_client_factory: Callable[[], httpx.AsyncClient] | None = None,
        upstream_timeout_s: float = 60.0,
        strategies: tuple[FetchStrategy, ...] = DEFAULT_STRATEGIES,
    ) -> None:
        self._cache = cache
        self._http_client_factory = http_client_factory or (
            lambda: _default_http_client(upstream_timeout_s)
        )
        self._strategies = strategies
        self._pending: set[asyncio.Task[None]] = set()

    async def stream(
        self,
        key: str,
        url: str,
        *,
        ttl_seconds: int = DEFAULT_CACHE_TTL_SECONDS,
        write_timeout: float = DEFAULT_LARGE_OP_TIMEOUT_S,
        read_timeout: float = DEFAULT_LARGE_OP_TIMEOUT_S,
    ) -> AsyncIterator[bytes]:
        """Yield the payload for *url*, from cache when possible.

        Raises:
            UpstreamFetchError: If the upstream cannot be read.  Raised
                from the iterator, before or during streaming.
        """
        cached = await self._cache.get_bytes(key, timeout=read_timeout)
        if cached is not None:
            logger.info("Streaming proxy cache hit | key=%s | size=%d bytes", key, len(cached))
            yield cached
            return

        logger.info("Streaming proxy cache miss | key=%s | url=%s", key, url)
        relay = _Relay()
        task = asyncio.create_task(self._produce(key, url, relay, ttl_seconds, write_timeout))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

        try:
            while True:
                item = await relay.queue.get()
                if item is _END:
                    return
                if isinstance(item, BaseException):
                    raise item
                yield item  # type: ignore[misc]
        finally:
            relay.detached = True

    async def fetch(
        self,
        key: str,
        url: str,
        *,
        ttl_seconds: int = DEFAULT_CACHE_TTL_SECONDS,
        write_timeout: float = DEFAULT_LARGE_OP_TIMEOUT_S,
        read_timeout: float = DEFAULT_LARGE_OP_TIMEOUT_S,
    ) -> bytes:
        """Collect ``stream()`` into a single ``bytes`` payload."""
        buffer = bytearray()
        async for chunk in self.stream(
            key,
            url,
            ttl_seconds=ttl_seconds,
            write_timeout=write_timeout,
            read_timeout=read_timeout,
        ):
            buffer.extend(chunk)
        return bytes(buffer)

    async def drain(self) -> None:
        """Wait for outstanding background cache writes to finish."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def _produce(
        self,
        key: str,
        url: str,
        relay: _Relay,
        ttl_seconds: int,
        write_timeout: float,
    ) -> None:
        buffer = bytearray()
        try:
            async with self._http_client_factory() as client:
                await self._read_upstream(client, url, buffer, relay)
        except UpstreamFetchError as exc:
            logger.warning("Streaming proxy upstream failed | url=%s | error=%s", url, exc)
            relay.forward(exc)
            return
        except BaseException as exc:
            # The caller must always see a terminal item.
            relay.forward(UpstreamFetchError(url, f"Upstream read aborted: {exc!r}"))
            raise

        relay.forward(_END)
        if relay.detached:
            logger.info("Client disconnected before end of stream | key=%s", key)

        stored = await self._cache.set_bytes(
            key, bytes(buffer), ttl_seconds=ttl_seconds, timeout=write_timeout
        )
        if stored:
            logger.info("Streaming proxy cached payload | key=%s | size=%d bytes", key, len(buffer))
        elif self._cache.enabled:
            logger.warning("Streaming proxy cache write failed | key=%s", key)

    async def _read_upstream(
        self,
        client: httpx.AsyncClient,
        url: str,
        buffer: bytearray,
        relay: _Relay,
    ) -> None:
        last_error: Exception | None = None
        for strategy in self._strategies:
            try:
                async for chunk in strategy(client, url):
                    buffer.extend(chunk)
                    relay.forward(chunk)
            except _StreamUnavailable as exc:
                logger.info(
                    "Fetch strategy unavailable, trying next | strategy=%s | error=%s",
                    strategy.__name__,
                    exc,
                )
                last_error = exc
                continue
            except httpx.HTTPError as exc:
                msg = f"Upstream read failed: {exc}"
                raise UpstreamFetchError(url, msg) from exc
            return

        msg = f"No fetch strategy could read the upstream: {last_error}"
        raise UpstreamFetchError(url, msg)
