"""Resilient key-value cache over a remote Redis store.

Caching is an optimization layer only: every failure mode (store
unconfigured, unreachable, slow, resetting connections, bad payloads)
degrades to a cache miss.  No method of ``ResilientCache`` raises.

Connection lifecycle:
    - The Redis client is created lazily on first use (or by an explicit
      ``connect()``), never at import time.
    - Concurrent callers arriving while a connect is in flight share one
      connect task and wait at most ``connect_wait_s`` for it.
    - Reconnection inside a connection instance is handled by redis-py's
      ``Retry`` with ``ExponentialBackoff`` and a hard retry cap.  Once the
      cap is exceeded the command fails, the handle is discarded, and a
      fresh instance is created on the next call.
    - Every operation races a per-call timeout (default 3 s; callers pass
      a longer one for large payloads).
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, TypeVar

from redis.asyncio import Redis
from redis.asyncio.retry import Retry
from redis.backoff import ExponentialBackoff
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import RedisError
from redis.exceptions import TimeoutError as RedisTimeoutError

from historic_borders.core.constants import (
    DEFAULT_CONNECT_WAIT_S,
    DEFAULT_MAX_RETRIES,
    DEFAULT_OP_TIMEOUT_S,
)

if TYPE_CHECKING:
    ClientFactory = Callable[["CacheConfig"], Redis]

logger = logging.getLogger("historic_borders.core.cache")

T = TypeVar("T")

_CLOSE_TIMEOUT_S = 1.0

# Errors after which the connection handle is not trusted any more.
_RESET_ERRORS: tuple[type[BaseException], ...] = (
    RedisConnectionError,
    RedisTimeoutError,
    OSError,
)


@dataclass(frozen=True, slots=True)
class CacheConfig:
    """Connection and timeout settings for ``ResilientCache``.

    Attributes:
        url: Redis connection URL.  Empty disables the cache entirely.
        op_timeout_s: Default per-operation timeout in seconds.
        connect_wait_s: Maximum wait on another caller's in-flight connect.
        max_retries: Retry cap for reconnect attempts within one client.
        backoff_base_s: Base delay of the exponential reconnect backoff.
        backoff_cap_s: Maximum delay between reconnect attempts.
    """

    url: str = ""
    op_timeout_s: float = DEFAULT_OP_TIMEOUT_S
    connect_wait_s: float = DEFAULT_CONNECT_WAIT_S
    max_retries: int = DEFAULT_MAX_RETRIES
    backoff_base_s: float = 0.1
    backoff_cap_s: float = 2.0

    @property
    def enabled(self) -> bool:
        return bool(self.url)


def build_redis_client(config: CacheConfig) -> Redis:
    """Create (but do not connect) a Redis client with bounded retry."""
    retry = Retry(
        ExponentialBackoff(cap=config.backoff_cap_s, base=config.backoff_base_s),
        config.max_retries,
    )
    return Redis.from_url(
        config.url,
        retry=retry,
        retry_on_error=[RedisConnectionError, RedisTimeoutError],
        socket_connect_timeout=config.op_timeout_s,
        socket_timeout=config.op_timeout_s,
    )


class ResilientCache:
    """Get/set/delete wrapper that treats the store as strictly optional.

    Values passed to ``set`` are stored as compact JSON; ``set_bytes`` /
    ``get_bytes`` store raw payloads (used by the streaming proxy).

    Example usage::

        cache = ResilientCache(CacheConfig(url="redis://localhost:6379/0"))
        if (data := await cache.get("key")) is None:
            data = compute()
            await cache.set("key", data, ttl_seconds=3600)
        await cache.close()
    """

    def __init__(
        self,
        config: CacheConfig,
        *,
        client_factory: ClientFactory = build_redis_client,
    ) -> None:
        self._config = config
        self._client_factory = client_factory
        self._client: Redis | None = None
        self._connecting: asyncio.Task[None] | None = None

    @property
    def config(self) -> CacheConfig:
        return self._config

    @property
    def enabled(self) -> bool:
        """Whether a store URL is configured."""
        return self._config.enabled

    @property
    def connected(self) -> bool:
        """Whether a live client handle is currently held."""
        return self._client is not None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def connect(self) -> bool:
        """Eagerly connect.  Returns ``True`` if a client is available."""
        return await self._get_client() is not None

    async def close(self) -> None:
        """Cancel any in-flight connect and close the client handle."""
        task, self._connecting = self._connecting, None
        if task is not None and not task.done():
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
        client, self._client = self._client, None
        if client is not None:
            await _dispose(client)
            logger.info("Cache connection closed")

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def get(self, key: str, *, timeout: float | None = None) -> Any | None:
        """Return the JSON-decoded value for *key*, or ``None`` on any miss."""
        raw = await self.get_bytes(key, timeout=timeout)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except ValueError as exc:
            logger.warning("Cache value is not valid JSON | key=%s | error=%s", key, exc)
            return None

    async def get_bytes(self, key: str, *, timeout: float | None = None) -> bytes | None:
        """Return the raw stored bytes for *key*, or ``None`` on any miss."""
        return await self._run("get", key, lambda client: client.get(key), timeout, None)

    async def set(
        self,
        key: str,
        value: Any,
        ttl_seconds: int | None = None,
        timeout: float | None = None,
    ) -> bool:
        """JSON-encode and store *value*.  Returns ``False`` on any failure."""
        try:
            payload = json.dumps(value, separators=(",", ":")).encode("utf-8")
        except (TypeError, ValueError) as exc:
            logger.warning("Cache value is not JSON serialisable | key=%s | error=%s", key, exc)
            return False
        return await self.set_bytes(key, payload, ttl_seconds=ttl_seconds, timeout=timeout)

    async def set_bytes(
        self,
        key: str,
        data: bytes,
        ttl_seconds: int | None = None,
        timeout: float | None = None,
    ) -> bool:
        """Store raw *data* under *key*.  Returns ``False`` on any failure."""
        ex = ttl_seconds if ttl_seconds and ttl_seconds > 0 else None

        async def _set(client: Redis) -> bool:
            await client.set(key, data, ex=ex)
            return True

        return await self._run("set", key, _set, timeout, False)

    async def delete(self, key: str, *, timeout: float | None = None) -> bool:
        """Delete *key*.  ``True`` when the command succeeded (present or not)."""

        async def _delete(client: Redis) -> bool:
            await client.delete(key)
            return True

        return await self._run("delete", key, _delete, timeout, False)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _run(
        self,
        op: str,
        key: str,
        command: Callable[[Redis], Awaitable[T]],
        timeout: float | None,
        default: T,
    ) -> T:
        if not self._config.enabled:
            return default

        async def _execute() -> T:
            client = await self._get_client()
            if client is None:
                return default
            return await command(client)

        limit = timeout if timeout is not None else self._config.op_timeout_s
        try:
            return await asyncio.wait_for(_execute(), limit)
        except TimeoutError:
            logger.warning("Cache %s timed out | key=%s | timeout=%.1fs", op, key, limit)
        except _RESET_ERRORS as exc:
            logger.warning(
                "Cache %s failed, discarding connection | key=%s | error=%s", op, key, exc
            )
            await self._discard()
        except RedisError as exc:
            logger.warning("Cache %s failed | key=%s | error=%s", op, key, exc)
        return default

    async def _get_client(self) -> Redis | None:
        if self._client is not None:
            return self._client
        if not self._config.enabled:
            return None

        if self._connecting is None or self._connecting.done():
            self._connecting = asyncio.create_task(self._open())

        try:
            await asyncio.wait_for(asyncio.shield(self._connecting), self._config.connect_wait_s)
        except TimeoutError:
            logger.warning(
                "Cache connect still in flight after %.1fs, continuing without it",
                self._config.connect_wait_s,
            )
        return self._client

    async def _open(self) -> None:
        try:
            client = self._client_factory(self._config)
        except Exception as exc:
            logger.warning("Cache client could not be created | error=%s", exc)
            return

        try:
            await client.ping()
        except Exception as exc:
            logger.warning(
                "Cache connect failed after %d retries | error=%s",
                self._config.max_retries,
                exc,
            )
            await _dispose(client)
            return

        self._client = client
        logger.info("Cache connected")

    async def _discard(self) -> None:
        client, self._client = self._client, None
        if client is not None:
            await _dispose(client)


async def _dispose(client: Redis) -> None:
    try:
        await asyncio.wait_for(client.aclose(), _CLOSE_TIMEOUT_S)
    except (TimeoutError, RedisError, OSError) as exc:
        logger.debug("Ignoring error while closing cache client | error=%s", exc)
