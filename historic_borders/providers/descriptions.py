"""Entity description providers.

The map layers expose entity names; a description provider turns a name
(and optionally a year) into a short descriptive text.  Providers are
composed explicitly:

- ``DescriptionChain`` tries an ordered tuple of providers and returns
  the first non-empty description.
- ``CachedDescriptionProvider`` fronts any provider with the resilient
  cache, keyed by entity + year.  Misses are never cached.

Wikipedia adapters are included; other providers plug in by subclassing
``DescriptionProvider``.
"""

from __future__ import annotations

import abc
import logging
import re
from collections.abc import Callable, Sequence
from typing import TYPE_CHECKING, Any
from urllib.parse import quote

import httpx

from historic_borders.core.constants import DEFAULT_CACHE_TTL_SECONDS, cache_key
from historic_borders.core.exceptions import PipelineError

if TYPE_CHECKING:
    from historic_borders.core.cache import ResilientCache

logger = logging.getLogger("historic_borders.providers.descriptions")

MAX_DESCRIPTION_CHARS = 500

_DEFAULT_REST_URL = "https://en.wikipedia.org/api/rest_v1"
_DEFAULT_ACTION_URL = "https://en.wikipedia.org/w/api.php"
_USER_AGENT = "HistoricBorders/0.1 (boundary pipeline)"


class DescriptionProviderError(PipelineError):
    """A description provider failed to answer (distinct from "not found")."""

    default_stage = "describe"
    default_code = "DESCRIPTION_PROVIDER_FAILED"

    def __init__(self, provider: str, message: str, *, retryable: bool = True) -> None:
        self.provider = provider
        super().__init__(message, retryable=retryable)

    def __str__(self) -> str:
        return f"[{self.provider}] {self.message}"


class DescriptionProvider(abc.ABC):
    """Turns an entity name into descriptive text."""

    @property
    @abc.abstractmethod
    def name(self) -> str:
        """Short provider identifier (used in cache keys and logs)."""

    @abc.abstractmethod
    async def describe(self, entity: str, year: int | None = None) -> str | None:
        """Return a description of *entity*, or ``None`` when unknown.

        Raises:
            DescriptionProviderError: If the provider could not be reached.
        """


def truncate(text: str, limit: int = MAX_DESCRIPTION_CHARS) -> str:
    """Trim *text* to *limit* characters, marking the cut with ``...``."""
    text = text.strip()
    return text if len(text) <= limit else text[:limit] + "..."


# ---------------------------------------------------------------------------
# Wikipedia adapters
# ---------------------------------------------------------------------------


class _WikipediaBase(DescriptionProvider):
    def __init__(
        self,
        *,
        rest_url: str = _DEFAULT_REST_URL,
        action_url: str = _DEFAULT_ACTION_URL,
        timeout_s: float = 10.0,
        http_client_factory: Callable[[], httpx.AsyncClient] | None = None,
    ) -> None:
        self._rest_url = rest_url.rstrip("/")
        self._action_url = action_url
        self._http_client_factory = http_client_factory or (
            lambda: httpx.AsyncClient(
                timeout=timeout_s,
                follow_redirects=True,
                headers={"User-Agent": _USER_AGENT},
            )
        )

    async def _get(
        self,
        client: httpx.AsyncClient,
        url: str,
        params: dict[str, str] | None = None,
    ) -> Any | None:
        try:
            response = await client.get(url, params=params)
        except httpx.HTTPError as exc:
            raise DescriptionProviderError(self.name, f"Request failed: {exc}") from exc
        if response.status_code == httpx.codes.NOT_FOUND:
            return None
        if not response.is_success:
            msg = f"HTTP {response.status_code} from {url}"
            raise DescriptionProviderError(
                self.name, msg, retryable=response.status_code >= 500
            )
        try:
            return response.json()
        except ValueError as exc:
            raise DescriptionProviderError(self.name, f"Invalid JSON: {exc}") from exc

    async def _summary(self, client: httpx.AsyncClient, title: str) -> str | None:
        url = f"{self._rest_url}/page/summary/{quote(title.replace(' ', '_'), safe='')}"
        body = await self._get(client, url)
        if not isinstance(body, dict) or body.get("type") == "disambiguation":
            return None
        extract = str(body.get("extract") or "").strip()
        return truncate(extract) if extract else None


class WikipediaSummaryProvider(_WikipediaBase):
    """Direct page-summary lookup by exact title."""

    @property
    def name(self) -> str:
        return "wikipedia"

    async def describe(self, entity: str, year: int | None = None) -> str | None:
        title = entity.strip()
        if not title:
            return None
        async with self._http_client_factory() as client:
            return await self._summary(client, title)


class WikipediaSearchProvider(_WikipediaBase):
    """Fuzzy lookup: opensearch for the best title, then its summary."""

    @property
    def name(self) -> str:
        return "wikipedia-search"

    async def describe(self, entity: str, year: int | None = None) -> str | None:
        query = entity.strip()
        if not query:
            return None
        params = {
            "action": "opensearch",
            "search": query,
            "limit": "1",
            "namespace": "0",
            "format": "json",
        }
        async with self._http_client_factory() as client:
            body = await self._get(client, self._action_url, params)
            # opensearch returns [query, titles, descriptions, urls]
            if not isinstance(body, list) or len(body) < 2 or not body[1]:
                return None
            return await self._summary(client, str(body[1][0]))


# ---------------------------------------------------------------------------
# Composition
# ---------------------------------------------------------------------------


class DescriptionChain(DescriptionProvider):
    """Ordered providers; the first non-empty description wins.

    A provider error is logged and the next provider is tried.  Only when
    every provider failed with an error is the last error raised.
    """

    def __init__(self, providers: Sequence[DescriptionProvider]) -> None:
        if not providers:
            msg = "DescriptionChain needs at least one provider"
            raise ValueError(msg)
        self._providers = tuple(providers)

    @property
    def name(self) -> str:
        return "+".join(p.name for p in self._providers)

    @property
    def providers(self) -> tuple[DescriptionProvider, ...]:
        return self._providers

    async def describe(self, entity: str, year: int | None = None) -> str | None:
        errors: list[DescriptionProviderError] = []
        for provider in self._providers:
            try:
                content = await provider.describe(entity, year)
            except DescriptionProviderError as exc:
                logger.warning(
                    "Description provider failed, trying next | provider=%s | entity=%s | error=%s",
                    provider.name,
                    entity,
                    exc,
                )
                errors.append(exc)
                continue
            if content:
                return content
        if errors and len(errors) == len(self._providers):
            raise errors[-1]
        return None


def _slug(entity: str) -> str:
    return re.sub(r"\s+", "_", entity.strip().lower())


class CachedDescriptionProvider(DescriptionProvider):
    """Front *inner* with the resilient cache, keyed by entity + year."""

    def __init__(
        self,
        inner: DescriptionProvider,
        cache: ResilientCache,
        *,
        ttl_seconds: int = DEFAULT_CACHE_TTL_SECONDS,
    ) -> None:
        self._inner = inner
        self._cache = cache
        self._ttl_seconds = ttl_seconds

    @property
    def name(self) -> str:
        return self._inner.name

    def key_for(self, entity: str, year: int | None) -> str:
        return cache_key("desc", self._inner.name, _slug(entity), "any" if year is None else year)

    async def describe(self, entity: str, year: int | None = None) -> str | None:
        key = self.key_for(entity, year)
        cached = await self._cache.get(key)
        if isinstance(cached, str) and cached:
            logger.info("Description cache hit | key=%s", key)
            return cached

        content = await self._inner.describe(entity, year)
        if content:
            await self._cache.set(key, content, ttl_seconds=self._ttl_seconds)
        return content
