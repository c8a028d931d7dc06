"""GitHub-hosted dataset source.

Boundary files live at ``<owner>/<dataset>/master/geojson/world_<year>.geojson``
and the gazetteer at ``.../geojson/places.geojson`` on the raw content
host.  Available years are discovered from the repository contents API.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from typing import Any

import httpx

from historic_borders.core.exceptions import ContractError, UpstreamFetchError
from historic_borders.models.payloads import parse_feature_collection
from historic_borders.providers.base import DatasetSource
from historic_borders.utils.years import year_from_filename

logger = logging.getLogger("historic_borders.providers.github")

_DEFAULT_RAW_URL = "https://raw.githubusercontent.com"
_DEFAULT_API_URL = "https://api.github.com"
_BRANCH = "master"
_GEOJSON_DIR = "geojson"
_PLACES_FILE = "places.geojson"


class GitHubDatasetSource(DatasetSource):
    """Fetch boundary datasets from a GitHub repository.

    Args:
        raw_base_url: Raw content host.
        api_base_url: REST API host used for directory listings.
        token: Optional API token (raises the listing rate limit).
        timeout_s: Per-request timeout.
        http_client_factory: Zero-argument callable returning an
            ``httpx.AsyncClient``; one client is opened per call.
    """

    def __init__(
        self,
        *,
        raw_base_url: str = _DEFAULT_RAW_URL,
        api_base_url: str = _DEFAULT_API_URL,
        token: str = "",
        timeout_s: float = 60.0,
        http_client_factory: Callable[[], httpx.AsyncClient] | None = None,
    ) -> None:
        self._raw_base_url = raw_base_url.rstrip("/")
        self._api_base_url = api_base_url.rstrip("/")
        self._token = token
        self._http_client_factory = http_client_factory or (
            lambda: httpx.AsyncClient(timeout=timeout_s, follow_redirects=True)
        )

    @property
    def name(self) -> str:
        return "github"

    # ------------------------------------------------------------------
    # DatasetSource
    # ------------------------------------------------------------------

    def boundaries_url(self, owner: str, dataset: str, year_token: str) -> str:
        return f"{self._raw_base_url}/{owner}/{dataset}/{_BRANCH}/{_GEOJSON_DIR}/world_{year_token}.geojson"

    def places_url(self, owner: str, dataset: str) -> str:
        return f"{self._raw_base_url}/{owner}/{dataset}/{_BRANCH}/{_GEOJSON_DIR}/{_PLACES_FILE}"

    async def fetch_boundaries(self, owner: str, dataset: str, year_token: str) -> dict[str, Any]:
        url = self.boundaries_url(owner, dataset, year_token)
        return parse_feature_collection(await self._get_json(url), source=url)

    async def fetch_places(self, owner: str, dataset: str) -> dict[str, Any]:
        url = self.places_url(owner, dataset)
        return parse_feature_collection(await self._get_json(url), source=url)

    async def list_years(self, owner: str, dataset: str) -> list[int]:
        url = f"{self._api_base_url}/repos/{owner}/{dataset}/contents/{_GEOJSON_DIR}"
        headers = {"Accept": "application/vnd.github+json"}
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"

        listing = await self._get_json(url, headers=headers)
        if not isinstance(listing, list):
            msg = f"Directory listing from {url} is not a list: {type(listing).__name__}"
            raise ContractError(msg, stage="list_years", code="INVALID_LISTING")

        years = {
            year
            for entry in listing
            if isinstance(entry, dict) and entry.get("type") == "file"
            if (year := year_from_filename(str(entry.get("name", "")))) is not None
        }
        logger.info("Listed years | owner=%s | dataset=%s | years=%d", owner, dataset, len(years))
        return sorted(years)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _get_json(self, url: str, *, headers: dict[str, str] | None = None) -> Any:
        try:
            async with self._http_client_factory() as client:
                response = await client.get(url, headers=headers)
        except httpx.HTTPError as exc:
            msg = f"Request failed: {exc}"
            raise UpstreamFetchError(url, msg) from exc

        if not response.is_success:
            status = response.status_code
            msg = f"Upstream returned HTTP {status}"
            raise UpstreamFetchError(url, msg, status_code=status, retryable=status >= 500)

        try:
            return response.json()
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            msg = f"Upstream payload from {url} is not valid JSON: {exc}"
            raise ContractError(msg, stage="fetch", code="INVALID_JSON") from exc
