"""DatasetSource abstract base class.

Defines the contract for fetching raw boundary and gazetteer data.  The
orchestrator only talks to this interface; the concrete source decides
where the files live (a GitHub repository, a mirror, a test fixture).

Every method either returns validated data or raises: an upstream
failure is never turned into an empty collection.
"""

from __future__ import annotations

import abc
from typing import Any


class DatasetSource(abc.ABC):
    """Source of raw yearly boundary collections and the places gazetteer.

    Datasets are addressed by ``(owner, dataset)``, boundaries additionally
    by a year token such as ``"1492"`` or ``"bc500"``.
    """

    @property
    @abc.abstractmethod
    def name(self) -> str:
        """Short source identifier used in logs."""

    @abc.abstractmethod
    async def fetch_boundaries(self, owner: str, dataset: str, year_token: str) -> dict[str, Any]:
        """Return the boundary FeatureCollection for one year.

        Raises:
            UpstreamFetchError: If the file cannot be fetched.
            ContractError: If the payload is not a FeatureCollection.
        """

    @abc.abstractmethod
    async def fetch_places(self, owner: str, dataset: str) -> dict[str, Any]:
        """Return the gazetteer FeatureCollection.

        Raises:
            UpstreamFetchError: If the file cannot be fetched.
            ContractError: If the payload is not a FeatureCollection.
        """

    @abc.abstractmethod
    async def list_years(self, owner: str, dataset: str) -> list[int]:
        """Return the years with a boundary file, ascending.

        Raises:
            UpstreamFetchError: If the listing cannot be fetched.
        """
