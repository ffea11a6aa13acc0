"""
IndexerClient: REST client for the privacy pool indexer.

Serves the two off-chain inputs a withdrawal proof is anchored to:
- the ordered state-tree leaves (every commitment inserted into the pool)
- the latest ASP (association set provider) approved-label set and root
"""

from __future__ import annotations

from typing import Any

import httpx
from pydantic import ValidationError as PydanticValidationError

from privacy_pool.config import DEFAULT_INDEXER_URL
from privacy_pool.core.models import ASPData, StateTreeLeaf


class IndexerError(Exception):
    """Raised when the indexer API returns an error or malformed data."""
    pass


class IndexerClient:
    """
    Synchronous client for the pool indexer.

    Usage:
        indexer = IndexerClient("http://localhost:42069")
        leaves = indexer.fetch_state_tree_leaves()
        asp = indexer.fetch_asp_data()
    """

    def __init__(
        self,
        base_url: str = DEFAULT_INDEXER_URL,
        timeout: float = 15.0,
        client: httpx.Client | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._client = client or httpx.Client(
            headers={"Accept": "application/json"}, timeout=timeout
        )

    # ------------------------------------------------------------------
    # State tree
    # ------------------------------------------------------------------

    def fetch_state_tree_leaves(self) -> list[StateTreeLeaf]:
        """
        Return every state-tree leaf, ordered by leaf index.

        Returns:
            list[StateTreeLeaf]: leaves in insertion order
        """
        data = self._get("/state-tree/leaves")
        items = data.get("items", []) if isinstance(data, dict) else data
        try:
            leaves = [StateTreeLeaf.model_validate(item) for item in items]
        except PydanticValidationError as err:
            raise IndexerError(f"Malformed state-tree leaf: {err}") from err
        return sorted(leaves, key=lambda leaf: leaf.leaf_index)

    # ------------------------------------------------------------------
    # ASP
    # ------------------------------------------------------------------

    def fetch_asp_data(self) -> ASPData:
        """Return the latest approved-label set and its root."""
        data = self._get("/asp/latest")
        try:
            return ASPData.model_validate(data)
        except PydanticValidationError as err:
            raise IndexerError(f"Malformed ASP data: {err}") from err

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _get(self, path: str) -> Any:
        url = f"{self.base_url}{path}"
        try:
            response = self._client.get(url)
        except httpx.HTTPError as err:
            raise IndexerError(f"Indexer unreachable at {url}: {err}") from err
        if response.status_code != 200:
            raise IndexerError(f"API error {response.status_code} for {url}: {response.text}")
        return response.json()

    def close(self) -> None:
        """Close the underlying HTTP client."""
        self._client.close()

    def __enter__(self) -> IndexerClient:
        return self

    def __exit__(self, *_: Any) -> None:
        self.close()
