"""
Withdrawal data fetching.

The three inputs a proof is anchored to (state-tree leaves, ASP approved
labels, pool scope) are independent, so they are fetched concurrently and
joined. They are only valid jointly: if any fetch fails, the whole fetch
fails and no partial result is returned.
"""

from __future__ import annotations

import logging
from concurrent.futures import FIRST_EXCEPTION, ThreadPoolExecutor, wait
from typing import Any, Callable, Protocol

from privacy_pool.core.models import ASPData, FetchedWithdrawalData, StateTreeLeaf
from privacy_pool.errors import DataFetchError

logger = logging.getLogger("privacy_pool.withdrawal.data")


class StateTreeSource(Protocol):
    def fetch_state_tree_leaves(self) -> list[StateTreeLeaf]: ...


class ASPSource(Protocol):
    def fetch_asp_data(self) -> ASPData: ...


class PoolScopeSource(Protocol):
    def fetch_pool_scope(self) -> int: ...


class WithdrawalDataFetcher:
    """
    Joins the three data sources.

    Usage:
        fetcher = WithdrawalDataFetcher(indexer, indexer, PoolContract(rpc, pool))
        data = fetcher.fetch()
    """

    def __init__(
        self,
        state_tree: StateTreeSource,
        asp: ASPSource,
        pool_scope: PoolScopeSource,
    ) -> None:
        self.state_tree = state_tree
        self.asp = asp
        self.pool_scope = pool_scope

    def fetch(self) -> FetchedWithdrawalData:
        """
        Fetch leaves, ASP data and scope concurrently.

        Raises:
            DataFetchError: if any of the three fetches fails. `source` names
                the first one that failed.
        """
        jobs: dict[str, Callable[[], Any]] = {
            "state_tree_leaves": self.state_tree.fetch_state_tree_leaves,
            "asp_data": self.asp.fetch_asp_data,
            "pool_scope": self.pool_scope.fetch_pool_scope,
        }

        executor = ThreadPoolExecutor(max_workers=len(jobs), thread_name_prefix="withdrawal-fetch")
        try:
            futures = {executor.submit(fn): name for name, fn in jobs.items()}
            done, _ = wait(futures, return_when=FIRST_EXCEPTION)

            for future in done:
                error = future.exception()
                if error is not None:
                    source = futures[future]
                    raise DataFetchError(
                        f"Failed to fetch {source}: {error}", source=source
                    ) from error

            results = {futures[f]: f.result() for f in futures}
        finally:
            # Fetches still in flight after a failure are abandoned, not awaited
            executor.shutdown(wait=False, cancel_futures=True)

        data = FetchedWithdrawalData(
            state_tree_leaves=results["state_tree_leaves"],
            asp_data=results["asp_data"],
            pool_scope=results["pool_scope"],
        )
        logger.debug(
            f"Fetched {len(data.state_tree_leaves)} leaves, "
            f"{len(data.asp_data.approved_labels)} approved labels"
        )
        return data
