"""
Batch writer - applies one pass's mutations, then advances the checkpoint.
"""

import asyncio
from typing import Awaitable, Callable, Dict, Hashable, List, Optional, Sequence, Tuple, Union

import structlog

from mintsync.repositories.protocols import MintedTokenRepository, OfferRepository, ProductRepository

from .checkpoint_store import CheckpointStore
from .types import CountUpdate, OfferRecord, ProductRecord, TokenUpsert, WriteResult


logger = structlog.get_logger(__name__)


def build_count_updates(
    flushed: Sequence[Tuple[Hashable, int]],
    snapshots: Dict[Hashable, Union[OfferRecord, ProductRecord]],
) -> List[CountUpdate]:
    """
    Turn accumulated deltas into absolute sets: pre-read sold_copies + delta,
    with ``sold`` recomputed against ``copies``.
    """
    updates = []
    for key, count in flushed:
        snapshot = snapshots[key]
        sold_copies = snapshot.sold_copies + count
        updates.append(CountUpdate(key=key, sold_copies=sold_copies, sold=sold_copies == snapshot.copies))
    return updates


class BatchWriter:
    """
    Submits tokens, offers and products as three independent unordered groups.

    A failing group never blocks the others or the checkpoint advance; every
    group reports a :class:`WriteResult` that is logged.
    """

    def __init__(
        self,
        tokens: MintedTokenRepository,
        offers: OfferRepository,
        products: ProductRepository,
        checkpoints: CheckpointStore,
    ):
        self.tokens = tokens
        self.offers = offers
        self.products = products
        self.checkpoints = checkpoints
        self.logger = logger.bind(service="batch_writer")

    async def write(
        self,
        token_upserts: Sequence[TokenUpsert],
        offer_updates: Sequence[CountUpdate],
        product_updates: Sequence[CountUpdate],
    ) -> List[WriteResult]:
        """Issue the three groups concurrently; they touch disjoint tables."""
        return list(await asyncio.gather(
            self._run_group("tokens", self.tokens.bulk_upsert, token_upserts),
            self._run_group("offers", self.offers.bulk_set_sold_copies, offer_updates),
            self._run_group("products", self.products.bulk_set_sold_copies, product_updates),
        ))

    async def commit(
        self,
        job_name: str,
        network: str,
        token_upserts: Sequence[TokenUpsert],
        offer_updates: Sequence[CountUpdate],
        product_updates: Sequence[CountUpdate],
        candidate_block: Optional[int],
    ) -> Tuple[List[WriteResult], bool]:
        """
        Write all groups, then (only after all were attempted) advance the
        checkpoint to ``candidate_block``. ``None`` leaves it untouched.
        """
        results = await self.write(token_upserts, offer_updates, product_updates)

        advanced = False
        if candidate_block is not None:
            advanced = await self.checkpoints.advance_checkpoint(job_name, network, candidate_block)
        return results, advanced

    async def _run_group(
        self,
        group: str,
        func: Callable[[Sequence], Awaitable[WriteResult]],
        items: Sequence,
    ) -> WriteResult:
        if not items:
            return WriteResult(group=group)

        try:
            result = await func(items)
        except Exception as e:
            # group failures are reported, not raised: other groups and the checkpoint proceed
            self.logger.error("Bulk write failed", group=group, attempted=len(items), error=str(e))
            return WriteResult.failed(group, len(items), e)

        if result.ok:
            self.logger.info("Bulk write applied", group=group, written=result.written)
        else:
            self.logger.error(
                "Bulk write partially failed",
                group=group,
                attempted=result.attempted,
                written=result.written,
                errors=result.errors[:5],
            )
        return result
