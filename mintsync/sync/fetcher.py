"""
Event fetcher - pulls TokenMinted events since a checkpoint.
"""

import asyncio
from typing import List, Optional

import aiohttp
import structlog

from mintsync.core.config import NetworkSettings, Settings, settings as default_settings
from mintsync.core.exceptions import IndexerError
from mintsync.services.abi import MINTER_ABI, get_abi_data
from mintsync.services.indexing_client import IndexingServiceClient
from mintsync.services.retry import retry_async

from .types import RawEvent


logger = structlog.get_logger(__name__)

# a truncated page must hold the oldest events, or the checkpoint skips past the rest
BLOCK_ORDER = "block_number.ASC"


class EventFetcher:
    """
    Fetches one bounded page of minter events per call.

    ``from_block`` is inclusive: the boundary block is delivered again on the
    next pass and absorbed by idempotent upserts downstream.
    """

    def __init__(self, client: IndexingServiceClient, config: Optional[Settings] = None):
        self.client = client
        self.config = config or default_settings
        self.abi, self.topic = get_abi_data(MINTER_ABI, "event", "TokenMinted")
        self.logger = logger.bind(service="event_fetcher")

    async def fetch_events(self, network: NetworkSettings, from_block: int) -> List[RawEvent]:
        """
        Raises:
            IndexerError: when the retry budget is exhausted or the request is rejected
        """
        try:
            page = await retry_async(
                self.client.get_contract_events,
                address=network.minter_address,
                chain=network.chain_id,
                topic=self.topic,
                abi=self.abi,
                from_block=from_block,
                api_key=self.config.indexer_api_key(network),
                limit=self.config.indexer_page_limit,
                order=BLOCK_ORDER,
                max_retries=self.config.indexer_max_retries,
                delay=self.config.indexer_retry_delay,
            )
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            self.logger.error(
                "Failed to fetch events",
                chain=network.chain_id,
                from_block=from_block,
                error=f"{type(e).__name__}: {e}",
            )
            raise IndexerError(
                "Indexing service unavailable",
                details={"chain": network.chain_id, "from_block": from_block}
            ) from e

        # the service is asked for >= from_block; drop anything it sends from before
        events = sorted(
            (event for event in page.events if event.block_number >= from_block),
            key=lambda event: event.block_number,
        )

        self.logger.info(
            "Fetched events",
            chain=network.chain_id,
            from_block=from_block,
            count=len(events),
            dropped=page.dropped,
            has_next=page.has_next,
        )
        return events
