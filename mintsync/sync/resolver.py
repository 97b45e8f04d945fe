"""
Catalog resolver - maps a raw event to its product and offer.
"""

from typing import Iterable, Optional

import structlog

from mintsync.core.config import NetworkSettings
from mintsync.repositories.protocols import (
    MintedTokenRepository,
    OfferPoolRepository,
    OfferRepository,
    ProductRepository,
)

from .types import MintResolution, OfferRecord, ProductRecord, RawEvent, TokenUpsert


logger = structlog.get_logger(__name__)


def find_offer(offers: Iterable[OfferRecord], token_index: int) -> Optional[OfferRecord]:
    """Linear scan for the offer whose inclusive range holds ``token_index``."""
    for offer in offers:
        if offer.contains(token_index):
            return offer
    return None


def authenticity_link(host: str, contract: str, unique_index: int) -> str:
    return f"{host.rstrip('/')}/{contract}/?a={unique_index}"


class CatalogResolver:
    """Joins OfferPool -> Product -> Offer -> MintedToken for one event."""

    def __init__(
        self,
        offer_pools: OfferPoolRepository,
        products: ProductRepository,
        offers: OfferRepository,
        tokens: MintedTokenRepository,
    ):
        self.offer_pools = offer_pools
        self.products = products
        self.offers = offers
        self.tokens = tokens
        self.logger = logger.bind(service="catalog_resolver")

    async def resolve(self, contract_address: str, catalog_index: int) -> Optional[ProductRecord]:
        """Product behind ``(contract, catalog_index)``, or None when unknown locally."""
        pool = await self.offer_pools.find(contract_address, catalog_index)
        if pool is None:
            return None
        return await self.products.find(pool.contract, pool.product)

    async def resolve_event(self, event: RawEvent, network: NetworkSettings) -> MintResolution:
        """
        Build the private resolution for one event: product, offer, existing
        token snapshot and the token upsert. Misses are reported through
        ``skip_reason`` and are not errors.
        """
        resolution = MintResolution(event=event)

        product = await self.resolve(event.contract_address, event.catalog_index)
        if product is None:
            resolution.skip_reason = "catalog_entry_not_found"
            self.logger.debug(
                "Event skipped, no offer pool",
                contract=event.contract_address,
                catalog_index=event.catalog_index,
                block_number=event.block_number,
            )
            return resolution
        resolution.product = product

        offers = await self.offers.list_for_product(product.contract, product.collection_index_in_contract)
        resolution.offer = find_offer(offers, event.token_index)
        if resolution.offer is None:
            resolution.skip_reason = "token_outside_offer_ranges"
            self.logger.warning(
                "Token index outside every offer range",
                contract=event.contract_address,
                product=product.collection_index_in_contract,
                token_index=event.token_index,
            )

        resolution.existing_token = await self.tokens.find(event.token_key)

        unique_index = product.first_token_index + event.token_index
        resolution.upsert = TokenUpsert(
            key=event.token_key,
            owner_address=event.owner_address,
            offer=resolution.offer.offer_index if resolution.offer else None,
            product=product.collection_index_in_contract,
            unique_index_in_contract=unique_index,
            authenticity_link=authenticity_link(network.authenticity_host, event.contract_address, unique_index),
        )
        return resolution
