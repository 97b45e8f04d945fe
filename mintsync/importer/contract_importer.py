"""
One-shot import of an external (unmanaged) collection into the catalog.

Pulls every token of a contract from the indexing service and records it as
a single fully-sold product with one offer and one offer pool.
"""

import asyncio
import json
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import aiohttp
import structlog

from mintsync.core.config import Settings, settings as default_settings
from mintsync.core.exceptions import ImportAbortedError, IndexerError
from mintsync.models.token import METADATA_NONE
from mintsync.repositories.protocols import (
    ContractRepository,
    MintedTokenRepository,
    OfferPoolRepository,
    OfferRepository,
    ProductRepository,
)
from mintsync.services.indexing_client import IndexingServiceClient
from mintsync.services.schemas import NftOwnerRecord, NftOwnersPage
from mintsync.sync.types import OfferPoolRecord, OfferRecord, ProductRecord, TokenKey


logger = structlog.get_logger(__name__)

EXTERNAL_IMPORT_MARKER = "UNKNOWN - External Import"
NO_DESCRIPTION = "No description available"

FETCH_ERRORS = (aiohttp.ClientError, asyncio.TimeoutError, IndexerError)


@dataclass
class ImportOutcome:
    success: bool
    result: Optional[Dict[str, Any]] = None
    message: str = ""


def normalize_metadata(metadata: Dict[str, Any], ipfs_gateway: str) -> Dict[str, Any]:
    """Gateway image URIs, default description, object-shaped attributes."""
    metadata = dict(metadata)
    metadata["image"] = str(metadata["image"]).replace("ipfs://", ipfs_gateway)
    if not metadata.get("description"):
        metadata["description"] = NO_DESCRIPTION

    attributes = metadata.get("attributes")
    if isinstance(attributes, list) and attributes and isinstance(attributes[0], str):
        metadata["attributes"] = [{"trait_type": "", "value": item} for item in attributes]
    return metadata


class ContractImporter:
    """Imports all tokens of an external contract, page by page."""

    def __init__(
        self,
        client: IndexingServiceClient,
        contracts: ContractRepository,
        products: ProductRepository,
        offers: OfferRepository,
        offer_pools: OfferPoolRepository,
        tokens: MintedTokenRepository,
        config: Optional[Settings] = None,
    ):
        self.client = client
        self.contracts = contracts
        self.products = products
        self.offers = offers
        self.offer_pools = offer_pools
        self.tokens = tokens
        self.config = config or default_settings
        self.logger = logger.bind(service="contract_importer")

    def _api_key(self, network_id: str) -> str:
        for network in self.config.networks.values():
            if network.chain_id == network_id:
                return self.config.indexer_api_key(network)
        return self.config.indexer_api_key_mainnet

    async def import_contract(self, network_id: str, contract_address: str, limit: int = 0) -> ImportOutcome:
        """
        Import ``contract_address`` on ``network_id``.

        ``limit > 0`` stops paging once more than ``limit`` tokens were inserted.
        Never raises: every failure is reported in the returned outcome.
        """
        contract_address = contract_address.lower()
        log = self.logger.bind(network=network_id, contract=contract_address)

        try:
            already_imported = await self.contracts.find_external(contract_address, network_id)
        except Exception as e:
            log.error("Failed to look up contract", error=f"{type(e).__name__}: {e}")
            return ImportOutcome(success=False, message="An error has occurred!")

        if already_imported:
            return ImportOutcome(success=False, message="NFTs already imported")

        api_key = self._api_key(network_id)
        try:
            page = await self.client.get_nft_owners(contract_address, network_id, api_key)
        except FETCH_ERRORS as e:
            log.error("Failed to fetch first page of owners", error=str(e))
            return ImportOutcome(success=False, message="There was an error calling the indexing service")

        total = page.total or len(page.tokens)
        if not total or not page.tokens:
            return ImportOutcome(success=False, message="Couldn't find ERC721 tokens!")

        collection_name = page.tokens[0].name
        pages_needed = round(total / page.page_size) if page.page_size else 1
        log.info("Starting import", total=total, page_size=page.page_size, pages=pages_needed)

        try:
            added = await self._insert_tokens(page.tokens, contract_address, log)
            added += await self._fetch_remaining(page, network_id, contract_address, api_key, limit, added, log)

            if added == 0:
                return ImportOutcome(
                    success=False,
                    message=f"Of the {total} tokens found, none of them had metadata!",
                )

            await self._create_catalog(contract_address, network_id, collection_name, total)
        except Exception as e:
            log.error("Import failed", error=f"{type(e).__name__}: {e}")
            await self._cleanup(contract_address, network_id, log)
            return ImportOutcome(success=False, message="An error has occurred!")

        log.info("Import completed", tokens_added=added)
        return ImportOutcome(
            success=True,
            result={"contract": contract_address, "network": network_id, "number_of_tokens_added": added},
        )

    async def _fetch_remaining(
        self,
        page: NftOwnersPage,
        network_id: str,
        contract_address: str,
        api_key: str,
        limit: int,
        added: int,
        log,
    ) -> int:
        """Follow the cursor; each page gets ``import_page_retries`` extra attempts."""
        new_tokens = 0
        failures = 0
        while page.has_next and not (limit > 0 and added + new_tokens > limit):
            await asyncio.sleep(self.config.import_page_delay)
            try:
                page = await self.client.get_nft_owners(contract_address, network_id, api_key, cursor=page.cursor)
            except FETCH_ERRORS as e:
                failures += 1
                log.error("Page request failed, will retry", page=page.page, attempt=failures, error=str(e))
                if failures > self.config.import_page_retries:
                    raise ImportAbortedError(
                        f"Aborted import of contract {contract_address}, page request failed too many times",
                        details={"page": page.page},
                    ) from e
                continue

            failures = 0
            new_tokens += await self._insert_tokens(page.tokens, contract_address, log)
            log.info("Inserted page", page=page.page, tokens_so_far=added + new_tokens)
        return new_tokens

    async def _load_metadata(self, token: NftOwnerRecord, log) -> Optional[Dict[str, Any]]:
        if token.metadata is None and token.token_uri:
            try:
                metadata = await self.client.fetch_json(token.token_uri)
            except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
                log.warning("Cannot fetch metadata URI", token_id=token.token_id, error=str(e))
                return None
        else:
            try:
                metadata = json.loads(token.metadata)
            except (TypeError, ValueError):
                log.warning("Cannot parse metadata", token_id=token.token_id)
                return None
        return metadata if isinstance(metadata, dict) else None

    async def _insert_tokens(self, tokens: List[NftOwnerRecord], contract_address: str, log) -> int:
        inserted = 0
        for token in tokens:
            metadata = await self._load_metadata(token, log)
            if not metadata or not metadata.get("image") or not metadata.get("name") or not token.owner_of:
                continue

            values = {
                "owner_address": token.owner_of.lower(),
                "metadata_uri": token.token_uri or METADATA_NONE,
                "token_metadata": normalize_metadata(metadata, self.config.ipfs_gateway),
                "unique_index_in_contract": token.token_id,
                "is_minted": True,
                "offer": 0,
                "product": 0,
            }
            try:
                await self.tokens.insert(TokenKey(contract_address, 0, token.token_id), values)
            except Exception as e:
                log.error("Error inserting token", token_id=token.token_id, error=type(e).__name__)
                continue
            inserted += 1
        return inserted

    async def _create_catalog(self, contract_address: str, network_id: str, name: Optional[str], total: int) -> None:
        await self.contracts.create(
            contract_address,
            network_id,
            title=name,
            user=EXTERNAL_IMPORT_MARKER,
            external=True,
        )
        await self.products.create(
            ProductRecord(
                contract=contract_address,
                collection_index_in_contract=0,
                copies=total,
                sold_copies=total,
                sold=True,
                first_token_index=0,
            ),
            name=name,
            transaction_hash=EXTERNAL_IMPORT_MARKER,
        )
        await self.offers.create(
            OfferRecord(
                contract=contract_address,
                offer_pool=0,
                offer_index=0,
                product=0,
                range_low=0,
                range_high=total,
                copies=total,
                sold_copies=total,
                sold=True,
            ),
            offer_name=name,
            price="0",
            transaction_hash=EXTERNAL_IMPORT_MARKER,
        )
        await self.offer_pools.create(
            OfferPoolRecord(contract=contract_address, marketplace_catalog_index=0, product=0),
            range_number=0,
            transaction_hash=EXTERNAL_IMPORT_MARKER,
        )

    async def _cleanup(self, contract_address: str, network_id: str, log) -> None:
        """Best effort: remove whatever this import created."""
        steps = [
            ("tokens", lambda: self.tokens.delete_for_contract(contract_address)),
            ("offers", lambda: self.offers.delete_for_contract(contract_address)),
            ("offer_pools", lambda: self.offer_pools.delete_for_contract(contract_address)),
            ("products", lambda: self.products.delete_for_contract(contract_address)),
            ("contract", lambda: self.contracts.delete(contract_address, network_id)),
        ]
        for name, step in steps:
            try:
                removed = await step()
                log.info("Import cleanup", entity=name, removed=removed)
            except Exception as e:
                log.error("Import cleanup failed", entity=name, error=str(e))
