"""
Test the external collection importer.
"""

import json

import pytest

from mintsync.importer import ContractImporter
from mintsync.importer.contract_importer import NO_DESCRIPTION, normalize_metadata
from mintsync.services.schemas import NftOwnerRecord
from mintsync.sync.types import OfferKey, ProductKey, TokenKey

from .fakes import CONTRACT, owners_page


CHAIN = "0x1"


def nft(token_id, metadata=None, owner="0xOwner0000000000000000000000000000000001", token_uri=None):
    return NftOwnerRecord(
        token_id=token_id,
        token_address=CONTRACT,
        owner_of=owner,
        token_uri=token_uri,
        metadata=json.dumps(metadata) if metadata is not None else None,
        name="Apes",
    )


def art(token_id):
    return {"name": f"Ape #{token_id}", "image": f"ipfs://Qm{token_id}", "attributes": ["gold", "hat"]}


@pytest.fixture
def importer(indexing_client, repos, settings):
    return ContractImporter(
        indexing_client,
        repos.contracts,
        repos.products,
        repos.offers,
        repos.offer_pools,
        repos.tokens,
        settings,
    )


def two_pages(indexing_client, total=4):
    indexing_client.owner_pages = [
        owners_page([nft(0, art(0)), nft(1, art(1))], total=total, page=0, next_cursor="1"),
        owners_page([nft(2, art(2)), nft(3, art(3))], total=total, page=1, next_cursor=None),
    ]


@pytest.mark.asyncio
async def test_import_creates_catalog_and_tokens(importer, indexing_client, repos):
    """All pages are imported into one sold-out product with one offer and pool."""
    two_pages(indexing_client)

    outcome = await importer.import_contract(CHAIN, CONTRACT.upper().replace("0X", "0x"), limit=0)

    assert outcome.success is True
    assert outcome.message == ""
    assert outcome.result["number_of_tokens_added"] == 4
    assert indexing_client.owner_calls == [None, "1"]

    assert repos.contracts.rows[(CONTRACT, CHAIN)]["external"] is True
    assert repos.contracts.rows[(CONTRACT, CHAIN)]["title"] == "Apes"

    product = repos.products.rows[ProductKey(CONTRACT, 0)]
    assert (product.copies, product.sold_copies, product.sold) == (4, 4, True)
    offer = repos.offers.rows[OfferKey(CONTRACT, 0, 0)]
    assert (offer.range_low, offer.range_high, offer.sold) == (0, 4, True)
    assert (CONTRACT, 0) in repos.offer_pools.rows

    token = repos.tokens.rows[TokenKey(CONTRACT, 0, 2)]
    assert token["owner_address"] == "0xowner0000000000000000000000000000000001"
    assert token["is_minted"] is True
    assert token["unique_index_in_contract"] == 2
    assert token["token_metadata"]["image"] == "https://gateway.test/ipfs/Qm2"
    assert token["token_metadata"]["description"] == NO_DESCRIPTION
    assert token["token_metadata"]["attributes"] == [
        {"trait_type": "", "value": "gold"},
        {"trait_type": "", "value": "hat"},
    ]


@pytest.mark.asyncio
async def test_metadata_is_fetched_from_token_uri(importer, indexing_client, repos):
    indexing_client.documents["https://meta.example/0"] = art(0)
    indexing_client.owner_pages = [
        owners_page([nft(0, token_uri="https://meta.example/0"), nft(1, token_uri="https://meta.example/1")],
                    total=2, page=0, next_cursor=None),
    ]

    outcome = await importer.import_contract(CHAIN, CONTRACT)

    assert outcome.success is True
    assert outcome.result["number_of_tokens_added"] == 1
    assert repos.tokens.rows[TokenKey(CONTRACT, 0, 0)]["metadata_uri"] == "https://meta.example/0"
    assert TokenKey(CONTRACT, 0, 1) not in repos.tokens.rows


@pytest.mark.asyncio
async def test_tokens_without_image_name_or_owner_are_skipped(importer, indexing_client, repos):
    indexing_client.owner_pages = [
        owners_page(
            [
                nft(0, art(0)),
                nft(1, {"name": "No image"}),
                nft(2, {"image": "ipfs://Qm2"}),
                nft(3, art(3), owner=None),
            ],
            total=4, page=0, next_cursor=None,
        ),
    ]

    outcome = await importer.import_contract(CHAIN, CONTRACT)

    assert outcome.result["number_of_tokens_added"] == 1
    assert list(repos.tokens.rows) == [TokenKey(CONTRACT, 0, 0)]


@pytest.mark.asyncio
async def test_already_imported_contract_is_refused(importer, indexing_client, repos):
    repos.contracts.rows[(CONTRACT, CHAIN)] = {"external": True}

    outcome = await importer.import_contract(CHAIN, CONTRACT)

    assert outcome.success is False
    assert outcome.message == "NFTs already imported"
    assert indexing_client.owner_calls == []


@pytest.mark.asyncio
async def test_contract_lookup_failure_is_reported(importer, indexing_client, repos):
    """A failing lookup ends the import with an outcome and touches nothing."""
    two_pages(indexing_client)
    repos.contracts.fail_find = True

    outcome = await importer.import_contract(CHAIN, CONTRACT)

    assert outcome.success is False
    assert outcome.message == "An error has occurred!"
    assert indexing_client.owner_calls == []
    assert repos.tokens.rows == {}


@pytest.mark.asyncio
async def test_first_page_failure(importer, indexing_client, repos):
    two_pages(indexing_client)
    indexing_client.owner_failures[None] = 1

    outcome = await importer.import_contract(CHAIN, CONTRACT)

    assert outcome.success is False
    assert "indexing service" in outcome.message
    assert repos.tokens.rows == {}


@pytest.mark.asyncio
async def test_empty_collection(importer, indexing_client):
    indexing_client.owner_pages = [owners_page([], total=0, page=0, next_cursor=None)]

    outcome = await importer.import_contract(CHAIN, CONTRACT)

    assert outcome.success is False
    assert outcome.message == "Couldn't find ERC721 tokens!"


@pytest.mark.asyncio
async def test_collection_without_metadata(importer, indexing_client, repos):
    indexing_client.owner_pages = [owners_page([nft(0), nft(1)], total=2, page=0, next_cursor=None)]

    outcome = await importer.import_contract(CHAIN, CONTRACT)

    assert outcome.success is False
    assert "none of them had metadata" in outcome.message
    assert repos.contracts.rows == {}
    assert repos.products.rows == {}


@pytest.mark.asyncio
async def test_failed_page_is_retried(importer, indexing_client, repos):
    two_pages(indexing_client)
    indexing_client.owner_failures["1"] = 2

    outcome = await importer.import_contract(CHAIN, CONTRACT)

    assert outcome.success is True
    assert outcome.result["number_of_tokens_added"] == 4
    assert indexing_client.owner_calls == [None, "1", "1", "1"]


@pytest.mark.asyncio
async def test_page_retry_exhaustion_aborts_and_cleans_up(importer, indexing_client, repos):
    two_pages(indexing_client)
    indexing_client.owner_failures["1"] = 3

    outcome = await importer.import_contract(CHAIN, CONTRACT)

    assert outcome.success is False
    assert outcome.message == "An error has occurred!"
    assert repos.tokens.rows == {}
    assert repos.contracts.rows == {}
    assert repos.products.rows == {}


@pytest.mark.asyncio
async def test_catalog_failure_cleans_up_tokens(importer, indexing_client, repos):
    two_pages(indexing_client)
    repos.contracts.fail_create = True

    outcome = await importer.import_contract(CHAIN, CONTRACT)

    assert outcome.success is False
    assert repos.tokens.rows == {}


@pytest.mark.asyncio
async def test_limit_stops_paging(importer, indexing_client, repos):
    two_pages(indexing_client)

    outcome = await importer.import_contract(CHAIN, CONTRACT, limit=1)

    assert outcome.success is True
    assert outcome.result["number_of_tokens_added"] == 2
    assert indexing_client.owner_calls == [None]


@pytest.mark.asyncio
async def test_insert_failure_skips_token(importer, indexing_client, repos):
    two_pages(indexing_client)
    repos.tokens.fail_inserts = {1}

    outcome = await importer.import_contract(CHAIN, CONTRACT)

    assert outcome.success is True
    assert outcome.result["number_of_tokens_added"] == 3
    assert TokenKey(CONTRACT, 0, 1) not in repos.tokens.rows


def test_normalize_metadata_keeps_existing_fields():
    metadata = {
        "name": "Ape",
        "image": "https://cdn.example/ape.png",
        "description": "An ape",
        "attributes": [{"trait_type": "hat", "value": "gold"}],
    }

    normalized = normalize_metadata(metadata, "https://gateway.test/ipfs/")

    assert normalized == metadata
    assert normalized is not metadata
