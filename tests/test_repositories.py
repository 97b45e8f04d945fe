"""
Test the SQLAlchemy repositories against a file-backed SQLite database.
"""

import pytest
import pytest_asyncio
from sqlalchemy import event, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from mintsync.core.database import DatabaseManager, build_engine
from mintsync.models import MintedToken
from mintsync.repositories import SqlRepositories
from mintsync.scheduler.main import build_sync_job
from mintsync.sync.types import (
    CountUpdate,
    OfferKey,
    OfferPoolRecord,
    OfferRecord,
    ProductKey,
    ProductRecord,
    TokenKey,
    TokenUpsert,
)

from .fakes import CONTRACT, NETWORK, OWNER, mint_event


@pytest_asyncio.fixture
async def session_maker(tmp_path):
    """Fresh schema per test; explicit BEGIN IMMEDIATE so SAVEPOINTs and concurrent writers behave."""
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path}/mintsync.db")

    @event.listens_for(engine.sync_engine, "connect")
    def do_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def do_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    await DatabaseManager.create_tables(engine)
    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()


@pytest.fixture
def sql_repos(session_maker):
    return SqlRepositories(session_maker)


async def seed(sql_repos, sold_copies=2):
    await sql_repos.offer_pools.create(OfferPoolRecord(CONTRACT, 0, 0), range_number=0)
    await sql_repos.products.create(
        ProductRecord(contract=CONTRACT, collection_index_in_contract=0, copies=10, sold_copies=sold_copies),
        name="Genesis",
    )
    await sql_repos.offers.create(
        OfferRecord(
            contract=CONTRACT, offer_pool=0, offer_index=0, product=0,
            range_low=0, range_high=9, copies=10, sold_copies=sold_copies,
        ),
        offer_name="Genesis",
    )


def token_upsert(token_index, owner=OWNER):
    return TokenUpsert(
        key=TokenKey(CONTRACT, 0, token_index),
        owner_address=owner,
        offer=0,
        product=0,
        unique_index_in_contract=token_index,
        authenticity_link=f"https://auth.example/{CONTRACT}/?a={token_index}",
    )


@pytest.mark.asyncio
async def test_checkpoint_is_monotonic(sql_repos):
    checkpoints = sql_repos.checkpoints

    assert await checkpoints.get("sync tokens", NETWORK) is None
    assert await checkpoints.save_if_greater("sync tokens", NETWORK, 10) is True
    assert await checkpoints.save_if_greater("sync tokens", NETWORK, 10) is False
    assert await checkpoints.save_if_greater("sync tokens", NETWORK, 5) is False
    assert await checkpoints.save_if_greater("sync tokens", NETWORK, 20) is True
    assert await checkpoints.get("sync tokens", NETWORK) == 20
    assert await checkpoints.get("sync tokens", "polygon") is None


@pytest.mark.asyncio
async def test_catalog_lookups(sql_repos):
    await seed(sql_repos)
    await sql_repos.offers.create(OfferRecord(
        contract=CONTRACT, offer_pool=0, offer_index=1, product=0,
        range_low=10, range_high=19, copies=10,
    ))

    pool = await sql_repos.offer_pools.find(CONTRACT, 0)
    assert pool.product == 0
    assert await sql_repos.offer_pools.find(CONTRACT, 3) is None

    product = await sql_repos.products.find(CONTRACT, 0)
    assert (product.copies, product.sold_copies, product.sold) == (10, 2, False)

    offers = await sql_repos.offers.list_for_product(CONTRACT, 0)
    assert [offer.offer_index for offer in offers] == [0, 1]
    assert (offers[1].range_low, offers[1].range_high) == (10, 19)


@pytest.mark.asyncio
async def test_sold_copies_are_set_absolutely(sql_repos):
    await seed(sql_repos)

    offers = await sql_repos.offers.bulk_set_sold_copies([CountUpdate(OfferKey(CONTRACT, 0, 0), 10, True)])
    products = await sql_repos.products.bulk_set_sold_copies([CountUpdate(ProductKey(CONTRACT, 0), 7, False)])

    assert offers.ok and offers.written == 1
    assert products.ok and products.written == 1
    offer = (await sql_repos.offers.list_for_product(CONTRACT, 0))[0]
    assert (offer.sold_copies, offer.sold) == (10, True)
    assert (await sql_repos.products.find(CONTRACT, 0)).sold_copies == 7


@pytest.mark.asyncio
async def test_token_upsert_inserts_then_updates(sql_repos, session_maker):
    first = await sql_repos.tokens.bulk_upsert([token_upsert(3), token_upsert(4)])
    assert first.ok and first.written == 2

    new_owner = "0x00000000000000000000000000000000000000b2"
    second = await sql_repos.tokens.bulk_upsert([token_upsert(3, owner=new_owner)])
    assert second.ok

    async with session_maker() as session:
        rows = (await session.execute(select(MintedToken).order_by(MintedToken.token_index))).scalars().all()

    assert [row.token_index for row in rows] == [3, 4]
    assert rows[0].owner_address == new_owner
    assert rows[0].is_minted is True
    assert rows[0].metadata_uri == "none"

    token = await sql_repos.tokens.find(TokenKey(CONTRACT, 0, 4))
    assert token.is_minted is True
    assert not token.needs_metadata_pin()


@pytest.mark.asyncio
async def test_inserted_token_keeps_metadata(sql_repos):
    key = TokenKey(CONTRACT, 0, 1)
    await sql_repos.tokens.insert(key, {"token_metadata": {"name": "Gold"}, "is_minted": False})

    token = await sql_repos.tokens.find(key)

    assert token.token_metadata == {"name": "Gold"}
    assert token.needs_metadata_pin()


@pytest.mark.asyncio
async def test_contracts_and_deletes(sql_repos):
    await seed(sql_repos)
    await sql_repos.tokens.bulk_upsert([token_upsert(1)])
    await sql_repos.contracts.create(CONTRACT, "0x1", title="Genesis", external=True)

    assert await sql_repos.contracts.find_external(CONTRACT, "0x1") is True
    assert await sql_repos.contracts.find_external(CONTRACT, "0x5") is False

    assert await sql_repos.tokens.delete_for_contract(CONTRACT) == 1
    assert await sql_repos.offers.delete_for_contract(CONTRACT) == 1
    assert await sql_repos.offer_pools.delete_for_contract(CONTRACT) == 1
    assert await sql_repos.products.delete_for_contract(CONTRACT) == 1
    assert await sql_repos.contracts.delete(CONTRACT, "0x1") == 1
    assert await sql_repos.contracts.find_external(CONTRACT, "0x1") is False


@pytest.mark.asyncio
async def test_sync_pass_against_database(sql_repos, indexing_client, settings):
    """Two mints, then the boundary block delivered again, count once."""
    await seed(sql_repos)
    indexing_client.events = [mint_event(100, 3), mint_event(101, 4)]
    job = build_sync_job(sql_repos, indexing_client, None, settings)

    report = await job.run(NETWORK)
    assert report.failed_groups == []
    assert report.checkpoint == 101

    await job.run(NETWORK)

    product = await sql_repos.products.find(CONTRACT, 0)
    offer = (await sql_repos.offers.list_for_product(CONTRACT, 0))[0]
    assert (product.sold_copies, offer.sold_copies) == (4, 4)
    assert await sql_repos.checkpoints.get("sync tokens", NETWORK) == 101
    assert (await sql_repos.tokens.find(TokenKey(CONTRACT, 0, 3))).is_minted is True
