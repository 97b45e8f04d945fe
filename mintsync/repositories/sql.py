"""
SQLAlchemy-backed repositories.

Every repository takes an injected ``async_sessionmaker`` and opens one short
session per call.
"""

from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, TypeVar

import structlog
from sqlalchemy import and_, delete, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from mintsync.core.exceptions import DatabaseError
from mintsync.models import Checkpoint, Contract, MintedToken, Offer, OfferPool, Product
from mintsync.models.token import METADATA_NONE
from mintsync.sync.types import (
    CountUpdate,
    OfferPoolRecord,
    OfferRecord,
    ProductRecord,
    TokenKey,
    TokenRecord,
    TokenUpsert,
    WriteResult,
)


logger = structlog.get_logger(__name__)

T = TypeVar("T")


class SqlRepository:
    """Shared session handling for the SQL repositories."""

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        self.session_maker = session_maker

    async def _unordered_write(
        self,
        group: str,
        items: Sequence[T],
        apply: Callable[[AsyncSession, T], Awaitable[None]],
    ) -> WriteResult:
        """
        Apply ``items`` one savepoint each, so one failing operation does not
        undo or block its siblings. A failure outside the savepoints (connect,
        commit) fails the whole group.
        """
        result = WriteResult(group=group, attempted=len(items))
        if not items:
            return result

        try:
            async with self.session_maker() as session:
                for item in items:
                    try:
                        async with session.begin_nested():
                            await apply(session, item)
                        result.written += 1
                    except SQLAlchemyError as e:
                        result.errors.append(f"{type(e).__name__}: {e}")
                await session.commit()
        except SQLAlchemyError as e:
            logger.error("Bulk write group failed", group=group, error=str(e))
            return WriteResult.failed(group, len(items), e)

        return result


class SqlCheckpointRepository(SqlRepository):

    async def get(self, job_name: str, network: str) -> Optional[int]:
        try:
            async with self.session_maker() as session:
                result = await session.execute(
                    select(Checkpoint.block_number).where(
                        Checkpoint.job_name == job_name,
                        Checkpoint.network == network,
                    )
                )
                return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            raise DatabaseError(
                "Failed to read checkpoint",
                details={"job_name": job_name, "network": network, "error": str(e)}
            ) from e

    async def save_if_greater(self, job_name: str, network: str, block_number: int) -> bool:
        try:
            async with self.session_maker() as session:
                async with session.begin():
                    moved = await session.execute(
                        update(Checkpoint)
                        .where(
                            Checkpoint.job_name == job_name,
                            Checkpoint.network == network,
                            Checkpoint.block_number < block_number,
                        )
                        .values(block_number=block_number)
                    )
                    if moved.rowcount:
                        return True

                    existing = await session.execute(
                        select(Checkpoint.id).where(
                            Checkpoint.job_name == job_name,
                            Checkpoint.network == network,
                        )
                    )
                    if existing.scalar_one_or_none() is not None:
                        return False

                    session.add(Checkpoint(job_name=job_name, network=network, block_number=block_number))
                    return True
        except SQLAlchemyError as e:
            raise DatabaseError(
                "Failed to advance checkpoint",
                details={"job_name": job_name, "network": network, "block_number": block_number, "error": str(e)}
            ) from e


def _product_record(row: Product) -> ProductRecord:
    return ProductRecord(
        contract=row.contract,
        collection_index_in_contract=row.collection_index_in_contract,
        copies=row.copies,
        sold_copies=row.sold_copies or 0,
        sold=bool(row.sold),
        first_token_index=row.first_token_index or 0,
    )


def _offer_record(row: Offer) -> OfferRecord:
    return OfferRecord(
        contract=row.contract,
        offer_pool=row.offer_pool,
        offer_index=row.offer_index,
        product=row.product,
        range_low=row.range_low,
        range_high=row.range_high,
        copies=row.copies,
        sold_copies=row.sold_copies or 0,
        sold=bool(row.sold),
    )


def _token_record(row: MintedToken) -> TokenRecord:
    return TokenRecord(
        contract=row.contract,
        offer_pool=row.offer_pool,
        token_index=row.token_index,
        is_minted=bool(row.is_minted),
        token_metadata=row.token_metadata,
        metadata_uri=row.metadata_uri or METADATA_NONE,
    )


class SqlOfferPoolRepository(SqlRepository):

    async def find(self, contract: str, catalog_index: int) -> Optional[OfferPoolRecord]:
        async with self.session_maker() as session:
            result = await session.execute(
                select(OfferPool).where(
                    OfferPool.contract == contract,
                    OfferPool.marketplace_catalog_index == catalog_index,
                )
            )
            row = result.scalars().first()
            if row is None:
                return None
            return OfferPoolRecord(
                contract=row.contract,
                marketplace_catalog_index=row.marketplace_catalog_index,
                product=row.product,
            )

    async def create(self, record: OfferPoolRecord, **extra: Any) -> None:
        async with self.session_maker() as session:
            session.add(OfferPool(
                contract=record.contract,
                marketplace_catalog_index=record.marketplace_catalog_index,
                product=record.product,
                **extra
            ))
            await session.commit()

    async def delete_for_contract(self, contract: str) -> int:
        async with self.session_maker() as session:
            result = await session.execute(delete(OfferPool).where(OfferPool.contract == contract))
            await session.commit()
            return result.rowcount


class SqlProductRepository(SqlRepository):

    async def find(self, contract: str, collection_index: int) -> Optional[ProductRecord]:
        async with self.session_maker() as session:
            result = await session.execute(
                select(Product).where(
                    Product.contract == contract,
                    Product.collection_index_in_contract == collection_index,
                )
            )
            row = result.scalars().first()
            return _product_record(row) if row is not None else None

    async def create(self, record: ProductRecord, **extra: Any) -> None:
        async with self.session_maker() as session:
            session.add(Product(
                contract=record.contract,
                collection_index_in_contract=record.collection_index_in_contract,
                copies=record.copies,
                sold_copies=record.sold_copies,
                sold=record.sold,
                first_token_index=record.first_token_index,
                **extra
            ))
            await session.commit()

    async def bulk_set_sold_copies(self, updates: Sequence[CountUpdate]) -> WriteResult:
        async def apply(session: AsyncSession, item: CountUpdate) -> None:
            await session.execute(
                update(Product)
                .where(
                    Product.contract == item.key.contract,
                    Product.collection_index_in_contract == item.key.collection_index_in_contract,
                )
                .values(sold_copies=item.sold_copies, sold=item.sold)
            )

        return await self._unordered_write("products", updates, apply)

    async def delete_for_contract(self, contract: str) -> int:
        async with self.session_maker() as session:
            result = await session.execute(delete(Product).where(Product.contract == contract))
            await session.commit()
            return result.rowcount


class SqlOfferRepository(SqlRepository):

    async def list_for_product(self, contract: str, product: int) -> List[OfferRecord]:
        async with self.session_maker() as session:
            result = await session.execute(
                select(Offer)
                .where(Offer.contract == contract, Offer.product == product)
                .order_by(Offer.range_low)
            )
            return [_offer_record(row) for row in result.scalars().all()]

    async def create(self, record: OfferRecord, **extra: Any) -> None:
        async with self.session_maker() as session:
            session.add(Offer(
                contract=record.contract,
                offer_pool=record.offer_pool,
                offer_index=record.offer_index,
                product=record.product,
                range_low=record.range_low,
                range_high=record.range_high,
                copies=record.copies,
                sold_copies=record.sold_copies,
                sold=record.sold,
                **extra
            ))
            await session.commit()

    async def bulk_set_sold_copies(self, updates: Sequence[CountUpdate]) -> WriteResult:
        async def apply(session: AsyncSession, item: CountUpdate) -> None:
            await session.execute(
                update(Offer)
                .where(
                    Offer.contract == item.key.contract,
                    Offer.offer_pool == item.key.offer_pool,
                    Offer.offer_index == item.key.offer_index,
                )
                .values(sold_copies=item.sold_copies, sold=item.sold)
            )

        return await self._unordered_write("offers", updates, apply)

    async def delete_for_contract(self, contract: str) -> int:
        async with self.session_maker() as session:
            result = await session.execute(delete(Offer).where(Offer.contract == contract))
            await session.commit()
            return result.rowcount


def _token_filter(key: TokenKey):
    return and_(
        MintedToken.contract == key.contract,
        MintedToken.offer_pool == key.offer_pool,
        MintedToken.token_index == key.token_index,
    )


class SqlMintedTokenRepository(SqlRepository):

    async def find(self, key: TokenKey) -> Optional[TokenRecord]:
        async with self.session_maker() as session:
            result = await session.execute(select(MintedToken).where(_token_filter(key)))
            row = result.scalars().first()
            return _token_record(row) if row is not None else None

    async def bulk_upsert(self, upserts: Sequence[TokenUpsert]) -> WriteResult:
        async def apply(session: AsyncSession, item: TokenUpsert) -> None:
            result = await session.execute(
                update(MintedToken).where(_token_filter(item.key)).values(**item.values())
            )
            if not result.rowcount:
                session.add(MintedToken(
                    contract=item.key.contract,
                    offer_pool=item.key.offer_pool,
                    token_index=item.key.token_index,
                    **item.values()
                ))
                await session.flush()

        return await self._unordered_write("tokens", upserts, apply)

    async def insert(self, key: TokenKey, values: Dict[str, Any]) -> None:
        async with self.session_maker() as session:
            session.add(MintedToken(
                contract=key.contract,
                offer_pool=key.offer_pool,
                token_index=key.token_index,
                **values
            ))
            await session.commit()

    async def delete_for_contract(self, contract: str) -> int:
        async with self.session_maker() as session:
            result = await session.execute(delete(MintedToken).where(MintedToken.contract == contract))
            await session.commit()
            return result.rowcount


class SqlContractRepository(SqlRepository):

    async def find_external(self, contract_address: str, network: str) -> bool:
        async with self.session_maker() as session:
            result = await session.execute(
                select(Contract.id).where(
                    Contract.contract_address == contract_address,
                    Contract.network == network,
                    Contract.external.is_(True),
                )
            )
            return result.scalar_one_or_none() is not None

    async def create(self, contract_address: str, network: str, **values: Any) -> None:
        async with self.session_maker() as session:
            session.add(Contract(contract_address=contract_address, network=network, **values))
            await session.commit()

    async def delete(self, contract_address: str, network: str) -> int:
        async with self.session_maker() as session:
            result = await session.execute(
                delete(Contract).where(
                    Contract.contract_address == contract_address,
                    Contract.network == network,
                )
            )
            await session.commit()
            return result.rowcount


class SqlRepositories:
    """All repositories over one session maker."""

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        self.checkpoints = SqlCheckpointRepository(session_maker)
        self.offer_pools = SqlOfferPoolRepository(session_maker)
        self.products = SqlProductRepository(session_maker)
        self.offers = SqlOfferRepository(session_maker)
        self.tokens = SqlMintedTokenRepository(session_maker)
        self.contracts = SqlContractRepository(session_maker)
