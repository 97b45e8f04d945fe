"""
Repository interfaces the sync engine depends on.

SQLAlchemy implementations live next to this module; tests use in-memory fakes.
"""

from typing import Any, Dict, List, Optional, Protocol, Sequence

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


class CheckpointRepository(Protocol):
    async def get(self, job_name: str, network: str) -> Optional[int]:
        ...

    async def save_if_greater(self, job_name: str, network: str, block_number: int) -> bool:
        """Store ``block_number`` unless the stored value is already >= it."""
        ...


class OfferPoolRepository(Protocol):
    async def find(self, contract: str, catalog_index: int) -> Optional[OfferPoolRecord]:
        ...

    async def create(self, record: OfferPoolRecord, **extra: Any) -> None:
        ...

    async def delete_for_contract(self, contract: str) -> int:
        ...


class ProductRepository(Protocol):
    async def find(self, contract: str, collection_index: int) -> Optional[ProductRecord]:
        ...

    async def create(self, record: ProductRecord, **extra: Any) -> None:
        ...

    async def bulk_set_sold_copies(self, updates: Sequence[CountUpdate]) -> WriteResult:
        ...

    async def delete_for_contract(self, contract: str) -> int:
        ...


class OfferRepository(Protocol):
    async def list_for_product(self, contract: str, product: int) -> List[OfferRecord]:
        ...

    async def create(self, record: OfferRecord, **extra: Any) -> None:
        ...

    async def bulk_set_sold_copies(self, updates: Sequence[CountUpdate]) -> WriteResult:
        ...

    async def delete_for_contract(self, contract: str) -> int:
        ...


class MintedTokenRepository(Protocol):
    async def find(self, key: TokenKey) -> Optional[TokenRecord]:
        ...

    async def bulk_upsert(self, upserts: Sequence[TokenUpsert]) -> WriteResult:
        ...

    async def insert(self, key: TokenKey, values: Dict[str, Any]) -> None:
        ...

    async def delete_for_contract(self, contract: str) -> int:
        ...


class ContractRepository(Protocol):
    async def find_external(self, contract_address: str, network: str) -> bool:
        ...

    async def create(self, contract_address: str, network: str, **values: Any) -> None:
        ...

    async def delete(self, contract_address: str, network: str) -> int:
        ...
