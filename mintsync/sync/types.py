"""
Core types for the token sync engine.
"""

from datetime import datetime
from dataclasses import dataclass, field
from typing import Any, Dict, List, NamedTuple, Optional

from mintsync.models.token import METADATA_NONE


class OfferKey(NamedTuple):
    contract: str
    offer_pool: int
    offer_index: int


class ProductKey(NamedTuple):
    contract: str
    collection_index_in_contract: int


class TokenKey(NamedTuple):
    contract: str
    offer_pool: int
    token_index: int


@dataclass(frozen=True)
class RawEvent:
    """A decoded TokenMinted event as delivered by the indexing service."""
    block_number: int
    owner_address: str
    contract_address: str
    catalog_index: int
    range_index: int
    token_index: int

    @property
    def token_key(self) -> TokenKey:
        return TokenKey(self.contract_address, self.catalog_index, self.token_index)


@dataclass
class ProductRecord:
    contract: str
    collection_index_in_contract: int
    copies: int
    sold_copies: int = 0
    sold: bool = False
    first_token_index: int = 0

    @property
    def key(self) -> ProductKey:
        return ProductKey(self.contract, self.collection_index_in_contract)


@dataclass
class OfferPoolRecord:
    contract: str
    marketplace_catalog_index: int
    product: int


@dataclass
class OfferRecord:
    contract: str
    offer_pool: int
    offer_index: int
    product: int
    range_low: int
    range_high: int
    copies: int
    sold_copies: int = 0
    sold: bool = False

    @property
    def key(self) -> OfferKey:
        return OfferKey(self.contract, self.offer_pool, self.offer_index)

    def contains(self, token_index: int) -> bool:
        """Ranges are inclusive on both ends."""
        return self.range_low <= token_index <= self.range_high


@dataclass
class TokenRecord:
    """Snapshot of an existing MintedToken row."""
    contract: str
    offer_pool: int
    token_index: int
    is_minted: bool = False
    token_metadata: Optional[Dict[str, Any]] = None
    metadata_uri: str = METADATA_NONE

    @property
    def key(self) -> TokenKey:
        return TokenKey(self.contract, self.offer_pool, self.token_index)

    def needs_metadata_pin(self) -> bool:
        metadata = self.token_metadata or {}
        return (
            bool(metadata)
            and metadata.get("name", METADATA_NONE) != METADATA_NONE
            and (self.metadata_uri or METADATA_NONE) == METADATA_NONE
        )


@dataclass
class TokenUpsert:
    """Fields written for one token, keyed by (contract, offer_pool, token_index)."""
    key: TokenKey
    owner_address: str
    offer: Optional[int]
    product: int
    unique_index_in_contract: int
    authenticity_link: str
    is_minted: bool = True
    metadata_uri: Optional[str] = None

    def values(self) -> Dict[str, Any]:
        values = {
            "owner_address": self.owner_address,
            "offer": self.offer,
            "product": self.product,
            "unique_index_in_contract": self.unique_index_in_contract,
            "authenticity_link": self.authenticity_link,
            "is_minted": self.is_minted,
        }
        if self.metadata_uri is not None:
            values["metadata_uri"] = self.metadata_uri
        return values


@dataclass
class CountUpdate:
    """Absolute sold_copies value for one offer or product."""
    key: Any
    sold_copies: int
    sold: bool


@dataclass
class MintResolution:
    """Outcome of resolving one raw event, private to the handler that built it."""
    event: RawEvent
    product: Optional[ProductRecord] = None
    offer: Optional[OfferRecord] = None
    existing_token: Optional[TokenRecord] = None
    upsert: Optional[TokenUpsert] = None
    skip_reason: Optional[str] = None

    @property
    def resolved(self) -> bool:
        return self.product is not None

    @property
    def already_minted(self) -> bool:
        return self.existing_token is not None and self.existing_token.is_minted


@dataclass
class WriteResult:
    """Outcome of one unordered bulk write group."""
    group: str
    attempted: int = 0
    written: int = 0
    errors: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors

    @classmethod
    def failed(cls, group: str, attempted: int, error: BaseException) -> "WriteResult":
        return cls(group=group, attempted=attempted, written=0, errors=[f"{type(error).__name__}: {error}"])


@dataclass
class SyncPassReport:
    """Report of one sync tokens pass."""
    pass_id: str
    job_name: str
    network: str
    started_at: datetime
    from_block: int = 0
    completed_at: Optional[datetime] = None
    events_fetched: int = 0
    events_resolved: int = 0
    events_skipped: int = 0
    sales_counted: int = 0
    pin_failures: int = 0
    write_results: List[WriteResult] = field(default_factory=list)
    checkpoint: Optional[int] = None
    checkpoint_advanced: bool = False

    @property
    def duration_seconds(self) -> Optional[float]:
        if self.completed_at and self.started_at:
            return (self.completed_at - self.started_at).total_seconds()
        return None

    @property
    def failed_groups(self) -> List[str]:
        return [result.group for result in self.write_results if not result.ok]
