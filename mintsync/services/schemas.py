"""
Typed records for indexing-service responses.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from mintsync.sync.types import RawEvent


class TokenMintedData(BaseModel):
    """Decoded TokenMinted arguments."""

    model_config = ConfigDict(populate_by_name=True)

    owner_address: str = Field(alias="ownerAddress")
    contract_address: str = Field(alias="contractAddress")
    catalog_index: int = Field(alias="catalogIndex", ge=0)
    range_index: int = Field(alias="rangeIndex", ge=0)
    token_index: int = Field(alias="tokenIndex", ge=0)

    @field_validator("owner_address", "contract_address")
    @classmethod
    def lower_address(cls, v: str) -> str:
        if not v:
            raise ValueError("empty address")
        return v.lower()


class ContractEventRecord(BaseModel):
    block_number: int = Field(ge=0)
    transaction_hash: Optional[str] = None
    data: TokenMintedData

    def to_raw_event(self) -> RawEvent:
        return RawEvent(
            block_number=self.block_number,
            owner_address=self.data.owner_address,
            contract_address=self.data.contract_address,
            catalog_index=self.data.catalog_index,
            range_index=self.data.range_index,
            token_index=self.data.token_index,
        )


class Page(BaseModel):
    """Paginated envelope: {result, total, page, page_size, cursor}."""

    total: Optional[int] = None
    page: Optional[int] = None
    page_size: Optional[int] = None
    cursor: Optional[str] = None
    result: List[Dict[str, Any]] = Field(default_factory=list)

    @property
    def has_next(self) -> bool:
        return bool(self.cursor)


class EventPage(Page):
    events: List[RawEvent] = Field(default_factory=list)
    dropped: int = 0


class NftOwnerRecord(BaseModel):
    token_id: int
    token_address: Optional[str] = None
    owner_of: Optional[str] = None
    token_uri: Optional[str] = None
    metadata: Optional[str] = None
    name: Optional[str] = None


class NftOwnersPage(Page):
    tokens: List[NftOwnerRecord] = Field(default_factory=list)
    dropped: int = 0
