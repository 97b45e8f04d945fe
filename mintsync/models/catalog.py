"""
Catalog models - contracts, products, offer pools and offers.

Relationships are join-by-value: contract address plus integer indices.
"""

from typing import Optional

from sqlalchemy import String, Integer, BigInteger, Boolean, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from .base import BaseModel, TimestampMixin


class Contract(BaseModel, TimestampMixin):
    """A token contract known to the catalog."""

    __tablename__ = "contracts"
    __table_args__ = (
        UniqueConstraint("contract_address", "network", name="uq_contract_address_network"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    contract_address: Mapped[str] = mapped_column(
        String(42),
        comment="Lower-cased contract address"
    )

    network: Mapped[str] = mapped_column(
        String(50),
        comment="Chain identifier"
    )

    title: Mapped[Optional[str]] = mapped_column(
        String(200),
        comment="Collection title"
    )

    user: Mapped[Optional[str]] = mapped_column(
        String(100),
        comment="Creator or import marker"
    )

    external: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        comment="Imported from an unmanaged contract"
    )


class Product(BaseModel, TimestampMixin):
    """A collection inside a contract."""

    __tablename__ = "products"
    __table_args__ = (
        UniqueConstraint("contract", "collection_index_in_contract", name="uq_product_contract_index"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    contract: Mapped[str] = mapped_column(String(42), index=True)

    collection_index_in_contract: Mapped[int] = mapped_column(
        Integer,
        comment="Collection index inside the contract"
    )

    name: Mapped[Optional[str]] = mapped_column(String(200))

    copies: Mapped[int] = mapped_column(BigInteger, comment="Total copies")

    sold_copies: Mapped[int] = mapped_column(
        BigInteger,
        default=0,
        comment="Minted copies, never decreases"
    )

    sold: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        comment="sold_copies == copies"
    )

    first_token_index: Mapped[int] = mapped_column(
        BigInteger,
        default=0,
        comment="Offset of this collection in the contract-wide token index"
    )

    transaction_hash: Mapped[Optional[str]] = mapped_column(String(100))


class OfferPool(BaseModel, TimestampMixin):
    """Maps an on-chain marketplace catalog index to a product."""

    __tablename__ = "offer_pools"
    __table_args__ = (
        UniqueConstraint("contract", "marketplace_catalog_index", name="uq_offer_pool_catalog_index"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    contract: Mapped[str] = mapped_column(String(42), index=True)

    marketplace_catalog_index: Mapped[int] = mapped_column(
        Integer,
        comment="Catalog index on the minter contract"
    )

    product: Mapped[int] = mapped_column(
        Integer,
        comment="collection_index_in_contract of the referenced product"
    )

    range_number: Mapped[int] = mapped_column(Integer, default=0)

    transaction_hash: Mapped[Optional[str]] = mapped_column(String(100))


class Offer(BaseModel, TimestampMixin):
    """A sale offer covering a contiguous token-index range."""

    __tablename__ = "offers"
    __table_args__ = (
        UniqueConstraint("contract", "offer_pool", "offer_index", name="uq_offer_pool_index"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    contract: Mapped[str] = mapped_column(String(42), index=True)

    offer_pool: Mapped[int] = mapped_column(Integer)

    offer_index: Mapped[int] = mapped_column(Integer)

    product: Mapped[int] = mapped_column(
        Integer,
        comment="collection_index_in_contract of the owning product"
    )

    range_low: Mapped[int] = mapped_column(BigInteger)

    range_high: Mapped[int] = mapped_column(BigInteger)

    offer_name: Mapped[Optional[str]] = mapped_column(String(200))

    price: Mapped[str] = mapped_column(String(80), default="0")

    copies: Mapped[int] = mapped_column(BigInteger)

    sold_copies: Mapped[int] = mapped_column(BigInteger, default=0)

    sold: Mapped[bool] = mapped_column(Boolean, default=False)

    transaction_hash: Mapped[Optional[str]] = mapped_column(String(100))
