"""
MintedToken model - one row per token of an offer pool.
"""

from typing import Optional, Dict, Any

from sqlalchemy import String, Integer, BigInteger, Boolean, Text, JSON, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from .base import BaseModel, TimestampMixin


METADATA_NONE = "none"


class MintedToken(BaseModel, TimestampMixin):
    """Individual token, keyed by (contract, offer_pool, token_index)."""

    __tablename__ = "minted_tokens"
    __table_args__ = (
        UniqueConstraint("contract", "offer_pool", "token_index", name="uq_minted_token_key"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    contract: Mapped[str] = mapped_column(String(42), index=True)

    offer_pool: Mapped[int] = mapped_column(Integer)

    token_index: Mapped[int] = mapped_column(
        BigInteger,
        comment="Token index inside the offer pool"
    )

    owner_address: Mapped[Optional[str]] = mapped_column(String(42), index=True)

    offer: Mapped[Optional[int]] = mapped_column(
        Integer,
        comment="offer_index of the offer whose range holds this token"
    )

    product: Mapped[Optional[int]] = mapped_column(Integer)

    unique_index_in_contract: Mapped[Optional[int]] = mapped_column(
        BigInteger,
        comment="first_token_index + token_index"
    )

    authenticity_link: Mapped[Optional[str]] = mapped_column(Text)

    metadata_uri: Mapped[str] = mapped_column(
        Text,
        default=METADATA_NONE,
        comment="Durable publish URI, 'none' until pinned"
    )

    # `metadata` is reserved on declarative classes
    token_metadata: Mapped[Optional[Dict[str, Any]]] = mapped_column(
        "metadata",
        JSON,
        comment="Off-chain metadata document"
    )

    is_minted: Mapped[bool] = mapped_column(Boolean, default=False)

