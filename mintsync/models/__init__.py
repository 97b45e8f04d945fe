"""
Database models for mintsync.

SQLAlchemy models for the denormalized token catalog and job checkpoints.
"""

from .base import Base, BaseModel, TimestampMixin
from .checkpoint import Checkpoint
from .catalog import Contract, Product, OfferPool, Offer
from .token import MintedToken, METADATA_NONE

__all__ = [
    "Base",
    "BaseModel",
    "TimestampMixin",
    "Checkpoint",
    "Contract",
    "Product",
    "OfferPool",
    "Offer",
    "MintedToken",
    "METADATA_NONE",
]
