"""
Repositories for catalog and checkpoint persistence.
"""

from .protocols import (
    CheckpointRepository,
    ContractRepository,
    MintedTokenRepository,
    OfferPoolRepository,
    OfferRepository,
    ProductRepository,
)
from .sql import SqlRepositories

__all__ = [
    "CheckpointRepository",
    "ContractRepository",
    "MintedTokenRepository",
    "OfferPoolRepository",
    "OfferRepository",
    "ProductRepository",
    "SqlRepositories",
]
