"""
Clients for the services the sync engine talks to.
"""

from .indexing_client import IndexingServiceClient
from .pinning import MetadataPinner, PinningClient

__all__ = ["IndexingServiceClient", "MetadataPinner", "PinningClient"]
