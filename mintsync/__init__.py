"""
mintsync

Keeps an off-chain token catalog in step with on-chain TokenMinted events:
- Incremental event sync from a per-network block checkpoint
- Sold-copy reconciliation for offers and products
- Metadata pinning for tokens that have metadata but no durable URI
- One-shot import of external collections
"""

__version__ = "0.1.0"
