"""
External collection import.
"""

from .contract_importer import ContractImporter, ImportOutcome

__all__ = ["ContractImporter", "ImportOutcome"]
