"""
ABI helpers for the minter contract.
"""

from typing import Any, Dict, List, Tuple

from web3 import Web3


# TokenMinted(address ownerAddress, address contractAddress, uint256 catalogIndex, uint256 rangeIndex, uint256 tokenIndex)
MINTER_ABI: List[Dict[str, Any]] = [
    {
        "anonymous": False,
        "inputs": [
            {"indexed": False, "internalType": "address", "name": "ownerAddress", "type": "address"},
            {"indexed": False, "internalType": "address", "name": "contractAddress", "type": "address"},
            {"indexed": False, "internalType": "uint256", "name": "catalogIndex", "type": "uint256"},
            {"indexed": False, "internalType": "uint256", "name": "rangeIndex", "type": "uint256"},
            {"indexed": False, "internalType": "uint256", "name": "tokenIndex", "type": "uint256"},
        ],
        "name": "TokenMinted",
        "type": "event",
    },
]


def event_signature(entry: Dict[str, Any]) -> str:
    types = ",".join(item["type"] for item in entry.get("inputs", []))
    return f"{entry['name']}({types})"


def get_abi_data(abi: List[Dict[str, Any]], entry_type: str, name: str) -> Tuple[Dict[str, Any], str]:
    """
    Find an ABI entry and its topic.

    Returns:
        (abi entry, keccak-256 topic of the canonical signature as 0x-hex)
    """
    for entry in abi:
        if entry.get("type") == entry_type and entry.get("name") == name:
            topic = Web3.to_hex(Web3.keccak(text=event_signature(entry)))
            return entry, topic
    raise KeyError(f"{entry_type} {name} not found in ABI")
