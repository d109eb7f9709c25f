import rlp  # type: ignore
from eth_utils import is_address, to_canonical_address, to_checksum_address
from typing import Optional

from .hash import keccak256


def contract_address(sender: str, nonce: int) -> str:
    """
    Address of a contract created by `sender` with account nonce `nonce` (CREATE).

    address = keccak256(rlp([sender, nonce]))[12:]
    """
    if nonce < 0:
        raise ValueError(f"Nonce must be non-negative, got {nonce}")
    sender_bytes = to_canonical_address(sender)
    digest = keccak256(rlp.encode([sender_bytes, nonce]))
    return to_checksum_address(digest[12:])

def normalize_address(addr: str) -> str:
    """Returns the EIP-55 checksum form of an address."""
    if not is_address(addr):
        raise ValueError(f"Invalid address: {addr}")
    return to_checksum_address(addr)

def is_valid_address(addr: Optional[str]) -> bool:
    if not addr:
        return False
    return is_address(addr)

def same_address(a: str, b: str) -> bool:
    try:
        return normalize_address(a) == normalize_address(b)
    except ValueError:
        return False
