"""Wallet address and transaction signature parsing.

Addresses parse to ``solders.pubkey.Pubkey`` and transaction ids to
``solders.signature.Signature``; ``str()`` of either gives back the base58 form.
"""
from typing import Optional

from solders.pubkey import Pubkey
from solders.signature import Signature

class InvalidAddressError(ValueError):
    """Raised when a string is not a valid base58 public key."""
    reason = 'invalid_address'

def to_pubkey(address: str) -> Pubkey:
    """Parse a base58 wallet address.

    Raises:
        InvalidAddressError: If the address is not a 32-byte public key
    """
    if not isinstance(address, str) or not address:
        raise InvalidAddressError("Wallet address is required")
    try:
        return Pubkey.from_string(address)
    except ValueError as e:
        raise InvalidAddressError(f"Invalid wallet address: {address}") from e

def to_signature(signature: str) -> Optional[Signature]:
    """Parse a base58 transaction signature, None if it is not one."""
    if not isinstance(signature, str) or not signature:
        return None
    try:
        return Signature.from_string(signature)
    except ValueError:
        return None

__all__ = ['InvalidAddressError', 'to_pubkey', 'to_signature']
