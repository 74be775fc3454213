"""
Address format validation for the supported chain families.

Solana: Base58-encoded 32-byte ed25519 public key.
EVM:    0x + 40 hex digits. Mixed-case addresses must carry a valid
        EIP-55 checksum; all-lower or all-upper addresses are accepted as-is.
"""

from __future__ import annotations

import re

from eth_utils import is_checksum_address

# Base58 alphabet (same as Bitcoin)
_ALPHABET = b"123456789ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz"
_ALPHABET_MAP = {char: i for i, char in enumerate(_ALPHABET)}

_EVM_ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")

SOLANA_PUBKEY_LENGTH = 32


class AddressError(Exception):
    """Raised for malformed addresses."""

    pass


def validate_solana_address(address: str) -> bool:
    """
    Validate a Solana address.

    Returns:
        True if valid

    Raises:
        AddressError: if the address is not Base58 or not 32 bytes long
    """
    try:
        raw = _base58_decode(address)
    except Exception as e:
        raise AddressError(f"Invalid Base58 encoding: {e}") from None

    if len(raw) != SOLANA_PUBKEY_LENGTH:
        raise AddressError(
            f"Solana address must decode to {SOLANA_PUBKEY_LENGTH} bytes, got {len(raw)}"
        )
    return True


def validate_evm_address(address: str) -> bool:
    """
    Validate an Ethereum-style address.

    Raises:
        AddressError: if the address is malformed or fails its EIP-55 checksum
    """
    if not _EVM_ADDRESS_RE.match(address):
        raise AddressError(f"Not a 20-byte hex address: {address!r}")

    body = address[2:]
    if body != body.lower() and body != body.upper() and not is_checksum_address(address):
        raise AddressError(f"EIP-55 checksum mismatch: {address}")
    return True


def is_valid_solana_address(address: str) -> bool:
    try:
        return validate_solana_address(address)
    except AddressError:
        return False


def is_valid_evm_address(address: str) -> bool:
    try:
        return validate_evm_address(address)
    except AddressError:
        return False


# ------------------------------------------------------------------
# Internal helpers
# ------------------------------------------------------------------


def _base58_decode(s: str) -> bytes:
    """Decode a Base58-encoded string to bytes."""
    if not s:
        raise ValueError("empty string")

    n = 0
    for char in s.encode("ascii"):
        n = n * 58 + _ALPHABET_MAP[char]

    if n == 0:
        result = b""
    else:
        byte_length = (n.bit_length() + 7) // 8
        result = n.to_bytes(byte_length, "big")

    # Preserve leading zeros (each leading '1' in Base58 = 0x00 byte)
    pad_size = 0
    for char in s.encode("ascii"):
        if char == _ALPHABET[0]:
            pad_size += 1
        else:
            break

    return b"\x00" * pad_size + result
