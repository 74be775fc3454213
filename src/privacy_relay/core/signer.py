"""
Custodial signers: the pool's private key material, one object per chain.

Signers are created once at start-up from configuration and handed to the
payout dispatcher. Private keys never leave this module; callers only ever
see the pool address.
"""

from __future__ import annotations

import threading

from eth_account import Account
from eth_account.signers.local import LocalAccount
from solders.keypair import Keypair


class SignerError(Exception):
    """Raised when pool key material cannot be loaded."""
    pass


class CustodialSigner:
    """
    Base class for a pool key held by the relay.

    Every signer carries a lock. Holding it serializes submissions from the
    same account so nonces and balances are never raced.
    """

    def __init__(self, address: str) -> None:
        self.address = address
        self.lock = threading.Lock()

    def __repr__(self) -> str:
        return f"{type(self).__name__}(address={self.address!r})"


class SolanaSigner(CustodialSigner):
    """Pool keypair on Solana."""

    def __init__(self, keypair: Keypair) -> None:
        super().__init__(str(keypair.pubkey()))
        self.keypair = keypair

    @classmethod
    def from_base58(cls, secret: str) -> SolanaSigner:
        """
        Load a signer from a base58-encoded 64-byte secret key
        (the format exported by Phantom and `solana-keygen`).
        """
        try:
            keypair = Keypair.from_base58_string(secret.strip())
        except Exception as e:
            raise SignerError(f"Invalid Solana secret key: {type(e).__name__}") from None
        return cls(keypair)


class EvmSigner(CustodialSigner):
    """Pool account on an EVM chain (Ethereum, BNB Smart Chain)."""

    def __init__(self, account: LocalAccount) -> None:
        super().__init__(account.address)
        self.account = account

    @classmethod
    def from_private_key(cls, private_key: str) -> EvmSigner:
        """Load a signer from a hex private key, with or without 0x prefix."""
        try:
            account = Account.from_key(private_key.strip())
        except Exception as e:
            raise SignerError(f"Invalid EVM private key: {type(e).__name__}") from None
        return cls(account)
