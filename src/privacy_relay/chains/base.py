"""
ChainClient: the capability interface every supported chain family implements.

The relay core (verifier, dispatcher, orchestrator) is written once against
this interface; chain-specific lookup, signing and submission live in the
implementations.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable
from decimal import Decimal
from typing import Any

from privacy_relay.core.models import Chain, ChainTransaction, from_base_units, to_base_units
from privacy_relay.core.signer import CustodialSigner

# Called with (tx_id, reference) once a transfer is signed and before it is sent
BroadcastHook = Callable[[str, str], None]


class ChainClientError(Exception):
    """
    Raised when a chain RPC call fails.

    `tx_id` is set when a transfer may have been broadcast but its confirmation
    could not be established, so the caller can reconcile it later.
    """

    def __init__(self, message: str, tx_id: str | None = None) -> None:
        super().__init__(message)
        self.tx_id = tx_id


class ChainClient(ABC):
    """Read and write access to one chain."""

    # Whether sessions on this chain may be created before the sender is known
    defers_sender: bool = False
    rpc_url: str | None = None

    def __init__(self, chain: Chain) -> None:
        self.chain = chain

    @property
    def decimals(self) -> int:
        return self.chain.decimals

    @abstractmethod
    def validate_address(self, address: str) -> bool:
        """Return True if `address` is well-formed for this chain."""

    @abstractmethod
    def get_transaction(self, tx_id: str) -> ChainTransaction | None:
        """Look a transaction up by id. Returns None when the chain does not know it."""

    @abstractmethod
    def get_balance(self, address: str) -> int:
        """Return the balance of `address` in base units."""

    @abstractmethod
    def submit_transfer(
        self,
        signer: CustodialSigner,
        recipient: str,
        amount: int,
        replaces: str | None = None,
        on_broadcast: BroadcastHook | None = None,
    ) -> str:
        """
        Send `amount` base units from the signer's account to `recipient` and
        block until the transfer is confirmed.

        Args:
            replaces: reference of an earlier broadcast that never landed; chains
                that can supersede a transaction (EVM nonces) use it to make
                sure at most one of the two executes
            on_broadcast: called with the transaction id and its reference after
                signing and before sending; an exception aborts the transfer

        Returns:
            str: the transaction id
        """

    def lookup_broadcast(self, tx_id: str, reference: str | None) -> ChainTransaction | None:
        """
        Look up a transfer this relay broadcast earlier.

        Returns a `pending` transaction while it may still execute, and None
        once it is known never to land.
        """
        return self.get_transaction(tx_id)

    def same_address(self, a: str | None, b: str | None) -> bool:
        return a is not None and b is not None and a == b

    def to_base_units(self, amount: Decimal) -> int:
        return to_base_units(amount, self.decimals)

    def from_base_units(self, units: int) -> Decimal:
        return from_base_units(units, self.decimals)

    def close(self) -> None:
        """Release network resources."""

    def __enter__(self) -> ChainClient:
        return self

    def __exit__(self, *_: Any) -> None:
        self.close()
