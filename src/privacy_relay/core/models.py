"""
Core data models for the relay.
Amounts travel as decimal strings and are converted to integer base units
(lamports, wei) before any arithmetic.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal, InvalidOperation
from enum import Enum

from pydantic import BaseModel

# Sender placeholder for chains where the depositor is only known once the
# deposit transaction has been looked up.
PENDING_SENDER = "pending"


class Chain(str, Enum):
    SOLANA = "solana"
    ETHEREUM = "ethereum"
    BNB = "bnb"

    @classmethod
    def parse(cls, value: str) -> Chain:
        """Resolve a chain identifier, accepting the common aliases."""
        key = value.strip().lower()
        key = _CHAIN_ALIASES.get(key, key)
        try:
            return cls(key)
        except ValueError:
            raise ValueError(f"Unsupported chain: {value}") from None

    @property
    def decimals(self) -> int:
        return 9 if self is Chain.SOLANA else 18


_CHAIN_ALIASES = {
    "sol": "solana",
    "eth": "ethereum",
    "bsc": "bnb",
}


class SessionStatus(str, Enum):
    PENDING = "pending"
    DEPOSIT_CONFIRMED = "deposit_confirmed"
    COMPLETED = "completed"
    PAYOUT_FAILED = "payout_failed"


class MixerSession(BaseModel):
    """One request to relay funds from a sender to a recipient via the pool."""
    id: str
    chain: Chain
    sender_address: str
    recipient_address: str
    amount: str
    status: SessionStatus = SessionStatus.PENDING
    deposit_signature: str | None = None
    payout_signature: str | None = None
    created_at: datetime
    deposit_confirmed_at: datetime | None = None
    payout_sent_at: datetime | None = None

    # Reconciliation bookkeeping, never exposed on the public API
    payout_error: str | None = None
    payout_attempts: int = 0
    payout_started_at: datetime | None = None
    last_payout_tx: str | None = None
    # Chain data needed to tell whether last_payout_tx can still land
    last_payout_ref: str | None = None

    @property
    def sender_deferred(self) -> bool:
        return self.sender_address == PENDING_SENDER


class ChainTransaction(BaseModel):
    """
    A transaction as reported by a chain, reduced to what deposit checks need.

    `pending` marks a broadcast that is not final yet and may still execute;
    `succeeded` is only True once it has executed successfully.
    """
    tx_id: str
    sender: str | None
    recipient: str | None
    value: int  # base units actually moved to the recipient
    succeeded: bool
    pending: bool = False
    block_time: int | None = None


class TransferRecord(BaseModel):
    """A transfer checked on chain and kept for the sender and recipient history."""
    id: str
    chain: Chain
    signature: str
    from_address: str
    to_address: str
    amount: str
    fee: str | None = None
    status: str = "confirmed"
    timestamp: datetime
    block_time: int | None = None


def parse_amount(amount: str | Decimal) -> Decimal:
    """
    Parse a user-supplied amount into a positive, finite Decimal.

    Raises:
        ValueError: if the amount is malformed, non-finite or not positive
    """
    try:
        value = Decimal(str(amount).strip())
    except (InvalidOperation, ValueError):
        raise ValueError(f"Invalid amount: {amount!r}") from None
    if not value.is_finite():
        raise ValueError(f"Invalid amount: {amount!r}")
    if value <= 0:
        raise ValueError("Amount must be greater than zero")
    return value


def to_base_units(amount: Decimal, decimals: int) -> int:
    """
    Convert a native-unit amount to integer base units without rounding.

    Raises:
        ValueError: if the amount has more fractional digits than the unit allows
    """
    scaled = amount.scaleb(decimals)
    if scaled != scaled.to_integral_value():
        raise ValueError(
            f"Amount {amount} has more than {decimals} decimal places"
        )
    return int(scaled)


def from_base_units(units: int, decimals: int) -> Decimal:
    """Convert integer base units back to a native-unit Decimal."""
    return Decimal(units).scaleb(-decimals)
