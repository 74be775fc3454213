"""
Deposit Verifier: treats the chain as the only source of truth.

A client-submitted deposit id is accepted only if the transaction exists,
executed successfully, came from the expected sender, paid the pool, and
moved the expected amount within tolerance.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal

from privacy_relay.chains.base import ChainClient, ChainClientError
from privacy_relay.core.models import PENDING_SENDER
from privacy_relay.relay.errors import VerificationFailed, VerificationReason

logger = logging.getLogger("privacy_relay.verifier")


@dataclass
class VerifiedDeposit:
    """
    Outcome of a successful verification.

    Attributes:
        tx_id: The deposit transaction id.
        sender: The on-chain sender (used to backfill a deferred sender).
        value: Base units actually received.
        block_time: Block timestamp, when the chain reports one.
    """
    tx_id: str
    sender: str | None
    value: int
    block_time: int | None = None


class DepositVerifier:

    def verify(
        self,
        client: ChainClient,
        tx_id: str,
        expected_sender: str,
        expected_recipient: str,
        expected_amount: str,
        tolerance: int,
    ) -> VerifiedDeposit:
        """
        Check a deposit transaction against the session it claims to fund.

        Args:
            client: Chain client for the session's chain.
            tx_id: Deposit transaction id / signature.
            expected_sender: Session sender, or PENDING_SENDER to accept any.
            expected_recipient: The pool address (or the recipient of a recorded transfer).
            expected_amount: Session amount as a decimal string.
            tolerance: Allowed |actual - expected| in base units.

        Raises:
            VerificationFailed: with the first check that did not pass
        """
        try:
            tx = client.get_transaction(tx_id)
        except ChainClientError as e:
            logger.warning(f"Deposit lookup for {tx_id} on {client.chain.value} failed: {e}")
            raise VerificationFailed(VerificationReason.LOOKUP_FAILED) from e

        if tx is None:
            raise VerificationFailed(VerificationReason.NOT_FOUND)

        if tx.pending:
            raise VerificationFailed(
                VerificationReason.NOT_FOUND, "Transaction not yet confirmed on chain"
            )

        if not tx.succeeded:
            raise VerificationFailed(VerificationReason.CHAIN_FAILURE)

        if expected_sender != PENDING_SENDER and not client.same_address(tx.sender, expected_sender):
            raise VerificationFailed(VerificationReason.SENDER_MISMATCH)

        if not client.same_address(tx.recipient, expected_recipient):
            raise VerificationFailed(VerificationReason.RECIPIENT_MISMATCH)

        expected_units = client.to_base_units(Decimal(expected_amount))
        if abs(tx.value - expected_units) > tolerance:
            raise VerificationFailed(
                VerificationReason.AMOUNT_MISMATCH,
                f"Amount mismatch: expected {expected_amount}, "
                f"received {client.from_base_units(tx.value).normalize():f}",
            )

        return VerifiedDeposit(
            tx_id=tx_id, sender=tx.sender, value=tx.value, block_time=tx.block_time
        )
