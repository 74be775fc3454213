"""
Payout Dispatcher: moves value out of the custodial pool to the recipient.

The payout is the deposited amount minus the chain's flat network fee. The
dispatcher fails closed when the deposit cannot cover the fee, and never
retries on its own: a failed payout is reported to the orchestrator, which
records it for reconciliation.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal

from privacy_relay.chains.base import BroadcastHook, ChainClientError
from privacy_relay.relay.errors import PayoutError
from privacy_relay.relay.runtime import ChainRuntime

logger = logging.getLogger("privacy_relay.dispatcher")


@dataclass
class Payout:
    tx_id: str
    amount: int  # base units sent to the recipient


class PayoutDispatcher:

    def payout_amount(self, runtime: ChainRuntime, gross_amount: str) -> int:
        """Base units the recipient receives for a deposit of `gross_amount`."""
        return runtime.client.to_base_units(Decimal(gross_amount)) - runtime.network_fee

    def dispatch(
        self,
        runtime: ChainRuntime,
        recipient: str,
        gross_amount: str,
        replaces: str | None = None,
        on_broadcast: BroadcastHook | None = None,
    ) -> Payout:
        """
        Send `gross_amount` minus the network fee from the pool to `recipient`.

        Submissions from the same pool key are serialized on the signer's lock,
        held until the transfer is confirmed. `replaces` and `on_broadcast` are
        handed to the chain client unchanged.

        Raises:
            PayoutError: `amount_too_small` before anything is submitted, or
                `submission_failed` if the chain rejects or never confirms it
        """
        if runtime.signer is None:
            raise PayoutError(
                PayoutError.SUBMISSION_FAILED,
                f"{runtime.chain.value} pool wallet not initialized",
            )

        amount = self.payout_amount(runtime, gross_amount)
        if amount <= 0:
            raise PayoutError(
                PayoutError.AMOUNT_TOO_SMALL, "Amount too small to cover network fee"
            )

        signer = runtime.signer
        with signer.lock:
            try:
                tx_id = runtime.client.submit_transfer(
                    signer, recipient, amount, replaces=replaces, on_broadcast=on_broadcast
                )
            except ChainClientError as e:
                raise PayoutError(PayoutError.SUBMISSION_FAILED, str(e), tx_id=e.tx_id) from e
            except Exception as e:
                raise PayoutError(
                    PayoutError.SUBMISSION_FAILED, f"{type(e).__name__}: {e}"
                ) from e

        logger.debug(f"Payout {tx_id}: {amount} base units to {recipient} on {runtime.chain.value}")
        return Payout(tx_id=tx_id, amount=amount)
