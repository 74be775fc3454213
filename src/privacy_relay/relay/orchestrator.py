"""
Relay Session Orchestrator: the mixer session state machine.

    pending --confirm_deposit(ok)--> deposit_confirmed --payout(ok)--> completed
                                                       --payout(err)--> payout_failed
    pending --confirm_deposit(err)--> pending   (caller may retry)
    payout_failed --retry_payout (operator)--> deposit_confirmed --> ...
    deposit_confirmed, abandoned past payout_timeout --retry_payout--> deposit_confirmed --> ...

A session never returns to `pending`. Every transition is a compare-and-swap
in the store, so duplicate requests for one session cannot both pay out.
Each payout broadcast is recorded before it is sent, and a retry refuses to
send again while that broadcast can still land.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from decimal import Decimal

from privacy_relay.chains.base import ChainClientError
from privacy_relay.core.models import (
    PENDING_SENDER,
    Chain,
    MixerSession,
    SessionStatus,
    TransferRecord,
    parse_amount,
)
from privacy_relay.relay.dispatcher import PayoutDispatcher
from privacy_relay.relay.errors import (
    ChainNotConfigured,
    ChainUnavailable,
    InvalidSessionState,
    PayoutError,
    PayoutFailed,
    RelayError,
    SessionNotFound,
    TransferExists,
    TransferNotFound,
    UnsupportedChain,
    ValidationFailed,
    VerificationFailed,
    VerificationReason,
)
from privacy_relay.relay.runtime import ChainRuntime
from privacy_relay.relay.verifier import DepositVerifier
from privacy_relay.storage.sessions import DuplicateDepositError, SessionStore
from privacy_relay.storage.transfers import DuplicateTransferError, TransferStore

logger = logging.getLogger("privacy_relay.relay")

DEFAULT_CHAIN = Chain.SOLANA


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RelayService:
    """
    Drives mixer sessions through their lifecycle.

    Usage:
        relay = RelayService(store, build_runtimes(settings))
        session, pool_address = relay.create(sender, recipient, "1.0", "solana")
        session = relay.confirm_deposit(session.id, deposit_signature)
    """

    def __init__(
        self,
        store: SessionStore,
        runtimes: dict[Chain, ChainRuntime],
        verifier: DepositVerifier | None = None,
        dispatcher: PayoutDispatcher | None = None,
        transfers: TransferStore | None = None,
    ) -> None:
        self.store = store
        self.transfers = transfers or TransferStore(store.engine)
        self.runtimes = runtimes
        self.verifier = verifier or DepositVerifier()
        self.dispatcher = dispatcher or PayoutDispatcher()

    # ------------------------------------------------------------------
    # Chains
    # ------------------------------------------------------------------

    def parse_chain(self, chain: str | Chain | None) -> Chain:
        if chain is None or chain == "":
            return DEFAULT_CHAIN
        if isinstance(chain, Chain):
            return chain
        try:
            return Chain.parse(chain)
        except ValueError:
            raise UnsupportedChain("Unsupported chain") from None

    def get_runtime(self, chain: Chain) -> ChainRuntime:
        runtime = self.runtimes.get(chain)
        if runtime is None:
            raise UnsupportedChain("Unsupported chain")
        return runtime

    def require_enabled(self, chain: Chain) -> ChainRuntime:
        runtime = self.get_runtime(chain)
        if not runtime.enabled:
            raise ChainNotConfigured(f"{chain.value} pool wallet not configured")
        return runtime

    def pool_address(self, chain: str | Chain | None) -> tuple[Chain, str]:
        resolved = self.parse_chain(chain)
        runtime = self.require_enabled(resolved)
        return resolved, runtime.pool_address

    def balance(self, chain: str | Chain | None, address: str) -> tuple[Chain, Decimal, int]:
        """Return (chain, native amount, base units) held by `address`."""
        resolved = self.parse_chain(chain)
        client = self.get_runtime(resolved).client
        if not client.validate_address(address):
            raise ValidationFailed(f"Invalid {resolved.value} address")
        try:
            units = client.get_balance(address)
        except ChainClientError as e:
            logger.error(f"Balance lookup for {address} on {resolved.value} failed: {e}")
            raise ChainUnavailable("Failed to fetch balance") from e
        return resolved, client.from_base_units(units), units

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------

    def create(
        self,
        sender_address: str | None,
        recipient_address: str | None,
        amount: str | None,
        chain: str | Chain | None = None,
    ) -> tuple[MixerSession, str]:
        """
        Open a new pending session.

        Returns:
            (session, pool address the sender must deposit to)

        Raises:
            ValidationFailed: missing fields, bad addresses or a non-positive amount
            ChainNotConfigured: no pool key for the chain; nothing is persisted
        """
        if not sender_address or not recipient_address or amount is None or str(amount).strip() == "":
            raise ValidationFailed("Missing required fields")

        resolved = self.parse_chain(chain)
        runtime = self.require_enabled(resolved)
        client = runtime.client

        try:
            value = parse_amount(amount)
            client.to_base_units(value)
        except ValueError as e:
            raise ValidationFailed(str(e)) from None

        if sender_address == PENDING_SENDER:
            if not client.defers_sender:
                raise ValidationFailed(f"A sender address is required on {resolved.value}")
        elif not client.validate_address(sender_address):
            raise ValidationFailed(f"Invalid {resolved.value} address")
        if not client.validate_address(recipient_address):
            raise ValidationFailed(f"Invalid {resolved.value} address")

        session = self.store.create(resolved, sender_address, recipient_address, f"{value:f}")
        logger.info(f"Session {session.id} created on {resolved.value} for {session.amount}")
        return session, runtime.pool_address

    def confirm_deposit(self, session_id: str, deposit_signature: str | None) -> MixerSession:
        """
        Verify the deposit for a pending session and pay the recipient out.

        Returns:
            The completed session.

        Raises:
            ValidationFailed: no signature given
            SessionNotFound: unknown session id
            InvalidSessionState: the session has already left `pending`
            VerificationFailed: the deposit does not check out; session stays pending
            PayoutFailed: deposit confirmed but the payout did not go through;
                the session is left in `payout_failed`
        """
        if not deposit_signature:
            raise ValidationFailed("Deposit signature required")

        session = self.get(session_id)
        if session.status is not SessionStatus.PENDING:
            raise InvalidSessionState("Session not in pending state")

        runtime = self.require_enabled(session.chain)

        claimed = self.store.find_by_deposit_signature(deposit_signature)
        if claimed is not None and claimed.id != session.id:
            raise VerificationFailed(VerificationReason.ALREADY_USED)

        try:
            verified = self.verifier.verify(
                runtime.client,
                deposit_signature,
                session.sender_address,
                runtime.pool_address,
                session.amount,
                runtime.tolerance,
            )
        except VerificationFailed as e:
            logger.warning(
                f"Deposit {deposit_signature} rejected for session {session.id}: {e.reason.value}"
            )
            raise

        changes = {
            "deposit_signature": deposit_signature,
            "deposit_confirmed_at": _utcnow(),
            "payout_attempts": session.payout_attempts + 1,
            "payout_started_at": _utcnow(),
        }
        if session.sender_deferred and verified.sender:
            changes["sender_address"] = verified.sender

        try:
            confirmed = self.store.transition(
                session.id, SessionStatus.PENDING, SessionStatus.DEPOSIT_CONFIRMED, **changes
            )
        except DuplicateDepositError:
            raise VerificationFailed(VerificationReason.ALREADY_USED) from None
        if confirmed is None:
            raise InvalidSessionState("Session not in pending state")

        logger.info(f"Deposit {deposit_signature} confirmed for session {session.id}")
        return self._pay_out(runtime, confirmed)

    def retry_payout(self, session_id: str) -> MixerSession:
        """
        Operator recovery for a payout that did not complete.

        Accepts a `payout_failed` session, or a `deposit_confirmed` session
        whose payout started more than `payout_timeout` seconds ago (the
        process died mid-payout). The last recorded broadcast is looked up
        first:

        - still pending on chain: refused, sending again could pay twice
        - landed at the recipient: reconciled to `completed` without sending
        - unknown to the chain: sent again, reusing its slot where the chain has one
        - failed on chain: sent again

        Raises:
            InvalidSessionState: wrong state, payout still running, or previous
                broadcast still pending
            ChainUnavailable: the previous broadcast could not be looked up
            PayoutFailed: the new payout failed; the session is `payout_failed`
        """
        session = self.get(session_id)
        if session.status not in (SessionStatus.PAYOUT_FAILED, SessionStatus.DEPOSIT_CONFIRMED):
            raise InvalidSessionState("Session not in payout_failed state")

        runtime = self.require_enabled(session.chain)

        if session.status is SessionStatus.DEPOSIT_CONFIRMED and not self._payout_abandoned(
            runtime, session
        ):
            raise InvalidSessionState("Payout still in progress")

        replaces = None
        if session.last_payout_tx:
            try:
                previous = runtime.client.lookup_broadcast(
                    session.last_payout_tx, session.last_payout_ref
                )
            except ChainClientError as e:
                raise ChainUnavailable(
                    f"Could not check previous payout {session.last_payout_tx}"
                ) from e

            if previous is None:
                replaces = session.last_payout_ref
            elif previous.pending:
                logger.warning(
                    f"Retry for session {session.id} refused: "
                    f"payout {session.last_payout_tx} is still pending"
                )
                raise InvalidSessionState("Previous payout still pending")
            elif previous.succeeded and runtime.client.same_address(
                previous.recipient, session.recipient_address
            ):
                return self._reconcile(session)

        claimed = self.store.transition(
            session.id,
            session.status,
            SessionStatus.DEPOSIT_CONFIRMED,
            expected_attempts=session.payout_attempts,
            payout_attempts=session.payout_attempts + 1,
            payout_started_at=_utcnow(),
        )
        if claimed is None:
            raise InvalidSessionState("Session payout is already being retried")

        logger.info(f"Retrying payout for session {session.id} (attempt {claimed.payout_attempts})")
        return self._pay_out(runtime, claimed, replaces=replaces)

    # ------------------------------------------------------------------
    # Transfer records
    # ------------------------------------------------------------------

    def record_transfer(
        self,
        signature: str | None,
        from_address: str | None,
        to_address: str | None,
        amount: str | None,
        chain: str | Chain | None = None,
        fee: str | None = None,
    ) -> TransferRecord:
        """
        Verify a transfer on chain and add it to the sender's and recipient's history.

        Raises:
            ValidationFailed: missing fields, bad addresses or amount
            TransferExists: the signature is already recorded
            VerificationFailed: the transfer does not match the chain
        """
        if not signature or not from_address or not to_address or amount is None or str(amount).strip() == "":
            raise ValidationFailed("Invalid transaction data")

        resolved = self.parse_chain(chain)
        runtime = self.get_runtime(resolved)
        client = runtime.client
        if not client.validate_address(from_address) or not client.validate_address(to_address):
            raise ValidationFailed(f"Invalid {resolved.value} address")
        try:
            value = parse_amount(amount)
            client.to_base_units(value)
        except ValueError as e:
            raise ValidationFailed(str(e)) from None

        if self.transfers.get(signature) is not None:
            raise TransferExists("Transaction already exists")

        verified = self.verifier.verify(
            client, signature, from_address, to_address, f"{value:f}", runtime.tolerance
        )

        try:
            record = self.transfers.create(
                resolved,
                signature,
                from_address,
                to_address,
                f"{value:f}",
                fee=fee,
                block_time=verified.block_time,
            )
        except DuplicateTransferError:
            raise TransferExists("Transaction already exists") from None

        logger.info(f"Transfer {signature} recorded on {resolved.value}")
        return record

    def get_transfer(self, signature: str) -> TransferRecord:
        record = self.transfers.get(signature)
        if record is None:
            raise TransferNotFound(signature)
        return record

    def list_transfers(
        self, address: str | None, chain: str | Chain | None = None
    ) -> list[TransferRecord]:
        """Transfers sent from or received by `address`, newest first."""
        if not address:
            raise ValidationFailed("Address parameter required")
        resolved = self.parse_chain(chain)
        if not self.get_runtime(resolved).client.validate_address(address):
            raise ValidationFailed(f"Invalid {resolved.value} address")
        return self.transfers.list_by_address(address, resolved)

    def rpc_endpoint(self, chain: str | Chain | None) -> tuple[Chain, str | None]:
        """The RPC URL the relay uses for `chain`, for wallets that read the chain directly."""
        resolved = self.parse_chain(chain)
        return resolved, self.get_runtime(resolved).client.rpc_url

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, session_id: str) -> MixerSession:
        session = self.store.get(session_id)
        if session is None:
            raise SessionNotFound(session_id)
        return session

    def list_by_address(self, address: str | None) -> list[MixerSession]:
        if not address:
            raise ValidationFailed("Address parameter required")
        # Deferred-sender sessions all share the placeholder
        if address == PENDING_SENDER:
            raise ValidationFailed("Invalid address")
        return self.store.list_by_sender(address)

    def list_by_status(self, status: str) -> list[MixerSession]:
        try:
            resolved = SessionStatus(status)
        except ValueError:
            raise ValidationFailed(f"Unknown status: {status}") from None
        return self.store.list_by_status(resolved)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _pay_out(
        self, runtime: ChainRuntime, session: MixerSession, replaces: str | None = None
    ) -> MixerSession:
        # Every write below is tied to this attempt, so a payout that was
        # declared abandoned and retried can no longer move the session.
        attempt = session.payout_attempts

        def record_broadcast(tx_id: str, reference: str) -> None:
            recorded = self.store.transition(
                session.id,
                SessionStatus.DEPOSIT_CONFIRMED,
                SessionStatus.DEPOSIT_CONFIRMED,
                expected_attempts=attempt,
                last_payout_tx=tx_id,
                last_payout_ref=reference,
            )
            if recorded is None:
                raise InvalidSessionState("Session payout is already being retried")

        try:
            payout = self.dispatcher.dispatch(
                runtime,
                session.recipient_address,
                session.amount,
                replaces=replaces,
                on_broadcast=record_broadcast,
            )
        except PayoutError as e:
            logger.error(
                f"Payout failed for session {session.id} on {session.chain.value}: "
                f"{session.amount} to {session.recipient_address}: {e.kind}: {e}"
            )
            changes: dict[str, str] = {"payout_error": f"{e.kind}: {e}"}
            if e.tx_id:
                changes["last_payout_tx"] = e.tx_id
            failed = self.store.transition(
                session.id,
                SessionStatus.DEPOSIT_CONFIRMED,
                SessionStatus.PAYOUT_FAILED,
                expected_attempts=attempt,
                **changes,
            )
            if failed is None:
                logger.warning(
                    f"Session {session.id} attempt {attempt} was superseded; failure not recorded"
                )
                raise InvalidSessionState("Session payout is already being retried") from e
            raise PayoutFailed(session.id, SessionStatus.PAYOUT_FAILED.value) from e

        try:
            completed = self.store.transition(
                session.id,
                SessionStatus.DEPOSIT_CONFIRMED,
                SessionStatus.COMPLETED,
                expected_attempts=attempt,
                payout_signature=payout.tx_id,
                payout_sent_at=_utcnow(),
                payout_error=None,
            )
        except Exception:
            logger.critical(
                f"Payout {payout.tx_id} sent for session {session.id} but could not be recorded"
            )
            raise
        if completed is None:
            logger.critical(
                f"Payout {payout.tx_id} sent for session {session.id} "
                f"but the session left deposit_confirmed concurrently"
            )
            raise RelayError("Payout sent but session state could not be updated")

        logger.info(
            f"Session {session.id} completed: payout {payout.tx_id} "
            f"({payout.amount} base units) to {session.recipient_address}"
        )
        return completed

    def _reconcile(self, session: MixerSession) -> MixerSession:
        """Mark a session completed by a payout that landed after it was written off."""
        reconciled = self.store.transition(
            session.id,
            session.status,
            SessionStatus.COMPLETED,
            expected_attempts=session.payout_attempts,
            payout_signature=session.last_payout_tx,
            payout_sent_at=_utcnow(),
            payout_error=None,
        )
        if reconciled is None:
            raise InvalidSessionState("Session payout is already being retried")
        logger.info(f"Session {session.id} reconciled: payout {session.last_payout_tx} had landed")
        return reconciled

    def _payout_abandoned(self, runtime: ChainRuntime, session: MixerSession) -> bool:
        started = session.payout_started_at or session.deposit_confirmed_at
        if started is None:
            return True
        # SQLite hands timestamps back without a zone; they are stored as UTC
        if started.tzinfo is None:
            started = started.replace(tzinfo=timezone.utc)
        return (_utcnow() - started).total_seconds() >= runtime.payout_timeout

    def close(self) -> None:
        for runtime in self.runtimes.values():
            runtime.client.close()
        self.store.close()
