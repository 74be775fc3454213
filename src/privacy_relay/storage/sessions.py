"""
SessionStore: durable CRUD for mixer sessions.

Status changes never read-then-write. Each one is a single conditional
UPDATE that only applies while the row still holds the expected status, so
two requests racing on the same session cannot both move it forward.
"""

from __future__ import annotations

from typing import Any

from sqlalchemy import Engine, select, update
from sqlalchemy.exc import IntegrityError

from privacy_relay.core.models import Chain, MixerSession, SessionStatus
from privacy_relay.storage.db import create_tables, make_engine, make_session_factory
from privacy_relay.storage.tables import MixerSessionRow

# Columns that may change after creation. amount, recipient and chain are
# fixed for the life of a session.
_MUTABLE_FIELDS = frozenset({
    "sender_address",
    "deposit_signature",
    "payout_signature",
    "deposit_confirmed_at",
    "payout_sent_at",
    "payout_error",
    "payout_attempts",
    "payout_started_at",
    "last_payout_tx",
    "last_payout_ref",
})


class StoreError(Exception):
    """Raised for persistence failures."""
    pass


class DuplicateDepositError(StoreError):
    """Raised when a deposit signature is already attached to another session."""
    pass


class SessionStore:
    """
    Usage:
        store = SessionStore.from_url("sqlite:///./relay.db")
        session = store.create(Chain.SOLANA, sender, recipient, "1.5")
    """

    def __init__(self, engine: Engine) -> None:
        self.engine = engine
        self._session_factory = make_session_factory(engine)

    @classmethod
    def from_url(cls, database_url: str, create: bool = True) -> SessionStore:
        engine = make_engine(database_url)
        if create:
            create_tables(engine)
        return cls(engine)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, session_id: str) -> MixerSession | None:
        with self._session_factory() as db:
            row = db.get(MixerSessionRow, session_id)
            return _to_model(row) if row is not None else None

    def list_by_sender(self, address: str) -> list[MixerSession]:
        """Sessions whose sender is `address`, newest first."""
        stmt = (
            select(MixerSessionRow)
            .where(MixerSessionRow.sender_address == address)
            .order_by(MixerSessionRow.created_at.desc())
        )
        with self._session_factory() as db:
            return [_to_model(row) for row in db.scalars(stmt)]

    def list_by_status(self, status: SessionStatus) -> list[MixerSession]:
        """Sessions in `status`, oldest first (reconciliation order)."""
        stmt = (
            select(MixerSessionRow)
            .where(MixerSessionRow.status == status.value)
            .order_by(MixerSessionRow.created_at.asc())
        )
        with self._session_factory() as db:
            return [_to_model(row) for row in db.scalars(stmt)]

    def find_by_deposit_signature(self, signature: str) -> MixerSession | None:
        stmt = select(MixerSessionRow).where(MixerSessionRow.deposit_signature == signature)
        with self._session_factory() as db:
            row = db.scalars(stmt).first()
            return _to_model(row) if row is not None else None

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create(
        self,
        chain: Chain,
        sender_address: str,
        recipient_address: str,
        amount: str,
    ) -> MixerSession:
        """Persist a new session in `pending` state."""
        row = MixerSessionRow(
            chain=chain.value,
            sender_address=sender_address,
            recipient_address=recipient_address,
            amount=amount,
            status=SessionStatus.PENDING.value,
        )
        with self._session_factory.begin() as db:
            db.add(row)
            db.flush()
            return _to_model(row)

    def transition(
        self,
        session_id: str,
        expected: SessionStatus,
        new: SessionStatus,
        *,
        expected_attempts: int | None = None,
        **changes: Any,
    ) -> MixerSession | None:
        """
        Compare-and-swap the session status from `expected` to `new`,
        applying `changes` in the same statement.

        Args:
            expected_attempts: additionally require `payout_attempts` to match

        Returns:
            The updated session, or None if the row was not in `expected`
            state (or did not exist).

        Raises:
            DuplicateDepositError: if `deposit_signature` is already in use
        """
        unknown = set(changes) - _MUTABLE_FIELDS
        if unknown:
            raise StoreError(f"Fields cannot be updated: {sorted(unknown)}")

        stmt = (
            update(MixerSessionRow)
            .where(
                MixerSessionRow.id == session_id,
                MixerSessionRow.status == expected.value,
            )
            .values(status=new.value, **changes)
            .execution_options(synchronize_session=False)
        )
        if expected_attempts is not None:
            stmt = stmt.where(MixerSessionRow.payout_attempts == expected_attempts)

        try:
            with self._session_factory.begin() as db:
                result = db.execute(stmt)
                applied = result.rowcount == 1
        except IntegrityError as e:
            raise DuplicateDepositError(
                f"Deposit {changes.get('deposit_signature')} is already attached to a session"
            ) from e

        return self.get(session_id) if applied else None

    def close(self) -> None:
        self.engine.dispose()


def _to_model(row: MixerSessionRow) -> MixerSession:
    return MixerSession.model_validate(row, from_attributes=True)
