"""
TransferStore: verified transfer records, looked up by signature or by address.
"""

from __future__ import annotations

from sqlalchemy import Engine, or_, select
from sqlalchemy.exc import IntegrityError

from privacy_relay.core.models import Chain, TransferRecord
from privacy_relay.storage.db import make_session_factory
from privacy_relay.storage.sessions import StoreError
from privacy_relay.storage.tables import TransferRecordRow


class DuplicateTransferError(StoreError):
    """Raised when a transfer with the same signature is already recorded."""
    pass


class TransferStore:
    """
    Usage:
        transfers = TransferStore(session_store.engine)
        record = transfers.create(Chain.SOLANA, signature, sender, recipient, "0.5")
    """

    def __init__(self, engine: Engine) -> None:
        self.engine = engine
        self._session_factory = make_session_factory(engine)

    def get(self, signature: str) -> TransferRecord | None:
        stmt = select(TransferRecordRow).where(TransferRecordRow.signature == signature)
        with self._session_factory() as db:
            row = db.scalars(stmt).first()
            return _to_model(row) if row is not None else None

    def list_by_address(self, address: str, chain: Chain | None = None) -> list[TransferRecord]:
        """Transfers sent from or to `address`, newest first."""
        stmt = select(TransferRecordRow).where(
            or_(TransferRecordRow.from_address == address, TransferRecordRow.to_address == address)
        )
        if chain is not None:
            stmt = stmt.where(TransferRecordRow.chain == chain.value)
        stmt = stmt.order_by(TransferRecordRow.timestamp.desc())
        with self._session_factory() as db:
            return [_to_model(row) for row in db.scalars(stmt)]

    def create(
        self,
        chain: Chain,
        signature: str,
        from_address: str,
        to_address: str,
        amount: str,
        fee: str | None = None,
        block_time: int | None = None,
    ) -> TransferRecord:
        """
        Raises:
            DuplicateTransferError: if `signature` is already recorded
        """
        row = TransferRecordRow(
            chain=chain.value,
            signature=signature,
            from_address=from_address,
            to_address=to_address,
            amount=amount,
            fee=fee,
            status="confirmed",
            block_time=block_time,
        )
        try:
            with self._session_factory.begin() as db:
                db.add(row)
                db.flush()
                return _to_model(row)
        except IntegrityError as e:
            raise DuplicateTransferError(f"Transaction {signature} already recorded") from e


def _to_model(row: TransferRecordRow) -> TransferRecord:
    return TransferRecord.model_validate(row, from_attributes=True)
