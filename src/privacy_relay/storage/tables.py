"""Mixer session and transfer record tables."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import BigInteger, DateTime, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from privacy_relay.storage.db import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class MixerSessionRow(Base):
    __tablename__ = "mixer_sessions"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    chain: Mapped[str] = mapped_column(String(16), nullable=False, default="solana")
    sender_address: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    recipient_address: Mapped[str] = mapped_column(String(128), nullable=False)
    amount: Mapped[str] = mapped_column(String(64), nullable=False)  # decimal string
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default="pending", index=True
    )  # pending|deposit_confirmed|completed|payout_failed

    # One on-chain deposit can back at most one session
    deposit_signature: Mapped[str | None] = mapped_column(String(128), unique=True, nullable=True)
    payout_signature: Mapped[str | None] = mapped_column(String(128), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )
    deposit_confirmed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    payout_sent_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    payout_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    payout_attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    payout_started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    last_payout_tx: Mapped[str | None] = mapped_column(String(128), nullable=True)
    last_payout_ref: Mapped[str | None] = mapped_column(String(128), nullable=True)

    def __repr__(self) -> str:
        return f"<MixerSessionRow(id={self.id}, chain={self.chain}, status={self.status})>"


class TransferRecordRow(Base):
    __tablename__ = "transactions"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    chain: Mapped[str] = mapped_column(String(16), nullable=False, default="solana")
    signature: Mapped[str] = mapped_column(String(128), nullable=False, unique=True)
    from_address: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    to_address: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    amount: Mapped[str] = mapped_column(String(64), nullable=False)
    fee: Mapped[str | None] = mapped_column(String(64), nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="confirmed")
    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )
    block_time: Mapped[int | None] = mapped_column(BigInteger, nullable=True)

    def __repr__(self) -> str:
        return f"<TransferRecordRow(signature={self.signature}, chain={self.chain})>"
