from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from privacy_relay.core.models import MixerSession, TransferRecord


class CamelModel(BaseModel):
    """JSON bodies use camelCase keys; Python code uses snake_case."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        coerce_numbers_to_str=True,
    )


class CreateSessionRequest(CamelModel):
    """Request model for opening a mixer session. Missing fields are reported as 400."""

    sender_address: str | None = Field(
        None,
        description='Depositor address, or "pending" on chains that learn it from the deposit',
    )
    recipient_address: str | None = Field(None, description="Final payout destination")
    amount: str | None = Field(None, description="Deposit amount in native units, as a decimal string")
    chain: str | None = Field(None, description="solana (default), ethereum/eth, bnb/bsc")


class CreateSessionResponse(CamelModel):
    session_id: str = Field(..., description="Session ID to confirm the deposit against")
    pool_address: str = Field(..., description="Pool address the deposit must be sent to")
    amount: str
    status: str
    chain: str


class ConfirmDepositRequest(CamelModel):
    deposit_signature: str | None = Field(
        None, description="Transaction signature / hash of the deposit to the pool"
    )


class ConfirmDepositResponse(CamelModel):
    session_id: str
    status: str
    deposit_signature: str | None
    payout_signature: str | None


class SessionResponse(CamelModel):
    """Public projection of a session."""

    session_id: str
    status: str
    amount: str
    chain: str
    recipient_address: str
    deposit_signature: str | None = None
    payout_signature: str | None = None
    created_at: datetime
    deposit_confirmed_at: datetime | None = None
    payout_sent_at: datetime | None = None

    @classmethod
    def from_session(cls, session: MixerSession) -> "SessionResponse":
        return cls(
            session_id=session.id,
            status=session.status.value,
            amount=session.amount,
            chain=session.chain.value,
            recipient_address=session.recipient_address,
            deposit_signature=session.deposit_signature,
            payout_signature=session.payout_signature,
            created_at=session.created_at,
            deposit_confirmed_at=session.deposit_confirmed_at,
            payout_sent_at=session.payout_sent_at,
        )


class AdminSessionResponse(SessionResponse):
    """Operator projection, including reconciliation bookkeeping."""

    sender_address: str
    payout_error: str | None = None
    payout_attempts: int = 0
    payout_started_at: datetime | None = None
    last_payout_tx: str | None = None

    @classmethod
    def from_session(cls, session: MixerSession) -> "AdminSessionResponse":
        public = SessionResponse.from_session(session).model_dump()
        return cls(
            **public,
            sender_address=session.sender_address,
            payout_error=session.payout_error,
            payout_attempts=session.payout_attempts,
            payout_started_at=session.payout_started_at,
            last_payout_tx=session.last_payout_tx,
        )


class PoolAddressResponse(CamelModel):
    chain: str
    pool_address: str


class BalanceResponse(CamelModel):
    chain: str
    address: str
    balance: str = Field(..., description="Balance in native units")
    base_units: str = Field(..., description="Balance in lamports / wei")


class TransferRecordRequest(CamelModel):
    """A transfer to verify on chain and add to the address history."""

    signature: str | None = Field(None, description="Transaction signature / hash")
    from_address: str | None = None
    to_address: str | None = None
    amount: str | None = Field(None, description="Amount in native units, as a decimal string")
    chain: str | None = Field(None, description="solana (default), ethereum/eth, bnb/bsc")
    fee: str | None = None


class TransferRecordResponse(CamelModel):
    id: str
    chain: str
    signature: str
    from_address: str
    to_address: str
    amount: str
    fee: str | None = None
    status: str
    timestamp: datetime
    block_time: int | None = None

    @classmethod
    def from_record(cls, record: TransferRecord) -> "TransferRecordResponse":
        return cls(**record.model_dump(exclude={"chain"}), chain=record.chain.value)


class RpcEndpointResponse(CamelModel):
    chain: str
    rpc_url: str | None
