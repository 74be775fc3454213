from fastapi import APIRouter, HTTPException, Request

from privacy_relay.api.models import (
    BalanceResponse,
    ConfirmDepositRequest,
    ConfirmDepositResponse,
    CreateSessionRequest,
    CreateSessionResponse,
    PoolAddressResponse,
    RpcEndpointResponse,
    SessionResponse,
    TransferRecordRequest,
    TransferRecordResponse,
)
from privacy_relay.relay.orchestrator import RelayService

router = APIRouter(tags=["Relay"])


def get_relay(request: Request) -> RelayService:
    """Dependency to retrieve the initialized RelayService from app state."""
    relay = getattr(request.app.state, "relay", None)
    if not relay:
        raise HTTPException(status_code=500, detail="relay service not initialized")
    return relay


@router.post("/sessions", response_model=CreateSessionResponse, status_code=201)
def create_session(request: Request, req: CreateSessionRequest):
    """
    Open a mixer session.

    Returns the pool address the sender must deposit `amount` to. The deposit
    is then confirmed with `POST /sessions/{id}/confirm-deposit`.
    """
    relay = get_relay(request)
    session, pool_address = relay.create(
        req.sender_address, req.recipient_address, req.amount, req.chain
    )
    return CreateSessionResponse(
        session_id=session.id,
        pool_address=pool_address,
        amount=session.amount,
        status=session.status.value,
        chain=session.chain.value,
    )


@router.post("/sessions/{session_id}/confirm-deposit", response_model=ConfirmDepositResponse)
def confirm_deposit(request: Request, session_id: str, req: ConfirmDepositRequest):
    """
    Verify the deposit on chain and pay the recipient out.

    Holds the request open for the chain lookup and the payout confirmation.
    On payout failure the session is left in `payout_failed` and a 500 is returned.
    """
    relay = get_relay(request)
    session = relay.confirm_deposit(session_id, req.deposit_signature)
    return ConfirmDepositResponse(
        session_id=session.id,
        status=session.status.value,
        deposit_signature=session.deposit_signature,
        payout_signature=session.payout_signature,
    )


@router.get("/sessions/{session_id}", response_model=SessionResponse)
def get_session(request: Request, session_id: str):
    relay = get_relay(request)
    return SessionResponse.from_session(relay.get(session_id))


@router.get("/sessions", response_model=list[SessionResponse])
def list_sessions(request: Request, address: str | None = None):
    """List sessions sent from `address`, newest first."""
    relay = get_relay(request)
    return [SessionResponse.from_session(s) for s in relay.list_by_address(address)]


@router.get("/pool-address/{chain}", response_model=PoolAddressResponse)
def pool_address(request: Request, chain: str):
    relay = get_relay(request)
    resolved, address = relay.pool_address(chain)
    return PoolAddressResponse(chain=resolved.value, pool_address=address)


@router.get("/balance/{chain}/{address}", response_model=BalanceResponse)
def balance(request: Request, chain: str, address: str):
    relay = get_relay(request)
    resolved, amount, units = relay.balance(chain, address)
    return BalanceResponse(
        chain=resolved.value,
        address=address,
        balance=f"{amount.normalize():f}",
        base_units=str(units),
    )


@router.get("/rpc-endpoint/{chain}", response_model=RpcEndpointResponse)
def rpc_endpoint(request: Request, chain: str):
    relay = get_relay(request)
    resolved, rpc_url = relay.rpc_endpoint(chain)
    return RpcEndpointResponse(chain=resolved.value, rpc_url=rpc_url)


@router.post("/transactions", response_model=TransferRecordResponse, status_code=201)
def record_transaction(request: Request, req: TransferRecordRequest):
    """
    Record a transfer in the address history once it checks out on chain.

    Answers 409 if the signature is already recorded.
    """
    relay = get_relay(request)
    record = relay.record_transfer(
        req.signature, req.from_address, req.to_address, req.amount, req.chain, req.fee
    )
    return TransferRecordResponse.from_record(record)


@router.get("/transactions/{signature}", response_model=TransferRecordResponse)
def get_transaction(request: Request, signature: str):
    relay = get_relay(request)
    return TransferRecordResponse.from_record(relay.get_transfer(signature))


@router.get("/transactions", response_model=list[TransferRecordResponse])
def list_transactions(request: Request, address: str | None = None, chain: str | None = None):
    """List recorded transfers from or to `address`, newest first."""
    relay = get_relay(request)
    return [TransferRecordResponse.from_record(r) for r in relay.list_transfers(address, chain)]
