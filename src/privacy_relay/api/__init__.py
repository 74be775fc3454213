"""
API module for the privacy relay.

Provides FastAPI routes and models for the mixer session lifecycle and
the transfer history.
"""

from privacy_relay.api.models import (
    AdminSessionResponse,
    ConfirmDepositRequest,
    ConfirmDepositResponse,
    CreateSessionRequest,
    CreateSessionResponse,
    RpcEndpointResponse,
    SessionResponse,
    TransferRecordRequest,
    TransferRecordResponse,
)

__all__ = [
    "AdminSessionResponse",
    "ConfirmDepositRequest",
    "ConfirmDepositResponse",
    "CreateSessionRequest",
    "CreateSessionResponse",
    "RpcEndpointResponse",
    "SessionResponse",
    "TransferRecordRequest",
    "TransferRecordResponse",
]
