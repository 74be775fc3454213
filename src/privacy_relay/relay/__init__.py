"""
privacy_relay.relay: the relay settlement core.

Provides:
- DepositVerifier: checks a claimed deposit against the chain
- PayoutDispatcher: pays the recipient out of the pool, net of the network fee
- RelayService: the mixer session state machine tying both together
"""

from privacy_relay.relay.dispatcher import Payout, PayoutDispatcher
from privacy_relay.relay.errors import (
    AdminDisabled,
    ChainNotConfigured,
    ChainUnavailable,
    InvalidSessionState,
    PayoutError,
    PayoutFailed,
    RelayError,
    SessionNotFound,
    TransferExists,
    TransferNotFound,
    Unauthorized,
    UnsupportedChain,
    ValidationFailed,
    VerificationFailed,
    VerificationReason,
)
from privacy_relay.relay.orchestrator import RelayService
from privacy_relay.relay.runtime import ChainRuntime, build_runtimes
from privacy_relay.relay.verifier import DepositVerifier, VerifiedDeposit

__all__ = [
    "AdminDisabled",
    "ChainNotConfigured",
    "ChainRuntime",
    "ChainUnavailable",
    "DepositVerifier",
    "InvalidSessionState",
    "Payout",
    "PayoutDispatcher",
    "PayoutError",
    "PayoutFailed",
    "RelayError",
    "RelayService",
    "SessionNotFound",
    "TransferExists",
    "TransferNotFound",
    "Unauthorized",
    "UnsupportedChain",
    "ValidationFailed",
    "VerificationFailed",
    "VerificationReason",
    "VerifiedDeposit",
    "build_runtimes",
]
