"""
Relay error taxonomy.

Each class carries the HTTP status the API layer answers with, so the
routes never translate errors by hand.
"""

from __future__ import annotations

from enum import Enum
from typing import Any


class RelayError(Exception):
    """Base class for every error the relay reports to a caller."""

    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict[str, Any]:
        return {"detail": self.message}


class ValidationFailed(RelayError):
    """Malformed or missing input. Nothing was persisted."""
    status_code = 400


class UnsupportedChain(ValidationFailed):
    pass


class SessionNotFound(RelayError):
    status_code = 404

    def __init__(self, session_id: str) -> None:
        super().__init__("Session not found")
        self.session_id = session_id


class InvalidSessionState(RelayError):
    """The session is not in the state the operation needs."""
    status_code = 400


class ChainNotConfigured(RelayError):
    """No pool key is loaded for the chain."""
    status_code = 503


class ChainUnavailable(RelayError):
    """The chain RPC could not be reached for a read the operation depends on."""
    status_code = 502


class TransferNotFound(RelayError):
    status_code = 404

    def __init__(self, signature: str) -> None:
        super().__init__("Transaction not found")
        self.signature = signature


class TransferExists(RelayError):
    """A transfer with this signature is already recorded."""
    status_code = 409


class AdminDisabled(RelayError):
    status_code = 503


class Unauthorized(RelayError):
    status_code = 401


class VerificationReason(str, Enum):
    NOT_FOUND = "not_found"
    CHAIN_FAILURE = "chain_failure"
    SENDER_MISMATCH = "sender_mismatch"
    RECIPIENT_MISMATCH = "recipient_mismatch"
    AMOUNT_MISMATCH = "amount_mismatch"
    LOOKUP_FAILED = "lookup_failed"
    ALREADY_USED = "already_used"


_REASON_TEXT = {
    VerificationReason.NOT_FOUND: "Transaction not found on chain",
    VerificationReason.CHAIN_FAILURE: "Transaction failed on chain",
    VerificationReason.SENDER_MISMATCH: "Sender address mismatch",
    VerificationReason.RECIPIENT_MISMATCH: "Recipient address mismatch",
    VerificationReason.AMOUNT_MISMATCH: "Amount mismatch",
    VerificationReason.LOOKUP_FAILED: "Failed to verify transaction on chain",
    VerificationReason.ALREADY_USED: "Deposit already used for another session",
}


class VerificationFailed(RelayError):
    """The claimed deposit does not hold up on chain. The session stays pending."""

    status_code = 400

    def __init__(self, reason: VerificationReason, details: str | None = None) -> None:
        super().__init__("Deposit verification failed")
        self.reason = reason
        self.details = details or _REASON_TEXT[reason]

    def to_dict(self) -> dict[str, Any]:
        return {"detail": self.message, "details": self.details, "reason": self.reason.value}


class PayoutError(Exception):
    """Raised by the dispatcher; never reaches the API directly."""

    AMOUNT_TOO_SMALL = "amount_too_small"
    SUBMISSION_FAILED = "submission_failed"

    def __init__(self, kind: str, message: str, tx_id: str | None = None) -> None:
        super().__init__(message)
        self.kind = kind
        self.tx_id = tx_id


class PayoutFailed(RelayError):
    """The deposit is confirmed and held by the pool but was not forwarded."""

    status_code = 500

    def __init__(self, session_id: str, status: str) -> None:
        super().__init__("Payout failed")
        self.session_id = session_id
        self.status = status

    def to_dict(self) -> dict[str, Any]:
        return {"detail": self.message, "sessionId": self.session_id, "status": self.status}
