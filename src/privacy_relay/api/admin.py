"""
Operator endpoints for sessions that need manual attention.

Guarded by the `X-API-Key` header; disabled (503) unless RELAY_ADMIN_API_KEY is set.
"""

import secrets

from fastapi import APIRouter, Depends, Header, Request

from privacy_relay.api.models import AdminSessionResponse
from privacy_relay.api.routes import get_relay
from privacy_relay.relay.errors import AdminDisabled, Unauthorized


def require_admin(request: Request, x_api_key: str | None = Header(None)) -> None:
    expected = getattr(request.app.state, "admin_api_key", None)
    if not expected:
        raise AdminDisabled("Admin API not configured")
    if not x_api_key or not secrets.compare_digest(x_api_key, expected):
        raise Unauthorized("Invalid API key")


router = APIRouter(prefix="/admin", tags=["Admin"], dependencies=[Depends(require_admin)])


@router.get("/sessions", response_model=list[AdminSessionResponse])
def sessions_by_status(request: Request, status: str = "payout_failed"):
    """Reconciliation listing, oldest first. Defaults to sessions whose payout failed."""
    relay = get_relay(request)
    return [AdminSessionResponse.from_session(s) for s in relay.list_by_status(status)]


@router.post("/sessions/{session_id}/retry-payout", response_model=AdminSessionResponse)
def retry_payout(request: Request, session_id: str):
    """
    Retry the payout of a `payout_failed` session, or of a `deposit_confirmed`
    session whose payout was abandoned mid-flight.

    A previous broadcast that has since landed is recorded instead of paying twice;
    one that may still land is refused with a 400.
    """
    relay = get_relay(request)
    return AdminSessionResponse.from_session(relay.retry_payout(session_id))
