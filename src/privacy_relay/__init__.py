"""
privacy-relay: custodial transfer relay with on-chain deposit verification.

Usage:
    uvicorn privacy_relay.api.server:app

    from privacy_relay import RelayService, SessionStore
"""

from privacy_relay.core.models import Chain, MixerSession, SessionStatus
from privacy_relay.relay.orchestrator import RelayService
from privacy_relay.storage.sessions import SessionStore

__version__ = "0.1.0"
__all__ = [
    "Chain",
    "MixerSession",
    "RelayService",
    "SessionStatus",
    "SessionStore",
]
