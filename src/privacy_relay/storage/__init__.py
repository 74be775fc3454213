"""
privacy_relay.storage: persistence for mixer sessions and transfer records (SQLAlchemy).
"""

from privacy_relay.storage.sessions import DuplicateDepositError, SessionStore, StoreError
from privacy_relay.storage.transfers import DuplicateTransferError, TransferStore

__all__ = [
    "DuplicateDepositError",
    "DuplicateTransferError",
    "SessionStore",
    "StoreError",
    "TransferStore",
]
