"""core module init"""
from privacy_relay.core.address import (
    AddressError,
    is_valid_evm_address,
    is_valid_solana_address,
    validate_evm_address,
    validate_solana_address,
)
from privacy_relay.core.models import (
    PENDING_SENDER,
    Chain,
    ChainTransaction,
    MixerSession,
    SessionStatus,
    TransferRecord,
    from_base_units,
    parse_amount,
    to_base_units,
)
from privacy_relay.core.signer import CustodialSigner, EvmSigner, SignerError, SolanaSigner

__all__ = [
    "AddressError",
    "Chain",
    "ChainTransaction",
    "CustodialSigner",
    "EvmSigner",
    "MixerSession",
    "PENDING_SENDER",
    "SessionStatus",
    "SignerError",
    "SolanaSigner",
    "TransferRecord",
    "from_base_units",
    "is_valid_evm_address",
    "is_valid_solana_address",
    "parse_amount",
    "to_base_units",
    "validate_evm_address",
    "validate_solana_address",
]
