"""
Per-chain runtime: the chain client, the pool signer and the fee policy,
assembled once at start-up from settings.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from privacy_relay.chains import ChainClient, build_chain_client
from privacy_relay.config import ChainSettings, Settings
from privacy_relay.core.models import Chain
from privacy_relay.core.signer import CustodialSigner, EvmSigner, SignerError, SolanaSigner

logger = logging.getLogger("privacy_relay.runtime")


@dataclass
class ChainRuntime:
    """
    Everything the relay needs to operate on one chain.

    Attributes:
        chain: Chain identifier.
        client: Chain client for lookups and transfers.
        signer: Pool key, or None when the relay is disabled for this chain.
        network_fee: Flat payout deduction in base units.
        tolerance: Allowed deposit amount deviation in base units.
        payout_timeout: Seconds after which an unfinished payout counts as abandoned.
    """
    chain: Chain
    client: ChainClient
    signer: CustodialSigner | None
    network_fee: int
    tolerance: int
    payout_timeout: float = 180.0

    @property
    def enabled(self) -> bool:
        return self.signer is not None

    @property
    def pool_address(self) -> str | None:
        return self.signer.address if self.signer else None


def load_signer(chain: Chain, settings: ChainSettings) -> CustodialSigner | None:
    """Load the pool key for `chain`. Missing or malformed keys disable the chain."""
    if settings.pool_private_key is None:
        logger.warning(f"No pool key configured for {chain.value}; relay disabled on this chain")
        return None

    secret = settings.pool_private_key.get_secret_value()
    try:
        if chain is Chain.SOLANA:
            signer: CustodialSigner = SolanaSigner.from_base58(secret)
        else:
            signer = EvmSigner.from_private_key(secret)
    except SignerError as e:
        logger.error(f"Failed to load {chain.value} pool key: {e}; relay disabled on this chain")
        return None

    logger.info(f"{chain.value} pool wallet initialized: {signer.address}")
    return signer


def build_runtime(chain: Chain, settings: ChainSettings) -> ChainRuntime:
    client = build_chain_client(chain, settings)
    return ChainRuntime(
        chain=chain,
        client=client,
        signer=load_signer(chain, settings),
        network_fee=client.to_base_units(settings.network_fee),
        tolerance=client.to_base_units(settings.amount_tolerance),
        # blockhash or nonce lookup, send, and the confirmation wait
        payout_timeout=settings.confirm_timeout + 3 * settings.request_timeout,
    )


def build_runtimes(settings: Settings) -> dict[Chain, ChainRuntime]:
    return {chain: build_runtime(chain, settings.for_chain(chain)) for chain in Chain}
