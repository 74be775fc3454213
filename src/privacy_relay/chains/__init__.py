"""
privacy_relay.chains: one ChainClient implementation per chain family.

Provides:
- ChainClient: the capability interface the relay core is written against
- SolanaClient: Solana JSON-RPC + solders signing
- EvmClient: Ethereum / BNB Smart Chain via web3
"""

from __future__ import annotations

from privacy_relay.chains.base import ChainClient, ChainClientError
from privacy_relay.chains.evm import EvmClient
from privacy_relay.chains.solana import SolanaClient
from privacy_relay.config import ChainSettings
from privacy_relay.core.models import Chain


def build_chain_client(chain: Chain, settings: ChainSettings) -> ChainClient:
    """Construct the client for `chain` from its settings."""
    if chain is Chain.SOLANA:
        return SolanaClient(
            rpc_url=settings.rpc_url,
            timeout=settings.request_timeout,
            confirm_timeout=settings.confirm_timeout,
        )
    return EvmClient(
        chain,
        rpc_url=settings.rpc_url,
        timeout=settings.request_timeout,
        confirm_timeout=settings.confirm_timeout,
    )


__all__ = [
    "ChainClient",
    "ChainClientError",
    "EvmClient",
    "SolanaClient",
    "build_chain_client",
]
