"""
Shared fixtures: an in-memory session store and a relay wired to fake chains.
"""

import pytest

from fakes import ETH_POOL, make_runtime
from privacy_relay.core.models import Chain
from privacy_relay.relay.orchestrator import RelayService
from privacy_relay.storage.sessions import SessionStore


@pytest.fixture
def store():
    s = SessionStore.from_url("sqlite://")
    yield s
    s.close()


@pytest.fixture
def sol_runtime():
    return make_runtime()


@pytest.fixture
def eth_runtime():
    # 0.001 ETH fee, 0.0001 ETH tolerance
    return make_runtime(Chain.ETHEREUM, pool=ETH_POOL, fee=10**15, tolerance=10**14)


@pytest.fixture
def relay(store, sol_runtime, eth_runtime):
    bnb_runtime = make_runtime(Chain.BNB, pool=ETH_POOL, enabled=False)
    return RelayService(
        store,
        {Chain.SOLANA: sol_runtime, Chain.ETHEREUM: eth_runtime, Chain.BNB: bnb_runtime},
    )
