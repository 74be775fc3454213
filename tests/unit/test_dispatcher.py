"""
Unit tests for PayoutDispatcher: fee deduction, fail-closed boundary, error mapping
and per-key serialization.
"""

import threading
import time

import pytest

from fakes import SOL_FEE, SOL_RECIPIENT, make_runtime
from privacy_relay.chains.base import ChainClientError
from privacy_relay.relay.dispatcher import PayoutDispatcher
from privacy_relay.relay.errors import PayoutError


def test_payout_is_gross_minus_fee_exactly():
    runtime = make_runtime()
    payout = PayoutDispatcher().dispatch(runtime, SOL_RECIPIENT, "1.0")
    assert payout.amount == 1_000_000_000 - SOL_FEE
    assert runtime.client.sent == [(SOL_RECIPIENT, 999_995_000)]
    assert payout.tx_id == "payout-1"


@pytest.mark.parametrize("gross", ["0.000005", "0.000001", "0.000004999"])
def test_amount_not_covering_fee_fails_closed(gross):
    runtime = make_runtime()
    with pytest.raises(PayoutError) as excinfo:
        PayoutDispatcher().dispatch(runtime, SOL_RECIPIENT, gross)
    assert excinfo.value.kind == PayoutError.AMOUNT_TOO_SMALL
    assert runtime.client.sent == []


def test_smallest_payable_amount():
    runtime = make_runtime()
    payout = PayoutDispatcher().dispatch(runtime, SOL_RECIPIENT, "0.000005001")
    assert payout.amount == 1


def test_chain_error_becomes_submission_failure():
    runtime = make_runtime()
    runtime.client.submit_error = ChainClientError("not confirmed", tx_id="sig-unconfirmed")
    with pytest.raises(PayoutError) as excinfo:
        PayoutDispatcher().dispatch(runtime, SOL_RECIPIENT, "1.0")
    assert excinfo.value.kind == PayoutError.SUBMISSION_FAILED
    assert excinfo.value.tx_id == "sig-unconfirmed"


def test_broadcast_hook_and_replaced_slot_reach_the_client():
    runtime = make_runtime()
    broadcasts = []

    PayoutDispatcher().dispatch(
        runtime,
        SOL_RECIPIENT,
        "1.0",
        replaces="ref-0",
        on_broadcast=lambda tx_id, ref: broadcasts.append((tx_id, ref)),
    )

    assert runtime.client.replaced == ["ref-0"]
    assert broadcasts == [("payout-1", "ref-1")]


def test_broadcast_hook_error_fails_the_payout():
    runtime = make_runtime()

    def refuse(tx_id, ref):
        raise RuntimeError("superseded")

    with pytest.raises(PayoutError, match="superseded"):
        PayoutDispatcher().dispatch(runtime, SOL_RECIPIENT, "1.0", on_broadcast=refuse)
    assert runtime.client.sent == []


def test_unexpected_error_becomes_submission_failure():
    runtime = make_runtime()
    runtime.client.submit_error = RuntimeError("boom")
    with pytest.raises(PayoutError, match="RuntimeError: boom"):
        PayoutDispatcher().dispatch(runtime, SOL_RECIPIENT, "1.0")


def test_disabled_chain_cannot_pay_out():
    runtime = make_runtime(enabled=False)
    with pytest.raises(PayoutError, match="not initialized"):
        PayoutDispatcher().dispatch(runtime, SOL_RECIPIENT, "1.0")


def test_submissions_from_one_key_are_serialized():
    runtime = make_runtime()
    client = runtime.client
    active = []
    overlaps = []
    original = client.submit_transfer

    def slow_submit(signer, recipient, amount, **kwargs):
        if active:
            overlaps.append(amount)
        active.append(amount)
        time.sleep(0.02)
        active.pop()
        return original(signer, recipient, amount, **kwargs)

    client.submit_transfer = slow_submit
    dispatcher = PayoutDispatcher()
    threads = [
        threading.Thread(target=dispatcher.dispatch, args=(runtime, SOL_RECIPIENT, "1.0"))
        for _ in range(4)
    ]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert overlaps == []
    assert len(client.sent) == 4
