"""
Unit tests for EvmClient. web3 is replaced by a MagicMock; signing is real.
"""

from unittest.mock import MagicMock

import pytest
from web3 import Web3
from web3.exceptions import TimeExhausted, TransactionNotFound

from fakes import ETH_POOL, ETH_RECIPIENT, ETH_SENDER
from privacy_relay.chains.base import ChainClientError
from privacy_relay.chains.evm import TRANSFER_GAS, EvmClient
from privacy_relay.core.models import Chain
from privacy_relay.core.signer import EvmSigner

TX_HASH = b"\x12" * 32


@pytest.fixture
def w3():
    mock = MagicMock()
    mock.eth.gas_price = 5_000_000_000
    mock.eth.chain_id = 1
    mock.eth.get_transaction_count.return_value = 7
    mock.eth.send_raw_transaction.return_value = TX_HASH
    mock.eth.wait_for_transaction_receipt.return_value = {"status": 1}
    return mock


@pytest.fixture
def client(w3):
    return EvmClient(Chain.ETHEREUM, w3=w3, confirm_timeout=1, poll_interval=0)


@pytest.fixture
def signer():
    return EvmSigner.from_private_key("0x" + "11" * 32)


def test_rejects_non_evm_chain():
    with pytest.raises(ValueError):
        EvmClient(Chain.SOLANA, w3=MagicMock())


def test_get_transaction(client, w3):
    w3.eth.get_transaction.return_value = {"from": ETH_SENDER, "to": ETH_POOL, "value": 10**18}
    w3.eth.get_transaction_receipt.return_value = {"status": 1}

    tx = client.get_transaction("0xdep")

    assert tx.sender == ETH_SENDER
    assert tx.recipient == ETH_POOL
    assert tx.value == 10**18
    assert tx.succeeded is True


def test_get_transaction_unknown(client, w3):
    w3.eth.get_transaction.side_effect = TransactionNotFound("nope")
    assert client.get_transaction("0xdep") is None


def test_transaction_without_receipt_is_pending(client, w3):
    w3.eth.get_transaction.return_value = {"from": ETH_SENDER, "to": ETH_POOL, "value": 1}
    w3.eth.get_transaction_receipt.side_effect = TransactionNotFound("pending")
    tx = client.get_transaction("0xdep")
    assert tx.pending is True
    assert tx.succeeded is False


def test_reverted_transaction_is_not_succeeded(client, w3):
    w3.eth.get_transaction.return_value = {"from": ETH_SENDER, "to": ETH_POOL, "value": 1}
    w3.eth.get_transaction_receipt.return_value = {"status": 0}
    tx = client.get_transaction("0xdep")
    assert tx.succeeded is False
    assert tx.pending is False


def test_lookup_transport_error(client, w3):
    w3.eth.get_transaction.side_effect = ConnectionError("refused")
    with pytest.raises(ChainClientError, match="refused"):
        client.get_transaction("0xdep")


def test_get_balance(client, w3):
    w3.eth.get_balance.return_value = 123
    assert client.get_balance(ETH_POOL) == 123


def test_addresses_compare_case_insensitively(client):
    assert client.same_address(ETH_POOL, ETH_POOL.upper().replace("0X", "0x"))
    assert not client.same_address(ETH_POOL, None)


def submit(client, signer, amount=10**18, **kwargs):
    """Submit a transfer, returning (tx_id or error, broadcasts seen by the hook)."""
    broadcasts = []
    try:
        result = client.submit_transfer(
            signer, ETH_RECIPIENT, amount,
            on_broadcast=lambda tx_id, ref: broadcasts.append((tx_id, ref)),
            **kwargs,
        )
    except ChainClientError as e:
        result = e
    return result, broadcasts


def test_submit_transfer(client, w3, signer):
    tx_id, broadcasts = submit(client, signer)

    assert broadcasts == [(tx_id, "7")]
    assert tx_id.startswith("0x") and len(tx_id) == 66
    w3.eth.get_transaction_count.assert_called_once_with(signer.address, "pending")
    raw = w3.eth.send_raw_transaction.call_args.args[0]
    assert isinstance(raw, bytes) and raw
    waited_for = w3.eth.wait_for_transaction_receipt.call_args.args[0]
    assert Web3.to_hex(waited_for) == tx_id


def test_broadcast_is_recorded_before_sending(client, w3, signer):
    order = []
    w3.eth.send_raw_transaction.side_effect = lambda raw: order.append("send") or TX_HASH
    client.submit_transfer(
        signer, ETH_RECIPIENT, 1, on_broadcast=lambda tx_id, ref: order.append("record")
    )
    assert order == ["record", "send"]


def test_submit_transfer_builds_plain_value_transfer(client, w3, signer):
    account = MagicMock(wraps=signer.account)
    account.address = signer.address
    client.submit_transfer(EvmSigner(account), ETH_RECIPIENT, 5)

    captured = account.sign_transaction.call_args.args[0]

    assert captured["value"] == 5
    assert captured["gas"] == TRANSFER_GAS
    assert captured["nonce"] == 7
    assert captured["chainId"] == 1
    assert captured["to"].lower() == ETH_RECIPIENT


def nonce_counts(w3, pending, latest):
    w3.eth.get_transaction_count.side_effect = (
        lambda address, block: pending if block == "pending" else latest
    )


def test_replacement_reuses_unspent_nonce(client, w3, signer):
    nonce_counts(w3, pending=9, latest=5)
    _, broadcasts = submit(client, signer, replaces="7")
    assert broadcasts[0][1] == "7"


def test_replacement_of_spent_nonce_takes_next_one(client, w3, signer):
    nonce_counts(w3, pending=9, latest=5)
    _, broadcasts = submit(client, signer, replaces="3")
    assert broadcasts[0][1] == "9"


def test_submit_transfer_timeout_keeps_hash(client, w3, signer):
    w3.eth.wait_for_transaction_receipt.side_effect = TimeExhausted("slow")
    error, broadcasts = submit(client, signer)
    assert "not mined" in str(error)
    assert error.tx_id == broadcasts[0][0]


def test_submit_transfer_revert(client, w3, signer):
    w3.eth.wait_for_transaction_receipt.return_value = {"status": 0}
    error, broadcasts = submit(client, signer)
    assert "reverted" in str(error)
    assert error.tx_id == broadcasts[0][0]


def test_submit_transfer_rejected_still_reports_hash(client, w3, signer):
    # The node may have relayed it before answering with an error
    w3.eth.send_raw_transaction.side_effect = ValueError("insufficient funds")
    error, broadcasts = submit(client, signer)
    assert "insufficient funds" in str(error)
    assert error.tx_id == broadcasts[0][0]


def test_submit_transfer_nonce_failure_broadcasts_nothing(client, w3, signer):
    w3.eth.get_transaction_count.side_effect = ConnectionError("refused")
    error, broadcasts = submit(client, signer)
    assert "refused" in str(error)
    assert error.tx_id is None
    assert broadcasts == []
    w3.eth.send_raw_transaction.assert_not_called()
