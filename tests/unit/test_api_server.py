import pytest
from fastapi.testclient import TestClient

from fakes import (
    ETH_RECIPIENT,
    ETH_SENDER,
    SOL_POOL,
    SOL_RECIPIENT,
    SOL_SENDER,
    fund_session,
)
from privacy_relay.api.server import create_app
from privacy_relay.chains.base import ChainClientError
from privacy_relay.config import Settings
from privacy_relay.core.models import SessionStatus

ADMIN_KEY = "test-admin-key"


@pytest.fixture
def client(relay):
    app = create_app(relay=relay, settings=Settings(admin_api_key=ADMIN_KEY))
    with TestClient(app) as c:
        yield c


def open_session(client, amount="1.0", chain="solana"):
    response = client.post(
        "/sessions",
        json={
            "senderAddress": SOL_SENDER,
            "recipientAddress": SOL_RECIPIENT,
            "amount": amount,
            "chain": chain,
        },
    )
    assert response.status_code == 201, response.text
    return response.json()


def test_health_check(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_create_session(client):
    body = open_session(client)
    assert body["poolAddress"] == SOL_POOL
    assert body["status"] == "pending"
    assert body["amount"] == "1.0"
    assert body["chain"] == "solana"
    assert body["sessionId"]


def test_create_session_accepts_numeric_amount(client):
    response = client.post(
        "/sessions",
        json={"senderAddress": SOL_SENDER, "recipientAddress": SOL_RECIPIENT, "amount": 2},
    )
    assert response.status_code == 201
    assert response.json()["amount"] == "2"


def test_create_session_missing_fields(client):
    response = client.post("/sessions", json={"senderAddress": SOL_SENDER})
    assert response.status_code == 400
    assert response.json() == {"detail": "Missing required fields"}


def test_create_session_malformed_body(client):
    response = client.post("/sessions", content="not json", headers={"content-type": "application/json"})
    assert response.status_code == 400
    assert response.json()["detail"] == "Invalid request"


def test_create_session_bad_amount(client):
    response = client.post(
        "/sessions",
        json={"senderAddress": SOL_SENDER, "recipientAddress": SOL_RECIPIENT, "amount": "0"},
    )
    assert response.status_code == 400


def test_create_session_unconfigured_chain(client):
    response = client.post(
        "/sessions",
        json={
            "senderAddress": ETH_RECIPIENT,
            "recipientAddress": ETH_RECIPIENT,
            "amount": "1",
            "chain": "bnb",
        },
    )
    assert response.status_code == 503
    assert "not configured" in response.json()["detail"]


def test_confirm_deposit_completes(client, sol_runtime, store):
    body = open_session(client)
    tx_id = fund_session(sol_runtime, store.get(body["sessionId"]))

    response = client.post(
        f"/sessions/{body['sessionId']}/confirm-deposit", json={"depositSignature": tx_id}
    )

    assert response.status_code == 200
    result = response.json()
    assert result["status"] == "completed"
    assert result["depositSignature"] == tx_id
    assert result["payoutSignature"] == "payout-1"


def test_confirm_deposit_requires_signature(client):
    body = open_session(client)
    response = client.post(f"/sessions/{body['sessionId']}/confirm-deposit", json={})
    assert response.status_code == 400
    assert response.json()["detail"] == "Deposit signature required"


def test_confirm_deposit_unknown_session(client):
    response = client.post("/sessions/nope/confirm-deposit", json={"depositSignature": "x"})
    assert response.status_code == 404
    assert response.json() == {"detail": "Session not found"}


def test_confirm_deposit_verification_failure(client, sol_runtime, store):
    body = open_session(client)
    tx_id = fund_session(sol_runtime, store.get(body["sessionId"]), value=1)

    response = client.post(
        f"/sessions/{body['sessionId']}/confirm-deposit", json={"depositSignature": tx_id}
    )

    assert response.status_code == 400
    error = response.json()
    assert error["detail"] == "Deposit verification failed"
    assert error["reason"] == "amount_mismatch"
    assert error["details"].startswith("Amount mismatch")
    assert client.get(f"/sessions/{body['sessionId']}").json()["status"] == "pending"


def test_confirm_deposit_payout_failure(client, sol_runtime, store):
    body = open_session(client)
    tx_id = fund_session(sol_runtime, store.get(body["sessionId"]))
    sol_runtime.client.submit_error = ChainClientError("rpc down")

    response = client.post(
        f"/sessions/{body['sessionId']}/confirm-deposit", json={"depositSignature": tx_id}
    )

    assert response.status_code == 500
    assert response.json() == {
        "detail": "Payout failed",
        "sessionId": body["sessionId"],
        "status": "payout_failed",
    }


def test_get_session(client):
    body = open_session(client)
    response = client.get(f"/sessions/{body['sessionId']}")
    assert response.status_code == 200
    session = response.json()
    assert session["sessionId"] == body["sessionId"]
    assert session["recipientAddress"] == SOL_RECIPIENT
    assert session["depositSignature"] is None
    assert "senderAddress" not in session


def test_get_session_not_found(client):
    assert client.get("/sessions/missing").status_code == 404


def test_list_sessions_by_address(client):
    first = open_session(client)
    second = open_session(client, amount="2")

    response = client.get("/sessions", params={"address": SOL_SENDER})

    assert response.status_code == 200
    assert [s["sessionId"] for s in response.json()] == [second["sessionId"], first["sessionId"]]
    assert client.get("/sessions", params={"address": SOL_RECIPIENT}).json() == []


def test_list_sessions_requires_address(client):
    response = client.get("/sessions")
    assert response.status_code == 400
    assert response.json() == {"detail": "Address parameter required"}


def test_pool_address(client):
    response = client.get("/pool-address/sol")
    assert response.status_code == 200
    assert response.json() == {"chain": "solana", "poolAddress": SOL_POOL}
    assert client.get("/pool-address/bsc").status_code == 503
    assert client.get("/pool-address/dogecoin").status_code == 400


def test_balance(client, sol_runtime):
    sol_runtime.client.balances[SOL_POOL] = 1_500_000_000
    response = client.get(f"/balance/solana/{SOL_POOL}")
    assert response.status_code == 200
    assert response.json() == {
        "chain": "solana",
        "address": SOL_POOL,
        "balance": "1.5",
        "baseUnits": "1500000000",
    }


def test_balance_rpc_failure(client, sol_runtime):
    sol_runtime.client.lookup_error = ChainClientError("timeout")
    assert client.get(f"/balance/solana/{SOL_POOL}").status_code == 502


# --- admin ---


def failed_session(client, sol_runtime, store):
    body = open_session(client)
    tx_id = fund_session(sol_runtime, store.get(body["sessionId"]))
    sol_runtime.client.submit_error = ChainClientError("rpc down")
    client.post(f"/sessions/{body['sessionId']}/confirm-deposit", json={"depositSignature": tx_id})
    sol_runtime.client.submit_error = None
    return body["sessionId"]


def test_admin_requires_key(client):
    assert client.get("/admin/sessions").status_code == 401
    response = client.get("/admin/sessions", headers={"X-API-Key": "wrong"})
    assert response.status_code == 401
    assert response.json() == {"detail": "Invalid API key"}


def test_admin_disabled_without_configured_key(relay):
    app = create_app(relay=relay, settings=Settings(admin_api_key=None))
    with TestClient(app) as c:
        response = c.get("/admin/sessions", headers={"X-API-Key": "anything"})
    assert response.status_code == 503


def test_admin_lists_failed_payouts(client, sol_runtime, store):
    session_id = failed_session(client, sol_runtime, store)
    open_session(client)

    response = client.get("/admin/sessions", headers={"X-API-Key": ADMIN_KEY})

    assert response.status_code == 200
    listed = response.json()
    assert [s["sessionId"] for s in listed] == [session_id]
    assert listed[0]["payoutAttempts"] == 1
    assert "rpc down" in listed[0]["payoutError"]
    assert listed[0]["senderAddress"] == SOL_SENDER


def test_admin_lists_by_status(client):
    open_session(client)
    response = client.get(
        "/admin/sessions", params={"status": "pending"}, headers={"X-API-Key": ADMIN_KEY}
    )
    assert len(response.json()) == 1
    bad = client.get("/admin/sessions", params={"status": "bogus"}, headers={"X-API-Key": ADMIN_KEY})
    assert bad.status_code == 400


def test_admin_retry_payout(client, sol_runtime, store):
    session_id = failed_session(client, sol_runtime, store)

    response = client.post(
        f"/admin/sessions/{session_id}/retry-payout", headers={"X-API-Key": ADMIN_KEY}
    )

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "completed"
    assert body["payoutAttempts"] == 2
    assert store.get(session_id).status is SessionStatus.COMPLETED


def test_admin_retry_rejects_pending_session(client):
    body = open_session(client)
    response = client.post(
        f"/admin/sessions/{body['sessionId']}/retry-payout", headers={"X-API-Key": ADMIN_KEY}
    )
    assert response.status_code == 400


def test_admin_retry_refused_while_payout_pending(client, sol_runtime):
    body = open_session(client)
    sol_runtime.client.add_deposit("sig-ok", SOL_SENDER, SOL_POOL, 1_000_000_000)
    sol_runtime.client.confirm_error = "not confirmed after 60s"
    client.post(f"/sessions/{body['sessionId']}/confirm-deposit", json={"depositSignature": "sig-ok"})
    sol_runtime.client.confirm_error = None

    response = client.post(
        f"/admin/sessions/{body['sessionId']}/retry-payout", headers={"X-API-Key": ADMIN_KEY}
    )

    assert response.status_code == 400
    assert response.json() == {"detail": "Previous payout still pending"}
    assert len(sol_runtime.client.sent) == 1


def test_list_sessions_rejects_deferred_sender_placeholder(client):
    client.post(
        "/sessions",
        json={"senderAddress": "pending", "recipientAddress": ETH_RECIPIENT, "amount": "1", "chain": "eth"},
    )
    response = client.get("/sessions", params={"address": "pending"})
    assert response.status_code == 400


# --- transfer history ---


def test_record_and_read_transaction(client, sol_runtime):
    sol_runtime.client.add_deposit("xfer-1", SOL_SENDER, SOL_RECIPIENT, 250_000_000)
    payload = {
        "signature": "xfer-1",
        "fromAddress": SOL_SENDER,
        "toAddress": SOL_RECIPIENT,
        "amount": "0.25",
    }

    created = client.post("/transactions", json=payload)
    assert created.status_code == 201, created.text
    body = created.json()
    assert body["signature"] == "xfer-1"
    assert body["chain"] == "solana"
    assert body["status"] == "confirmed"
    assert body["amount"] == "0.25"

    fetched = client.get("/transactions/xfer-1")
    assert fetched.status_code == 200
    assert fetched.json()["fromAddress"] == SOL_SENDER

    listed = client.get("/transactions", params={"address": SOL_RECIPIENT})
    assert [t["signature"] for t in listed.json()] == ["xfer-1"]

    duplicate = client.post("/transactions", json=payload)
    assert duplicate.status_code == 409
    assert duplicate.json() == {"detail": "Transaction already exists"}


def test_record_transaction_failing_verification(client):
    response = client.post(
        "/transactions",
        json={
            "signature": "unknown-sig",
            "fromAddress": SOL_SENDER,
            "toAddress": SOL_RECIPIENT,
            "amount": "0.25",
        },
    )
    assert response.status_code == 400
    assert response.json()["reason"] == "not_found"


def test_record_transaction_invalid_body(client):
    response = client.post("/transactions", json={"signature": "xfer-1"})
    assert response.status_code == 400
    assert response.json() == {"detail": "Invalid transaction data"}


def test_transaction_reads(client):
    assert client.get("/transactions/missing").status_code == 404
    assert client.get("/transactions").status_code == 400
    assert client.get("/transactions", params={"address": "not-base58!"}).status_code == 400
    listed = client.get("/transactions", params={"address": ETH_SENDER, "chain": "eth"})
    assert listed.status_code == 200
    assert listed.json() == []


def test_rpc_endpoint(client):
    response = client.get("/rpc-endpoint/bsc")
    assert response.status_code == 200
    assert response.json() == {"chain": "bnb", "rpcUrl": "https://bnb.rpc.test"}
    assert client.get("/rpc-endpoint/doge").status_code == 400
