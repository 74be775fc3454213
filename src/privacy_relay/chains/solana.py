"""
SolanaClient: JSON-RPC client for Solana, plus native SOL transfers from the pool.

Reads go straight to the RPC endpoint over httpx. Transfers are built and
signed locally with solders and broadcast with `sendTransaction`.

Docs: https://solana.com/docs/rpc
"""

from __future__ import annotations

import base64
import itertools
import time
from typing import Any

import httpx
from solders.hash import Hash
from solders.message import Message
from solders.pubkey import Pubkey
from solders.system_program import TransferParams, transfer
from solders.transaction import Transaction

from privacy_relay.chains.base import BroadcastHook, ChainClient, ChainClientError
from privacy_relay.core.address import is_valid_solana_address
from privacy_relay.core.models import Chain, ChainTransaction
from privacy_relay.core.signer import CustodialSigner, SolanaSigner

PUBLIC_RPC_URL = "https://api.mainnet-beta.solana.com"

# Commitment levels that count as "included" for payouts
_CONFIRMED = ("confirmed", "finalized")


class SolanaClient(ChainClient):
    """
    Synchronous Solana client.

    Usage:
        client = SolanaClient()  # public mainnet RPC
        client = SolanaClient(rpc_url="http://localhost:8899", confirm_timeout=30)
    """

    def __init__(
        self,
        rpc_url: str = PUBLIC_RPC_URL,
        timeout: float = 15.0,
        confirm_timeout: float = 60.0,
        poll_interval: float = 1.0,
        http_client: httpx.Client | None = None,
    ) -> None:
        super().__init__(Chain.SOLANA)
        self.rpc_url = rpc_url
        self.confirm_timeout = confirm_timeout
        self.poll_interval = poll_interval
        self._client = http_client or httpx.Client(
            headers={"Content-Type": "application/json"}, timeout=timeout
        )
        self._ids = itertools.count(1)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def validate_address(self, address: str) -> bool:
        return is_valid_solana_address(address)

    def get_transaction(self, tx_id: str) -> ChainTransaction | None:
        """
        Return a transaction by signature, or None if the cluster has no record of it.

        The transferred value is the fee-exclusive balance delta of the fee
        payer (account 0), which is how a plain SOL transfer debits the sender.
        """
        data = self._rpc(
            "getTransaction",
            [tx_id, {
                "encoding": "json",
                "commitment": "confirmed",
                "maxSupportedTransactionVersion": 0,
            }],
        )
        if not data:
            return None

        meta = data.get("meta") or {}
        account_keys = data["transaction"]["message"].get("accountKeys", [])
        pre = meta.get("preBalances") or []
        post = meta.get("postBalances") or []
        fee = int(meta.get("fee") or 0)

        value = 0
        if pre and post:
            value = int(pre[0]) - int(post[0]) - fee

        return ChainTransaction(
            tx_id=tx_id,
            sender=account_keys[0] if len(account_keys) > 0 else None,
            recipient=account_keys[1] if len(account_keys) > 1 else None,
            value=value,
            succeeded=meta.get("err") is None,
            block_time=data.get("blockTime"),
        )

    def get_balance(self, address: str) -> int:
        """Return the balance in lamports."""
        data = self._rpc("getBalance", [address, {"commitment": "confirmed"}])
        return int(data["value"])

    def get_latest_blockhash(self) -> str:
        data = self._rpc("getLatestBlockhash", [{"commitment": "confirmed"}])
        return str(data["value"]["blockhash"])

    def is_blockhash_valid(self, blockhash: str) -> bool:
        data = self._rpc("isBlockhashValid", [blockhash, {"commitment": "processed"}])
        return bool(data["value"])

    def lookup_broadcast(self, tx_id: str, reference: str | None) -> ChainTransaction | None:
        """
        Look up a payout by signature. `reference` is the blockhash it was signed with.

        The cluster may not report a signature until it is confirmed, so an
        unknown signature counts as pending while its blockhash is still valid.
        The blockhash is checked first: once it has expired, anything that was
        going to land is already visible.
        """
        still_valid = reference is not None and self.is_blockhash_valid(reference)
        tx = self.get_transaction(tx_id)
        if tx is None and still_valid:
            return ChainTransaction(
                tx_id=tx_id, sender=None, recipient=None, value=0, succeeded=False, pending=True
            )
        return tx

    # ------------------------------------------------------------------
    # Transfers
    # ------------------------------------------------------------------

    def submit_transfer(
        self,
        signer: CustodialSigner,
        recipient: str,
        amount: int,
        replaces: str | None = None,
        on_broadcast: BroadcastHook | None = None,
    ) -> str:
        """
        Transfer `amount` lamports from the pool keypair to `recipient`.

        Blocks until the signature reaches `confirmed` commitment. Every
        transfer is signed with a fresh blockhash, so `replaces` is not needed:
        callers only resend once the earlier blockhash has expired.

        Raises:
            ChainClientError: on rejection, on-chain failure or confirmation timeout
        """
        if not isinstance(signer, SolanaSigner):
            raise ChainClientError(f"Solana transfers need a SolanaSigner, got {type(signer).__name__}")

        keypair = signer.keypair
        blockhash = self.get_latest_blockhash()
        recent = Hash.from_string(blockhash)
        instruction = transfer(TransferParams(
            from_pubkey=keypair.pubkey(),
            to_pubkey=Pubkey.from_string(recipient),
            lamports=amount,
        ))
        message = Message.new_with_blockhash([instruction], keypair.pubkey(), recent)
        tx = Transaction([keypair], message, recent)
        signature = str(tx.signatures[0])

        if on_broadcast is not None:
            on_broadcast(signature, blockhash)

        try:
            self._rpc(
                "sendTransaction",
                [base64.b64encode(bytes(tx)).decode("ascii"), {
                    "encoding": "base64",
                    "preflightCommitment": "confirmed",
                }],
            )
            self.wait_for_confirmation(signature)
        except ChainClientError as e:
            # The request may have reached the cluster even if the reply did not
            if e.tx_id is None:
                raise ChainClientError(str(e), tx_id=signature) from e
            raise
        return signature

    def wait_for_confirmation(self, signature: str) -> None:
        """Poll the signature status until it is confirmed, failed, or times out."""
        deadline = time.monotonic() + self.confirm_timeout
        while True:
            data = self._rpc("getSignatureStatuses", [[signature]])
            status = (data.get("value") or [None])[0]
            if status:
                if status.get("err") is not None:
                    raise ChainClientError(
                        f"Transaction {signature} failed on chain: {status['err']}",
                        tx_id=signature,
                    )
                if status.get("confirmationStatus") in _CONFIRMED:
                    return
            if time.monotonic() >= deadline:
                raise ChainClientError(
                    f"Transaction {signature} not confirmed after {self.confirm_timeout:.0f}s",
                    tx_id=signature,
                )
            time.sleep(self.poll_interval)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _rpc(self, method: str, params: list[Any]) -> Any:
        payload = {"jsonrpc": "2.0", "id": next(self._ids), "method": method, "params": params}
        try:
            response = self._client.post(self.rpc_url, json=payload)
        except httpx.HTTPError as e:
            raise ChainClientError(f"RPC {method} failed: {e}") from e
        if response.status_code != 200:
            raise ChainClientError(
                f"RPC error {response.status_code} for {method}: {response.text}"
            )
        body = response.json()
        if body.get("error"):
            error = body["error"]
            raise ChainClientError(f"RPC {method} rejected: {error.get('message', error)}")
        return body.get("result")

    def close(self) -> None:
        """Close the underlying HTTP client."""
        self._client.close()
