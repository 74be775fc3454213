"""
EvmClient: Ethereum-compatible chains (Ethereum mainnet, BNB Smart Chain) via web3.

Deposits are plain value transfers to the pool account; payouts are signed
locally with the pool's eth-account key and broadcast as raw transactions.
"""

from __future__ import annotations

from typing import Any

from web3 import Web3
from web3.exceptions import TimeExhausted, TransactionNotFound

from privacy_relay.chains.base import BroadcastHook, ChainClient, ChainClientError
from privacy_relay.core.address import is_valid_evm_address
from privacy_relay.core.models import Chain, ChainTransaction
from privacy_relay.core.signer import CustodialSigner, EvmSigner

PUBLIC_RPC_URLS = {
    Chain.ETHEREUM: "https://eth.llamarpc.com",
    Chain.BNB: "https://bsc-dataseed.binance.org",
}

# Gas limit of a plain value transfer to an externally owned account
TRANSFER_GAS = 21_000


class EvmClient(ChainClient):
    """
    Synchronous client for one EVM network.

    Usage:
        client = EvmClient(Chain.ETHEREUM)
        client = EvmClient(Chain.BNB, rpc_url="https://bsc-dataseed.binance.org")
    """

    defers_sender = True

    def __init__(
        self,
        chain: Chain,
        rpc_url: str | None = None,
        timeout: float = 15.0,
        confirm_timeout: float = 120.0,
        poll_interval: float = 1.0,
        w3: Web3 | None = None,
    ) -> None:
        if chain not in PUBLIC_RPC_URLS:
            raise ValueError(f"{chain.value} is not an EVM chain")
        super().__init__(chain)
        self.rpc_url = rpc_url or PUBLIC_RPC_URLS[chain]
        self.confirm_timeout = confirm_timeout
        self.poll_interval = poll_interval
        self.w3 = w3 or Web3(Web3.HTTPProvider(self.rpc_url, request_kwargs={"timeout": timeout}))
        self._chain_id: int | None = None

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def validate_address(self, address: str) -> bool:
        return is_valid_evm_address(address)

    def same_address(self, a: str | None, b: str | None) -> bool:
        return a is not None and b is not None and a.lower() == b.lower()

    def get_transaction(self, tx_id: str) -> ChainTransaction | None:
        """
        Return a transaction by hash, or None if the node does not know it.

        A transaction without a receipt is still in the mempool and reported
        as pending. A receipt status of 0 (reverted) means it failed.
        """
        try:
            tx = self.w3.eth.get_transaction(tx_id)
        except TransactionNotFound:
            return None
        except Exception as e:
            raise ChainClientError(f"eth_getTransactionByHash failed: {e}") from e

        try:
            receipt = self.w3.eth.get_transaction_receipt(tx_id)
        except TransactionNotFound:
            receipt = None
        except Exception as e:
            raise ChainClientError(f"eth_getTransactionReceipt failed: {e}") from e

        return ChainTransaction(
            tx_id=tx_id,
            sender=tx.get("from"),
            recipient=tx.get("to"),
            value=int(tx.get("value", 0)),
            succeeded=receipt is not None and receipt.get("status") == 1,
            pending=receipt is None,
        )

    def get_balance(self, address: str) -> int:
        """Return the balance in wei."""
        try:
            return int(self.w3.eth.get_balance(Web3.to_checksum_address(address)))
        except Exception as e:
            raise ChainClientError(f"eth_getBalance failed: {e}") from e

    @property
    def chain_id(self) -> int:
        if self._chain_id is None:
            self._chain_id = int(self.w3.eth.chain_id)
        return self._chain_id

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
        Send `amount` wei from the pool account to `recipient` and wait for the receipt.

        The broadcast reference is the nonce. Passing an earlier payout's nonce
        as `replaces` reuses it while it is still unspent, so the new transfer
        and the earlier one can never both be mined.

        The caller must hold `signer.lock`; the nonce is read from the pending
        pool and would collide under concurrent submissions.

        Raises:
            ChainClientError: on rejection, revert, or receipt timeout
        """
        if not isinstance(signer, EvmSigner):
            raise ChainClientError(f"EVM transfers need an EvmSigner, got {type(signer).__name__}")

        account = signer.account
        try:
            nonce = self._next_nonce(account.address, replaces)
            tx: dict[str, Any] = {
                "to": Web3.to_checksum_address(recipient),
                "value": amount,
                "gas": TRANSFER_GAS,
                "gasPrice": self.w3.eth.gas_price,
                "nonce": nonce,
                "chainId": self.chain_id,
            }
            signed = account.sign_transaction(tx)
        except Exception as e:
            raise ChainClientError(f"Transfer rejected: {e}") from e

        tx_id = Web3.to_hex(signed.hash)
        if on_broadcast is not None:
            on_broadcast(tx_id, str(nonce))

        try:
            self.w3.eth.send_raw_transaction(signed.raw_transaction)
        except Exception as e:
            # The node may have relayed it before failing to answer
            raise ChainClientError(f"Transfer rejected: {e}", tx_id=tx_id) from e

        try:
            receipt = self.w3.eth.wait_for_transaction_receipt(
                signed.hash, timeout=self.confirm_timeout, poll_latency=self.poll_interval
            )
        except TimeExhausted:
            raise ChainClientError(
                f"Transaction {tx_id} not mined after {self.confirm_timeout:.0f}s", tx_id=tx_id
            ) from None
        except Exception as e:
            raise ChainClientError(f"Waiting for {tx_id} failed: {e}", tx_id=tx_id) from e

        if receipt.get("status") != 1:
            raise ChainClientError(f"Transaction {tx_id} reverted", tx_id=tx_id)
        return tx_id

    def _next_nonce(self, address: str, replaces: str | None) -> int:
        pending = self.w3.eth.get_transaction_count(address, "pending")
        if replaces is None:
            return pending
        stuck = int(replaces)
        # A nonce below the mined count is spent, so the earlier transfer is void
        if stuck >= self.w3.eth.get_transaction_count(address, "latest"):
            return stuck
        return pending
