"""
mixion_sdk.tx
=============

Send wallet-signed transactions and await their receipts.

Primary entry points
--------------------
- send_transaction(provider, tx) -> str
    Hands the call object to the wallet via `eth_sendTransaction`. The wallet
    signs and broadcasts; the result is the 0x-prefixed transaction hash.

- wait_for_receipt(rpc, tx_hash, *, timeout_s=120, poll_interval_s=0.5) -> dict
    Polls `eth_getTransactionReceipt` on the chain RPC with a gentle backoff.

- send_and_wait(provider, rpc, tx, ...) -> dict
    Both of the above, then `check_receipt` (status 0 raises TxError).

Nothing here resubmits a transaction. A user rejection surfaces as
UserRejected, any other wallet error as the wallet reported it.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Dict, Optional

from .errors import ProviderRpcError, TxError, from_provider_error
from .rpc.http import AsyncRpcClient
from .utils.bytes import quantity
from .wallet.provider import WalletProvider

log = logging.getLogger("mixion.tx")


async def send_transaction(provider: WalletProvider, tx: Dict[str, Any]) -> str:
    """Ask the wallet to sign and broadcast `tx`; returns the tx hash."""
    try:
        result = await provider.request("eth_sendTransaction", [tx])
    except ProviderRpcError as e:
        raise from_provider_error(e) from e
    if not isinstance(result, str) or not result:
        raise TxError(f"unexpected result for eth_sendTransaction: {type(result)!r}")
    return result if result.startswith("0x") else "0x" + result


async def get_transaction_receipt(rpc: AsyncRpcClient, tx_hash: str) -> Optional[Dict[str, Any]]:
    """The receipt, or None while the transaction is still pending."""
    res = await rpc.request("eth_getTransactionReceipt", [tx_hash])
    if res in (None, False, ""):
        return None
    if not isinstance(res, dict):
        raise TxError(f"unexpected receipt payload: {type(res)!r}", tx_hash=tx_hash)
    return res


async def wait_for_receipt(
    rpc: AsyncRpcClient,
    tx_hash: str,
    *,
    timeout_s: float = 120.0,
    poll_interval_s: float = 0.5,
    max_interval_s: float = 2.5,
    backoff: float = 1.25,
) -> Dict[str, Any]:
    """
    Poll for a receipt until it arrives or timeout is reached.

    Raises:
        TxError on timeout or malformed receipt
        RpcError on RPC failure
    """
    deadline = time.monotonic() + float(timeout_s)
    interval = float(poll_interval_s)

    while True:
        rec = await get_transaction_receipt(rpc, tx_hash)
        if rec is not None:
            return rec

        if time.monotonic() >= deadline:
            raise TxError(f"timeout waiting for receipt after {timeout_s}s", tx_hash=tx_hash)

        await asyncio.sleep(interval)
        interval = min(interval * float(backoff), float(max_interval_s))


def check_receipt(receipt: Dict[str, Any], tx_hash: Optional[str] = None) -> Dict[str, Any]:
    """Raise TxError for a reverted transaction (status 0)."""
    status = receipt.get("status")
    if status is not None and quantity(status) == 0:
        raise TxError("transaction reverted", tx_hash=tx_hash or receipt.get("transactionHash"), receipt=receipt)
    return receipt


async def send_and_wait(
    provider: WalletProvider,
    rpc: AsyncRpcClient,
    tx: Dict[str, Any],
    *,
    timeout_s: float = 120.0,
    poll_interval_s: float = 0.5,
) -> Dict[str, Any]:
    tx_hash = await send_transaction(provider, tx)
    log.info("sent %s to %s", tx_hash, tx.get("to"))
    receipt = await wait_for_receipt(rpc, tx_hash, timeout_s=timeout_s, poll_interval_s=poll_interval_s)
    return check_receipt(receipt, tx_hash)


__all__ = [
    "send_transaction",
    "get_transaction_receipt",
    "wait_for_receipt",
    "check_receipt",
    "send_and_wait",
]
