"""
Wallet provider surface consumed by the session layer.

The session manager only needs two things from a wallet:

* `request(method, params)`: EIP-1193 style RPC. The methods used are
  `eth_accounts`, `eth_chainId`, `eth_requestAccounts`,
  `wallet_switchEthereumChain`, `wallet_addEthereumChain` and, for the
  settlement client, `eth_sendTransaction`.
* `events()`: an async stream of typed events (see `wallet.events`).

Errors must be raised as `ProviderRpcError(code, message)`.

`QueueWalletProvider` gives subclasses the event stream for free.
`StaticWalletProvider` is a read-only wallet with a fixed account list backed
by a node RPC; it is what the CLI uses to watch balances.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, AsyncIterator, List, Optional, Protocol, Sequence, Union, runtime_checkable

from ..errors import ProviderCode, ProviderRpcError
from ..rpc.http import AsyncRpcClient
from ..utils.bytes import normalize_address, quantity
from .events import ProviderEvent, parse_event

log = logging.getLogger("mixion.wallet")

_CLOSED = object()


@runtime_checkable
class WalletProvider(Protocol):
    async def request(self, method: str, params: Optional[Sequence[Any]] = None) -> Any: ...

    def events(self) -> AsyncIterator[ProviderEvent]: ...


class QueueWalletProvider:
    """Base class holding the inbound event queue."""

    def __init__(self) -> None:
        self._queue: "asyncio.Queue[Any]" = asyncio.Queue()
        self._closed = False

    async def request(self, method: str, params: Optional[Sequence[Any]] = None) -> Any:  # pragma: no cover
        raise ProviderRpcError(ProviderCode.UNSUPPORTED_METHOD, f"{method} not supported")

    def emit(self, event: Union[ProviderEvent, str], payload: Any = None) -> None:
        """Queue an event; accepts a typed event or an EIP-1193 name + payload."""
        if self._closed:
            return
        if isinstance(event, str):
            event = parse_event(event, payload)
        self._queue.put_nowait(event)

    async def events(self) -> AsyncIterator[ProviderEvent]:
        while True:
            item = await self._queue.get()
            if item is _CLOSED:
                return
            yield item

    def close(self) -> None:
        """End the event stream."""
        if not self._closed:
            self._closed = True
            self._queue.put_nowait(_CLOSED)


class StaticWalletProvider(QueueWalletProvider):
    """
    Read-only provider: a fixed list of accounts plus the chain id reported by
    a node. It cannot sign, switch or add networks.
    """

    def __init__(self, accounts: Sequence[str], rpc: AsyncRpcClient) -> None:
        super().__init__()
        self._accounts: List[str] = [normalize_address(a) for a in accounts]
        self._rpc = rpc

    async def request(self, method: str, params: Optional[Sequence[Any]] = None) -> Any:
        if method in ("eth_accounts", "eth_requestAccounts"):
            return list(self._accounts)
        if method == "eth_chainId":
            return hex(quantity(await self._rpc.request("eth_chainId")))
        if method == "wallet_switchEthereumChain":
            target = quantity((params or [{}])[0].get("chainId", 0))
            current = quantity(await self._rpc.request("eth_chainId"))
            if target == current:
                return None
            raise ProviderRpcError(ProviderCode.UNSUPPORTED_METHOD,
                                   f"static provider is bound to chain {current}")
        if method == "wallet_addEthereumChain":
            raise ProviderRpcError(ProviderCode.UNSUPPORTED_METHOD, "static provider cannot add chains")
        if method in ("eth_sendTransaction", "eth_sign", "personal_sign"):
            raise ProviderRpcError(ProviderCode.UNAUTHORIZED, "static provider is read-only")
        return await self._rpc.request(method, list(params or []))


__all__ = ["WalletProvider", "QueueWalletProvider", "StaticWalletProvider"]
