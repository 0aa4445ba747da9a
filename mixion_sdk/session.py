"""
Wallet/chain session state machine.

    DISCONNECTED --connect()--> CONNECTING --ok--> CONNECTED | CONNECTED_UNSUPPORTED
                                           --err-> DISCONNECTED (reason raised)

    CONNECTED*  --accountsChanged([a])--> same shape, new account
    CONNECTED*  --accountsChanged([])---> DISCONNECTED (markers cleared)
    CONNECTED*  --chainChanged(c)-------> CONNECTED(c) | CONNECTED_UNSUPPORTED(c)
    any         --disconnect()----------> DISCONNECTED

All mutations, whether from caller methods or from the wallet's event
stream, run under one asyncio lock, so a handler never observes a half-applied
transition. Whenever the (account, chain) target changes, balance sync is
stopped *before* the session claims the new target and restarted once
afterwards. A reader therefore never sees chain B while balances still follow
chain A.
"""

from __future__ import annotations

import asyncio
import dataclasses
import enum
import logging
from dataclasses import dataclass
from typing import Any, Callable, List, Optional, Protocol

from .chains.registry import ChainRegistry
from .errors import (
    MixionError,
    NoAccounts,
    NoProvider,
    ProviderCode,
    ProviderRpcError,
    UnsupportedChain,
    from_provider_error,
)
from .storage import ClientStore
from .utils.bytes import quantity
from .wallet.events import (
    AccountsChanged,
    ChainChanged,
    ProviderConnected,
    ProviderDisconnected,
    ProviderEvent,
)
from .wallet.provider import WalletProvider

log = logging.getLogger("mixion.session")


class SessionState(str, enum.Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    CONNECTED_UNSUPPORTED = "connected_unsupported"


@dataclass
class Session:
    """The one session per client. Mutated in place by SessionManager only."""

    account: Optional[str] = None
    chain_id: Optional[int] = None
    supported: bool = False
    state: SessionState = SessionState.DISCONNECTED
    generation: int = 0

    @property
    def connected(self) -> bool:
        return self.state in (SessionState.CONNECTED, SessionState.CONNECTED_UNSUPPORTED)

    @property
    def active(self) -> bool:
        """Connected to a supported chain; balances and settlement are usable."""
        return self.state is SessionState.CONNECTED

    def copy(self) -> "Session":
        return dataclasses.replace(self)


class BalanceFollower(Protocol):
    async def start(self, session: Optional[Session] = None) -> None: ...
    async def stop(self) -> None: ...


SessionListener = Callable[[Session], None]


class SessionManager:
    def __init__(
        self,
        session: Session,
        provider: Optional[WalletProvider],
        registry: ChainRegistry,
        store: ClientStore,
        *,
        balances: Optional[BalanceFollower] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.session = session
        self._provider = provider
        self._registry = registry
        self._store = store
        self._balances = balances
        self._log = logger or log
        self._mutex = asyncio.Lock()
        self._listeners: List[SessionListener] = []
        self._pump: Optional[asyncio.Task] = None

    # ------------- observation -------------------

    @property
    def state(self) -> SessionState:
        return self.session.state

    def subscribe(self, listener: SessionListener) -> Callable[[], None]:
        """Call `listener(copy_of_session)` after every transition."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def _notify(self) -> None:
        view = self.session.copy()
        for cb in list(self._listeners):
            try:
                cb(view)
            except Exception:  # noqa: BLE001
                self._log.warning("session listener failed", exc_info=True)

    # ------------- lifecycle -------------------

    async def start(self) -> None:
        """Silent reconnect (if previously connected), then follow wallet events."""
        await self.restore()
        if self._provider is not None and self._pump is None:
            self._pump = asyncio.create_task(self._event_pump(), name="SessionManager.events")

    async def close(self) -> None:
        pump, self._pump = self._pump, None
        if pump is not None and not pump.done():
            pump.cancel()
            try:
                await pump
            except asyncio.CancelledError:
                pass
        if self._balances is not None:
            await self._balances.stop()

    async def restore(self) -> bool:
        """
        Reconnect without prompting when the "was connected" marker is set.

        Uses `eth_accounts` only. Any failure leaves the session
        DISCONNECTED and is logged, never raised.
        """
        if self._provider is None or not self._store.was_connected:
            return False
        async with self._mutex:
            try:
                accounts = await self._provider.request("eth_accounts")
                if not accounts:
                    self._log.info("silent reconnect: no authorized accounts")
                    return False
                chain_id = quantity(await self._provider.request("eth_chainId"))
                await self._establish(str(accounts[0]), chain_id)
                return True
            except asyncio.CancelledError:
                raise
            except Exception:  # noqa: BLE001
                self._log.warning("silent reconnect failed; staying disconnected", exc_info=True)
                await self._reset(clear_markers=False)
                return False

    # ------------- user actions -------------------

    async def connect(self) -> Session:
        """
        Prompt the wallet for accounts. Raises NoProvider / UserRejected / NoAccounts.

        When a session is already connected the prompt only refreshes it: a
        failed prompt leaves that session and its balance sync as they were.
        """
        if self._provider is None:
            raise NoProvider()
        async with self._mutex:
            reprompt = self.session.connected
            if not reprompt:
                self.session.state = SessionState.CONNECTING
                self._notify()
            try:
                accounts = await self._provider.request("eth_requestAccounts")
                if not accounts:
                    raise NoAccounts()
                chain_id = quantity(await self._provider.request("eth_chainId"))
            except ProviderRpcError as e:
                await self._abort_connect(reprompt)
                raise from_provider_error(e) from e
            except BaseException:
                await self._abort_connect(reprompt)
                raise
            account = str(accounts[0])
            s = self.session
            unchanged = reprompt and s.chain_id == chain_id and (s.account or "").lower() == account.lower()
            if not unchanged:
                await self._establish(account, chain_id)
            self._log.info("connected %s on chain %s (%s)", s.account, chain_id, s.state.value)
            return s.copy()

    async def switch_chain(self, chain_id: int) -> None:
        """
        Ask the wallet to move to `chain_id`. If the wallet does not know the
        chain (4902), register it from the registry and retry once. The
        resulting state change arrives as a chainChanged event.
        """
        if self._provider is None:
            raise NoProvider()
        cfg = self._registry.require(chain_id)
        params = [{"chainId": hex(cfg.chain_id)}]
        try:
            await self._provider.request("wallet_switchEthereumChain", params)
            return
        except ProviderRpcError as e:
            if e.code != ProviderCode.UNRECOGNIZED_CHAIN:
                raise from_provider_error(e) from e
            self._log.info("wallet does not know chain %s; adding it", chain_id)
        try:
            await self._provider.request("wallet_addEthereumChain", [cfg.add_chain_params()])
            await self._provider.request("wallet_switchEthereumChain", params)
        except ProviderRpcError as e:
            raise from_provider_error(e) from e

    async def disconnect(self) -> None:
        """Always legal; clears session and persisted markers. Idempotent."""
        async with self._mutex:
            await self._reset(clear_markers=True)

    # ------------- event handling -------------------

    async def handle_event(self, event: ProviderEvent) -> None:
        async with self._mutex:
            if isinstance(event, AccountsChanged):
                await self._on_accounts(list(event.accounts))
            elif isinstance(event, ChainChanged):
                await self._on_chain(event.chain_id)
            elif isinstance(event, ProviderDisconnected):
                self._log.info("wallet disconnected (code=%s) %s", event.code, event.message)
                await self._reset(clear_markers=True)
            elif isinstance(event, ProviderConnected):
                self._log.debug("wallet connected (chain=%s)", event.chain_id)

    async def _event_pump(self) -> None:
        assert self._provider is not None
        async for event in self._provider.events():
            try:
                await self.handle_event(event)
            except asyncio.CancelledError:
                raise
            except Exception:  # noqa: BLE001
                self._log.warning("failed to apply wallet event %r", event, exc_info=True)

    async def _on_accounts(self, accounts: List[str]) -> None:
        if not self.session.connected:
            self._log.debug("ignoring accountsChanged while %s", self.session.state.value)
            return
        if not accounts:
            self._log.info("wallet reported no accounts; disconnecting")
            await self._reset(clear_markers=True)
            return
        account = str(accounts[0])
        if self.session.account is not None and account.lower() == self.session.account.lower():
            return
        await self._establish(account, self.session.chain_id)

    async def _on_chain(self, chain_id: int) -> None:
        if not self.session.connected:
            self._log.debug("ignoring chainChanged while %s", self.session.state.value)
            return
        if chain_id == self.session.chain_id:
            return
        await self._establish(self.session.account, chain_id)
        if not self.session.supported:
            self._log.warning("switched to unsupported chain %s", chain_id)
        else:
            self._log.info("switched to chain %s", chain_id)

    # ------------- transitions -------------------

    async def _establish(self, account: Optional[str], chain_id: Optional[int]) -> None:
        """Tear down balance sync, apply the new target, then resubscribe once."""
        if self._balances is not None:
            await self._balances.stop()
        supported = self._registry.is_supported(chain_id)
        s = self.session
        s.account = account
        s.chain_id = chain_id
        s.supported = supported
        s.state = SessionState.CONNECTED if supported else SessionState.CONNECTED_UNSUPPORTED
        s.generation += 1
        self._persist(lambda: self._store.mark_connected(chain_id))
        if supported and self._balances is not None:
            await self._balances.start(s)
        self._notify()

    async def _abort_connect(self, reprompt: bool) -> None:
        if reprompt:
            self._log.info("wallet prompt failed; keeping session on chain %s", self.session.chain_id)
            return
        await self._reset(clear_markers=False)

    async def _reset(self, *, clear_markers: bool) -> None:
        if self._balances is not None:
            await self._balances.stop()
        s = self.session
        changed = s.state is not SessionState.DISCONNECTED or s.account is not None
        s.account = None
        s.chain_id = None
        s.supported = False
        s.state = SessionState.DISCONNECTED
        if changed:
            s.generation += 1
        if clear_markers:
            self._persist(self._store.clear_session_markers)
        if changed:
            self._notify()

    def _persist(self, op: Callable[[], Any]) -> None:
        try:
            op()
        except OSError:
            self._log.warning("could not persist session markers", exc_info=True)

    def require_active(self) -> Session:
        """The current session if connected to a supported chain, else raise."""
        if self.session.state is SessionState.CONNECTED:
            return self.session
        if self.session.state is SessionState.CONNECTED_UNSUPPORTED:
            raise UnsupportedChain(self.session.chain_id)
        raise MixionError("Wallet not connected")


__all__ = ["Session", "SessionState", "SessionManager", "BalanceFollower", "SessionListener"]
