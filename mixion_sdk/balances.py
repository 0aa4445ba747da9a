"""
Live balance observation for the active session.

BalanceSync keeps one immutable `BalanceSnapshot` per (chain, account) target:

- `start(session)` runs one unconditional refresh, then (when the chain has a
  `pushUrl`) subscribes to new-block notifications. Every notification goes
  through a `DebounceGate`, so a burst of blocks costs one refresh and two
  refreshes never start closer than `min_interval` apart.
- A refresh fetches the native balance and every configured and user-added
  token concurrently. A failed token reads as 0; a failed native fetch keeps
  the previous value. Either marks the snapshot `stale`. Nothing raises out
  of the background path.
- The snapshot object is replaced only when a value changed, and `as_of`
  increases by one on every replacement.
- `stop()` bumps the generation, cancels the timer and detaches the push
  channel before its first await. Any refresh still running under the old
  generation discards its result.

Example:
    sync = BalanceSync(registry, store)
    await sync.start(session)
    snap = sync.snapshot()
    snap.native            # wei
    await sync.stop()
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Callable, Dict, List, Mapping, Optional, Protocol, Tuple

from .chains.registry import ChainConfig, ChainRegistry, TokenConfig
from .config import SDKConfig
from .errors import MixionError, TransportError
from .rpc.http import AsyncRpcClient
from .rpc.ws import PushChannel
from .session import Session
from .storage import ClientStore
from .utils import abi
from .utils.bytes import ZERO_ADDRESS, from_hex, quantity
from .utils.debounce import DEBOUNCE_DELAY, MIN_INTERVAL, DebounceGate

log = logging.getLogger("mixion.balances")

_BALANCE_OF = "balanceOf(address)"


@dataclass(frozen=True)
class BalanceSnapshot:
    chain_id: Optional[int] = None
    account: Optional[str] = None
    balances: Mapping[str, int] = field(default_factory=lambda: MappingProxyType({}))
    as_of: int = 0

    def get(self, address: str, default: int = 0) -> int:
        return self.balances.get(address.lower(), default)

    @property
    def native(self) -> int:
        return self.balances.get(ZERO_ADDRESS, 0)

    def same_target(self, chain_id: Optional[int], account: Optional[str]) -> bool:
        return self.chain_id == chain_id and (self.account or "").lower() == (account or "").lower()


class BalanceFetcher(Protocol):
    async def native_balance(self, account: str) -> int: ...
    async def token_balance(self, token: str, account: str) -> int: ...
    async def aclose(self) -> None: ...


class RpcBalanceFetcher:
    """Reads balances over JSON-RPC: `eth_getBalance` and ERC-20 `balanceOf`."""

    def __init__(self, rpc: AsyncRpcClient, *, block: str = "latest") -> None:
        self.rpc = rpc
        self.block = block

    async def native_balance(self, account: str) -> int:
        return quantity(await self.rpc.request("eth_getBalance", [account, self.block]))

    async def token_balance(self, token: str, account: str) -> int:
        data = abi.encode_call(_BALANCE_OF, [account])
        raw = await self.rpc.request("eth_call", [{"to": token, "data": "0x" + data.hex()}, self.block])
        out = from_hex(str(raw))
        if len(out) < 32:
            raise TransportError(f"balanceOf on {token} returned {len(out)} bytes")
        (value,) = abi.decode(["uint256"], out)
        return int(value)

    async def aclose(self) -> None:
        await self.rpc.aclose()


FetcherFactory = Callable[[ChainConfig], BalanceFetcher]
PushFactory = Callable[[str], PushChannel]
SnapshotListener = Callable[[BalanceSnapshot], None]


@dataclass(frozen=True)
class _Target:
    generation: int
    chain: ChainConfig
    account: str


class BalanceSync:
    def __init__(
        self,
        registry: ChainRegistry,
        store: Optional[ClientStore] = None,
        *,
        session: Optional[Session] = None,
        config: Optional[SDKConfig] = None,
        fetcher_factory: Optional[FetcherFactory] = None,
        push_factory: Optional[PushFactory] = None,
        debounce_delay: Optional[float] = None,
        min_interval: Optional[float] = None,
        follow_blocks: bool = True,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._registry = registry
        self._follow_blocks = follow_blocks
        self._store = store or ClientStore()
        self._session = session
        self._config = config
        self._fetcher_factory = fetcher_factory or self._default_fetcher
        self._push_factory = push_factory or self._default_push
        if debounce_delay is None:
            debounce_delay = config.debounce_delay if config else DEBOUNCE_DELAY
        if min_interval is None:
            min_interval = config.min_interval if config else MIN_INTERVAL
        self._delay = float(debounce_delay)
        self._min_interval = float(min_interval)
        self._log = logger or log

        self._generation = 0
        self._target: Optional[_Target] = None
        self._fetcher: Optional[BalanceFetcher] = None
        self._gate: Optional[DebounceGate] = None
        self._channel: Optional[PushChannel] = None
        self._boot: Optional[asyncio.Task] = None
        self._cycle = asyncio.Lock()
        self._ready = asyncio.Event()

        self._snapshot = BalanceSnapshot()
        self._loading = False
        self._refreshing = False
        self._stale = False
        self._live = False
        self._listeners: List[SnapshotListener] = []
        self.refreshes = 0

    # ------------- observation -------------------

    def snapshot(self) -> BalanceSnapshot:
        return self._snapshot

    @property
    def loading(self) -> bool:
        """No data for the current target yet."""
        return self._loading

    @property
    def refreshing(self) -> bool:
        return self._refreshing

    @property
    def stale(self) -> bool:
        """The last refresh had at least one failed fetch."""
        return self._stale

    @property
    def live(self) -> bool:
        """A push channel is open and feeding the debounce gate."""
        return self._live

    @property
    def running(self) -> bool:
        return self._target is not None

    @property
    def generation(self) -> int:
        return self._generation

    def subscribe(self, listener: SnapshotListener) -> Callable[[], None]:
        """Call `listener(snapshot)` whenever the snapshot is replaced."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    # ------------- lifecycle -------------------

    async def start(self, session: Optional[Session] = None) -> None:
        """
        Follow `session` (or the session given at construction). Returns once
        the first refresh has been scheduled. A session that is not connected
        to a supported chain leaves the sync stopped.
        """
        if session is not None:
            self._session = session
        await self.stop()
        s = self._session
        if s is None or not s.account or not s.supported:
            self._log.debug("not starting: no active session")
            return
        chain = self._registry.require(s.chain_id)

        self._generation += 1
        gen = self._generation
        target = _Target(gen, chain, s.account)
        self._target = target
        self._fetcher = self._fetcher_factory(chain)
        self._gate = DebounceGate(
            lambda: self._refresh(gen),
            delay=self._delay,
            min_interval=self._min_interval,
            name=f"balances[{chain.chain_id}]",
        )
        self._stale = False
        self._ready = asyncio.Event()
        if not self._snapshot.same_target(chain.chain_id, s.account):
            self._loading = True
            self._replace(BalanceSnapshot(chain.chain_id, s.account, MappingProxyType({}), self._snapshot.as_of + 1))
        self._boot = asyncio.create_task(self._boot_run(target), name=f"BalanceSync.start[{chain.chain_id}]")
        self._log.info("following balances of %s on chain %s", s.account, chain.chain_id)

    async def stop(self) -> None:
        """Tear down timer, push subscription and fetcher. Idempotent."""
        self._generation += 1
        self._target = None
        gate, self._gate = self._gate, None
        if gate is not None:
            gate.close()
        channel, self._channel = self._channel, None
        if channel is not None:
            channel.detach()
        self._live = False
        boot, self._boot = self._boot, None
        fetcher, self._fetcher = self._fetcher, None

        if boot is not None and not boot.done():
            boot.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await boot
        if channel is not None:
            await channel.close()
        if fetcher is not None:
            try:
                await fetcher.aclose()
            except Exception:  # noqa: BLE001
                self._log.debug("error closing balance fetcher", exc_info=True)

    async def wait_ready(self) -> BalanceSnapshot:
        """Wait until the current target has completed its first refresh."""
        await self._ready.wait()
        return self._snapshot

    async def refresh_now(self) -> BalanceSnapshot:
        """Refresh immediately (outside the debounce gate) and return the snapshot."""
        if self._target is None:
            return self._snapshot
        if self._gate is not None:
            self._gate.touch()
        await self._refresh(self._generation)
        return self._snapshot

    # ------------- internals --------------------

    def _default_fetcher(self, chain: ChainConfig) -> BalanceFetcher:
        cfg = self._config or SDKConfig()
        return RpcBalanceFetcher(AsyncRpcClient.from_config(chain.rpc_url, cfg, chain_id=chain.chain_id))

    def _default_push(self, url: str) -> PushChannel:
        timeout = self._config.request_timeout if self._config else 10.0
        return PushChannel(url, connect_timeout=timeout, request_timeout=timeout)

    async def _boot_run(self, target: _Target) -> None:
        if self._gate is not None:
            self._gate.touch()
        await self._refresh(target.generation)
        url = target.chain.push_url
        if not url or not self._follow_blocks or target.generation != self._generation:
            return

        channel = self._push_factory(url)
        self._channel = channel
        gen = target.generation
        try:
            await channel.open(
                on_block=lambda _head: self._on_block(gen),
                on_closed=lambda err: self._on_push_closed(gen, err),
            )
        except (MixionError, OSError) as e:
            self._log.warning("push channel for chain %s unavailable: %s; no live updates",
                              target.chain.chain_id, e)
            if self._channel is channel:
                self._channel = None
            await channel.close()
            return
        if gen != self._generation:
            await channel.close()
            return
        self._live = True

    def _on_block(self, gen: int) -> None:
        if gen != self._generation or self._gate is None:
            return
        self._gate.trigger()

    def _on_push_closed(self, gen: int, err: Optional[BaseException]) -> None:
        if gen != self._generation:
            return
        self._live = False
        self._channel = None
        self._log.info("live balance updates stopped (%s)", err or "closed")

    def _tokens_for(self, chain: ChainConfig) -> Tuple[TokenConfig, ...]:
        seen = {chain.native.key}
        out: List[TokenConfig] = []
        try:
            custom = self._store.get_custom_tokens(chain.chain_id)
        except OSError:
            self._log.warning("could not read user tokens", exc_info=True)
            custom = []
        for t in (*chain.erc20_tokens, *custom):
            if t.key in seen:
                continue
            seen.add(t.key)
            out.append(t)
        return tuple(out)

    async def _refresh(self, gen: int) -> None:
        async with self._cycle:
            target, fetcher = self._target, self._fetcher
            if gen != self._generation or target is None or fetcher is None:
                return
            self._refreshing = True
            try:
                balances, stale = await self._fetch_all(target, fetcher)
            finally:
                self._refreshing = False
            if gen != self._generation:
                self._log.debug("discarding balances from generation %d", gen)
                return
            self.refreshes += 1
            self._stale = stale
            self._loading = False
            current = self._snapshot
            if not (current.same_target(target.chain.chain_id, target.account)
                    and dict(current.balances) == balances):
                self._replace(BalanceSnapshot(
                    chain_id=target.chain.chain_id,
                    account=target.account,
                    balances=MappingProxyType(balances),
                    as_of=current.as_of + 1,
                ))
            self._ready.set()

    async def _fetch_all(self, target: _Target, fetcher: BalanceFetcher) -> Tuple[Dict[str, int], bool]:
        chain, account = target.chain, target.account
        tokens = self._tokens_for(chain)
        results: List[Any] = await asyncio.gather(
            fetcher.native_balance(account),
            *(fetcher.token_balance(t.address, account) for t in tokens),
            return_exceptions=True,
        )
        stale = False
        balances: Dict[str, int] = {}
        native = results[0]
        if isinstance(native, BaseException):
            stale = True
            self._log.warning("native balance fetch failed on chain %s: %s", chain.chain_id, native)
            prev = self._snapshot
            balances[ZERO_ADDRESS] = prev.native if prev.same_target(chain.chain_id, account) else 0
        else:
            balances[ZERO_ADDRESS] = int(native)
        for token, res in zip(tokens, results[1:]):
            if isinstance(res, BaseException):
                stale = True
                self._log.warning("%s balance fetch failed on chain %s: %s", token.symbol, chain.chain_id, res)
                balances[token.key] = 0
            else:
                balances[token.key] = int(res)
        return balances, stale

    def _replace(self, snap: BalanceSnapshot) -> None:
        self._snapshot = snap
        for cb in list(self._listeners):
            try:
                cb(snap)
            except Exception:  # noqa: BLE001
                self._log.warning("balance listener failed", exc_info=True)


__all__ = [
    "BalanceSnapshot",
    "BalanceFetcher",
    "RpcBalanceFetcher",
    "BalanceSync",
    "FetcherFactory",
    "PushFactory",
]
