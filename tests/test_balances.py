import asyncio

import pytest

from conftest import ACCOUNT, OTHER_ACCOUNT, TOKEN_A, TOKEN_B, TOKEN_C, Harness, settle
from mixion_sdk.balances import BalanceSnapshot, BalanceSync, RpcBalanceFetcher
from mixion_sdk.chains.registry import TokenConfig
from mixion_sdk.errors import TransportError
from mixion_sdk.session import Session, SessionState
from mixion_sdk.utils.bytes import ZERO_ADDRESS


def _session(chain_id: int = 1, account: str = ACCOUNT) -> Session:
    return Session(account=account, chain_id=chain_id, supported=True, state=SessionState.CONNECTED)


def _sync(registry, store, harness: Harness, **kw) -> BalanceSync:
    kw.setdefault("debounce_delay", 0.05)
    kw.setdefault("min_interval", 0.0)
    return BalanceSync(
        registry,
        store,
        fetcher_factory=harness.fetcher,
        push_factory=harness.push,
        **kw,
    )


@pytest.mark.asyncio
async def test_first_refresh_is_unconditional(registry, store, harness):
    sync = _sync(registry, store, harness)
    await sync.start(_session())
    assert sync.loading
    snap = await sync.wait_ready()
    await settle()
    assert not sync.loading and not sync.stale
    assert snap.chain_id == 1 and snap.account == ACCOUNT
    assert snap.native == 10**18
    assert snap.get(TOKEN_A) == 5_000_000
    assert sync.live and harness.channels[0].url == "ws://push-1.invalid"
    await sync.stop()


@pytest.mark.asyncio
async def test_user_tokens_are_fetched_and_deduplicated(registry, store, harness):
    store.add_custom_token(1, TokenConfig(name="C", symbol="TKC", address=TOKEN_C, decimals=0))
    harness.balances_by_chain[1][TOKEN_C] = 3
    sync = _sync(registry, store, harness)
    await sync.start(_session())
    snap = await sync.wait_ready()
    assert snap.get(TOKEN_C) == 3
    assert sorted(harness.fetchers[0].calls) == sorted([ZERO_ADDRESS, TOKEN_A, TOKEN_C])
    await sync.stop()


@pytest.mark.asyncio
async def test_burst_of_blocks_yields_one_refresh(registry, store, harness):
    sync = _sync(registry, store, harness, debounce_delay=1.0, min_interval=0.0)
    await sync.start(_session())
    await sync.wait_ready()
    fetcher, channel = harness.fetchers[0], harness.channels[0]
    assert fetcher.rounds() == 1
    for n in range(5):
        channel.block(n)
        await asyncio.sleep(0.04)
    await asyncio.sleep(0.5)
    assert fetcher.rounds() == 1
    await asyncio.sleep(0.8)
    assert fetcher.rounds() == 2
    await asyncio.sleep(0.3)
    assert fetcher.rounds() == 2
    await sync.stop()


@pytest.mark.asyncio
async def test_min_interval_after_initial_refresh(registry, store, harness):
    sync = _sync(registry, store, harness, debounce_delay=0.01, min_interval=0.4)
    await sync.start(_session())
    await sync.wait_ready()
    harness.channels[0].block()
    await asyncio.sleep(0.2)
    assert harness.fetchers[0].rounds() == 1
    await asyncio.sleep(0.35)
    assert harness.fetchers[0].rounds() == 2
    await sync.stop()


@pytest.mark.asyncio
async def test_unchanged_values_keep_the_snapshot(registry, store, harness):
    sync = _sync(registry, store, harness)
    seen = []
    sync.subscribe(seen.append)
    await sync.start(_session())
    first = await sync.wait_ready()
    await sync.refresh_now()
    assert sync.snapshot() is first
    harness.balances_by_chain[1][TOKEN_A] = 6_000_000
    second = await sync.refresh_now()
    assert second is not first
    assert second.as_of == first.as_of + 1
    assert second.get(TOKEN_A) == 6_000_000
    assert seen[-2:] == [first, second]
    await sync.stop()


@pytest.mark.asyncio
async def test_token_failure_reads_zero_and_marks_stale(registry, store, harness):
    sync = _sync(registry, store, harness)
    await sync.start(_session())
    await sync.wait_ready()
    harness.fetchers[0].fail.add(TOKEN_A)
    snap = await sync.refresh_now()
    assert snap.get(TOKEN_A) == 0
    assert snap.native == 10**18
    assert sync.stale
    harness.fetchers[0].fail.clear()
    snap = await sync.refresh_now()
    assert snap.get(TOKEN_A) == 5_000_000
    assert not sync.stale
    await sync.stop()


@pytest.mark.asyncio
async def test_native_failure_keeps_previous_value(registry, store, harness):
    sync = _sync(registry, store, harness)
    await sync.start(_session())
    await sync.wait_ready()
    harness.fetchers[0].fail.add(ZERO_ADDRESS)
    harness.balances_by_chain[1][TOKEN_A] = 1
    snap = await sync.refresh_now()
    assert snap.native == 10**18
    assert snap.get(TOKEN_A) == 1
    assert sync.stale
    await sync.stop()


@pytest.mark.asyncio
async def test_native_failure_on_first_refresh_reads_zero(registry, store, harness):
    sync = _sync(registry, store, harness)

    def failing_fetcher(chain):
        f = harness.fetcher(chain)
        f.fail.add(ZERO_ADDRESS)
        return f

    sync._fetcher_factory = failing_fetcher
    await sync.start(_session())
    snap = await sync.wait_ready()
    assert snap.native == 0 and sync.stale
    await sync.stop()


@pytest.mark.asyncio
async def test_stop_then_late_notification_does_nothing(registry, store, harness):
    sync = _sync(registry, store, harness, debounce_delay=0.05)
    await sync.start(_session())
    await sync.wait_ready()
    channel, fetcher = harness.channels[0], harness.fetchers[0]
    on_block = channel.on_block
    channel.block()
    await sync.stop()
    assert channel.detached and channel.closed and fetcher.closed
    assert not sync.live and not sync.running
    # a frame that was already in flight when stop() ran
    on_block({"number": "0x99"})
    await asyncio.sleep(0.2)
    assert fetcher.rounds() == 1


@pytest.mark.asyncio
async def test_stop_is_idempotent(registry, store, harness):
    sync = _sync(registry, store, harness)
    await sync.stop()
    await sync.start(_session())
    await sync.wait_ready()
    await sync.stop()
    await sync.stop()
    assert len(harness.channels) == 1


@pytest.mark.asyncio
async def test_results_from_a_stale_generation_are_discarded(registry, store, harness):
    sync = _sync(registry, store, harness)
    slow = asyncio.Event()

    def gated_fetcher(chain):
        f = harness.fetcher(chain)
        if chain.chain_id == 1:
            f.gate = slow
        return f

    sync._fetcher_factory = gated_fetcher
    await sync.start(_session(1))
    await settle()
    assert harness.fetchers[0].rounds() == 1

    await sync.start(_session(2))
    snap2 = await sync.wait_ready()
    slow.set()
    await settle(20)
    assert sync.snapshot() is snap2
    assert snap2.chain_id == 2 and snap2.get(TOKEN_B) == 7
    assert TOKEN_A not in snap2.balances
    await sync.stop()


@pytest.mark.asyncio
async def test_target_change_resets_snapshot(registry, store, harness):
    sync = _sync(registry, store, harness)
    await sync.start(_session(1))
    one = await sync.wait_ready()
    await sync.start(_session(1, OTHER_ACCOUNT))
    assert sync.loading
    assert sync.snapshot().balances == {}
    assert sync.snapshot().as_of > one.as_of
    other = await sync.wait_ready()
    assert other.account == OTHER_ACCOUNT
    await sync.stop()


@pytest.mark.asyncio
async def test_push_channel_loss_disables_live_updates(registry, store, harness):
    sync = _sync(registry, store, harness)
    await sync.start(_session())
    await sync.wait_ready()
    await settle()
    assert sync.live
    harness.channels[0].drop(ConnectionError("reset"))
    assert not sync.live
    assert len(harness.channels) == 1
    # a fresh start opens a fresh channel
    await sync.start(_session())
    await sync.wait_ready()
    await settle()
    assert len(harness.channels) == 2 and sync.live
    await sync.stop()


@pytest.mark.asyncio
async def test_push_open_failure_degrades_to_no_live_updates(registry, store, harness):
    harness.push_error = TransportError("refused")
    sync = _sync(registry, store, harness)
    await sync.start(_session())
    snap = await sync.wait_ready()
    await settle()
    assert snap.native == 10**18
    assert not sync.live
    await sync.stop()


@pytest.mark.asyncio
async def test_inactive_session_does_not_start(registry, store, harness):
    sync = _sync(registry, store, harness)
    await sync.start(Session())
    assert not sync.running
    unsupported = Session(account=ACCOUNT, chain_id=999, supported=False,
                          state=SessionState.CONNECTED_UNSUPPORTED)
    await sync.start(unsupported)
    assert not sync.running
    assert harness.fetchers == []


@pytest.mark.asyncio
async def test_follow_blocks_disabled(registry, store, harness):
    sync = _sync(registry, store, harness, follow_blocks=False)
    await sync.start(_session())
    await sync.wait_ready()
    await settle()
    assert harness.channels == [] and not sync.live
    await sync.stop()


def test_snapshot_is_read_only():
    snap = BalanceSnapshot()
    with pytest.raises(TypeError):
        snap.balances["x"] = 1  # type: ignore[index]


class _Rpc:
    def __init__(self, results):
        self.results = results
        self.calls = []

    async def request(self, method, params=None):
        self.calls.append((method, params))
        return self.results[method]

    async def aclose(self):
        pass


@pytest.mark.asyncio
async def test_rpc_fetcher():
    rpc = _Rpc({"eth_getBalance": "0x10", "eth_call": "0x" + "00" * 31 + "2a"})
    f = RpcBalanceFetcher(rpc)  # type: ignore[arg-type]
    assert await f.native_balance(ACCOUNT) == 16
    assert await f.token_balance(TOKEN_A, ACCOUNT) == 42
    call = rpc.calls[1][1][0]
    assert call["to"] == TOKEN_A and call["data"].startswith("0x70a08231")
    rpc.results["eth_call"] = "0x"
    with pytest.raises(TransportError):
        await f.token_balance(TOKEN_A, ACCOUNT)
