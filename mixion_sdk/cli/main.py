"""
mixion_sdk.cli.main
===================

`mixion`: a command-line companion for the Mixion commitment protocol.

Examples
--------
    $ mixion secret
    $ mixion derive "my long secret" --chain-id 1
    $ mixion chains
    $ mixion balances 0xabc...def --chain-id 1 --watch 60
    $ mixion lookup 0x5cdd...c9af --chain-id 1
    $ mixion spent 0x5038...d0aa --chain-id 1

Configuration
-------------
Every `MIXION_*` variable understood by `SDKConfig.from_env()` applies. The
root options below override the environment for one invocation.
"""

from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass
from typing import Any, Optional

import typer

from ..balances import BalanceSnapshot, BalanceSync
from ..chains.registry import ChainConfig, ChainRegistry
from ..config import SDKConfig
from ..errors import MixionError
from ..hashchain import derive_pair, generate_secret
from ..rpc.http import AsyncRpcClient
from ..session import Session, SessionManager
from ..settlement import SettlementClient
from ..storage import ClientStore
from ..units import format_address, format_balance
from ..utils.logging import setup_logging
from ..version import __version__ as SDK_VERSION
from ..wallet.provider import StaticWalletProvider

app = typer.Typer(
    name="mixion",
    help="Mixion CLI: derive commitments, inspect deposits and watch balances.",
    no_args_is_help=True,
    add_completion=False,
)

__all__ = ["app", "main", "run"]


@dataclass
class Ctx:
    config: SDKConfig
    _registry: Optional[ChainRegistry] = None

    @property
    def registry(self) -> ChainRegistry:
        if self._registry is None:
            self._registry = ChainRegistry.load(self.config.chains_file)
        return self._registry

    def chain(self, chain_id: int) -> ChainConfig:
        return self.registry.require(chain_id)

    def config_for(self, chain: ChainConfig) -> SDKConfig:
        """Pin an unpinned --rpc override to the chain this command targets."""
        if self.config.rpc_url and self.config.rpc_chain_id is None:
            return SDKConfig.with_overrides(self.config, rpc_chain_id=chain.chain_id)
        return self.config


def _print_json(obj: Any) -> None:
    typer.echo(json.dumps(obj, indent=2, ensure_ascii=False))


def _fail(e: Exception) -> None:
    typer.echo(f"error: {e}", err=True)
    raise typer.Exit(code=1)


@app.callback()
def _root(
    ctx: typer.Context,
    chains_file: Optional[str] = typer.Option(None, "--chains-file", help="Chain configuration JSON."),
    rpc: Optional[str] = typer.Option(None, "--rpc", help="Override the HTTP RPC URL of the selected chain."),
    timeout: Optional[float] = typer.Option(None, "--timeout", help="HTTP timeout in seconds."),
    log_level: Optional[str] = typer.Option(None, "--log-level", help="DEBUG, INFO, WARNING, ..."),
) -> None:
    """Resolve effective configuration for this process."""
    try:
        config = SDKConfig.with_overrides(
            SDKConfig.from_env(),
            chains_file=chains_file,
            rpc_url=rpc,
            request_timeout=timeout,
            log_level=log_level.upper() if log_level else None,
        )
    except ValueError as e:
        raise typer.BadParameter(str(e)) from e
    setup_logging(config.log_level)
    ctx.obj = Ctx(config=config)


@app.command("version")
def version() -> None:
    """Print the SDK version."""
    typer.echo(f"mixion {SDK_VERSION}")


@app.command("env")
def env(ctx: typer.Context) -> None:
    """Show the effective configuration."""
    c: Ctx = ctx.obj
    _print_json({**c.config.to_dict(), "sdk_version": SDK_VERSION})


@app.command("secret")
def secret() -> None:
    """Generate a fresh random secret. Keep it safe: it is the only way to withdraw."""
    typer.echo(generate_secret())


@app.command("derive")
def derive(
    ctx: typer.Context,
    secret: str = typer.Argument(..., help="Secret (at least 8 characters)."),
    chain_id: int = typer.Option(..., "--chain-id", "-c", help="Target chain id."),
    any_chain: bool = typer.Option(False, "--any-chain", help="Skip the registry check."),
) -> None:
    """Print the nullifier and commitment for SECRET on a chain."""
    c: Ctx = ctx.obj
    try:
        pair = derive_pair(secret, chain_id, registry=c.registry, any_chain=any_chain)
    except MixionError as e:
        _fail(e)
    _print_json({"chainId": pair.chain_id, "nullifier": pair.nullifier_hex, "commitment": pair.commitment_hex})


@app.command("chains")
def chains(
    ctx: typer.Context,
    as_json: bool = typer.Option(False, "--json", help="Print the full configuration."),
) -> None:
    """List supported chains."""
    c: Ctx = ctx.obj
    if as_json:
        _print_json([ch.model_dump(by_alias=True, exclude_none=True) for ch in c.registry])
        return
    for ch in c.registry:
        tokens = ", ".join(t.symbol for t in ch.tokens)
        live = "push" if ch.push_url else "poll"
        typer.echo(f"{ch.chain_id:>10}  {ch.name:<20} {live:<5} {format_address(ch.contract_address)}  [{tokens}]")


def _print_snapshot(chain: ChainConfig, store: ClientStore, snap: BalanceSnapshot, stale: bool) -> None:
    typer.echo(f"-- chain {snap.chain_id} account {snap.account} (as_of={snap.as_of}{', stale' if stale else ''})")
    for t in (*chain.tokens, *store.get_custom_tokens(chain.chain_id)):
        typer.echo(f"{t.symbol:>8}  {format_balance(snap.get(t.address), t.decimals)}")


async def _balances(c: Ctx, account: str, chain: ChainConfig, watch: float) -> None:
    persisted = ClientStore(c.config.storage_file)
    store = ClientStore()
    for t in persisted.get_custom_tokens(chain.chain_id):
        store.add_custom_token(chain.chain_id, t)

    config = c.config_for(chain)
    rpc = AsyncRpcClient.from_config(chain.rpc_url, config, chain_id=chain.chain_id)
    provider = StaticWalletProvider([account], rpc)
    session = Session()
    sync = BalanceSync(c.registry, store, session=session, config=config, follow_blocks=watch > 0)
    manager = SessionManager(session, provider, c.registry, store, balances=sync)
    try:
        await manager.connect()
        if not session.supported:
            raise MixionError(f"node at {chain.rpc_url} reports unsupported chain {session.chain_id}")
        snap = await sync.wait_ready()
        _print_snapshot(chain, store, snap, sync.stale)
        if watch > 0:
            sync.subscribe(lambda s: _print_snapshot(chain, store, s, sync.stale))
            await asyncio.sleep(watch)
    finally:
        await manager.close()
        provider.close()
        await rpc.aclose()


@app.command("balances")
def balances(
    ctx: typer.Context,
    account: str = typer.Argument(..., help="Account address (0x...)."),
    chain_id: int = typer.Option(..., "--chain-id", "-c", help="Chain id."),
    watch: float = typer.Option(0.0, "--watch", "-w", help="Keep following new blocks for N seconds."),
) -> None:
    """Show native and token balances; with --watch, follow new blocks."""
    c: Ctx = ctx.obj
    try:
        asyncio.run(_balances(c, account, c.chain(chain_id), watch))
    except MixionError as e:
        _fail(e)
    except KeyboardInterrupt:
        typer.echo("bye")


async def _with_settlement(c: Ctx, chain_id: int, fn: Any) -> Any:
    chain = c.chain(chain_id)
    rpc = AsyncRpcClient.from_config(chain.rpc_url, c.config_for(chain), chain_id=chain.chain_id)
    client = SettlementClient(chain, rpc)
    try:
        return await fn(client)
    finally:
        await client.aclose()


@app.command("lookup")
def lookup(
    ctx: typer.Context,
    commitment: str = typer.Argument(..., help="Commitment (0x + 64 hex)."),
    chain_id: int = typer.Option(..., "--chain-id", "-c", help="Chain id."),
) -> None:
    """Show the locked deposit recorded for COMMITMENT."""
    c: Ctx = ctx.obj
    try:
        rec = asyncio.run(_with_settlement(c, chain_id, lambda s: s.require_locked(commitment)))
    except MixionError as e:
        _fail(e)
    _print_json({
        "commitment": rec.commitment,
        "amount": str(rec.amount),
        "tokenAddress": rec.token_address,
        "fee": str(rec.fee),
        "netAmount": str(rec.net_amount),
    })


@app.command("spent")
def spent(
    ctx: typer.Context,
    nullifier: str = typer.Argument(..., help="Nullifier (0x + 64 hex)."),
    chain_id: int = typer.Option(..., "--chain-id", "-c", help="Chain id."),
) -> None:
    """Report whether NULLIFIER has already been used to withdraw."""
    c: Ctx = ctx.obj
    try:
        used = asyncio.run(_with_settlement(c, chain_id, lambda s: s.is_nullifier_used(nullifier)))
    except MixionError as e:
        _fail(e)
    typer.echo("used" if used else "unused")


def main(argv: Optional[list[str]] = None) -> int:
    """
    Run the CLI. Returns an integer exit code.
    """
    try:
        rc = app(prog_name="mixion", standalone_mode=False, args=argv)
        return rc if isinstance(rc, int) else 0
    except typer.Exit as e:
        return int(e.exit_code)
    except Exception as e:
        typer.echo(f"error: {e}", err=True)
        return 1


def run(argv: Optional[list[str]] = None) -> int:
    """Alias for :func:`main`."""
    return main(argv)
