"""Shared fakes for the Mixion SDK tests.

Everything here is in-memory: a two-chain registry, a scriptable wallet, a
balance fetcher with per-call failure injection and a push channel whose
blocks are delivered by the test.
"""
from __future__ import annotations

import asyncio
import json
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

import httpx
import pytest

from mixion_sdk.chains.registry import ChainRegistry
from mixion_sdk.errors import ProviderRpcError
from mixion_sdk.rpc.http import AsyncRpcClient
from mixion_sdk.storage import ClientStore
from mixion_sdk.utils import abi
from mixion_sdk.utils.bytes import ZERO_ADDRESS
from mixion_sdk.utils.hash import function_selector
from mixion_sdk.wallet.provider import QueueWalletProvider

ACCOUNT = "0x" + "ab" * 20
OTHER_ACCOUNT = "0x" + "cd" * 20
TOKEN_A = "0x" + "11" * 20
TOKEN_B = "0x" + "22" * 20
TOKEN_C = "0x" + "33" * 20
CONTRACT_1 = "0x" + "c1" * 20
CONTRACT_2 = "0x" + "c2" * 20

CHAINS: List[Dict[str, Any]] = [
    {
        "chainId": 1,
        "name": "Testnet One",
        "symbol": "ONE",
        "rpcUrl": "http://rpc-1.invalid",
        "pushUrl": "ws://push-1.invalid",
        "blockExplorerUrl": "http://explorer-1.invalid",
        "contractAddress": CONTRACT_1,
        "tokens": [
            {"name": "One", "symbol": "ONE", "address": ZERO_ADDRESS, "decimals": 18},
            {"name": "Token A", "symbol": "TKA", "address": TOKEN_A, "decimals": 6},
        ],
    },
    {
        "chainId": 2,
        "name": "Testnet Two",
        "symbol": "TWO",
        "rpcUrl": "http://rpc-2.invalid",
        "pushUrl": "ws://push-2.invalid",
        "contractAddress": CONTRACT_2,
        "tokens": [
            {"name": "Two", "symbol": "TWO", "address": ZERO_ADDRESS, "decimals": 18},
            {"name": "Token B", "symbol": "TKB", "address": TOKEN_B, "decimals": 18},
        ],
    },
]


@pytest.fixture
def registry() -> ChainRegistry:
    return ChainRegistry.from_data(CHAINS)


@pytest.fixture
def store() -> ClientStore:
    return ClientStore()


class FakeWallet(QueueWalletProvider):
    """
    Scriptable EIP-1193 wallet. `errors[method]` may hold one exception or a
    list consumed one per call.
    """

    def __init__(self, accounts: Sequence[str] = (ACCOUNT,), chain_id: int = 1) -> None:
        super().__init__()
        self.accounts = list(accounts)
        self.chain_id = chain_id
        self.known_chains = {chain_id}
        self.errors: Dict[str, Any] = {}
        self.calls: List[tuple] = []
        self.sent: List[Dict[str, Any]] = []
        self.tx_hash = "0x" + "77" * 32

    async def request(self, method: str, params: Optional[Sequence[Any]] = None) -> Any:
        self.calls.append((method, params))
        err = self.errors.get(method)
        if isinstance(err, list):
            err = err.pop(0) if err else None
        if err is not None:
            raise err
        if method in ("eth_accounts", "eth_requestAccounts"):
            return list(self.accounts)
        if method == "eth_chainId":
            return hex(self.chain_id)
        if method == "wallet_switchEthereumChain":
            target = int(params[0]["chainId"], 16)
            if target not in self.known_chains:
                raise ProviderRpcError(4902, "Unrecognized chain ID")
            self.chain_id = target
            self.emit("chainChanged", hex(target))
            return None
        if method == "wallet_addEthereumChain":
            self.known_chains.add(int(params[0]["chainId"], 16))
            return None
        if method == "eth_sendTransaction":
            self.sent.append(params[0])
            return self.tx_hash
        raise ProviderRpcError(4200, f"{method} not supported")

    def methods(self) -> List[str]:
        return [m for m, _ in self.calls]


@pytest.fixture
def wallet() -> FakeWallet:
    return FakeWallet()


class FakeFetcher:
    """Balance fetcher backed by dicts; `fail` holds addresses that raise."""

    def __init__(self, chain_id: int, balances: Dict[str, int]) -> None:
        self.chain_id = chain_id
        self.balances = balances
        self.fail: set = set()
        self.calls: List[str] = []
        self.gate: Optional[asyncio.Event] = None
        self.closed = False

    async def _maybe_wait(self) -> None:
        if self.gate is not None:
            await self.gate.wait()

    async def native_balance(self, account: str) -> int:
        self.calls.append(ZERO_ADDRESS)
        await self._maybe_wait()
        if ZERO_ADDRESS in self.fail:
            raise ConnectionError("native fetch failed")
        return self.balances.get(ZERO_ADDRESS, 0)

    async def token_balance(self, token: str, account: str) -> int:
        self.calls.append(token.lower())
        await self._maybe_wait()
        if token.lower() in self.fail:
            raise ConnectionError(f"{token} fetch failed")
        return self.balances.get(token.lower(), 0)

    async def aclose(self) -> None:
        self.closed = True

    def rounds(self) -> int:
        return self.calls.count(ZERO_ADDRESS)


class FakePushChannel:
    def __init__(
        self,
        url: str,
        *,
        fail_open: Optional[BaseException] = None,
        log: Optional[List[Tuple[str, str]]] = None,
    ) -> None:
        self.url = url
        self.log = log if log is not None else []
        self.fail_open = fail_open
        self.on_block: Optional[Callable[[Any], None]] = None
        self.on_closed: Optional[Callable[[Optional[BaseException]], None]] = None
        self.opened = False
        self.detached = False
        self.closed = False

    async def open(self, on_block, on_closed=None) -> str:
        if self.fail_open is not None:
            raise self.fail_open
        self.log.append(("open", self.url))
        self.on_block = on_block
        self.on_closed = on_closed
        self.opened = True
        return "0xsub"

    def detach(self) -> None:
        self.detached = True
        self.on_block = None
        self.on_closed = None

    async def close(self) -> None:
        self.detach()
        self.closed = True
        self.log.append(("close", self.url))

    def block(self, number: int = 1) -> None:
        if self.on_block is not None:
            self.on_block({"number": hex(number)})

    def drop(self, err: Optional[BaseException] = None) -> None:
        cb = self.on_closed
        self.detach()
        if cb is not None:
            cb(err)


class Harness:
    """Factories handed to BalanceSync, remembering what they built."""

    def __init__(self, balances_by_chain: Optional[Dict[int, Dict[str, int]]] = None) -> None:
        self.balances_by_chain = balances_by_chain or {
            1: {ZERO_ADDRESS: 10**18, TOKEN_A: 5_000_000},
            2: {ZERO_ADDRESS: 2 * 10**18, TOKEN_B: 7},
        }
        self.fetchers: List[FakeFetcher] = []
        self.channels: List[FakePushChannel] = []
        self.push_error: Optional[BaseException] = None
        self.push_log: List[Tuple[str, str]] = []

    def fetcher(self, chain) -> FakeFetcher:
        f = FakeFetcher(chain.chain_id, self.balances_by_chain.setdefault(chain.chain_id, {}))
        self.fetchers.append(f)
        return f

    def push(self, url: str) -> FakePushChannel:
        ch = FakePushChannel(url, fail_open=self.push_error, log=self.push_log)
        self.channels.append(ch)
        return ch


@pytest.fixture
def harness() -> Harness:
    return Harness()


async def settle(rounds: int = 5) -> None:
    """Let scheduled tasks run."""
    for _ in range(rounds):
        await asyncio.sleep(0)


class FakeNode:
    """
    JSON-RPC node served through httpx.MockTransport.

    `eth_call` answers come from `set_call(to, signature, types, values)`;
    unknown calls revert. Receipts report `receipt_status` once
    `pending_polls` polls have returned null.
    """

    def __init__(self, chain_id: int = 1) -> None:
        self.chain_id = chain_id
        self.eth_calls: Dict[tuple, bytes] = {}
        self.requests: List[Dict[str, Any]] = []
        self.native_balance = 0
        self.receipt_status = "0x1"
        self.pending_polls = 0

    def set_call(self, to: str, signature: str, types: Sequence[str], values: Sequence[Any]) -> None:
        key = (to.lower(), "0x" + function_selector(signature).hex())
        self.eth_calls[key] = abi.encode(types, values)

    def methods(self) -> List[str]:
        return [r["method"] for r in self.requests]

    def eth_call_data(self) -> List[str]:
        return [r["params"][0]["data"] for r in self.requests if r["method"] == "eth_call"]

    def handler(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        self.requests.append(body)
        method, params = body["method"], body["params"]
        if method == "eth_call":
            call = params[0]
            out = self.eth_calls.get((call["to"].lower(), call["data"][:10]))
            if out is None:
                return self._error(body, 3, "execution reverted")
            return self._result(body, "0x" + out.hex())
        if method == "eth_getBalance":
            return self._result(body, hex(self.native_balance))
        if method == "eth_chainId":
            return self._result(body, hex(self.chain_id))
        if method == "eth_getTransactionReceipt":
            if self.pending_polls > 0:
                self.pending_polls -= 1
                return self._result(body, None)
            return self._result(body, {"transactionHash": params[0], "status": self.receipt_status})
        return self._error(body, -32601, "method not found")

    @staticmethod
    def _result(body: Dict[str, Any], result: Any) -> httpx.Response:
        return httpx.Response(200, json={"jsonrpc": "2.0", "id": body["id"], "result": result})

    @staticmethod
    def _error(body: Dict[str, Any], code: int, message: str) -> httpx.Response:
        return httpx.Response(200, json={"jsonrpc": "2.0", "id": body["id"], "error": {"code": code, "message": message}})

    def client(self) -> AsyncRpcClient:
        return AsyncRpcClient("http://node.invalid", max_retries=0, transport=httpx.MockTransport(self.handler))


@pytest.fixture
def node() -> FakeNode:
    return FakeNode()
