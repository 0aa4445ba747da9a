"""
Call layer for the settlement contract and the ERC-20 tokens it accepts.

Contract surface (address from ChainConfig.contract_address):

    lockNative(bytes32 commitment) payable
    lockERC20(bytes32 commitment, address token, uint256 amount)
    withdraw(bytes32 nullifier)
    getLockedDetails(bytes32 commitment) view
        returns (uint256 amount, address tokenAddress, uint256 fee, uint256 netAmount)
    isNullifierUsed(bytes32 nullifier) view returns (bool)

Reads are `eth_call` against the chain RPC. Writes are handed to the wallet
(`eth_sendTransaction`) and then polled for a receipt on the chain RPC. A
revert raises TxError and a refused signature raises UserRejected. Nothing is
ever resubmitted.

Example:
    client = SettlementClient(chain, rpc, provider, account, store=store)
    pair = derive_pair(secret, chain.chain_id)
    await client.lock_native(pair.commitment, 10**17)
    ...
    await client.unlock(secret)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Sequence, Tuple, Union

from .chains.registry import ChainConfig, ChainRegistry
from .config import SDKConfig
from .errors import AlreadyUsed, InvalidInput, MixionError, NoProvider, NotFound, TransportError
from .hashchain import Secret, derive_pair
from .rpc.http import AsyncRpcClient
from .session import Session
from .storage import ClientStore, TransactionRecord
from .tx import check_receipt, send_transaction, wait_for_receipt
from .utils import abi
from .utils.bytes import ZERO_ADDRESS, BytesLike, bytes32, from_hex, normalize_address, quantity, to_hex, to_quantity
from .wallet.provider import WalletProvider

log = logging.getLogger("mixion.settlement")

Hash32 = Union[BytesLike, str]

LOCK_NATIVE = "lockNative(bytes32)"
LOCK_ERC20 = "lockERC20(bytes32,address,uint256)"
WITHDRAW = "withdraw(bytes32)"
GET_LOCKED_DETAILS = "getLockedDetails(bytes32)"
IS_NULLIFIER_USED = "isNullifierUsed(bytes32)"

ERC20_NAME = "name()"
ERC20_SYMBOL = "symbol()"
ERC20_DECIMALS = "decimals()"
ERC20_BALANCE_OF = "balanceOf(address)"
ERC20_ALLOWANCE = "allowance(address,address)"
ERC20_APPROVE = "approve(address,uint256)"


@dataclass(frozen=True)
class LockedFundRecord:
    commitment: str
    amount: int
    token_address: str
    fee: int
    net_amount: int

    @property
    def found(self) -> bool:
        return self.amount != 0

    @property
    def is_native(self) -> bool:
        return self.token_address.lower() == ZERO_ADDRESS


@dataclass(frozen=True)
class TokenDetails:
    address: str
    name: str
    symbol: str
    decimals: int


def _hash32(value: Hash32, what: str) -> bytes:
    try:
        return bytes32(value)
    except (TypeError, ValueError) as e:
        raise InvalidInput(f"{what} must be 32 bytes: {e}") from e


def _positive(amount: int) -> int:
    if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
        raise InvalidInput(f"amount must be a positive integer (base units), got {amount!r}")
    return amount


class SettlementClient:
    def __init__(
        self,
        chain: ChainConfig,
        rpc: AsyncRpcClient,
        provider: Optional[WalletProvider] = None,
        account: Optional[str] = None,
        *,
        store: Optional[ClientStore] = None,
        receipt_timeout: float = 120.0,
        poll_interval: float = 0.5,
    ) -> None:
        self.chain = chain
        self.rpc = rpc
        self.provider = provider
        self.account = normalize_address(account) if account else None
        self.store = store
        self.receipt_timeout = receipt_timeout
        self.poll_interval = poll_interval

    @classmethod
    def for_session(
        cls,
        session: Session,
        registry: ChainRegistry,
        provider: Optional[WalletProvider] = None,
        *,
        config: Optional[SDKConfig] = None,
        store: Optional[ClientStore] = None,
        rpc: Optional[AsyncRpcClient] = None,
    ) -> "SettlementClient":
        """Client bound to the session's chain and account. Raises UnsupportedChain."""
        chain = registry.require(session.chain_id)
        cfg = config or SDKConfig()
        return cls(
            chain,
            rpc or AsyncRpcClient.from_config(chain.rpc_url, cfg, chain_id=chain.chain_id),
            provider,
            session.account,
            store=store,
            receipt_timeout=cfg.receipt_timeout,
        )

    @property
    def chain_id(self) -> int:
        return self.chain.chain_id

    @property
    def contract(self) -> str:
        return self.chain.contract_address

    async def aclose(self) -> None:
        await self.rpc.aclose()

    # ------------- reads -------------------

    async def _call(self, to: str, signature: str, args: Sequence[Any], out_types: Sequence[str]) -> Tuple[Any, ...]:
        data = abi.encode_call(signature, args)
        raw = await self.rpc.request("eth_call", [{"to": to, "data": to_hex(data)}, "latest"])
        out = from_hex(str(raw))
        if not out:
            raise TransportError(f"{signature} on {to} returned no data")
        return abi.decode(out_types, out)

    async def get_locked_details(self, commitment: Hash32) -> LockedFundRecord:
        c = _hash32(commitment, "commitment")
        amount, token, fee, net = await self._call(
            self.contract, GET_LOCKED_DETAILS, [c], ["uint256", "address", "uint256", "uint256"]
        )
        return LockedFundRecord(commitment=to_hex(c), amount=amount, token_address=token, fee=fee, net_amount=net)

    async def require_locked(self, commitment: Hash32) -> LockedFundRecord:
        rec = await self.get_locked_details(commitment)
        if not rec.found:
            raise NotFound(rec.commitment)
        return rec

    async def is_nullifier_used(self, nullifier: Hash32) -> bool:
        n = _hash32(nullifier, "nullifier")
        (used,) = await self._call(self.contract, IS_NULLIFIER_USED, [n], ["bool"])
        return bool(used)

    async def fetch_token_details(self, token: str) -> TokenDetails:
        addr = normalize_address(token)
        (name,) = await self._call(addr, ERC20_NAME, [], ["string"])
        (symbol,) = await self._call(addr, ERC20_SYMBOL, [], ["string"])
        (decimals,) = await self._call(addr, ERC20_DECIMALS, [], ["uint8"])
        return TokenDetails(address=addr, name=name, symbol=symbol, decimals=decimals)

    async def get_erc20_balance(self, token: str, owner: Optional[str] = None) -> int:
        who = self._owner(owner)
        (value,) = await self._call(normalize_address(token), ERC20_BALANCE_OF, [who], ["uint256"])
        return value

    async def get_native_balance(self, owner: Optional[str] = None) -> int:
        return quantity(await self.rpc.request("eth_getBalance", [self._owner(owner), "latest"]))

    async def allowance(self, token: str, owner: Optional[str] = None) -> int:
        (value,) = await self._call(
            normalize_address(token), ERC20_ALLOWANCE, [self._owner(owner), self.contract], ["uint256"]
        )
        return value

    # ------------- writes -------------------

    async def lock_native(self, commitment: Hash32, amount: int) -> str:
        """Deposit `amount` wei of the native asset under `commitment`. Returns the tx hash."""
        c = _hash32(commitment, "commitment")
        amount = _positive(amount)
        tx_hash = await self._send(self.contract, abi.encode_call(LOCK_NATIVE, [c]), value=amount)
        self._record(tx_hash, "lock", amount, self.chain.native.symbol, to_hex(c))
        return tx_hash

    async def lock_erc20(self, commitment: Hash32, token: str, amount: int) -> str:
        """
        Deposit `amount` base units of `token` under `commitment`. Sends an
        `approve(contract, amount)` first when the current allowance is short.
        """
        c = _hash32(commitment, "commitment")
        addr = normalize_address(token)
        if addr == ZERO_ADDRESS:
            raise InvalidInput("use lock_native for the native asset")
        amount = _positive(amount)
        current = await self.allowance(addr)
        if current < amount:
            log.info("allowance %d < %d on %s; approving", current, amount, addr)
            await self._send(addr, abi.encode_call(ERC20_APPROVE, [self.contract, amount]))
        tx_hash = await self._send(self.contract, abi.encode_call(LOCK_ERC20, [c, addr, amount]))
        self._record(tx_hash, "lock", amount, self._symbol_for(addr), to_hex(c))
        return tx_hash

    async def withdraw(self, nullifier: Hash32) -> str:
        """Reveal `nullifier` to release the matching deposit. Raises AlreadyUsed."""
        n = _hash32(nullifier, "nullifier")
        if await self.is_nullifier_used(n):
            raise AlreadyUsed(to_hex(n))
        return await self._send(self.contract, abi.encode_call(WITHDRAW, [n]))

    async def unlock(self, secret: Secret) -> str:
        """Derive the pair for this chain, check the deposit exists, withdraw."""
        pair = derive_pair(secret, self.chain_id, registry=ChainRegistry([self.chain]))
        rec = await self.require_locked(pair.commitment)
        tx_hash = await self.withdraw(pair.nullifier)
        currency = self.chain.native.symbol if rec.is_native else self._symbol_for(rec.token_address)
        self._record(tx_hash, "unlock", rec.net_amount, currency, pair.commitment_hex)
        return tx_hash

    # ------------- internals --------------------

    def _owner(self, owner: Optional[str]) -> str:
        if owner:
            return normalize_address(owner)
        if self.account is None:
            raise MixionError("No account bound to this client")
        return self.account

    async def _send(self, to: str, data: bytes, *, value: int = 0) -> str:
        if self.provider is None:
            raise NoProvider()
        tx: Dict[str, Any] = {"from": self._owner(None), "to": to, "data": to_hex(data)}
        if value:
            tx["value"] = to_quantity(value)
        tx_hash = await send_transaction(self.provider, tx)
        log.info("sent %s to %s on chain %s", tx_hash, to, self.chain_id)
        receipt = await wait_for_receipt(
            self.rpc, tx_hash, timeout_s=self.receipt_timeout, poll_interval_s=self.poll_interval
        )
        check_receipt(receipt, tx_hash)
        return tx_hash

    def _symbol_for(self, token: str) -> str:
        key = token.lower()
        for t in self.chain.tokens:
            if t.key == key:
                return t.symbol
        if self.store is not None:
            for t in self.store.get_custom_tokens(self.chain_id):
                if t.key == key:
                    return t.symbol
        return "ERC20"

    def _record(self, tx_hash: str, kind: str, amount: int, currency: str, commitment: str) -> None:
        if self.store is None:
            return
        try:
            self.store.save_transaction(TransactionRecord(
                tx_hash=tx_hash,
                type=kind,  # type: ignore[arg-type]
                amount=str(amount),
                currency=currency,
                chain_id=self.chain_id,
                commitment=commitment,
            ))
        except OSError:
            log.warning("could not save %s of %s to history", kind, tx_hash, exc_info=True)


__all__ = ["SettlementClient", "LockedFundRecord", "TokenDetails"]
