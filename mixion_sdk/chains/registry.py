"""
Static chain registry.

Chain configuration is an ordered JSON list loaded once at startup and never
re-read at runtime. Each entry is validated with Pydantic:

    {
      "chainId": 1, "name": "Ethereum", "symbol": "ETH",
      "rpcUrl": "https://...", "pushUrl": "wss://..." (optional),
      "blockExplorerUrl": "https://..." (optional),
      "contractAddress": "0x...",
      "tokens": [ {"name", "symbol", "address", "decimals", "logoUri"?}, ... ]
    }

`tokens[0]` must be the native asset and carry the zero address.

Usage:
    from mixion_sdk.chains import ChainRegistry
    reg = ChainRegistry.default()          # bundled chains.json
    reg = ChainRegistry.from_file(path)    # deployment-specific file
    cfg = reg.require(137)
"""

from __future__ import annotations

import json
import logging
import os
from importlib import resources
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from ..errors import UnsupportedChain
from ..utils.bytes import ZERO_ADDRESS, is_address

log = logging.getLogger("mixion.chains")

_BUNDLED = "chains.json"


class TokenConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True, populate_by_name=True)

    name: str = Field(min_length=1, max_length=64)
    symbol: str = Field(min_length=1, max_length=16)
    address: str
    decimals: int = Field(default=18, ge=0, le=255)
    logo_uri: Optional[str] = Field(default=None, alias="logoUri")

    @field_validator("address")
    @classmethod
    def _check_address(cls, v: str) -> str:
        if not is_address(v):
            raise ValueError(f"invalid token address: {v!r}")
        return v

    @property
    def is_native(self) -> bool:
        return self.address.lower() == ZERO_ADDRESS

    @property
    def key(self) -> str:
        """Lower-cased address; the key used in balance snapshots."""
        return self.address.lower()


class ChainConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True, populate_by_name=True)

    chain_id: int = Field(ge=1, alias="chainId")
    name: str
    symbol: str
    rpc_url: str = Field(alias="rpcUrl")
    push_url: Optional[str] = Field(default=None, alias="pushUrl")
    block_explorer_url: Optional[str] = Field(default=None, alias="blockExplorerUrl")
    contract_address: str = Field(alias="contractAddress")
    tokens: Tuple[TokenConfig, ...]

    @field_validator("rpc_url")
    @classmethod
    def _check_rpc(cls, v: str) -> str:
        if not v.lower().startswith(("http://", "https://")):
            raise ValueError(f"rpcUrl must be http(s), got {v!r}")
        return v

    @field_validator("push_url")
    @classmethod
    def _check_push(cls, v: Optional[str]) -> Optional[str]:
        if v and not v.lower().startswith(("ws://", "wss://")):
            raise ValueError(f"pushUrl must be ws(s), got {v!r}")
        return v or None

    @field_validator("contract_address")
    @classmethod
    def _check_contract(cls, v: str) -> str:
        if not is_address(v) or v.lower() == ZERO_ADDRESS:
            raise ValueError(f"invalid contract address: {v!r}")
        return v

    @model_validator(mode="after")
    def _check_tokens(self) -> "ChainConfig":
        if not self.tokens:
            raise ValueError("tokens must list at least the native asset")
        if not self.tokens[0].is_native:
            raise ValueError("tokens[0] must be the native asset (zero address)")
        if any(t.is_native for t in self.tokens[1:]):
            raise ValueError("only tokens[0] may use the zero address")
        keys = [t.key for t in self.tokens]
        if len(keys) != len(set(keys)):
            raise ValueError("duplicate token address in tokens")
        return self

    @property
    def native(self) -> TokenConfig:
        return self.tokens[0]

    @property
    def erc20_tokens(self) -> Tuple[TokenConfig, ...]:
        return self.tokens[1:]

    def add_chain_params(self) -> Dict[str, Any]:
        """Parameters for `wallet_addEthereumChain` (EIP-3085)."""
        params: Dict[str, Any] = {
            "chainId": hex(self.chain_id),
            "chainName": self.name,
            "nativeCurrency": {
                "name": self.symbol,
                "symbol": self.symbol,
                "decimals": self.native.decimals,
            },
            "rpcUrls": [self.rpc_url],
        }
        if self.block_explorer_url:
            params["blockExplorerUrls"] = [self.block_explorer_url]
        return params


class ChainRegistry:
    """Read-only lookup from chain id to `ChainConfig`, preserving file order."""

    def __init__(self, chains: Iterable[ChainConfig]) -> None:
        ordered: List[ChainConfig] = list(chains)
        by_id: Dict[int, ChainConfig] = {}
        for c in ordered:
            if c.chain_id in by_id:
                raise ValueError(f"duplicate chainId in registry: {c.chain_id}")
            by_id[c.chain_id] = c
        self._ordered: Tuple[ChainConfig, ...] = tuple(ordered)
        self._by_id = by_id

    # --- loading ---------------------------------------------------------

    @classmethod
    def from_data(cls, data: Any) -> "ChainRegistry":
        entries = data.get("chains") if isinstance(data, dict) else data
        if not isinstance(entries, list):
            raise ValueError("chain configuration must be a list or {'chains': [...]}")
        try:
            return cls(ChainConfig.model_validate(e) for e in entries)
        except ValidationError as e:
            raise ValueError(f"chain configuration failed validation:\n{e}") from e

    @classmethod
    def from_file(cls, path: os.PathLike[str] | str) -> "ChainRegistry":
        p = Path(path).expanduser()
        try:
            data = json.loads(p.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid JSON at {p}: {e}") from e
        reg = cls.from_data(data)
        log.debug("loaded %d chains from %s", len(reg), p)
        return reg

    @classmethod
    def default(cls) -> "ChainRegistry":
        """The chain list bundled with the package."""
        text = resources.files(__package__).joinpath(_BUNDLED).read_text(encoding="utf-8")
        return cls.from_data(json.loads(text))

    @classmethod
    def load(cls, path: Optional[os.PathLike[str] | str] = None) -> "ChainRegistry":
        return cls.from_file(path) if path else cls.default()

    # --- lookup ----------------------------------------------------------

    def get(self, chain_id: Optional[int]) -> Optional[ChainConfig]:
        if chain_id is None:
            return None
        return self._by_id.get(int(chain_id))

    def require(self, chain_id: Optional[int]) -> ChainConfig:
        cfg = self.get(chain_id)
        if cfg is None:
            raise UnsupportedChain(chain_id)
        return cfg

    def is_supported(self, chain_id: Optional[int]) -> bool:
        return self.get(chain_id) is not None

    @property
    def chain_ids(self) -> Tuple[int, ...]:
        return tuple(c.chain_id for c in self._ordered)

    def __iter__(self) -> Iterator[ChainConfig]:
        return iter(self._ordered)

    def __len__(self) -> int:
        return len(self._ordered)

    def __contains__(self, chain_id: object) -> bool:
        return isinstance(chain_id, int) and chain_id in self._by_id


__all__ = ["TokenConfig", "ChainConfig", "ChainRegistry"]
