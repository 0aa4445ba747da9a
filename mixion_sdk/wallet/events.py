"""
Typed wallet events.

Injected wallets (EIP-1193) emit `accountsChanged`, `chainChanged`, `connect`
and `disconnect` with loosely-typed payloads. The session layer only ever
sees the dataclasses below; `parse_event` does the conversion.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional, Tuple, Union

from ..utils.bytes import quantity


@dataclass(frozen=True)
class AccountsChanged:
    accounts: Tuple[str, ...]


@dataclass(frozen=True)
class ChainChanged:
    chain_id: int


@dataclass(frozen=True)
class ProviderConnected:
    chain_id: Optional[int] = None


@dataclass(frozen=True)
class ProviderDisconnected:
    code: Optional[int] = None
    message: str = ""


ProviderEvent = Union[AccountsChanged, ChainChanged, ProviderConnected, ProviderDisconnected]


def parse_event(name: str, payload: Any = None) -> ProviderEvent:
    """Convert an EIP-1193 event name + payload into a typed event."""
    if name == "accountsChanged":
        return AccountsChanged(tuple(str(a) for a in (payload or ())))
    if name == "chainChanged":
        return ChainChanged(quantity(payload))
    if name == "connect":
        cid = payload.get("chainId") if isinstance(payload, dict) else payload
        return ProviderConnected(quantity(cid) if cid is not None else None)
    if name == "disconnect":
        if isinstance(payload, dict):
            return ProviderDisconnected(payload.get("code"), str(payload.get("message", "")))
        return ProviderDisconnected(None, str(payload or ""))
    raise ValueError(f"unknown provider event: {name!r}")


__all__ = [
    "AccountsChanged",
    "ChainChanged",
    "ProviderConnected",
    "ProviderDisconnected",
    "ProviderEvent",
    "parse_event",
]
