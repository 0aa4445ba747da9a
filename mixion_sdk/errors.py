"""
Typed error classes for the Mixion SDK.

Every failure a caller may want to distinguish has its own class, and all of
them derive from `MixionError` so a single `except MixionError` still works:

  NoProvider        no injected wallet available
  NoAccounts        wallet returned an empty account list on connect
  UserRejected      explicit user refusal (EIP-1193 code 4001)
  UnsupportedChain  chain id not present in the chain registry
  InvalidSecret     secret below the minimum accepted length
  AlreadyUsed       nullifier already spent on the settlement contract
  NotFound          no locked record for a commitment
  TransportError    RPC / push-channel failure (RpcError is the JSON-RPC flavour)
  EncodingMismatch  derived hash differs from an expected external value
  TxError           transaction mined but reverted (or receipt never arrived)

`ProviderRpcError` mirrors the error object an EIP-1193 wallet throws; the
session layer translates the well-known codes into the classes above.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum
from typing import Any, Dict, Optional

__all__ = [
    "MixionError",
    "InvalidInput",
    "NoProvider",
    "NoAccounts",
    "UserRejected",
    "UnsupportedChain",
    "InvalidSecret",
    "AlreadyUsed",
    "NotFound",
    "TransportError",
    "RpcError",
    "EncodingMismatch",
    "TxError",
    "ProviderRpcError",
    "ProviderCode",
    "JsonRpcCode",
    "from_jsonrpc_error",
    "from_provider_error",
]


class MixionError(Exception):
    """Base class for all SDK errors."""


class InvalidInput(MixionError, ValueError):
    """Malformed argument (bad hex, wrong length, negative amount...)."""


class NoProvider(MixionError):
    def __init__(self, message: str = "No wallet provider available") -> None:
        super().__init__(message)


class NoAccounts(MixionError):
    def __init__(self, message: str = "No accounts found") -> None:
        super().__init__(message)


class UserRejected(MixionError):
    def __init__(self, message: str = "User rejected the request") -> None:
        super().__init__(message)


class UnsupportedChain(MixionError):
    def __init__(self, chain_id: Optional[int], message: Optional[str] = None) -> None:
        self.chain_id = chain_id
        super().__init__(message or f"Unsupported chain: {chain_id}")


class InvalidSecret(InvalidInput):
    def __init__(self, message: str = "Secret must be at least 8 characters") -> None:
        super().__init__(message)


class AlreadyUsed(MixionError):
    def __init__(self, nullifier: str) -> None:
        self.nullifier = nullifier
        super().__init__(f"Nullifier already used: {nullifier}")


class NotFound(MixionError):
    def __init__(self, commitment: str) -> None:
        self.commitment = commitment
        super().__init__(f"No locked funds for commitment: {commitment}")


class TransportError(MixionError):
    """Network / provider transport failure (HTTP, WebSocket)."""


class JsonRpcCode(IntEnum):
    # JSON-RPC 2.0 spec
    PARSE_ERROR = -32700
    INVALID_REQUEST = -32600
    METHOD_NOT_FOUND = -32601
    INVALID_PARAMS = -32602
    INTERNAL_ERROR = -32603

    # Server errors (implementation-defined range: -32099 to -32000)
    SERVER_ERROR = -32000
    EXECUTION_REVERTED = 3

    # Local transport failure (never sent by a node)
    TRANSPORT = -32098


class ProviderCode(IntEnum):
    # EIP-1193 / EIP-3085 / EIP-3326
    USER_REJECTED = 4001
    UNAUTHORIZED = 4100
    UNSUPPORTED_METHOD = 4200
    DISCONNECTED = 4900
    CHAIN_DISCONNECTED = 4901
    UNRECOGNIZED_CHAIN = 4902


@dataclass(slots=True)
class RpcError(TransportError):
    """Raised when a JSON-RPC call returns an error object or the transport fails."""

    code: int
    message: str
    data: Optional[Any] = None
    method: Optional[str] = None
    request_id: Optional[Any] = None
    http_status: Optional[int] = None

    def __str__(self) -> str:  # pragma: no cover - trivial
        parts = [f"RPC[{self.method or '-'}] code={self.code} msg={self.message!r}"]
        if self.request_id is not None:
            parts.append(f"id={self.request_id}")
        if self.http_status is not None:
            parts.append(f"http={self.http_status}")
        if self.data is not None:
            parts.append(f"data={self.data!r}")
        return " ".join(parts)

    @property
    def code_enum(self) -> Optional[JsonRpcCode]:
        try:
            return JsonRpcCode(self.code)
        except ValueError:
            return None


@dataclass(slots=True)
class EncodingMismatch(MixionError):
    """
    A locally derived hash does not match the value the settlement contract
    (or a stored record) expects. Treated as a fatal integrity error.
    """

    what: str
    expected: str
    got: str

    def __str__(self) -> str:  # pragma: no cover - trivial
        return f"EncodingMismatch[{self.what}]: expected={self.expected} got={self.got}"


@dataclass(slots=True)
class TxError(MixionError):
    """
    Raised when a submitted transaction fails (on-chain revert or no receipt).

    Fields:
      - message: human-readable description
      - tx_hash: hex hash if known
      - receipt: the receipt body, when one was obtained
    """

    message: str
    tx_hash: Optional[str] = None
    receipt: Optional[Dict[str, Any]] = None

    def __str__(self) -> str:  # pragma: no cover - trivial
        suffix = f" tx={self.tx_hash}" if self.tx_hash else ""
        return f"TxError{suffix}: {self.message}"


@dataclass(slots=True)
class ProviderRpcError(MixionError):
    """Error raised by an injected wallet provider (EIP-1193 shape)."""

    code: int
    message: str
    data: Optional[Any] = None

    def __str__(self) -> str:  # pragma: no cover - trivial
        return f"ProviderRpcError code={self.code} msg={self.message!r}"


def from_jsonrpc_error(
    err_obj: Dict[str, Any],
    *,
    method: Optional[str] = None,
    request_id: Optional[Any] = None,
    http_status: Optional[int] = None,
) -> RpcError:
    """
    Convert a JSON-RPC error object into RpcError.

    `err_obj` should resemble: {"code": int, "message": str, "data": any?}
    """
    code = int(err_obj.get("code", JsonRpcCode.SERVER_ERROR))
    message = str(err_obj.get("message", "Unknown JSON-RPC error"))
    return RpcError(
        code=code,
        message=message,
        data=err_obj.get("data"),
        method=method,
        request_id=request_id,
        http_status=http_status,
    )


def from_provider_error(err: ProviderRpcError) -> MixionError:
    """Map well-known provider codes onto the SDK taxonomy; others pass through."""
    if err.code == ProviderCode.USER_REJECTED:
        return UserRejected(err.message or "User rejected the request")
    if err.code in (ProviderCode.DISCONNECTED, ProviderCode.CHAIN_DISCONNECTED):
        return TransportError(err.message)
    return err
