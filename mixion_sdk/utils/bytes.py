from __future__ import annotations

import re
from typing import Union

BytesLike = Union[bytes, bytearray, memoryview]

ZERO_ADDRESS = "0x" + "00" * 20

_ADDR_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")


def ensure_bytes(data: Union[BytesLike, str]) -> bytes:
    """
    Ensure input is bytes.

    Accepts:
      - bytes / bytearray / memoryview  -> bytes(data)
      - str: treated as hex; optional '0x' prefix; even-length enforced

    Raises:
      ValueError on invalid hex strings.
    """
    if isinstance(data, (bytes, bytearray, memoryview)):
        return bytes(data)
    if isinstance(data, str):
        return from_hex(data)
    raise TypeError(f"Unsupported type for ensure_bytes: {type(data)!r}")


def to_hex(b: BytesLike, prefix: bool = True) -> str:
    """
    Bytes -> hex string (lowercase). Prefix with '0x' by default.
    """
    s = bytes(b).hex()
    return f"0x{s}" if prefix else s


def from_hex(s: str) -> bytes:
    """
    Hex string (optionally '0x' prefixed) -> bytes.

    Enforces even-length (nibbles must pair to bytes) and lowercase/uppercase agnostic.
    """
    if not isinstance(s, str):
        raise TypeError("from_hex expects a string")
    if s.startswith(("0x", "0X")):
        s = s[2:]
    if len(s) % 2 != 0:
        raise ValueError("hex string must have even length")
    try:
        return bytes.fromhex(s)
    except ValueError as e:
        raise ValueError(f"invalid hex string: {e}") from e


def bytes32(data: Union[BytesLike, str]) -> bytes:
    """Coerce a 32-byte value given as bytes or 0x-hex; anything else is an error."""
    b = ensure_bytes(data)
    if len(b) != 32:
        raise ValueError(f"expected 32 bytes, got {len(b)}")
    return b


def is_address(addr: object) -> bool:
    return isinstance(addr, str) and bool(_ADDR_RE.match(addr))


def normalize_address(addr: str) -> str:
    """Validate a 20-byte hex address and return it lower-cased (0x-prefixed)."""
    if not is_address(addr):
        raise ValueError(f"invalid address: {addr!r}")
    return addr.lower()


def quantity(value: Union[int, str]) -> int:
    """
    Parse a JSON-RPC QUANTITY ("0x1a") or a decimal string/int into an int.
    """
    if isinstance(value, bool):
        raise TypeError("quantity does not accept bool")
    if isinstance(value, int):
        return value
    s = str(value).strip()
    if s.lower().startswith("0x"):
        return int(s, 16) if len(s) > 2 else 0
    return int(s, 10)


def to_quantity(n: int) -> str:
    if n < 0:
        raise ValueError("quantity must be non-negative")
    return hex(n)


__all__ = [
    "BytesLike",
    "ZERO_ADDRESS",
    "ensure_bytes",
    "to_hex",
    "from_hex",
    "bytes32",
    "is_address",
    "normalize_address",
    "quantity",
    "to_quantity",
]
