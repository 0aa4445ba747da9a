from __future__ import annotations

"""
Canonical contract ABI encoding (Solidity `abi.encode` layout).

Only the elementary types the settlement contract and ERC-20 tokens use are
supported; arrays and tuples are intentionally out of scope:

  uint<N> / int<N>   32-byte big-endian word (two's complement for int)
  address            20 bytes, left-padded to 32
  bool               0 / 1 word
  bytes<N>           right-padded to 32
  bytes / string     dynamic: offset in head, length word + padded data in tail

The head/tail layout is what the EVM recomputes inside `keccak256(abi.encode(...))`,
so any change here changes every commitment.
"""

import re
from typing import Any, List, Sequence, Tuple

from ..errors import InvalidInput
from .bytes import ensure_bytes, normalize_address, to_hex
from .hash import function_selector

_WORD = 32

_UINT_RE = re.compile(r"^(u?)int(\d*)$")
_FIXED_BYTES_RE = re.compile(r"^bytes(\d+)$")


def canonical_type(type_str: str) -> str:
    """Normalize an ABI type string ('uint' -> 'uint256') and validate it."""
    t = re.sub(r"\s+", "", type_str).lower()
    m = _UINT_RE.match(t)
    if m:
        bits = int(m.group(2) or 256)
        if bits % 8 != 0 or not 8 <= bits <= 256:
            raise InvalidInput(f"Unsupported integer width: {type_str}")
        return f"{m.group(1)}int{bits}"
    m = _FIXED_BYTES_RE.match(t)
    if m:
        n = int(m.group(1))
        if not 1 <= n <= 32:
            raise InvalidInput(f"Unsupported fixed bytes size: {type_str}")
        return t
    if t in ("address", "bool", "bytes", "string"):
        return t
    raise InvalidInput(f"Unsupported ABI type: {type_str}")


def is_dynamic(type_str: str) -> bool:
    return canonical_type(type_str) in ("bytes", "string")


def _pad_right(b: bytes) -> bytes:
    return b + b"\x00" * (-len(b) % _WORD)


def _encode_int(value: Any, bits: int, signed: bool) -> bytes:
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidInput(f"Expected int for {'int' if signed else 'uint'}{bits}, got {type(value).__name__}")
    if signed:
        lo, hi = -(1 << (bits - 1)), (1 << (bits - 1)) - 1
    else:
        lo, hi = 0, (1 << bits) - 1
    if not lo <= value <= hi:
        raise InvalidInput(f"Value {value} out of range for {'int' if signed else 'uint'}{bits}")
    if value < 0:
        value += 1 << 256
    return value.to_bytes(_WORD, "big")


def _encode_static(t: str, value: Any) -> bytes:
    m = _UINT_RE.match(t)
    if m:
        return _encode_int(value, int(m.group(2)), signed=(m.group(1) == ""))
    if t == "address":
        try:
            addr = normalize_address(value)
        except ValueError as e:
            raise InvalidInput(str(e)) from e
        return b"\x00" * 12 + bytes.fromhex(addr[2:])
    if t == "bool":
        if not isinstance(value, bool):
            raise InvalidInput(f"Expected bool, got {type(value).__name__}")
        return (1 if value else 0).to_bytes(_WORD, "big")
    m = _FIXED_BYTES_RE.match(t)
    if m:
        n = int(m.group(1))
        try:
            b = ensure_bytes(value)
        except (TypeError, ValueError) as e:
            raise InvalidInput(f"Invalid {t} value: {e}") from e
        if len(b) != n:
            raise InvalidInput(f"Expected {n} bytes for {t}, got {len(b)}")
        return b + b"\x00" * (_WORD - n)
    raise InvalidInput(f"Not a static type: {t}")


def _encode_dynamic(t: str, value: Any) -> bytes:
    if t == "string":
        if isinstance(value, str):
            raw = value.encode("utf-8")
        elif isinstance(value, (bytes, bytearray, memoryview)):
            raw = bytes(value)
        else:
            raise InvalidInput(f"Expected str for string, got {type(value).__name__}")
    else:
        try:
            raw = ensure_bytes(value)
        except (TypeError, ValueError) as e:
            raise InvalidInput(f"Invalid bytes value: {e}") from e
    return len(raw).to_bytes(_WORD, "big") + _pad_right(raw)


def encode(types: Sequence[str], values: Sequence[Any]) -> bytes:
    """
    Encode `values` as the tuple `(types...)`, exactly like Solidity's `abi.encode`.

    >>> encode(["uint256"], [1]).hex()[-2:]
    '01'
    """
    if len(types) != len(values):
        raise InvalidInput(f"Type/value count mismatch: {len(types)} types, {len(values)} values")
    canon = [canonical_type(t) for t in types]

    head_size = _WORD * len(canon)
    heads: List[bytes] = []
    tails: List[bytes] = []
    tail_offset = head_size
    for t, v in zip(canon, values):
        if t in ("bytes", "string"):
            enc = _encode_dynamic(t, v)
            heads.append(tail_offset.to_bytes(_WORD, "big"))
            tails.append(enc)
            tail_offset += len(enc)
        else:
            heads.append(_encode_static(t, v))
    return b"".join(heads) + b"".join(tails)


def encode_call(signature: str, values: Sequence[Any] = ()) -> bytes:
    """
    Calldata for `signature` (e.g. 'lockERC20(bytes32,address,uint256)').
    Argument types are taken from the signature itself.
    """
    name, types = parse_signature(signature)
    return function_selector(f"{name}({','.join(types)})") + encode(types, values)


def parse_signature(signature: str) -> Tuple[str, List[str]]:
    m = re.match(r"^\s*([A-Za-z_][A-Za-z0-9_]*)\s*\((.*)\)\s*$", signature)
    if not m:
        raise InvalidInput(f"Malformed function signature: {signature!r}")
    inner = m.group(2).strip()
    types = [canonical_type(p) for p in inner.split(",")] if inner else []
    return m.group(1), types


# --- Decoding ----------------------------------------------------------------


def _word(data: bytes, index: int) -> bytes:
    start = index * _WORD
    if start + _WORD > len(data):
        raise InvalidInput(f"ABI data too short: need word {index}, have {len(data)} bytes")
    return data[start : start + _WORD]


def _decode_static(t: str, word: bytes) -> Any:
    m = _UINT_RE.match(t)
    if m:
        v = int.from_bytes(word, "big")
        if m.group(1) == "" and v >= 1 << 255:
            v -= 1 << 256
        return v
    if t == "address":
        return to_hex(word[12:])
    if t == "bool":
        return int.from_bytes(word, "big") != 0
    m = _FIXED_BYTES_RE.match(t)
    if m:
        return word[: int(m.group(1))]
    raise InvalidInput(f"Not a static type: {t}")


def decode(types: Sequence[str], data: bytes) -> Tuple[Any, ...]:
    """Inverse of `encode` for the supported elementary types."""
    data = ensure_bytes(data)
    canon = [canonical_type(t) for t in types]
    out: List[Any] = []
    for i, t in enumerate(canon):
        word = _word(data, i)
        if t in ("bytes", "string"):
            offset = int.from_bytes(word, "big")
            if offset + _WORD > len(data):
                raise InvalidInput("ABI dynamic offset out of range")
            length = int.from_bytes(data[offset : offset + _WORD], "big")
            raw = data[offset + _WORD : offset + _WORD + length]
            if len(raw) != length:
                raise InvalidInput("ABI dynamic value truncated")
            out.append(raw.decode("utf-8") if t == "string" else raw)
        else:
            out.append(_decode_static(t, word))
    return tuple(out)


__all__ = [
    "canonical_type",
    "is_dynamic",
    "encode",
    "encode_call",
    "parse_signature",
    "decode",
]
