from __future__ import annotations

from Crypto.Hash import keccak as _keccak

from .bytes import BytesLike, to_hex

# --- Keccak-256 (Ethereum-style) ----------------------------------------------
# CPython's hashlib exposes NIST SHA3 but not the original Keccak padding the
# EVM uses, so digests come from pycryptodome.


def keccak256(data: BytesLike) -> bytes:
    """Return Keccak-256 digest of *data* (bytes)."""
    if not isinstance(data, (bytes, bytearray, memoryview)):
        raise TypeError("keccak256 expects bytes-like input")
    h = _keccak.new(digest_bits=256)
    h.update(bytes(data))
    return h.digest()


def keccak256_hex(data: BytesLike, *, prefix: bool = True) -> str:
    """Return hex string of Keccak-256 digest (0x-prefixed by default)."""
    return to_hex(keccak256(data), prefix=prefix)


def function_selector(signature: str) -> bytes:
    """First four bytes of keccak256(signature), e.g. 'balanceOf(address)'."""
    return keccak256(signature.encode("ascii"))[:4]


__all__ = ["keccak256", "keccak256_hex", "function_selector"]
