"""
mixion_sdk.utils
----------------

Small, dependency-light helpers shared across the SDK:

- bytes:    hex/bytes conversion, address and JSON-RPC quantity helpers
- hash:     Keccak-256 and function selectors
- abi:      canonical contract ABI encoding for the static/dynamic types we use
- debounce: single-timer debounce gate with a minimum interval
- logging:  one-call logging setup for CLIs and scripts
"""

from .bytes import ZERO_ADDRESS, from_hex, normalize_address, to_hex  # noqa: F401
from .hash import function_selector, keccak256, keccak256_hex  # noqa: F401

__all__ = [
    "ZERO_ADDRESS",
    "from_hex",
    "to_hex",
    "normalize_address",
    "keccak256",
    "keccak256_hex",
    "function_selector",
]
