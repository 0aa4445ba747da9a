"""
Secret → nullifier → commitment derivation.

The settlement contract recomputes both values on-chain as

    nullifier  = keccak256(abi.encode("secret",     secret,    chainId))
    commitment = keccak256(abi.encode("commitment", nullifier, chainId))

with ABI types (string, string, uint256) and (string, bytes32, uint256).
These functions must reproduce that byte-for-byte: a different tag, width or
byte order produces deposits that can never be withdrawn.

Chain ids are checked against the bundled chain list unless a registry is
passed or `any_chain=True` opts out. That list is loaded once and never
changes, so everything here is safe to call from any thread.

Example:
    from mixion_sdk.hashchain import derive_pair
    pair = derive_pair("my long secret", chain_id=1)
    pair.commitment_hex   # pass to lockNative / lockERC20
    pair.nullifier_hex    # reveal later to withdraw
"""

from __future__ import annotations

import functools
import secrets as _secrets
from dataclasses import dataclass
from typing import Optional, Union

from .chains.registry import ChainRegistry
from .errors import EncodingMismatch, InvalidInput, InvalidSecret, UnsupportedChain
from .utils import abi
from .utils.bytes import BytesLike, bytes32, to_hex
from .utils.hash import keccak256

Secret = Union[str, BytesLike]

SECRET_TAG = "secret"
COMMITMENT_TAG = "commitment"
MIN_SECRET_LENGTH = 8
GENERATED_SECRET_BYTES = 32

_NULLIFIER_TYPES = ("string", "string", "uint256")
_COMMITMENT_TYPES = ("string", "bytes32", "uint256")


@dataclass(frozen=True)
class DerivedPair:
    chain_id: int
    nullifier: bytes
    commitment: bytes

    @property
    def nullifier_hex(self) -> str:
        return to_hex(self.nullifier)

    @property
    def commitment_hex(self) -> str:
        return to_hex(self.commitment)


def generate_secret() -> str:
    """32 bytes from the OS CSPRNG as a 0x-prefixed hex string."""
    return to_hex(_secrets.token_bytes(GENERATED_SECRET_BYTES))


def validate_secret(secret: Secret, *, user_supplied: bool = True) -> Secret:
    if isinstance(secret, (bytearray, memoryview)):
        secret = bytes(secret)
    if not isinstance(secret, (str, bytes)):
        raise InvalidInput(f"secret must be str or bytes, got {type(secret).__name__}")
    if not secret:
        raise InvalidSecret("Secret must not be empty")
    if user_supplied and len(secret) < MIN_SECRET_LENGTH:
        raise InvalidSecret()
    return secret


@functools.lru_cache(maxsize=1)
def _bundled_registry() -> ChainRegistry:
    return ChainRegistry.default()


def validate_chain_id(
    chain_id: int,
    registry: Optional[ChainRegistry] = None,
    *,
    any_chain: bool = False,
) -> int:
    """
    Reject chain ids the settlement contract is not deployed on.

    Without `registry` the bundled chain list is used. `any_chain=True` keeps
    only the uint256 range check, for tooling that derives values offline.
    """
    if isinstance(chain_id, bool) or not isinstance(chain_id, int) or chain_id <= 0:
        raise UnsupportedChain(chain_id if isinstance(chain_id, int) else None,
                               f"Chain id must be a positive integer, got {chain_id!r}")
    if chain_id >= 1 << 256:
        raise UnsupportedChain(chain_id, "Chain id does not fit in uint256")
    if any_chain:
        return chain_id
    if registry is None:
        registry = _bundled_registry()
    if not registry.is_supported(chain_id):
        raise UnsupportedChain(chain_id)
    return chain_id


def derive_nullifier(
    secret: Secret,
    chain_id: int,
    *,
    registry: Optional[ChainRegistry] = None,
    any_chain: bool = False,
    user_supplied: bool = True,
) -> bytes:
    """
    keccak256(abi.encode(string "secret", string secret, uint256 chainId)).

    A `bytes` secret is hashed as the raw bytes of the ABI string.
    """
    secret = validate_secret(secret, user_supplied=user_supplied)
    chain_id = validate_chain_id(chain_id, registry, any_chain=any_chain)
    return keccak256(abi.encode(_NULLIFIER_TYPES, (SECRET_TAG, secret, chain_id)))


def derive_commitment_from_nullifier(
    nullifier: Union[BytesLike, str],
    chain_id: int,
    *,
    registry: Optional[ChainRegistry] = None,
    any_chain: bool = False,
) -> bytes:
    """keccak256(abi.encode(string "commitment", bytes32 nullifier, uint256 chainId))."""
    try:
        n = bytes32(nullifier)
    except (TypeError, ValueError) as e:
        raise InvalidInput(f"nullifier must be 32 bytes: {e}") from e
    chain_id = validate_chain_id(chain_id, registry, any_chain=any_chain)
    return keccak256(abi.encode(_COMMITMENT_TYPES, (COMMITMENT_TAG, n, chain_id)))


def derive_commitment(
    secret: Secret,
    chain_id: int,
    *,
    registry: Optional[ChainRegistry] = None,
    any_chain: bool = False,
    user_supplied: bool = True,
) -> bytes:
    return derive_pair(
        secret, chain_id, registry=registry, any_chain=any_chain, user_supplied=user_supplied
    ).commitment


def derive_pair(
    secret: Secret,
    chain_id: int,
    *,
    registry: Optional[ChainRegistry] = None,
    any_chain: bool = False,
    user_supplied: bool = True,
) -> DerivedPair:
    nullifier = derive_nullifier(
        secret, chain_id, registry=registry, any_chain=any_chain, user_supplied=user_supplied
    )
    # chain id already checked against the registry above
    return DerivedPair(
        chain_id=chain_id,
        nullifier=nullifier,
        commitment=derive_commitment_from_nullifier(nullifier, chain_id, any_chain=True),
    )


def verify_commitment(
    secret: Secret,
    chain_id: int,
    expected: Union[BytesLike, str],
    *,
    registry: Optional[ChainRegistry] = None,
    any_chain: bool = False,
    user_supplied: bool = True,
) -> DerivedPair:
    """
    Derive the pair and check the commitment against `expected` (for example
    the commitment recorded at lock time). Raises EncodingMismatch otherwise.
    """
    pair = derive_pair(
        secret, chain_id, registry=registry, any_chain=any_chain, user_supplied=user_supplied
    )
    try:
        want = bytes32(expected)
    except (TypeError, ValueError) as e:
        raise InvalidInput(f"expected commitment must be 32 bytes: {e}") from e
    if pair.commitment != want:
        raise EncodingMismatch("commitment", expected=to_hex(want), got=pair.commitment_hex)
    return pair


__all__ = [
    "Secret",
    "DerivedPair",
    "SECRET_TAG",
    "COMMITMENT_TAG",
    "MIN_SECRET_LENGTH",
    "generate_secret",
    "validate_secret",
    "validate_chain_id",
    "derive_nullifier",
    "derive_commitment",
    "derive_commitment_from_nullifier",
    "derive_pair",
    "verify_commitment",
]
