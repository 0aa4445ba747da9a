"""
Mixion SDK for Python
Convenience exports for the most common client APIs.
"""

from .version import __version__  # noqa: F401

# Core config & errors
from .config import SDKConfig  # noqa: F401
from .errors import (  # noqa: F401
    AlreadyUsed,
    EncodingMismatch,
    InvalidSecret,
    MixionError,
    NoAccounts,
    NoProvider,
    NotFound,
    RpcError,
    TransportError,
    TxError,
    UnsupportedChain,
    UserRejected,
)

# Commitment derivation
from .hashchain import (  # noqa: F401
    DerivedPair,
    derive_commitment,
    derive_commitment_from_nullifier,
    derive_nullifier,
    derive_pair,
    generate_secret,
    verify_commitment,
)

# Chains
from .chains import ChainConfig, ChainRegistry, TokenConfig  # noqa: F401

# RPC
from .rpc.http import AsyncRpcClient  # noqa: F401
from .rpc.ws import PushChannel  # noqa: F401

# Session & balances
from .session import Session, SessionManager, SessionState  # noqa: F401
from .balances import BalanceSnapshot, BalanceSync  # noqa: F401
from .storage import ClientStore, TransactionRecord  # noqa: F401

# Settlement
from .settlement import LockedFundRecord, SettlementClient  # noqa: F401

# Utilities
from .units import format_address, format_balance, parse_balance  # noqa: F401
from .utils.logging import setup_logging  # noqa: F401

__all__ = [
    "__version__",
    "SDKConfig",
    "MixionError",
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
    "DerivedPair",
    "generate_secret",
    "derive_nullifier",
    "derive_commitment",
    "derive_commitment_from_nullifier",
    "derive_pair",
    "verify_commitment",
    "ChainConfig",
    "ChainRegistry",
    "TokenConfig",
    "AsyncRpcClient",
    "PushChannel",
    "Session",
    "SessionManager",
    "SessionState",
    "BalanceSnapshot",
    "BalanceSync",
    "ClientStore",
    "TransactionRecord",
    "SettlementClient",
    "LockedFundRecord",
    "format_balance",
    "parse_balance",
    "format_address",
    "setup_logging",
]
