from .events import (  # noqa: F401
    AccountsChanged,
    ChainChanged,
    ProviderConnected,
    ProviderDisconnected,
    ProviderEvent,
    parse_event,
)
from .provider import QueueWalletProvider, StaticWalletProvider, WalletProvider  # noqa: F401

__all__ = [
    "AccountsChanged",
    "ChainChanged",
    "ProviderConnected",
    "ProviderDisconnected",
    "ProviderEvent",
    "parse_event",
    "WalletProvider",
    "QueueWalletProvider",
    "StaticWalletProvider",
]
