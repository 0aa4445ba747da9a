"""
mixion_sdk.rpc
--------------

Lightweight RPC helpers.

This package exposes:
- AsyncRpcClient: HTTP JSON-RPC client (see .http)
- PushChannel:    WebSocket newHeads subscription (see .ws)

Import style:

    from mixion_sdk.rpc import AsyncRpcClient, PushChannel
    rpc = AsyncRpcClient(url="http://localhost:8545")
    push = PushChannel(url="ws://localhost:8546")
"""

from .http import AsyncRpcClient  # noqa: F401
from .ws import PushChannel  # noqa: F401

__all__ = ["AsyncRpcClient", "PushChannel"]
