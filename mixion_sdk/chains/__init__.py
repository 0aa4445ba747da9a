"""
mixion_sdk.chains
-----------------

Static chain configuration (RPC endpoint, push endpoint, settlement contract,
token list) validated with Pydantic.
"""

from .registry import ChainConfig, ChainRegistry, TokenConfig  # noqa: F401

__all__ = ["ChainConfig", "ChainRegistry", "TokenConfig"]
