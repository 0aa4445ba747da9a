"""
SDK configuration: chain registry location, local state path, RPC retry and
timeouts, balance-refresh pacing, logging.

- Loads sane defaults and supports overrides via environment variables (MIXION_*).
- No dotenv dependency; use your process manager / shell to inject env.
"""

from __future__ import annotations

import os
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

from .utils.debounce import DEBOUNCE_DELAY, MIN_INTERVAL
from .version import __version__

_DEFAULT_STORAGE = "~/.mixion/state.json"


def _env(name: str, default: Optional[str] = None) -> Optional[str]:
    v = os.getenv(name)
    return v if v is not None and v != "" else default


def _env_float(name: str, default: float) -> float:
    v = _env(name)
    if v is None:
        return default
    try:
        return float(v.strip())
    except ValueError as e:
        raise ValueError(f"{name} must be a number, got {v!r}") from e


def _env_int(name: str, default: int) -> int:
    v = _env(name)
    if v is None:
        return default
    try:
        return int(v.strip())
    except ValueError as e:
        raise ValueError(f"{name} must be an integer, got {v!r}") from e


def _ensure_scheme(url: Optional[str], allowed: tuple[str, ...]) -> Optional[str]:
    if not url:
        return url
    lower = url.lower()
    if not any(lower.startswith(f"{sch}://") for sch in allowed):
        raise ValueError(f"URL must start with {allowed}, got: {url!r}")
    return url


@dataclass(slots=True)
class SDKConfig:
    # Static chain list (None -> bundled chains.json)
    chains_file: Optional[str] = None
    # Durable client-side state (session markers, user tokens, history)
    storage_path: str = _DEFAULT_STORAGE
    # Optional RPC override, handy for local nodes
    rpc_url: Optional[str] = None
    # Chain the override serves (None -> every chain)
    rpc_chain_id: Optional[int] = None
    # HTTP behaviour
    request_timeout: float = 10.0
    max_retries: int = 3
    backoff_factor: float = 0.25
    receipt_timeout: float = 120.0
    # Balance refresh pacing (seconds)
    debounce_delay: float = DEBOUNCE_DELAY
    min_interval: float = MIN_INTERVAL
    # Misc
    log_level: str = "INFO"
    user_agent: str = field(default_factory=lambda: f"mixion-sdk-py/{__version__}")

    def __post_init__(self) -> None:
        _ensure_scheme(self.rpc_url, ("http", "https"))
        if self.debounce_delay < 0 or self.min_interval < 0:
            raise ValueError("debounce_delay and min_interval must be non-negative")
        if self.max_retries < 0:
            raise ValueError("max_retries must be non-negative")

    @classmethod
    def from_env(cls, prefix: str = "MIXION_") -> "SDKConfig":
        """
        Create config from environment variables:

        MIXION_CHAINS_FILE      (path to chains JSON)
        MIXION_STORAGE_PATH     (path to state JSON, default ~/.mixion/state.json)
        MIXION_RPC_URL          (http/https) optional override
        MIXION_RPC_CHAIN_ID     (int) restrict the override to one chain
        MIXION_TIMEOUT          (float seconds, HTTP)
        MIXION_MAX_RETRIES      (int)
        MIXION_BACKOFF          (float)
        MIXION_RECEIPT_TIMEOUT  (float seconds)
        MIXION_DEBOUNCE_DELAY   (float seconds, default 1.0)
        MIXION_MIN_INTERVAL     (float seconds, default 2.0)
        MIXION_LOG_LEVEL        (DEBUG/INFO/WARNING/...)
        MIXION_USER_AGENT       (str)
        """
        return cls(
            chains_file=_env(f"{prefix}CHAINS_FILE"),
            storage_path=_env(f"{prefix}STORAGE_PATH", _DEFAULT_STORAGE) or _DEFAULT_STORAGE,
            rpc_url=_env(f"{prefix}RPC_URL"),
            rpc_chain_id=_env_int(f"{prefix}RPC_CHAIN_ID", 0) or None,
            request_timeout=_env_float(f"{prefix}TIMEOUT", 10.0),
            max_retries=_env_int(f"{prefix}MAX_RETRIES", 3),
            backoff_factor=_env_float(f"{prefix}BACKOFF", 0.25),
            receipt_timeout=_env_float(f"{prefix}RECEIPT_TIMEOUT", 120.0),
            debounce_delay=_env_float(f"{prefix}DEBOUNCE_DELAY", DEBOUNCE_DELAY),
            min_interval=_env_float(f"{prefix}MIN_INTERVAL", MIN_INTERVAL),
            log_level=(_env(f"{prefix}LOG_LEVEL", "INFO") or "INFO").upper(),
            user_agent=_env(f"{prefix}USER_AGENT", f"mixion-sdk-py/{__version__}")
            or f"mixion-sdk-py/{__version__}",
        )

    @classmethod
    def with_overrides(cls, base: Optional["SDKConfig"] = None, **overrides: Any) -> "SDKConfig":
        """
        Build from an existing config plus keyword overrides.
        Unknown keys and None values are ignored.
        """
        base = base or cls.from_env()
        data = base.to_dict()
        data.update({k: v for k, v in overrides.items() if k in data and v is not None})
        return cls(**data)

    def rpc_url_for(self, chain_id: Optional[int], default: str) -> str:
        """The RPC URL to use for `chain_id`: the override if it applies, else `default`."""
        if not self.rpc_url:
            return default
        if self.rpc_chain_id is not None and chain_id is not None and chain_id != self.rpc_chain_id:
            return default
        return self.rpc_url

    @property
    def storage_file(self) -> Path:
        return Path(self.storage_path).expanduser()

    def http_headers(self) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Accept": "application/json",
            "User-Agent": self.user_agent,
        }

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


__all__ = ["SDKConfig"]
