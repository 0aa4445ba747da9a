"""
Durable client-side state.

A single JSON document (default `~/.mixion/state.json`) holds:

- session markers: "was connected" flag and last chain id, read at startup
  for the silent reconnect and written/cleared on connect/disconnect
- user-added tokens, per chain
- local transaction history (newest first, capped)

Writes go through a same-directory temp file + fsync + atomic replace, so a
crash never leaves a half-written document. A missing or unreadable document
reads as empty. Pass `path=None` for a purely in-memory store (tests, CLI
one-shots).
"""

from __future__ import annotations

import contextlib
import json
import logging
import os
import tempfile
import threading
import time
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional, Union

from .chains.registry import TokenConfig
from .errors import InvalidInput

log = logging.getLogger("mixion.storage")

KEY_WAS_CONNECTED = "mixion-wallet-connected"
KEY_LAST_CHAIN_ID = "mixion-chain-id"
KEY_CUSTOM_TOKENS = "mixion-custom-tokens"
KEY_TRANSACTIONS = "mixion-transactions"

HISTORY_LIMIT = 100


@dataclass(frozen=True)
class TransactionRecord:
    tx_hash: str
    type: Literal["lock", "unlock"]
    amount: str
    currency: str
    chain_id: int
    commitment: Optional[str] = None
    timestamp: float = field(default_factory=time.time)

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "TransactionRecord":
        return cls(
            tx_hash=str(d["tx_hash"]),
            type=d["type"],
            amount=str(d["amount"]),
            currency=str(d["currency"]),
            chain_id=int(d["chain_id"]),
            commitment=d.get("commitment"),
            timestamp=float(d.get("timestamp", 0.0)),
        )


def atomic_write(path: Path, data: bytes, *, mode: int = 0o600) -> None:
    """Atomically write `data` to `path` with a temp file + replace."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmpname = tempfile.mkstemp(prefix=".tmp.", dir=str(path.parent))
    tmp = Path(tmpname)
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        with contextlib.suppress(OSError):
            os.chmod(tmp, mode)
        os.replace(tmp, path)
    finally:
        if tmp.exists():
            with contextlib.suppress(OSError):
                tmp.unlink()


class ClientStore:
    def __init__(self, path: Union[str, os.PathLike[str], None] = None) -> None:
        self._path = Path(path).expanduser() if path is not None else None
        self._lock = threading.Lock()
        self._mem: Dict[str, Any] = {}

    @property
    def path(self) -> Optional[Path]:
        return self._path

    # --- raw document ----------------------------------------------------

    def _load(self) -> Dict[str, Any]:
        if self._path is None:
            return json.loads(json.dumps(self._mem))
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return {}
        except (OSError, ValueError):
            log.warning("state file %s unreadable; starting empty", self._path, exc_info=True)
            return {}
        return data if isinstance(data, dict) else {}

    def _save(self, doc: Dict[str, Any]) -> None:
        if self._path is None:
            self._mem = json.loads(json.dumps(doc))
            return
        atomic_write(self._path, json.dumps(doc, indent=2, sort_keys=True).encode("utf-8"))

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            return self._load().get(key, default)

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            doc = self._load()
            doc[key] = value
            self._save(doc)

    def delete(self, *keys: str) -> None:
        with self._lock:
            doc = self._load()
            if any(k in doc for k in keys):
                for k in keys:
                    doc.pop(k, None)
                self._save(doc)

    # --- session markers -------------------------------------------------

    @property
    def was_connected(self) -> bool:
        return bool(self.get(KEY_WAS_CONNECTED, False))

    @property
    def last_chain_id(self) -> Optional[int]:
        v = self.get(KEY_LAST_CHAIN_ID)
        return int(v) if v is not None else None

    def mark_connected(self, chain_id: Optional[int] = None) -> None:
        with self._lock:
            doc = self._load()
            doc[KEY_WAS_CONNECTED] = True
            if chain_id is not None:
                doc[KEY_LAST_CHAIN_ID] = int(chain_id)
            self._save(doc)

    def clear_session_markers(self) -> None:
        self.delete(KEY_WAS_CONNECTED, KEY_LAST_CHAIN_ID)

    # --- user-added tokens -----------------------------------------------

    def get_custom_tokens(self, chain_id: int) -> List[TokenConfig]:
        raw = (self.get(KEY_CUSTOM_TOKENS) or {}).get(str(chain_id), [])
        out: List[TokenConfig] = []
        for item in raw:
            try:
                out.append(TokenConfig.model_validate(item))
            except ValueError:
                log.warning("dropping malformed custom token on chain %s: %r", chain_id, item)
        return out

    def add_custom_token(self, chain_id: int, token: TokenConfig) -> None:
        if token.is_native:
            raise InvalidInput("The native asset cannot be added as a token")
        with self._lock:
            doc = self._load()
            all_tokens: Dict[str, List[Dict[str, Any]]] = doc.get(KEY_CUSTOM_TOKENS) or {}
            existing = all_tokens.get(str(chain_id), [])
            if any(str(t.get("address", "")).lower() == token.key for t in existing):
                raise InvalidInput("Token already added")
            existing.append(token.model_dump(by_alias=True, exclude_none=True))
            all_tokens[str(chain_id)] = existing
            doc[KEY_CUSTOM_TOKENS] = all_tokens
            self._save(doc)

    def remove_custom_token(self, chain_id: int, address: str) -> bool:
        with self._lock:
            doc = self._load()
            all_tokens: Dict[str, List[Dict[str, Any]]] = doc.get(KEY_CUSTOM_TOKENS) or {}
            existing = all_tokens.get(str(chain_id), [])
            kept = [t for t in existing if str(t.get("address", "")).lower() != address.lower()]
            if len(kept) == len(existing):
                return False
            all_tokens[str(chain_id)] = kept
            doc[KEY_CUSTOM_TOKENS] = all_tokens
            self._save(doc)
            return True

    # --- transaction history ---------------------------------------------

    def save_transaction(self, record: TransactionRecord) -> None:
        with self._lock:
            doc = self._load()
            history = [asdict(record)] + list(doc.get(KEY_TRANSACTIONS) or [])
            doc[KEY_TRANSACTIONS] = history[:HISTORY_LIMIT]
            self._save(doc)

    def get_transaction_history(self) -> List[TransactionRecord]:
        out: List[TransactionRecord] = []
        for item in self.get(KEY_TRANSACTIONS) or []:
            try:
                out.append(TransactionRecord.from_dict(item))
            except (KeyError, TypeError, ValueError):
                log.warning("dropping malformed history entry: %r", item)
        return out

    def clear_transaction_history(self) -> None:
        self.delete(KEY_TRANSACTIONS)


__all__ = [
    "ClientStore",
    "TransactionRecord",
    "atomic_write",
    "HISTORY_LIMIT",
]
