"""
Version helpers for the Mixion Python SDK.
We keep a static __version__ (PEP 440) and expose a helper that enriches it
with `git describe` metadata when available (useful in dev builds).
"""

from __future__ import annotations

import os
import subprocess
from dataclasses import dataclass
from typing import Optional

# Bump this when publishing
__version__ = "0.3.0"


@dataclass(frozen=True)
class VersionInfo:
    base: str
    git: Optional[str] = None

    def __str__(self) -> str:  # pragma: no cover - trivial
        return self.base if not self.git else f"{self.base} ({self.git})"


def _git_describe() -> Optional[str]:
    root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
    if not os.path.isdir(os.path.join(root, ".git")):
        return None
    try:
        out = subprocess.run(
            ["git", "describe", "--tags", "--dirty", "--always"],
            cwd=root,
            check=True,
            stdout=subprocess.PIPE,
            stderr=subprocess.DEVNULL,
            text=True,
        )
    except (OSError, subprocess.SubprocessError):
        return None
    return out.stdout.strip() or None


def version() -> str:
    """Human-friendly string, e.g. '0.3.0 (v0.3.0-3-gabc1234)'."""
    return str(VersionInfo(base=__version__, git=_git_describe()))


__all__ = ["__version__", "VersionInfo", "version"]
