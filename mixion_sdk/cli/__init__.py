"""
mixion_sdk.cli
--------------

Typer entrypoint for the `mixion` console script.
"""

from .main import app, main, run  # noqa: F401

__all__ = ["app", "main", "run"]
