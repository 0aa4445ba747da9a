from __future__ import annotations

import logging
from typing import Union

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def setup_logging(level: Union[str, int, None] = None, *, force: bool = False) -> logging.Logger:
    """
    Basic logging if the caller hasn't configured it.

    Returns the `mixion` root logger so scripts can tweak it further.
    """
    if isinstance(level, str):
        level = getattr(logging, level.upper(), logging.INFO)
    lvl: int = level if isinstance(level, int) else logging.INFO
    if force or not logging.getLogger().handlers:
        logging.basicConfig(level=lvl, format=LOG_FORMAT, force=force)
    logger = logging.getLogger("mixion")
    logger.setLevel(lvl)
    return logger


__all__ = ["LOG_FORMAT", "setup_logging"]
