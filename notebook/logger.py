"""Application-level logging utilities."""

from __future__ import annotations

import logging
import os
import sys
from typing import List, Optional

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def resolve_level(level: Optional[int] = None) -> int:
    """Explicit level, else NOTEBOOK_LOG_LEVEL by name, else DEBUG_NOTEBOOK, else INFO."""
    if level is not None:
        return level
    named = os.getenv("NOTEBOOK_LOG_LEVEL", "").strip().upper()
    if named and isinstance(logging.getLevelName(named), int):
        return logging.getLevelName(named)
    if os.getenv("DEBUG_NOTEBOOK", "false").lower() == "true":
        return logging.DEBUG
    return logging.INFO


def _handlers(level: int) -> List[logging.Handler]:
    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    log_file = os.getenv("NOTEBOOK_LOG_FILE")
    if log_file:
        handlers.append(logging.FileHandler(log_file, encoding="utf-8"))
    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)
    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)
    return handlers


def setup_logger(name: str = "notebook", level: Optional[int] = None) -> logging.Logger:
    """
    Configure one logger namespace (``notebook`` for the core, ``api`` for the HTTP layer).

    Module loggers below the namespace (``logging.getLogger(__name__)``)
    propagate into it. Calling again replaces the handlers, so Streamlit
    reruns and test reconfiguration never duplicate output.
    """
    resolved = resolve_level(level)
    logger = logging.getLogger(name)

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    for handler in _handlers(resolved):
        logger.addHandler(handler)

    logger.setLevel(resolved)
    logger.propagate = False
    return logger


LOGGER: logging.Logger = setup_logger()

__all__ = ["LOGGER", "setup_logger", "resolve_level", "LOG_FORMAT"]
