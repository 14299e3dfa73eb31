"""
Utilities for configuring consistent logging across autoworker processes.

This module centralizes the setup of Python's logging subsystem so that the
worker, its sources and the enforcement hooks all emit unbuffered logs to
stdout. The log level and format are configurable via environment variables:

- ``AUTOWORKER_LOG_LEVEL`` controls the root log level (default: ``INFO``).
- ``AUTOWORKER_LOG_FORMAT`` controls the message format.
"""
from __future__ import annotations

import logging
import os
import sys
from typing import Final

DEFAULT_FORMAT: Final[str] = "%(asctime)s %(levelname)s [%(name)s] %(message)s"
DEFAULT_DATEFMT: Final[str] = "%Y-%m-%d %H:%M:%S"
_CONFIGURED: bool = False


def _resolve_level(name: str | None) -> int:
    if not name:
        return logging.INFO
    normalized = name.strip().upper()
    level = getattr(logging, normalized, logging.INFO)
    return level if isinstance(level, int) else logging.INFO


def configure_logging(*, force: bool = False) -> None:
    """
    Configure the root logger to stream messages to stdout.

    Args:
        force: When True, existing handlers are cleared before configuring.
    """
    global _CONFIGURED
    if _CONFIGURED and not force:
        return

    root_logger = logging.getLogger()
    if force:
        for handler in list(root_logger.handlers):
            root_logger.removeHandler(handler)

    level = _resolve_level(os.environ.get("AUTOWORKER_LOG_LEVEL"))
    root_logger.setLevel(level)

    fmt = os.environ.get("AUTOWORKER_LOG_FORMAT") or DEFAULT_FORMAT
    handler = logging.StreamHandler(stream=sys.stdout)
    handler.setFormatter(logging.Formatter(fmt=fmt, datefmt=DEFAULT_DATEFMT))
    root_logger.addHandler(handler)

    # Redis client chatter is only useful when debugging the event stream.
    logging.getLogger("redis").setLevel(max(logging.WARNING, level))

    _CONFIGURED = True
