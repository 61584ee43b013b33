"""Structured logging utilities."""

from __future__ import annotations

import logging
import sys
from typing import Optional

from portly.utils.config import get_settings


LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
ROOT_LOGGER_NAME = "portly"

_LOGGER_INITIALIZED = False


def configure_logging(level: Optional[str] = None) -> None:
    """Attach one stdout handler to the ``portly`` logger tree, once per process.

    Allocation and gate events interleave in a single stream. Loggers outside
    the tree (uvicorn, fastapi) keep their own configuration.
    """

    global _LOGGER_INITIALIZED
    if _LOGGER_INITIALIZED:
        return

    resolved_level = (level or get_settings().log_level).upper()
    handler = logging.StreamHandler(stream=sys.stdout)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))

    root = logging.getLogger(ROOT_LOGGER_NAME)
    root.setLevel(resolved_level)
    root.addHandler(handler)
    root.propagate = False
    _LOGGER_INITIALIZED = True


def get_logger(name: str) -> logging.Logger:
    """Return a logger inside the ``portly`` tree for the requested module."""
    configure_logging()
    if name != ROOT_LOGGER_NAME and not name.startswith(f"{ROOT_LOGGER_NAME}."):
        name = f"{ROOT_LOGGER_NAME}.{name}"
    return logging.getLogger(name)


def log_transition(
    logger: logging.Logger,
    previous: str,
    current: str,
    **context: object,
) -> None:
    """Emit one INFO line for a state machine transition.

    Context keys are rendered as ``key=value`` pairs in sorted order.
    """
    if previous == current and not context:
        return
    details = "".join(
        f" | {key}={value}" for key, value in sorted(context.items()) if value is not None
    )
    logger.info("State transition | %s -> %s%s", previous, current, details)
