"""Logging setup for cytopipe.

Library modules only call :func:`get_logger`; handlers are installed by the
CLI through :func:`configure_logging`.
"""

from __future__ import annotations

import logging
import sys
from typing import TextIO

ROOT_LOGGER_NAME = "cytopipe"
DEFAULT_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"

_VERBOSITY_LEVELS = {
    0: logging.WARNING,
    1: logging.INFO,
    2: logging.DEBUG,
}


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def verbosity_to_level(verbose: int) -> int:
    if verbose <= 0:
        return logging.WARNING
    return _VERBOSITY_LEVELS.get(verbose, logging.DEBUG)


def configure_logging(verbose: int = 0, stream: TextIO | None = None) -> logging.Logger:
    """Install a single stream handler on the package logger.

    Repeated calls replace the previously installed handler, so the CLI can be
    invoked several times in one process (tests) without duplicating output.
    """
    logger = logging.getLogger(ROOT_LOGGER_NAME)
    for handler in list(logger.handlers):
        if getattr(handler, "_cytopipe_handler", False):
            logger.removeHandler(handler)
    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(logging.Formatter(DEFAULT_FORMAT))
    handler._cytopipe_handler = True  # type: ignore[attr-defined]
    logger.addHandler(handler)
    logger.setLevel(verbosity_to_level(int(verbose)))
    return logger
