"""
Logging setup for shellrun.

Library modules only ever call ``get_logger(__name__)``; handlers are attached
by applications (or the ``python -m shellrun`` entry point) via ``set_logger``.
"""

import logging
import sys
from typing import Optional, TextIO

ROOT_LOGGER_NAME = "shellrun"

# ANSI color codes for console output
COLORS = {
    "DEBUG": "\033[36m",  # Cyan
    "INFO": "\033[32m",  # Green
    "WARNING": "\033[33m",  # Yellow
    "ERROR": "\033[31m",  # Red
    "CRITICAL": "\033[35m",  # Magenta
    "RESET": "\033[0m",
}


class ColoredFormatter(logging.Formatter):
    """Formatter that colors the level name."""

    def format(self, record: logging.LogRecord) -> str:
        orig_levelname = record.levelname
        if record.levelname in COLORS:
            record.levelname = (
                f"{COLORS[record.levelname]}{record.levelname}{COLORS['RESET']}"
            )
        try:
            return super().format(record)
        finally:
            record.levelname = orig_levelname


def set_logger(
    verbose: bool = False,
    debug: bool = False,
    stream: Optional[TextIO] = None,
    color: Optional[bool] = None,
) -> logging.Logger:
    """
    Configure the ``shellrun`` logger with a single console handler.

    Args:
        verbose: Log at INFO instead of WARNING.
        debug: Log at DEBUG (takes precedence over verbose).
        stream: Destination stream. Default is stderr, so trace lines never
                mix with captured or inherited stdout.
        color: Force colored level names on or off. Default: only on a tty.

    Returns:
        The configured ``shellrun`` logger.
    """
    logger = logging.getLogger(ROOT_LOGGER_NAME)
    logger.setLevel(
        logging.DEBUG if debug else logging.INFO if verbose else logging.WARNING
    )

    stream = stream if stream is not None else sys.stderr
    if color is None:
        color = hasattr(stream, "isatty") and stream.isatty()
    fmt = "%(levelname)s - %(name)s - %(message)s"
    formatter = ColoredFormatter(fmt) if color else logging.Formatter(fmt)

    # Replace our own handlers so repeated calls do not duplicate output
    for handler in list(logger.handlers):
        if getattr(handler, "_shellrun", False):
            logger.removeHandler(handler)

    handler = logging.StreamHandler(stream)
    handler.setFormatter(formatter)
    handler._shellrun = True
    logger.addHandler(handler)
    return logger


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance."""
    return logging.getLogger(name)
