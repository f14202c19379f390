"""Centralized logging setup for the reconciliation core.

Every module logs through ``get_logger(__name__)``; the entry points call
``setup_logging`` once to attach a single stdout handler.
"""

import logging
import sys

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# pdfminer (used by pdfplumber) logs every content-stream warning at INFO/DEBUG.
_NOISY_LOGGERS = ("pdfminer", "PIL")


def setup_logging(level: str = "INFO") -> None:
    """Configure the root logger with a standard format.

    Does nothing if the root logger already has handlers, so repeated calls
    from the CLI and library callers are safe.

    Args:
        level: Logging level string (DEBUG, INFO, WARNING, ERROR, CRITICAL).
            Unknown names fall back to INFO.
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)
    root = logging.getLogger()

    if root.handlers:
        return

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
    root.addHandler(handler)
    root.setLevel(numeric_level)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(numeric_level, logging.WARNING))


def get_logger(name: str) -> logging.Logger:
    """Get a named logger instance.

    Args:
        name: Logger name, typically ``__name__`` of the calling module.

    Returns:
        Logger instance.
    """
    return logging.getLogger(name)
