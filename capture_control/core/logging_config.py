"""Handlers for the ``capture_control`` logger tree.

Only the package logger is touched, so a host application keeps control of
the root logger. Calling :func:`configure_logging` again replaces the
handlers installed by the previous call and leaves any others alone.
"""

from __future__ import annotations

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional, Union

PACKAGE_LOGGER = "capture_control"
LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
# Media decoders log per-frame chatter at INFO.
QUIET_LOGGERS = ("PIL", "libav")

_OWNED = "_capture_control_handler"


def _coerce_level(level: Union[int, str]) -> int:
    if isinstance(level, int):
        return level
    value = logging.getLevelName(str(level).strip().upper())
    if not isinstance(value, int):
        raise ValueError(f"Unknown log level '{level}'")
    return value


def configure_logging(
    level: Union[int, str] = logging.INFO,
    *,
    console: bool = True,
    log_file: Optional[Union[str, Path]] = None,
    max_bytes: int = 512 * 1024,
    backup_count: int = 3,
) -> logging.Logger:
    """Attach console and rotating-file handlers to the package logger and return it."""

    numeric_level = _coerce_level(level)
    logger = logging.getLogger(PACKAGE_LOGGER)

    for handler in [h for h in logger.handlers if getattr(h, _OWNED, False)]:
        logger.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(LOG_FORMAT)
    handlers: list[logging.Handler] = []
    if console:
        handlers.append(logging.StreamHandler(sys.stdout))
    if log_file:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(RotatingFileHandler(path, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8"))

    for handler in handlers:
        setattr(handler, _OWNED, True)
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    logger.setLevel(numeric_level)
    # Records already written here must not be repeated by root handlers.
    logger.propagate = not handlers
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(numeric_level, logging.WARNING))
    return logger


__all__ = ["configure_logging", "LOG_FORMAT", "PACKAGE_LOGGER"]
