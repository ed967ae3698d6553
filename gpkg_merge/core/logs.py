"""Logging bootstrap shared by the CLI and the HTTP app."""

from __future__ import annotations

import logging
import sys
from logging.handlers import RotatingFileHandler
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    import pathlib

LOG_FORMAT = "[%(asctime)s][%(levelname)s] %(message)s"


def init_logging(
    level: str = "INFO",
    log_file: pathlib.Path | None = None,
) -> logging.Logger:
    """Configure the root logger with a stdout handler and optional log file.

    Calling it again replaces the handlers installed by a previous call, so
    repeated invocations in one process do not duplicate output.

    Args:
        level: Logging level name for the console handler.
        log_file: When given, a rotating file handler (5 MB, 3 backups)
            receives DEBUG and above.

    Returns:
        The configured root logger.
    """
    logger = logging.getLogger()
    for handler in list(logger.handlers):
        if getattr(handler, "_gpkg_merge", False):
            logger.removeHandler(handler)
            handler.close()

    numeric_level = logging.getLevelName(level.upper())
    if not isinstance(numeric_level, int):
        numeric_level = logging.INFO
    formatter = logging.Formatter(LOG_FORMAT)

    ch = logging.StreamHandler(sys.stdout)
    ch.setLevel(numeric_level)
    ch.setFormatter(formatter)
    ch._gpkg_merge = True  # type: ignore[attr-defined]
    logger.addHandler(ch)

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        fh = RotatingFileHandler(log_file, maxBytes=5_000_000, backupCount=3)
        fh.setLevel(logging.DEBUG)
        fh.setFormatter(formatter)
        fh._gpkg_merge = True  # type: ignore[attr-defined]
        logger.addHandler(fh)
        logger.setLevel(logging.DEBUG)
    else:
        logger.setLevel(numeric_level)

    return logger
