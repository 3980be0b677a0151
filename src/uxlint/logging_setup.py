"""File-based logging for uxlint.

Every module logs through ``logging.getLogger(__name__)``. This module wires
the ``uxlint`` logger hierarchy to a daily-rotating file under
``<data_dir>/logs`` so that diagnostics never reach stdout, which is
reserved for command output such as ``uxlint auth token``.
"""

from __future__ import annotations

import logging
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path
from typing import Optional

LOG_FILENAME = "uxlint.log"
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
BACKUP_COUNT = 14

_handler: Optional[logging.Handler] = None


def configure_logging(level: str | int = logging.INFO, log_dir: Optional[Path] = None) -> Path:
    """Attach a rotating file handler to the ``uxlint`` logger.

    Calling this again replaces the previous handler, so the CLI callback
    can re-run it with ``--verbose`` without duplicating output.

    Args:
        level: Log level name or number. Unknown names fall back to INFO.
        log_dir: Target directory. Defaults to :func:`uxlint.config.get_log_dir`.

    Returns:
        Path to the active log file.
    """
    global _handler

    if log_dir is None:
        from uxlint.config import get_log_dir

        log_dir = get_log_dir()
    log_dir.mkdir(parents=True, exist_ok=True)
    log_path = log_dir / LOG_FILENAME

    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    root = logging.getLogger("uxlint")
    if _handler is not None:
        root.removeHandler(_handler)
        _handler.close()

    handler = TimedRotatingFileHandler(
        log_path,
        when="midnight",
        backupCount=BACKUP_COUNT,
        encoding="utf-8",
    )
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT))
    root.addHandler(handler)
    root.setLevel(level)
    # Keep records out of the root logger's console handlers.
    root.propagate = False
    _handler = handler
    return log_path


def reset_logging() -> None:
    """Detach and close the file handler installed by :func:`configure_logging`."""
    global _handler
    if _handler is not None:
        logger = logging.getLogger("uxlint")
        logger.removeHandler(_handler)
        _handler.close()
        logger.propagate = True
        _handler = None
