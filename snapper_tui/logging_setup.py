from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional


LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"
LOG_MAX_BYTES = 1024 * 1024
LOG_BACKUP_COUNT = 3


def configure_logging(log_file: Optional[Path], *, level: str = "INFO") -> Optional[logging.Handler]:
    """
    Send package logs to a rotating file.

    curses owns the terminal, so there is never a console handler. Without a
    log file, records are discarded. Returns the installed handler (if any).
    """
    pkg_logger = logging.getLogger("snapper_tui")
    pkg_logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    # Keep records away from the root logger's stderr handler.
    pkg_logger.propagate = False

    for h in list(pkg_logger.handlers):
        pkg_logger.removeHandler(h)
        h.close()

    if log_file is None:
        pkg_logger.addHandler(logging.NullHandler())
        return None

    try:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handler: logging.Handler = RotatingFileHandler(
            log_file,
            maxBytes=LOG_MAX_BYTES,
            backupCount=LOG_BACKUP_COUNT,
            encoding="utf-8",
        )
    except OSError:
        # Unwritable log location: run without logging rather than fail startup.
        pkg_logger.addHandler(logging.NullHandler())
        return None

    handler.setFormatter(logging.Formatter(fmt=LOG_FORMAT, datefmt=LOG_DATEFMT))
    pkg_logger.addHandler(handler)
    return handler
