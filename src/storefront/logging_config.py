"""
Centralized logging configuration for storefront.

Every module logs through `logging.getLogger(__name__)`; this module only
decides where the records go and how they look. Order lifecycle messages are
prefixed with `[Order: <number>]` so one order can be followed through the log.
"""

import logging
import sys
from pathlib import Path
from typing import TextIO

LOG_FORMAT = "%(asctime)s - %(levelname)s - [PID:%(process)d] - %(name)s - %(message)s"

# Third-party loggers that are too chatty at INFO
_QUIET_LOGGERS = ("sqlalchemy.engine", "httpx", "httpcore", "uvicorn.access")


def setup_logging(
    level: str = "INFO",
    log_file: Path | None = None,
    stream: TextIO | None = None,
) -> None:
    """
    Configure the root logger once for the process.

    Args:
        level: Log level name (e.g. "INFO", "DEBUG").
        log_file: Optional file that receives the same records.
        stream: Console stream; stdout unless given.
    """
    handlers: list[logging.Handler] = [logging.StreamHandler(stream or sys.stdout)]
    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file))

    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
        handlers=handlers,
        force=True,
    )

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def order_prefix(order_number: str | None) -> str:
    """Log prefix for a single order."""
    return f"[Order: {order_number or 'new'}]"
