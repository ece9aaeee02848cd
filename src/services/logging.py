"""Logging configuration for the billing server.

Every logger writes to stdout and to a log file at the level named by LOG_LEVEL
(default INFO; unknown names fall back to INFO). Billing components log one
line per event as "component.event: key=value", e.g.

    [2024-07-06 00:00:01] src.services.enforcement_service - INFO - enforcement.overdue: tenant_id=1 invoice_id=7

so a failed sweep can be traced by grepping the event name and tenant id.
"""

import logging
import os
import sys
from pathlib import Path

DEFAULT_LOG_FILE = "logs/server.log"
LOG_FORMAT = "[%(asctime)s] %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Third-party loggers that are too chatty at INFO
NOISY_LOGGERS = ("httpx", "httpcore", "telegram")


def get_log_level() -> int:
    """Level named by LOG_LEVEL, or INFO."""
    level = logging.getLevelName(os.getenv("LOG_LEVEL", "INFO").upper())
    return level if isinstance(level, int) else logging.INFO


def setup_server_logging(log_file: str = DEFAULT_LOG_FILE) -> None:
    """Route the root logger to stdout and log_file, replacing existing handlers.

    HTTP client and bot library loggers never go below WARNING.
    """
    log_path = Path(log_file)
    log_path.parent.mkdir(parents=True, exist_ok=True)

    level = get_log_level()
    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(level)

    for handler in (logging.StreamHandler(sys.stdout), logging.FileHandler(log_path)):
        handler.setLevel(level)
        handler.setFormatter(formatter)
        root_logger.addHandler(handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))
