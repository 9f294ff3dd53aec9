"""
Logging configuration
"""

import logging
import sys
from typing import Optional
from core.config import settings

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Library loggers that flood INFO with per-query / per-request lines
QUIET_LOGGERS = ("sqlalchemy.engine", "sqlalchemy.pool", "apscheduler", "httpx", "httpcore")

_HANDLER_NAME = "aero-stdout"


def setup_logging(level: Optional[str] = None):
    """
    Configure the root logger to write to stdout.

    Safe to call more than once (the API module and the scripts both call it):
    the stdout handler is installed a single time and only the level changes.
    """
    level_name = (level or settings.LOG_LEVEL).upper()
    log_level = getattr(logging, level_name, logging.INFO)

    root = logging.getLogger()
    root.setLevel(log_level)

    if not any(h.get_name() == _HANDLER_NAME for h in root.handlers):
        handler = logging.StreamHandler(sys.stdout)
        handler.set_name(_HANDLER_NAME)
        handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
        root.addHandler(handler)

    quiet_level = logging.INFO if log_level <= logging.DEBUG and settings.ENVIRONMENT == "development" else logging.WARNING
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(quiet_level)

    logging.getLogger(__name__).info(f"Logging configured at {level_name} level ({settings.ENVIRONMENT})")
