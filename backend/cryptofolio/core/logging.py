"""
Logging configuration shared by the API process and Celery workers.
"""

import logging
import sys
from typing import Optional

from cryptofolio.core.config import settings

# Libraries that log every request or statement at INFO
QUIET_LOGGERS = {
    "sqlalchemy": logging.WARNING,
    "aiosqlite": logging.WARNING,
    "httpx": logging.WARNING,
    "httpcore": logging.WARNING,
    "redis": logging.WARNING,
    "uvicorn": logging.INFO,
    "celery": logging.INFO,
}


def setup_logging(level: Optional[str] = None) -> None:
    """Configure the root logger once per process."""
    level_name = (level or settings.LOG_LEVEL).upper()

    logging.basicConfig(
        level=getattr(logging, level_name, logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        handlers=[logging.StreamHandler(sys.stdout)],
    )

    for name, quiet_level in QUIET_LOGGERS.items():
        logging.getLogger(name).setLevel(quiet_level)
