# app/core/logging_config.py
"""
Process-wide logging setup, called once from the app lifespan and the CLI.

Library chatter (database drivers, HTTP access log) is held at WARNING so that
the notification pipeline's own lifecycle messages stay readable.
"""

import logging
import os
from typing import Optional

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

NOISY_LOGGERS = (
    "httpx",
    "httpcore",
    "uvicorn.access",
    "sqlalchemy",
    "sqlalchemy.engine",
    "asyncpg",
    "aiosqlite",
)


def configure_logging(level: Optional[str] = None) -> None:
    """
    Configure the root logger and quiet third-party loggers.

    ``level`` falls back to the LOG_LEVEL environment variable, then INFO.
    """
    level_name = (level or os.environ.get("LOG_LEVEL", "INFO")).upper()
    app_level = getattr(logging, level_name, logging.INFO)

    logging.basicConfig(level=app_level, format=LOG_FORMAT, handlers=[logging.StreamHandler()])

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logging.getLogger("app").setLevel(app_level)

    logging.getLogger(__name__).info(f"Logging configured at level: {level_name}")
