"""Logger module for rampload

Usage:
    from rampload.logger import Logger, ConsoleLogger, session_logger

    # Use the shared console logger
    session_logger.info("run.start", event="run.start", stages=3)

    # Or implement your own
    class MyCustomLogger(Logger):
        def info(self, message: str, **kwargs):
            # Your custom implementation
            pass
"""

import logging
import os

from .base import Logger
from .console_logger import ConsoleLogger, parse_level

# Shared logger instance for modules that just need basic console logging
session_logger: Logger = ConsoleLogger(
    level=parse_level(os.environ.get("RAMPLOAD_LOG_LEVEL", "info"), default=logging.INFO)
)

__all__ = [
    "Logger",
    "ConsoleLogger",
    "parse_level",
    "session_logger",
]
