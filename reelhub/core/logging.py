"""
Unified logging configuration using Loguru.

Standard library loggers (every reelhub module, uvicorn, httpx) are intercepted
and routed through Loguru. Probe and provider chatter is tuned per logger with
``Settings.log_levels``; the file sink rotates, retains and compresses.
"""

import logging
import sys
from pathlib import Path

from loguru import logger

from reelhub.config import Settings, settings as default_settings

CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>"
)
FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} - {message}"
LOG_FILE_NAME = "reelhub.log"


class InterceptHandler(logging.Handler):
    """
    Forwards standard library records to Loguru, keeping the caller's location.
    See https://loguru.readthedocs.io/en/stable/overview.html#entirely-compatible-with-standard-logging
    """

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        frame, depth = logging.currentframe(), 2
        while frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def apply_log_levels(levels: dict[str, str]) -> None:
    """Set per-logger thresholds, e.g. ``{"reelhub.services.probe": "WARNING"}``."""
    for name, level in levels.items():
        logging.getLogger(name).setLevel(level.upper())


def setup_logging(config: Settings | None = None) -> Path | None:
    """Configure logging for the application.

    Args:
        config: Server settings; the module-level settings when omitted

    Returns:
        Path of the log file, or None when file logging is disabled
    """
    config = config or default_settings
    root_level = logging.DEBUG if config.debug else logging.INFO

    logging.root.handlers = [InterceptHandler()]
    logging.root.setLevel(root_level)

    # uvicorn and friends install their own handlers; send everything to root instead
    for name in list(logging.root.manager.loggerDict.keys()):
        logging.getLogger(name).handlers = []
        logging.getLogger(name).propagate = True

    apply_log_levels(config.log_levels)

    logger.remove()
    logger.add(sys.stderr, level=logging.getLevelName(root_level), format=CONSOLE_FORMAT)

    log_file = None
    if config.log_to_file:
        log_file = Path(config.log_dir) / LOG_FILE_NAME
        log_file.parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            str(log_file),
            rotation="10 MB",
            retention="1 week",
            compression="zip",
            level="DEBUG",
            format=FILE_FORMAT,
            enqueue=True,
            backtrace=True,
            diagnose=True,
        )

    logger.info(f"Logging initialized via Loguru (file: {log_file or 'disabled'})")
    return log_file
