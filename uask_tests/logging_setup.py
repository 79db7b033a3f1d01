"""Logging configuration for the test harness."""

import logging
import sys
from logging.handlers import RotatingFileHandler
from typing import Optional

from uask_tests import console
from uask_tests.config import Settings, get_settings

LOGGER_NAME = "uask_tests"
FILE_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Third-party loggers that drown out the harness at INFO
NOISY_LOGGERS = ("LiteLLM", "litellm", "httpx", "httpcore", "openai", "urllib3")

_initialized = False


class ColorFormatter(logging.Formatter):
    """Console formatter that colors the level name when stderr is a TTY."""

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        codes = console.LEVEL_COLORS.get(record.levelname, ())
        return console.style(message, *codes, fd=2)


def setup_logging(settings: Optional[Settings] = None, verbose: bool = False) -> logging.Logger:
    """Configure the ``uask_tests`` logger once per process.

    Args:
        settings: Settings with log level and logs directory (defaults to global settings)
        verbose: If True, override the configured level with DEBUG

    Returns:
        The configured package logger
    """
    global _initialized
    logger = logging.getLogger(LOGGER_NAME)
    if _initialized:
        return logger
    _initialized = True

    settings = settings or get_settings()
    level_name = "DEBUG" if verbose else settings.log_level.upper()
    level = getattr(logging, level_name, logging.INFO)

    logger.setLevel(level)
    logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(level)
    console_handler.setFormatter(ColorFormatter(FILE_FORMAT, datefmt=DATE_FORMAT))
    logger.addHandler(console_handler)

    logs_path = settings.logs_path
    try:
        logs_path.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        logger.warning("Cannot create logs directory %s: %s", logs_path, e)
    else:
        file_formatter = logging.Formatter(FILE_FORMAT, datefmt=DATE_FORMAT)

        all_handler = RotatingFileHandler(
            logs_path / "test-execution.log",
            maxBytes=5 * 1024 * 1024,
            backupCount=5,
            encoding="utf-8",
        )
        all_handler.setLevel(level)
        all_handler.setFormatter(file_formatter)
        logger.addHandler(all_handler)

        error_handler = RotatingFileHandler(
            logs_path / "errors.log",
            maxBytes=5 * 1024 * 1024,
            backupCount=5,
            encoding="utf-8",
        )
        error_handler.setLevel(logging.ERROR)
        error_handler.setFormatter(file_formatter)
        logger.addHandler(error_handler)

    for noisy_logger in NOISY_LOGGERS:
        logging.getLogger(noisy_logger).setLevel(logging.WARNING)

    logger.debug("Logging initialized (level=%s, dir=%s)", level_name, logs_path)
    return logger


def reset_logging() -> None:
    """Drop handlers so the next setup_logging call configures again."""
    global _initialized
    _initialized = False
    logger = logging.getLogger(LOGGER_NAME)
    for handler in list(logger.handlers):
        handler.close()
        logger.removeHandler(handler)
