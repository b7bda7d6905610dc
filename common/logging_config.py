"""
Logging Configuration Module

Every component logs below the ``context_core`` logger, so one call to
``setup_logging`` configures retrieval, memory and conversation logs
together. Components take an optional ``logger`` argument and fall back to
``get_logger(__name__)``.

Usage:
    from common.logging_config import setup_logging

    setup_logging(logging.DEBUG, log_file=Path("logs/context.log"))
"""

import logging
import sys
from pathlib import Path
from typing import Optional, Sequence

ROOT_LOGGER_NAME = "context_core"

DEFAULT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Client libraries that log every HTTP request at INFO
NOISY_LIBRARIES = ("httpx", "httpcore", "openai", "chromadb")


def setup_logging(
    level: int = logging.INFO,
    log_file: Optional[Path] = None,
    format_string: Optional[str] = None,
    quiet_libraries: Sequence[str] = NOISY_LIBRARIES,
) -> logging.Logger:
    """
    Configure the ``context_core`` logger.

    Args:
        level: Logging level (default: INFO)
        log_file: Optional path to log file; parent directories are created
        format_string: Optional custom format string
        quiet_libraries: Third-party loggers raised to WARNING

    Returns:
        The configured ``context_core`` logger
    """
    formatter = logging.Formatter(format_string or DEFAULT_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")

    logger = logging.getLogger(ROOT_LOGGER_NAME)
    logger.setLevel(level)

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if log_file:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    for name in quiet_libraries:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

    return logger


def get_logger(name: str) -> logging.Logger:
    """
    Logger for a component, below ``context_core``.

    ``get_logger("knowledge.service")`` returns ``context_core.knowledge.service``;
    names already under the root are returned unchanged.
    """
    if name == ROOT_LOGGER_NAME or name.startswith(ROOT_LOGGER_NAME + "."):
        return logging.getLogger(name)
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")
