"""
Centralized logging configuration for EpiView.

Usage:
    from epiview.logging_config import get_logger

    logger = get_logger(__name__)
    logger.info("Merged %d count rows", n)
"""

import logging
import sys

DEFAULT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Cached loggers
_loggers: dict[str, logging.Logger] = {}


def get_logger(name: str, level: int = logging.INFO) -> logging.Logger:
    """Get or create a logger with consistent configuration.

    Args:
        name: Logger name (typically __name__)
        level: Logging level (default: INFO)

    Returns:
        Configured logger instance
    """
    if name in _loggers:
        return _loggers[name]

    logger = logging.getLogger(name)
    logger.setLevel(level)

    # Prevent duplicate handlers
    if logger.handlers:
        _loggers[name] = logger
        return logger

    formatter = logging.Formatter(DEFAULT_FORMAT)

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    _loggers[name] = logger
    return logger


def set_level(level: int) -> None:
    """Change the level of every EpiView logger created so far."""
    for logger in _loggers.values():
        logger.setLevel(level)
        for handler in logger.handlers:
            handler.setLevel(level)


def silence_library_loggers() -> None:
    """Reduce verbosity of third-party library loggers."""
    for logger_name in ("matplotlib", "PIL", "urllib3", "requests"):
        logging.getLogger(logger_name).setLevel(logging.WARNING)
