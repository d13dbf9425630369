"""
Logging Configuration Utilities

Centralized logging setup for the console and the simulated controller.
The link clients log from their read and timer threads, so the thread name is
part of every line.
"""

import logging
import sys
from typing import Optional

LOG_FORMAT = '%(asctime)s - [{role}] %(threadName)s %(name)s - %(levelname)s - %(message)s'


def resolve_level(level: str) -> int:
    """Map a level name to a logging constant, INFO for unknown names."""
    numeric_level = logging.getLevelName(str(level).strip().upper())
    if isinstance(numeric_level, int):
        return numeric_level
    return logging.INFO


def setup_logging(role: str, level: str = "INFO", log_file: Optional[str] = None) -> logging.Logger:
    """
    Configure the root logger with role-based formatting.

    Calling it again replaces the handlers installed by a previous call.

    Args:
        role: Role identifier (e.g., "console", "controller_sim")
        level: Logging level name (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional file path for logging (default None = console only)

    Returns:
        The root logger
    """
    numeric_level = resolve_level(level)

    formatter = logging.Formatter(
        LOG_FORMAT.format(role=role),
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(numeric_level)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if log_file:
        try:
            file_handler = logging.FileHandler(log_file)
            file_handler.setLevel(numeric_level)
            file_handler.setFormatter(formatter)
            root_logger.addHandler(file_handler)
            logging.info(f"Logging to file: {log_file}")
        except OSError as e:
            logging.error(f"Failed to create log file {log_file}: {e}")

    # websockets logs every handshake at INFO
    logging.getLogger("websockets").setLevel(max(numeric_level, logging.WARNING))

    logging.info(f"Logging configured: role={role}, level={logging.getLevelName(numeric_level)}")
    return root_logger
