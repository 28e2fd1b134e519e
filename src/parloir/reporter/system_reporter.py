"""
System Reporter - Centralized logging for Parloir server components.

Wraps a stdlib logger with context-tagged messages and a verbosity filter.
Logs to stdout always (Docker friendly) and optionally to a file.
"""

import logging
import os
import sys
from typing import Optional, Union

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def resolve_level(level: Union[int, str]) -> int:
    """
    Convert a level name ("info", "WARNING") or number to a logging level.

    Args:
        level: Level name or numeric level

    Returns:
        Numeric logging level (INFO when the name is unknown)
    """
    if isinstance(level, int):
        return level
    levels = {
        "DEBUG": logging.DEBUG,
        "INFO": logging.INFO,
        "WARNING": logging.WARNING,
        "ERROR": logging.ERROR,
        "CRITICAL": logging.CRITICAL,
    }
    return levels.get(level.upper(), logging.INFO)


class SystemReporter:
    """
    Logger with verbose filtering.

    Verbose Levels:
        0 = Critical only (always visible)
        1 = Important messages (default)
        2 = Detailed information
        3 = Debug/verbose

    Every message is prefixed with its context: "[TokenIssuer] ...".
    """

    def __init__(
        self,
        name: str = "parloir",
        log_dir: Optional[str] = None,
        level: Union[int, str] = logging.INFO,
        verbose: int = 1,
        fresh_log: bool = False,
        log_filename: Optional[str] = None,
    ) -> None:
        """
        Initialize SystemReporter.

        Args:
            name: Logger name (used for filename if log_dir provided)
            log_dir: Directory for log files. If None, logs to stdout only.
            level: Python logging level or level name
            verbose: Verbosity filter (0-3)
            fresh_log: Truncate an existing log file instead of appending
            log_filename: File name inside log_dir (default: "<name>.log")
        """
        self.name = name
        self.verbose = max(0, min(3, verbose))
        self.log_file: Optional[str] = None

        self._init_logger(
            name, log_dir, resolve_level(level), fresh_log, log_filename
        )

    def _init_logger(
        self,
        name: str,
        log_dir: Optional[str],
        level: int,
        fresh_log: bool,
        log_filename: Optional[str] = None,
    ) -> None:
        """
        Initialize logger with console and optional file handler.

        Args:
            name: Logger name
            log_dir: Log directory path (None = stdout only)
            level: Python logging level
            fresh_log: Truncate existing log file
            log_filename: Log file name (None = "<name>.log")
        """
        self.logger = logging.getLogger(name)
        self.logger.setLevel(level)

        # Reporters created twice for the same name must not double-log
        for handler in list(self.logger.handlers):
            self.logger.removeHandler(handler)
            handler.close()

        formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)

        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setFormatter(formatter)
        self.logger.addHandler(console_handler)

        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
            self.log_file = os.path.join(log_dir, log_filename or f"{name}.log")

            file_handler = logging.FileHandler(
                self.log_file,
                mode="w" if fresh_log else "a",
                encoding="utf-8",
            )
            file_handler.setFormatter(formatter)
            self.logger.addHandler(file_handler)

    def set_verbose(self, level: int) -> None:
        """Update verbosity level."""
        self.verbose = max(0, min(3, level))
        self.info(
            f"Verbosity set to {self.verbose}",
            context="SystemReporter",
            verbose_level=0,
        )

    def _should_log(self, verbose_level: int) -> bool:
        """Check if message should be logged."""
        return self.verbose >= verbose_level

    # Core logging methods
    def debug(
        self, msg: str, context: str = "system", verbose_level: int = 3
    ) -> None:
        """Log debug message."""
        if self._should_log(verbose_level):
            self.logger.debug(f"[{context}] {msg}")

    def info(
        self, msg: str, context: str = "system", verbose_level: int = 1
    ) -> None:
        """Log info message."""
        if self._should_log(verbose_level):
            self.logger.info(f"[{context}] {msg}")

    def warning(
        self, msg: str, context: str = "system", verbose_level: int = 1
    ) -> None:
        """Log warning message."""
        if self._should_log(verbose_level):
            self.logger.warning(f"[{context}] {msg}")

    def error(
        self,
        msg: str,
        context: str = "system",
        verbose_level: int = 0,
        exc_info: bool = False,
    ) -> None:
        """Log error message, optionally with the active traceback."""
        if self._should_log(verbose_level):
            self.logger.error(f"[{context}] {msg}", exc_info=exc_info)

    def critical(
        self, msg: str, context: str = "system", verbose_level: int = 0
    ) -> None:
        """Log critical message."""
        if self._should_log(verbose_level):
            self.logger.critical(f"[{context}] {msg}")
