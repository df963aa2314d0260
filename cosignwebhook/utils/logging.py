"""Logging utilities for the webhook package."""

import logging
import sys
from datetime import datetime
from enum import Enum
from typing import Optional


class LogLevel(Enum):
    """Log levels accepted on the command line."""
    TRACE = "trace"
    DEBUG = "debug"
    INFO = "info"
    WARN = "warn"
    ERROR = "error"
    FATAL = "fatal"

    @classmethod
    def from_string(cls, value: Optional[str]) -> "LogLevel":
        """Convert string to LogLevel, defaulting to INFO."""
        try:
            return cls((value or "").lower())
        except ValueError:
            return cls.INFO

    def to_logging(self) -> int:
        """Map to a standard logging level."""
        return {
            LogLevel.TRACE: logging.DEBUG,
            LogLevel.DEBUG: logging.DEBUG,
            LogLevel.INFO: logging.INFO,
            LogLevel.WARN: logging.WARNING,
            LogLevel.ERROR: logging.ERROR,
            LogLevel.FATAL: logging.CRITICAL,
        }[self]


ROOT_LOGGER = "cosignwebhook"

# Debug output may contain key material; callers check this before logging it
_verbose_mode = False


def is_verbose() -> bool:
    """Check if debug logging is enabled."""
    return _verbose_mode


class ColoredFormatter(logging.Formatter):
    """Formatter that adds colors to log messages."""

    COLORS = {
        logging.DEBUG: "\033[36m",    # Cyan
        logging.INFO: "\033[0m",      # Reset
        logging.WARNING: "\033[33m",  # Yellow
        logging.ERROR: "\033[31m",    # Red
        logging.CRITICAL: "\033[35m", # Magenta
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelno, self.RESET)
        return f"{color}{_render(record)}{self.RESET}"


class PlainFormatter(logging.Formatter):
    """Plain formatter without colors (for non-terminal output)."""

    def format(self, record: logging.LogRecord) -> str:
        return _render(record)


def _render(record: logging.LogRecord) -> str:
    """Render `[datetime] [LEVEL] module message`."""
    timestamp = datetime.fromtimestamp(record.created).strftime("%Y/%m/%d %H:%M:%S")
    line = f"[{timestamp}] [{record.levelname}] {record.name} {record.getMessage()}"
    if record.exc_info:
        line = f"{line}\n{logging.Formatter().formatException(record.exc_info)}"
    return line


def setup_logging(
    level: LogLevel = LogLevel.INFO,
    use_colors: Optional[bool] = None,
) -> None:
    """
    Set up logging configuration.

    Args:
        level: Desired log level
        use_colors: Whether to use colored output (auto-detect if None)
    """
    global _verbose_mode

    log_level = level.to_logging()
    _verbose_mode = log_level <= logging.DEBUG

    # Auto-detect color support
    if use_colors is None:
        use_colors = sys.stderr.isatty()

    root_logger = logging.getLogger(ROOT_LOGGER)
    root_logger.setLevel(log_level)

    # Remove existing handlers
    root_logger.handlers.clear()

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(log_level)

    if use_colors:
        handler.setFormatter(ColoredFormatter())
    else:
        handler.setFormatter(PlainFormatter())

    root_logger.addHandler(handler)


def get_logger(name: str = ROOT_LOGGER) -> logging.Logger:
    """
    Get a logger instance.

    Args:
        name: Logger name

    Returns:
        Logger instance
    """
    return logging.getLogger(name)
