"""Console logging shared by the CLI and the library modules.

- Everything goes to stderr so stdout stays clean for command output
- DEBUG messages only appear when verbose is enabled (--verbose)
- Quiet mode (--quiet) keeps only warnings and errors
- ANSI colors when stderr is a terminal and NO_COLOR is unset
"""

import os
import sys
import traceback
from enum import Enum
from typing import Any


class LogLevel(Enum):
    """Log levels for console output."""

    DEBUG = 0
    INFO = 1
    WARNING = 2
    ERROR = 3


class Logger:
    """Small stderr logger.

    Attributes:
        verbose: If True, DEBUG messages are printed
        use_colors: If True, use ANSI color codes
        min_level: Messages below this level are dropped
    """

    def __init__(self, verbose: bool = False, use_colors: bool = True, quiet: bool = False) -> None:
        self.verbose = verbose
        if verbose:
            self.min_level = LogLevel.DEBUG
        elif quiet:
            self.min_level = LogLevel.WARNING
        else:
            self.min_level = LogLevel.INFO
        self.use_colors = use_colors and sys.stderr.isatty() and not os.environ.get("NO_COLOR")

    def _colorize(self, text: str, color_code: str) -> str:
        if not self.use_colors:
            return text
        return f"\033[{color_code}m{text}\033[0m"

    def _enabled(self, level: LogLevel) -> bool:
        return level.value >= self.min_level.value

    def _emit(self, level: LogLevel, text: str) -> None:
        if self._enabled(level):
            print(text, file=sys.stderr)

    def debug(self, message: str, **kwargs: Any) -> None:
        """Log debug message (only if verbose enabled).

        Args:
            message: Message to log
            **kwargs: Additional key-value pairs appended as ``(k=v ...)``
        """
        if not self._enabled(LogLevel.DEBUG):
            return

        formatted = self._colorize(f"DEBUG: {message}", "36")  # Cyan
        if kwargs:
            details = " ".join(f"{k}={v!r}" for k, v in kwargs.items())
            formatted += f" ({details})"

        self._emit(LogLevel.DEBUG, formatted)

    def info(self, message: str) -> None:
        """Log info message (suppressed in quiet mode)."""
        self._emit(LogLevel.INFO, self._colorize(message, "37"))  # White

    def warning(self, message: str) -> None:
        """Log warning message."""
        self._emit(LogLevel.WARNING, self._colorize(f"Warning: {message}", "33"))  # Yellow

    def error(self, message: str, suggestion: str | None = None) -> None:
        """Log error message with optional suggestion.

        Args:
            message: Error message to log
            suggestion: Optional hint for fixing the error
        """
        self._emit(LogLevel.ERROR, self._colorize(f"Error: {message}", "31"))  # Red

        if suggestion:
            self._emit(LogLevel.ERROR, self._colorize(f"  -> {suggestion}", "33"))

    def exception(self, message: str, exc: Exception) -> None:
        """Log an exception; the traceback is only shown in verbose mode.

        Args:
            message: Context message
            exc: Exception to log
        """
        self.error(f"{message}: {exc}")

        if self.verbose:
            tb = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
            self._emit(LogLevel.ERROR, self._colorize(tb, "90"))  # Gray


# Global logger instance (initialized by the CLI)
_logger: Logger | None = None


def init_logger(verbose: bool = False, use_colors: bool = True, quiet: bool = False) -> Logger:
    """Initialize the global logger.

    Args:
        verbose: Enable debug output
        use_colors: Enable ANSI color codes
        quiet: Only show warnings and errors (ignored when verbose)

    Returns:
        Logger instance
    """
    global _logger
    _logger = Logger(verbose=verbose, use_colors=use_colors, quiet=quiet)
    return _logger


def get_logger() -> Logger:
    """Get the global logger, creating a non-verbose default if none was initialized."""
    global _logger
    if _logger is None:
        _logger = Logger(verbose=False)
    return _logger


def reset_logger() -> None:
    """Forget the global logger (used by tests)."""
    global _logger
    _logger = None
