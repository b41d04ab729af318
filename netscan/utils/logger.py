"""
Logging system with colored output for host discovery runs.

This module provides a Logger class that supports colored console output
using colorama, different log levels with distinct colors, and progress
indicators for the long-running sweep phases. Log lines are written to
stderr so that the scan report on stdout stays clean.
"""

import sys
from datetime import datetime
from enum import Enum
from typing import Optional, TextIO
from colorama import Fore, Style, init

# Initialize colorama for cross-platform colored output
init()


class LogLevel(Enum):
    """Enumeration for different log levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"


_LEVEL_ORDER = {
    LogLevel.DEBUG: 0,
    LogLevel.INFO: 1,
    LogLevel.WARNING: 2,
    LogLevel.ERROR: 3,
}


class Logger:
    """
    Logger class with colored console output and progress indicators.

    Provides structured logging with different levels, colors, and formatting
    utilities for discovery operations.
    """

    LEVEL_COLORS = {
        LogLevel.DEBUG: Fore.CYAN,
        LogLevel.INFO: Fore.GREEN,
        LogLevel.WARNING: Fore.YELLOW,
        LogLevel.ERROR: Fore.RED,
    }

    LEVEL_SYMBOLS = {
        LogLevel.DEBUG: "🔍",
        LogLevel.INFO: "ℹ️",
        LogLevel.WARNING: "⚠️",
        LogLevel.ERROR: "❌",
    }

    def __init__(
        self,
        name: str = "netscan",
        min_level: Optional[LogLevel] = None,
        stream: Optional[TextIO] = None,
    ):
        """
        Initialize the Logger.

        Args:
            name: Name of the logger (default: "netscan")
            min_level: Minimum log level to display. When omitted the
                process-wide level set through set_log_level() applies.
            stream: Output stream (default: sys.stderr at write time)
        """
        self.name = name
        self._min_level = min_level
        self._stream = stream
        self._progress_active = False

    @property
    def min_level(self) -> LogLevel:
        return self._min_level or _global_level

    @min_level.setter
    def min_level(self, level: LogLevel) -> None:
        self._min_level = level

    @property
    def stream(self) -> TextIO:
        return self._stream or sys.stderr

    def _should_log(self, level: LogLevel) -> bool:
        return _LEVEL_ORDER[level] >= _LEVEL_ORDER[self.min_level]

    def _format_timestamp(self) -> str:
        return datetime.now().strftime("%H:%M:%S")

    def _emit(self, line: str) -> None:
        print(line, file=self.stream, flush=True)

    def _log(self, level: LogLevel, message: str, **kwargs) -> None:
        """
        Internal logging method that handles formatting and output.

        Args:
            level: Log level
            message: Message to log
            **kwargs: Additional context rendered as key=value pairs
        """
        if not self._should_log(level):
            return

        timestamp = self._format_timestamp()
        color = self.LEVEL_COLORS[level]
        symbol = self.LEVEL_SYMBOLS[level]

        formatted_message = (
            f"{Style.DIM}[{timestamp}]{Style.RESET_ALL} "
            f"{color}{symbol} {level.value:<7}{Style.RESET_ALL} "
            f"{message}"
        )

        if kwargs:
            details = " | ".join([f"{k}={v}" for k, v in kwargs.items()])
            formatted_message += f" {Style.DIM}({details}){Style.RESET_ALL}"

        self._emit(formatted_message)

    def debug(self, message: str, **kwargs) -> None:
        self._log(LogLevel.DEBUG, message, **kwargs)

    def info(self, message: str, **kwargs) -> None:
        self._log(LogLevel.INFO, message, **kwargs)

    def warning(self, message: str, **kwargs) -> None:
        self._log(LogLevel.WARNING, message, **kwargs)

    def error(
        self, message: str, exception: Optional[BaseException] = None, **kwargs
    ) -> None:
        """
        Log an error message.

        Args:
            message: Error message
            exception: Optional exception object for additional context
            **kwargs: Additional context information
        """
        if exception:
            kwargs["exception"] = f"{type(exception).__name__}: {str(exception)}"
        self._log(LogLevel.ERROR, message, **kwargs)

    def success(self, message: str, **kwargs) -> None:
        """Log a success message (formatted as INFO with special styling)."""
        if not self._should_log(LogLevel.INFO):
            return

        timestamp = self._format_timestamp()
        formatted_message = (
            f"{Style.DIM}[{timestamp}]{Style.RESET_ALL} "
            f"{Fore.GREEN}✅ SUCCESS {Style.RESET_ALL} "
            f"{Style.BRIGHT}{message}{Style.RESET_ALL}"
        )

        if kwargs:
            details = " | ".join([f"{k}={v}" for k, v in kwargs.items()])
            formatted_message += f" {Style.DIM}({details}){Style.RESET_ALL}"

        self._emit(formatted_message)

    def section(self, title: str) -> None:
        """Log a section header for organizing output."""
        if not self._should_log(LogLevel.INFO):
            return

        separator = "=" * 60
        self._emit(f"\n{Fore.BLUE}{Style.BRIGHT}{separator}")
        self._emit(f"  {title.upper()}")
        self._emit(f"{separator}{Style.RESET_ALL}\n")

    def progress_start(self, message: str) -> None:
        """
        Start a progress indicator for long-running operations.

        Args:
            message: Progress message to display
        """
        self._progress_active = True
        self._progress(message)

    def progress_end(self, final_message: Optional[str] = None) -> None:
        """
        End the current progress indicator.

        Args:
            final_message: Optional final message to display
        """
        if not self._progress_active:
            return

        self._progress_active = False
        if final_message:
            self.success(final_message)

    def _progress(self, message: str) -> None:
        if not self._should_log(LogLevel.INFO):
            return

        timestamp = self._format_timestamp()
        self._emit(
            f"{Style.DIM}[{timestamp}]{Style.RESET_ALL} "
            f"{Fore.BLUE}⏳ PROGRESS{Style.RESET_ALL} "
            f"{message}..."
        )

    def network_info(self, network: str, candidates: int, ports: str) -> None:
        """
        Display the scan parameters in a formatted way.

        Args:
            network: Network range being scanned
            candidates: Number of candidate addresses
            ports: Comma-separated port list
        """
        if not self._should_log(LogLevel.INFO):
            return

        self._emit(f"\n{Fore.CYAN}{Style.BRIGHT}🌐 SCAN CONFIGURATION{Style.RESET_ALL}")
        self._emit(f"  Network Range: {Style.BRIGHT}{network}{Style.RESET_ALL}")
        self._emit(f"  Candidates:    {Style.BRIGHT}{candidates}{Style.RESET_ALL}")
        self._emit(f"  Ports:         {Style.BRIGHT}{ports}{Style.RESET_ALL}\n")


_global_level = LogLevel.INFO

# Global logger instance
logger = Logger()


def set_log_level(level: LogLevel) -> None:
    """
    Set the process-wide log level.

    Applies to every Logger that was created without an explicit min_level.

    Args:
        level: Minimum log level to display
    """
    global _global_level
    _global_level = level


def get_logger(name: str = "netscan") -> Logger:
    """
    Get a logger instance with the specified name.

    Args:
        name: Logger name

    Returns:
        Logger instance
    """
    return Logger(name)
