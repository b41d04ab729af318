"""
Utility functions and helper classes.
"""

from .logger import Logger, LogLevel, logger, set_log_level, get_logger
from .error_handler import (
    ErrorHandler, ToolValidator, ErrorContext, ErrorType, ErrorSeverity,
    NetscanError, NetworkError, ConfigurationError, ValidationError,
    InvalidRangeError, RangeTooLargeError
)

__all__ = [
    'Logger',
    'LogLevel',
    'logger',
    'set_log_level',
    'get_logger',
    'ErrorHandler',
    'ToolValidator',
    'ErrorContext',
    'ErrorType',
    'ErrorSeverity',
    'NetscanError',
    'NetworkError',
    'ConfigurationError',
    'ValidationError',
    'InvalidRangeError',
    'RangeTooLargeError',
]
