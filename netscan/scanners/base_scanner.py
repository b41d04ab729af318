"""
Base probe interface for netscan.

All probes share the same shape: a single awaitable operation against one
address that never raises for network failures, a logger, and an error
handler used to count degraded results.
"""

from abc import ABC
from typing import Optional

from ..utils.error_handler import ErrorHandler
from ..utils.logger import Logger


class BaseProbe(ABC):
    """
    Abstract base class for all network probes.

    Concrete probes expose one coroutine (probe or resolve) that reports
    failure through its return value instead of raising, so that one host's
    failure never aborts the sweep.
    """

    probe_type = "base"

    def __init__(self, logger: Optional[Logger] = None, error_handler: Optional[ErrorHandler] = None):
        """
        Initialize the base probe.

        Args:
            logger: Logger instance for probe diagnostics
            error_handler: ErrorHandler used to count degraded results
        """
        self.logger = logger
        self.error_handler = error_handler

    def close(self) -> None:
        """Release resources held by the probe."""

    def _record_failure(self, address: str, error: Optional[BaseException] = None) -> None:
        if self.error_handler:
            self.error_handler.record_degraded(self.probe_type, address, error)

    def _log_debug(self, message: str) -> None:
        if self.logger:
            self.logger.debug(message)

    def _log_warning(self, message: str) -> None:
        if self.logger:
            self.logger.warning(message)
