"""
Error handling for netscan.

This module provides the exception hierarchy used across the package, the
error context types, and a centralized ErrorHandler that classifies errors,
keeps per-type statistics and prints troubleshooting suggestions for the
fatal ones. Per-probe failures never propagate: they are recorded as
degraded results through ErrorHandler.record_degraded().
"""

import shutil
import threading
from collections import Counter
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from .logger import Logger, get_logger


class ErrorType(Enum):
    """Enumeration for different types of errors."""
    NETWORK_ERROR = "network_error"
    PERMISSION_ERROR = "permission_error"
    TOOL_MISSING_ERROR = "tool_missing_error"
    CONFIGURATION_ERROR = "configuration_error"
    VALIDATION_ERROR = "validation_error"
    TIMEOUT_ERROR = "timeout_error"


class ErrorSeverity(Enum):
    """Enumeration for error severity levels."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


@dataclass
class ErrorContext:
    """
    Context information for error handling.

    Attributes:
        error_type: Type of error that occurred
        severity: Severity level of the error
        operation: Operation that was being performed when error occurred
        component: Component/module where error occurred
        additional_info: Additional context information
    """
    error_type: ErrorType
    severity: ErrorSeverity
    operation: str
    component: str
    additional_info: Dict[str, Any] = field(default_factory=dict)


class NetscanError(Exception):
    """Base exception class for netscan."""

    def __init__(self, message: str, error_context: Optional[ErrorContext] = None):
        super().__init__(message)
        self.error_context = error_context


class NetworkError(NetscanError):
    """Exception for network-related errors."""
    pass


class ConfigurationError(NetscanError):
    """Exception for configuration-related errors."""
    pass


class ValidationError(NetscanError):
    """Exception for validation errors."""
    pass


class InvalidRangeError(ValidationError):
    """The network specification is not valid IPv4 or IPv6 CIDR notation."""

    def __init__(self, network_spec: Any, reason: str = ""):
        message = f"Invalid network range: {network_spec!r}"
        if reason:
            message += f" ({reason})"
        super().__init__(
            message,
            ErrorContext(
                error_type=ErrorType.VALIDATION_ERROR,
                severity=ErrorSeverity.CRITICAL,
                operation="parse_network_range",
                component="AddressEnumerator",
                additional_info={"network_spec": network_spec},
            ),
        )
        self.network_spec = network_spec


class RangeTooLargeError(ValidationError):
    """The network range holds more addresses than the configured ceiling."""

    def __init__(self, network_spec: str, num_addresses: int, limit: int):
        super().__init__(
            f"Network range {network_spec} has {num_addresses} addresses, "
            f"more than the allowed {limit}",
            ErrorContext(
                error_type=ErrorType.VALIDATION_ERROR,
                severity=ErrorSeverity.CRITICAL,
                operation="discover",
                component="DiscoveryCoordinator",
                additional_info={"num_addresses": num_addresses, "limit": limit},
            ),
        )
        self.num_addresses = num_addresses
        self.limit = limit


class ErrorHandler:
    """
    Centralized error classification and reporting.

    Keeps error statistics by type, logs each error at a level derived from
    its severity, prints troubleshooting suggestions for fatal errors, and
    counts degraded probe results by kind. Safe to use from worker threads.
    """

    def __init__(self, logger: Optional[Logger] = None):
        """
        Initialize the ErrorHandler.

        Args:
            logger: Logger instance for error reporting
        """
        self.logger = logger or get_logger(__name__)
        self.error_statistics: Dict[ErrorType, int] = {error_type: 0 for error_type in ErrorType}
        self.degraded: Counter = Counter()
        self._lock = threading.Lock()

    def handle_error(self, error: Exception, context: ErrorContext) -> None:
        """
        Record and report an error.

        Args:
            error: The exception that occurred
            context: Error context information
        """
        with self._lock:
            self.error_statistics[context.error_type] += 1

        self._log_error(error, context)

        if context.severity in (ErrorSeverity.HIGH, ErrorSeverity.CRITICAL):
            self._suggest(context)

    def handle_exception(self, error: NetscanError) -> None:
        """Report a NetscanError using the context it carries."""
        context = error.error_context or ErrorContext(
            error_type=ErrorType.VALIDATION_ERROR,
            severity=ErrorSeverity.HIGH,
            operation="unknown",
            component=type(error).__name__,
        )
        self.handle_error(error, context)

    def record_degraded(self, kind: str, address: str, error: Optional[BaseException] = None) -> None:
        """
        Count a probe failure that degraded a single result field.

        Expected outcomes (no reply, connection refused, NXDOMAIN) are not
        passed an error; transport faults such as missing privileges are.

        Args:
            kind: Which probe degraded (liveness, port, hostname, latency)
            address: Address the probe was run against
            error: Unexpected exception behind the failure, if any
        """
        with self._lock:
            self.degraded[kind] += 1

        if error is not None:
            self.logger.debug(
                f"{kind} probe for {address} failed unexpectedly, using default",
                exception=f"{type(error).__name__}: {error}",
            )

    def degraded_counts(self) -> Dict[str, int]:
        with self._lock:
            return dict(self.degraded)

    def _log_error(self, error: Exception, context: ErrorContext) -> None:
        error_msg = f"Error in {context.component}.{context.operation}: {str(error)}"

        if context.severity == ErrorSeverity.CRITICAL:
            self.logger.error(error_msg)
        elif context.severity == ErrorSeverity.HIGH:
            self.logger.error(error_msg)
        elif context.severity == ErrorSeverity.MEDIUM:
            self.logger.warning(error_msg)
        else:
            self.logger.debug(error_msg)

    def _suggest(self, context: ErrorContext) -> None:
        suggestions = {
            ErrorType.VALIDATION_ERROR: [
                "Use CIDR notation (e.g., 192.168.1.0/24 or fd00::/120)",
                "Check prefix length (0-32 for IPv4, 0-128 for IPv6)",
                "Split very large networks into smaller subnets",
            ],
            ErrorType.CONFIGURATION_ERROR: [
                "Check YAML syntax and indentation",
                "Ports must be integers between 1 and 65535",
                "Timeouts and concurrency limits must be positive integers",
            ],
            ErrorType.PERMISSION_ERROR: [
                "Run with sudo to allow raw ICMP sockets",
                "Or use the ping transport: --method ping",
            ],
            ErrorType.TOOL_MISSING_ERROR: [
                "Ubuntu/Debian: sudo apt-get install iputils-ping",
                "CentOS/RHEL: sudo yum install iputils",
                "Or use the scapy transport: --method scapy",
            ],
            ErrorType.NETWORK_ERROR: [
                "Check that a network interface is up",
                "Pass the range explicitly with --network",
            ],
        }.get(context.error_type, [])

        if suggestions:
            self.logger.info("Troubleshooting suggestions:")
            for suggestion in suggestions:
                self.logger.info(f"  • {suggestion}")


class ToolValidator:
    """Validates that the external tools a probe transport needs are usable."""

    REQUIRED_TOOLS = {
        "ping": ["ping"],
        "scapy": [],
    }

    def __init__(self, error_handler: ErrorHandler):
        self.error_handler = error_handler
        self.logger = error_handler.logger

    def validate_method(self, method: str) -> Tuple[bool, List[str]]:
        """
        Validate the tools needed by a liveness transport.

        Args:
            method: Liveness transport name ("ping" or "scapy")

        Returns:
            Tuple of (all_valid, missing_tools)
        """
        missing = [tool for tool in self.REQUIRED_TOOLS.get(method, []) if not self._check_tool_availability(tool)]
        return not missing, missing

    def _check_tool_availability(self, tool_name: str) -> bool:
        tool_path = shutil.which(tool_name)
        if tool_path:
            self.logger.debug(f"Found {tool_name} at: {tool_path}")
            return True

        context = ErrorContext(
            error_type=ErrorType.TOOL_MISSING_ERROR,
            severity=ErrorSeverity.HIGH,
            operation="tool_availability_check",
            component="ToolValidator",
            additional_info={"tool_name": tool_name},
        )
        self.error_handler.handle_error(NetscanError(f"Tool {tool_name} not found in PATH"), context)
        return False
