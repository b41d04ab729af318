"""
Main entry point for netscan.

This module provides the command-line interface: argument parsing, pre-flight
checks, signal handling that cancels a running scan, and report output.
"""

import argparse
import asyncio
import importlib.util
import os
import signal
import sys
from typing import List, Optional

from . import __version__
from .config.config_loader import ConfigLoader, ScanConfig
from .core.cancellation import CancellationToken
from .core.data_models import PortSet, ScanStatus
from .core.discovery_coordinator import DiscoveryCoordinator
from .core.network_detector import NetworkDetector
from .utils.error_handler import (
    ConfigurationError,
    ErrorHandler,
    NetscanError,
    ToolValidator,
)
from .utils.logger import LogLevel, get_logger, set_log_level
from .utils.report_formatter import format_json, format_summary, format_table

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_INTERRUPTED = 130


class NetscanApp:
    """
    Main application class for netscan.

    Handles the CLI lifecycle: pre-flight checks, configuration, the scan
    itself and report output.
    """

    def __init__(self):
        self.logger = get_logger(__name__)
        self.error_handler = ErrorHandler(self.logger)
        self.cancel_token = CancellationToken()
        self.shutdown_requested = False

    def _signal_handler(self, signum: int, frame) -> None:
        """
        Cancel the running scan on the first signal, exit on the second.

        Args:
            signum: Signal number
            frame: Current stack frame
        """
        signal_name = signal.Signals(signum).name

        if not self.shutdown_requested:
            self.logger.warning(f"Received {signal_name} - cancelling scan...")
            self.shutdown_requested = True
            self.cancel_token.cancel()
        else:
            self.logger.error("Force shutdown requested - terminating immediately")
            sys.exit(EXIT_INTERRUPTED)

    def _install_signal_handlers(self) -> dict:
        previous = {}
        for signum in (signal.SIGINT, getattr(signal, "SIGTERM", None)):
            if signum is not None:
                previous[signum] = signal.signal(signum, self._signal_handler)
        return previous

    def _perform_preflight_checks(self, config: ScanConfig) -> bool:
        """
        Check the tools and privileges the liveness transport needs.

        Args:
            config: Effective scan configuration

        Returns:
            bool: True if all checks pass, False otherwise
        """
        self.logger.debug("Running pre-flight checks")
        validator = ToolValidator(self.error_handler)
        all_checks_passed, missing = validator.validate_method(config.liveness_method)

        if config.liveness_method == "scapy":
            if importlib.util.find_spec("scapy") is None:
                self.logger.error("Python package scapy is missing")
                self.logger.info("Install it with: pip install scapy")
                all_checks_passed = False
            if hasattr(os, "geteuid") and os.geteuid() != 0:
                self.logger.error("The scapy transport needs raw sockets; run as root or use --method ping")
                all_checks_passed = False

        if missing:
            self.logger.error(f"Missing tools: {', '.join(missing)}")
        if all_checks_passed:
            self.logger.debug("All pre-flight checks passed")
        return all_checks_passed

    def _build_config(self, args: argparse.Namespace) -> ScanConfig:
        """
        Merge the configuration file with command-line overrides.

        Raises:
            ConfigurationError: If a command-line value is invalid
        """
        base = ConfigLoader(self.logger).load(args.config)
        return base.with_overrides(
            timeout_ms=args.timeout,
            ports=args.ports,
            max_concurrency=args.max_concurrency,
            max_subprocesses=args.max_subprocesses,
            liveness_method=args.method,
        )

    def run(self, args: argparse.Namespace) -> int:
        """
        Run one scan.

        Args:
            args: Parsed command line arguments

        Returns:
            int: Exit code (0 for success, non-zero for failure)
        """
        self.logger.section(f"netscan {__version__} host discovery")

        try:
            config = self._build_config(args)
        except ConfigurationError as e:
            self.error_handler.handle_exception(e)
            return EXIT_FAILURE

        if not self._perform_preflight_checks(config):
            if not args.skip_checks:
                self.logger.error("Pre-flight checks failed. Use --skip-checks to bypass.")
                return EXIT_FAILURE
            self.logger.warning("Continuing despite failed pre-flight checks as requested")

        coordinator = DiscoveryCoordinator(config, logger=self.logger, error_handler=self.error_handler)
        previous_handlers = self._install_signal_handlers()
        try:
            network = args.network or NetworkDetector(self.logger).detect_local_network()
            self.logger.info(f"Scanning network: {network}")
            host_set = asyncio.run(coordinator.discover(network, cancel_token=self.cancel_token))
        except NetscanError as e:
            self.error_handler.handle_exception(e)
            return EXIT_FAILURE
        except KeyboardInterrupt:
            self.logger.warning("Scan interrupted by user")
            return EXIT_INTERRUPTED
        finally:
            coordinator.close()
            for signum, handler in previous_handlers.items():
                signal.signal(signum, handler)

        if args.format == "json":
            print(format_json(host_set))
        else:
            print(format_table(host_set, color=sys.stdout.isatty()))

        if host_set.status is ScanStatus.CANCELLED:
            self.logger.warning(f"Scan cancelled - partial results. {format_summary(host_set)}")
            return EXIT_INTERRUPTED

        self.logger.success(format_summary(host_set))
        return EXIT_OK


def _port_list(value: str) -> PortSet:
    try:
        return PortSet.parse(value)
    except ConfigurationError as e:
        raise argparse.ArgumentTypeError(str(e)) from None


def _positive_int(value: str) -> int:
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid integer: {value!r}") from None
    if number <= 0:
        raise argparse.ArgumentTypeError(f"must be positive, got {number}")
    return number


def create_argument_parser() -> argparse.ArgumentParser:
    """
    Create and configure the command line argument parser.

    Returns:
        argparse.ArgumentParser: Configured argument parser
    """
    parser = argparse.ArgumentParser(
        prog="netscan",
        description="Discover hosts on a local network",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  netscan -n 192.168.1.0/24                      # Scan a /24 with default ports
  netscan -n 10.0.0.0/28 -t 500 -p 22,80,443     # Shorter timeout, custom ports
  netscan -n fd00::/120 --max-concurrency 256    # IPv6 range with a task limit
  netscan                                        # Scan the detected local network
  netscan -n 192.168.1.0/24 --format json        # Machine-readable output
        """
    )

    parser.add_argument(
        "-n", "--network",
        type=str,
        help="Network to scan in CIDR notation. Defaults to the local network of the primary interface"
    )

    parser.add_argument(
        "-t", "--timeout",
        type=_positive_int,
        help="Per-probe timeout in milliseconds (default: 1000)"
    )

    parser.add_argument(
        "-p", "--ports",
        type=_port_list,
        help="Ports to scan (comma-separated). Default: "
             "21,22,23,25,53,80,110,143,443,445,3306,3389,5432,5900,8080,8443"
    )

    parser.add_argument(
        "-c", "--max-concurrency",
        type=_positive_int,
        help="Maximum number of per-address tasks in flight (default: unbounded)"
    )

    parser.add_argument(
        "--max-subprocesses",
        type=_positive_int,
        help="Maximum number of ping processes running at once (default: derived from the open file limit)"
    )

    parser.add_argument(
        "-m", "--method",
        choices=["ping", "scapy"],
        help="ICMP transport: system ping binary or scapy raw sockets (default: ping)"
    )

    parser.add_argument(
        "--config",
        type=str,
        help="YAML configuration file. Defaults to netscan/config/netscan_config.yml"
    )

    parser.add_argument(
        "-f", "--format",
        choices=["table", "json"],
        default="table",
        help="Report format (default: table)"
    )

    parser.add_argument(
        "--skip-checks",
        action="store_true",
        help="Skip pre-flight checks for the ICMP transport"
    )

    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose logging output"
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"netscan {__version__}"
    )

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main entry point for netscan.

    Returns:
        int: Exit code (0 for success, non-zero for failure)
    """
    parser = create_argument_parser()
    args = parser.parse_args(argv)

    if args.verbose:
        set_log_level(LogLevel.DEBUG)

    app = NetscanApp()
    return app.run(args)


if __name__ == "__main__":
    sys.exit(main())
