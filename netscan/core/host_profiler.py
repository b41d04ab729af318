"""
Per-host profiling for live addresses.

For one address the profiler runs the hostname lookup, a timed liveness
probe and one port probe per configured port, all concurrently, and turns
the outcomes into a HostInfo. A failing sub-probe only degrades its own
field.
"""

import asyncio
from typing import Any, List, Optional, Tuple

from .cancellation import CancellationToken
from .data_models import UNMEASURED_LATENCY_MS, HostInfo, PortScanResult, ScanTarget
from ..scanners.hostname_resolver import HostnameResolver
from ..scanners.liveness_probe import LivenessProbe
from ..scanners.port_probe import PortProbe
from ..utils.error_handler import ErrorHandler
from ..utils.logger import Logger, get_logger


class HostProfiler:
    """
    Builds the HostInfo record of one live host.

    The record is only returned once every sub-probe has finished, either
    with a real value or with the field's default.
    """

    def __init__(
        self,
        liveness_probe: LivenessProbe,
        port_probe: PortProbe,
        hostname_resolver: HostnameResolver,
        error_handler: Optional[ErrorHandler] = None,
        logger: Optional[Logger] = None,
    ):
        self.liveness_probe = liveness_probe
        self.port_probe = port_probe
        self.hostname_resolver = hostname_resolver
        self.logger = logger or get_logger(__name__)
        self.error_handler = error_handler or ErrorHandler(self.logger)

    async def profile(self, target: ScanTarget, cancel_token: Optional[CancellationToken] = None) -> HostInfo:
        """
        Profile one address.

        Args:
            target: Address plus timeout and port set
            cancel_token: Scan cancellation token

        Returns:
            HostInfo with hostname, latency and open ports
        """
        address = target.address
        ports = list(target.ports)

        outcomes = await asyncio.gather(
            self.hostname_resolver.resolve(address, target.timeout, cancel_token),
            self.measure_latency(address, target.timeout, cancel_token),
            *(self.port_probe.probe(address, port, target.timeout, cancel_token) for port in ports),
            return_exceptions=True,
        )

        hostname = self._hostname_from(address, outcomes[0])
        latency_ms = self._latency_from(address, outcomes[1])
        port_result = self._ports_from(address, ports, outcomes[2:])

        host = HostInfo(
            address=address,
            hostname=hostname,
            latency_ms=latency_ms,
            open_ports=port_result.open_ports,
        )
        self.logger.debug(
            f"Profiled {address}",
            hostname=host.display_hostname,
            latency=f"{host.latency_ms:.2f}ms",
            open_ports=len(host.open_ports),
        )
        return host

    async def measure_latency(
        self, address: str, timeout: float, cancel_token: Optional[CancellationToken] = None
    ) -> Optional[float]:
        """
        Round-trip time of one echo exchange.

        The transport times the echo itself, so process start-up and
        scheduling delays are not counted.

        Returns:
            Round-trip milliseconds, or None when no reply arrived
        """
        return await self.liveness_probe.echo(address, timeout, cancel_token)

    def _hostname_from(self, address: str, outcome: Any) -> Optional[str]:
        if isinstance(outcome, BaseException):
            self._reraise_cancellation(outcome)
            self.error_handler.record_degraded("hostname", address, outcome)
            return None
        if not outcome:
            self.error_handler.record_degraded("hostname", address)
            return None
        return outcome

    def _latency_from(self, address: str, outcome: Any) -> float:
        if isinstance(outcome, BaseException):
            self._reraise_cancellation(outcome)
            self.error_handler.record_degraded("latency", address, outcome)
            return UNMEASURED_LATENCY_MS
        if outcome is None:
            self.error_handler.record_degraded("latency", address)
            return UNMEASURED_LATENCY_MS
        return max(float(outcome), 0.0)

    def _ports_from(self, address: str, ports: List[int], outcomes: Tuple[Any, ...]) -> PortScanResult:
        open_ports = []
        for port, outcome in zip(ports, outcomes):
            if isinstance(outcome, BaseException):
                self._reraise_cancellation(outcome)
                self.error_handler.record_degraded("port", address, outcome)
                continue
            if outcome:
                open_ports.append(port)
        return PortScanResult(address=address, open_ports=tuple(open_ports))

    @staticmethod
    def _reraise_cancellation(outcome: BaseException) -> None:
        if isinstance(outcome, (asyncio.CancelledError, KeyboardInterrupt, SystemExit)):
            raise outcome
