"""
Discovery Coordinator for netscan.

This module provides the DiscoveryCoordinator class that runs the two-phase
discovery pipeline: a liveness sweep over every candidate address of the
range, then a profiling fan-out over the addresses that answered. It also
provides discover(), the synchronous entry point of the package.
"""

import asyncio
import contextlib
import time
from typing import AsyncContextManager, Dict, Generic, Iterable, List, Optional, TypeVar

from .address_enumerator import enumerate_addresses, parse_network_range
from .cancellation import CancellationToken, is_cancelled
from .data_models import (
    DiscoveredHostSet,
    HostInfo,
    LivenessResult,
    PortSet,
    ScanStatistics,
    ScanStatus,
    ScanTarget,
)
from .host_profiler import HostProfiler
from ..config.config_loader import ScanConfig
from ..scanners.hostname_resolver import HostnameResolver
from ..scanners.liveness_probe import LivenessProbe
from ..scanners.port_probe import PortProbe
from ..utils.error_handler import ErrorHandler, RangeTooLargeError
from ..utils.logger import Logger, get_logger

T = TypeVar("T")

# Unbounded sweeps above this size get a resource warning (a /16)
UNBOUNDED_WARNING_THRESHOLD = 65536


class SharedAccumulator(Generic[T]):
    """
    Append-only collection written by many concurrent tasks.

    append() is the only mutation and runs under a lock, so no two tasks can
    interleave a write. One accumulator lives for one scan.
    """

    def __init__(self):
        self._items: List[T] = []
        self._lock = asyncio.Lock()

    async def append(self, item: T) -> None:
        async with self._lock:
            self._items.append(item)

    def snapshot(self) -> List[T]:
        return list(self._items)

    def __len__(self) -> int:
        return len(self._items)


class DiscoveryCoordinator:
    """
    Orchestrates the discovery pipeline: liveness sweep → host profiling.

    Phase 1 launches one liveness probe per candidate address and collects
    the responders. Phase 2 launches one HostProfiler per responder and
    collects the HostInfo records. Nothing is retried: an address that fails
    phase 1 is excluded, a sub-probe that fails in phase 2 only degrades its
    field.
    """

    def __init__(
        self,
        config: Optional[ScanConfig] = None,
        liveness_probe: Optional[LivenessProbe] = None,
        port_probe: Optional[PortProbe] = None,
        hostname_resolver: Optional[HostnameResolver] = None,
        logger: Optional[Logger] = None,
        error_handler: Optional[ErrorHandler] = None,
    ):
        """
        Initialize the coordinator.

        Args:
            config: Scan configuration (defaults to ScanConfig())
            liveness_probe: ICMP probe; built from config.liveness_method when omitted
            port_probe: TCP connect probe
            hostname_resolver: Reverse-DNS resolver; sized by config.resolver_workers
            logger: Logger instance for progress output
            error_handler: ErrorHandler shared with the probes
        """
        self.config = config or ScanConfig()
        self.logger = logger or get_logger(__name__)
        self.error_handler = error_handler or ErrorHandler(self.logger)

        self.liveness_probe = liveness_probe or LivenessProbe(
            self.config.liveness_method,
            self.logger,
            self.error_handler,
            max_subprocesses=self.config.max_subprocesses,
        )
        self.port_probe = port_probe or PortProbe(self.logger, self.error_handler)
        self.hostname_resolver = hostname_resolver or HostnameResolver(
            self.config.resolver_workers, self.logger, self.error_handler
        )
        self.host_profiler = HostProfiler(
            self.liveness_probe,
            self.port_probe,
            self.hostname_resolver,
            error_handler=self.error_handler,
            logger=self.logger,
        )

    async def discover(
        self,
        network_spec: str,
        config: Optional[ScanConfig] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> DiscoveredHostSet:
        """
        Discover and profile the live hosts of a network range.

        Args:
            network_spec: Network in CIDR notation
            config: Overrides the coordinator's configuration for this scan
            cancel_token: Token that stops the scan early when cancelled

        Returns:
            DiscoveredHostSet sorted by address

        Raises:
            InvalidRangeError: If network_spec is not valid CIDR notation
            RangeTooLargeError: If the range exceeds config.max_addresses
        """
        config = config or self.config

        network_range = parse_network_range(network_spec)
        if network_range.num_addresses > config.max_addresses:
            raise RangeTooLargeError(str(network_range), network_range.num_addresses, config.max_addresses)

        addresses = enumerate_addresses(network_range)
        statistics = ScanStatistics(candidates=len(addresses))
        degraded_before = self.error_handler.degraded_counts()

        if config.max_concurrency is None and len(addresses) > UNBOUNDED_WARNING_THRESHOLD:
            self.logger.warning(
                f"Launching {len(addresses)} concurrent probes without a concurrency limit; "
                "consider --max-concurrency"
            )

        self.logger.network_info(str(network_range), len(addresses), str(config.ports))
        limiter = asyncio.Semaphore(config.max_concurrency) if config.max_concurrency else None

        # Phase 1: liveness sweep
        phase_started = time.monotonic()
        self.logger.progress_start(f"Phase 1: probing {len(addresses)} addresses for liveness")
        live_addresses = await self._sweep(addresses, config, limiter, cancel_token)
        statistics.phase_times["liveness"] = time.monotonic() - phase_started
        self.logger.progress_end(f"Phase 1 completed: {len(live_addresses)} of {len(addresses)} addresses responded")

        # Phase 2: host profiling
        hosts: List[HostInfo] = []
        if is_cancelled(cancel_token):
            self.logger.warning("Scan cancelled, skipping host profiling")
        elif live_addresses:
            phase_started = time.monotonic()
            self.logger.progress_start(f"Phase 2: profiling {len(live_addresses)} live hosts")
            hosts = await self._profile_all(live_addresses, config, limiter, cancel_token)
            statistics.phase_times["profiling"] = time.monotonic() - phase_started
            self.logger.progress_end(f"Phase 2 completed: {len(hosts)} hosts profiled")

        statistics.live_hosts = len(live_addresses)
        statistics.degraded_probes = self._degraded_since(degraded_before)
        status = ScanStatus.CANCELLED if is_cancelled(cancel_token) else ScanStatus.COMPLETED

        return DiscoveredHostSet(hosts, network=network_range, status=status, statistics=statistics)

    async def _sweep(
        self,
        addresses: Iterable[str],
        config: ScanConfig,
        limiter: Optional[asyncio.Semaphore],
        cancel_token: Optional[CancellationToken],
    ) -> List[str]:
        live = SharedAccumulator()
        await asyncio.gather(*(
            self._check_liveness(ScanTarget(address, config.timeout_ms, config.ports), live, limiter, cancel_token)
            for address in addresses
        ))
        return live.snapshot()

    async def _check_liveness(
        self,
        target: ScanTarget,
        live: SharedAccumulator,
        limiter: Optional[asyncio.Semaphore],
        cancel_token: Optional[CancellationToken],
    ) -> None:
        try:
            async with self._slot(limiter):
                reachable = await self.liveness_probe.probe(target.address, target.timeout, cancel_token)
        except Exception as e:
            self.error_handler.record_degraded("liveness", target.address, e)
            reachable = False

        result = LivenessResult(address=target.address, reachable=bool(reachable))
        if result.reachable:
            await live.append(result.address)

    async def _profile_all(
        self,
        addresses: Iterable[str],
        config: ScanConfig,
        limiter: Optional[asyncio.Semaphore],
        cancel_token: Optional[CancellationToken],
    ) -> List[HostInfo]:
        profiles = SharedAccumulator()
        await asyncio.gather(*(
            self._profile_host(ScanTarget(address, config.timeout_ms, config.ports), profiles, limiter, cancel_token)
            for address in addresses
        ))
        return profiles.snapshot()

    async def _profile_host(
        self,
        target: ScanTarget,
        profiles: SharedAccumulator,
        limiter: Optional[asyncio.Semaphore],
        cancel_token: Optional[CancellationToken],
    ) -> None:
        try:
            async with self._slot(limiter):
                host = await self.host_profiler.profile(target, cancel_token)
        except Exception as e:
            # A live host is never dropped; it is reported with default fields
            self.error_handler.record_degraded("profile", target.address, e)
            host = HostInfo(address=target.address)

        await profiles.append(host)

    @staticmethod
    def _slot(limiter: Optional[asyncio.Semaphore]) -> AsyncContextManager:
        return limiter if limiter is not None else contextlib.nullcontext()

    def _degraded_since(self, before: Dict[str, int]) -> Dict[str, int]:
        after = self.error_handler.degraded_counts()
        return {kind: count - before.get(kind, 0) for kind, count in after.items() if count - before.get(kind, 0)}

    def close(self) -> None:
        """Shut down the worker pools held by the probes."""
        self.liveness_probe.close()
        self.port_probe.close()
        self.hostname_resolver.close()


def discover(
    network_spec: str,
    timeout_ms: Optional[int] = None,
    ports: Optional[Iterable[int]] = None,
    config: Optional[ScanConfig] = None,
    cancel_token: Optional[CancellationToken] = None,
    **components,
) -> DiscoveredHostSet:
    """
    Run a complete discovery scan and return the discovered hosts.

    Args:
        network_spec: Network in CIDR notation, e.g. "192.168.1.0/24"
        timeout_ms: Per-probe timeout in milliseconds (default 1000)
        ports: Ports to probe on live hosts (default: the well-known list)
        config: Base configuration; timeout_ms and ports override it
        cancel_token: Token that stops the scan early when cancelled
        **components: Probe, logger or error handler replacements passed
            to DiscoveryCoordinator

    Returns:
        DiscoveredHostSet sorted by address

    Raises:
        InvalidRangeError: If network_spec is not valid CIDR notation
        RangeTooLargeError: If the range exceeds the configured maximum
    """
    config = (config or ScanConfig()).with_overrides(
        timeout_ms=timeout_ms,
        ports=PortSet(ports) if ports is not None else None,
    )
    coordinator = DiscoveryCoordinator(config, **components)
    try:
        return asyncio.run(coordinator.discover(network_spec, cancel_token=cancel_token))
    finally:
        coordinator.close()
