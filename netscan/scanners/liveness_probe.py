"""
ICMP liveness probe.

Sends exactly one ICMP echo request to an address and waits for the reply,
either through the system ping binary (one subprocess per probe) or through
scapy's raw sockets. Every failure mode is reported as "not reachable".
"""

import asyncio
import ipaddress
import math
import platform
import re
import sys
import time
from concurrent.futures import ThreadPoolExecutor
from typing import List, Optional

from .base_scanner import BaseProbe
from ..core.cancellation import CancellationToken, is_cancelled
from ..utils.error_handler import ConfigurationError, ErrorHandler
from ..utils.logger import Logger

LIVENESS_METHODS = ("ping", "scapy")

# Extra time granted to the ping subprocess for start-up and exit
PING_GRACE_S = 0.5

# Echo identifier and sequence are per probe; every probe runs its own exchange
ECHO_ID = 0
ECHO_SEQ = 1

# Round-trip time as printed by iputils, BSD and Windows ping
RTT_PATTERN = re.compile(rb"time\s*[=<]\s*([0-9]+(?:\.[0-9]+)?)\s*ms", re.IGNORECASE)

# Descriptors one running ping child holds open in this process
FDS_PER_PING = 4
DEFAULT_MAX_SUBPROCESSES = 256


def default_subprocess_limit() -> int:
    """
    Number of ping children that may run at once.

    Half of the soft RLIMIT_NOFILE is left for sockets and the resolver;
    the other half is shared out at FDS_PER_PING per child.
    """
    if sys.platform == "win32":
        return DEFAULT_MAX_SUBPROCESSES

    import resource

    soft, _ = resource.getrlimit(resource.RLIMIT_NOFILE)
    if soft == resource.RLIM_INFINITY:
        return DEFAULT_MAX_SUBPROCESSES
    return max(1, min(DEFAULT_MAX_SUBPROCESSES, soft // 2 // FDS_PER_PING))


def parse_ping_rtt(output: bytes) -> Optional[float]:
    """
    Extract the round-trip time from ping output.

    "time<1ms" (Windows, sub-millisecond replies) is reported as 1.0.

    Returns:
        Milliseconds, or None if the output carries no time field
    """
    match = RTT_PATTERN.search(output or b"")
    if match is None:
        return None
    return float(match.group(1))


def build_ping_command(address: str, timeout: float, system: Optional[str] = None) -> List[str]:
    """
    Build the ping command line sending a single echo request.

    Args:
        address: Target IPv4 or IPv6 address
        timeout: Reply timeout in seconds
        system: Operating system name (platform.system() when omitted)

    Returns:
        Command as a list of arguments
    """
    system = (system or platform.system()).lower()
    ipv6 = ipaddress.ip_address(address).version == 6

    if system == "windows":
        cmd = ["ping", "-n", "1", "-w", str(max(1, int(timeout * 1000)))]
        if ipv6:
            cmd.append("-6")
    elif system == "darwin":
        if ipv6:
            cmd = ["ping6", "-c", "1"]
        else:
            cmd = ["ping", "-c", "1", "-W", str(max(1, int(timeout * 1000)))]
    else:
        # iputils ping only accepts whole seconds for -W on older releases
        cmd = ["ping", "-c", "1", "-W", str(max(1, math.ceil(timeout)))]
        if ipv6:
            cmd.append("-6")

    cmd.append(address)
    return cmd


class LivenessProbe(BaseProbe):
    """
    Single-echo ICMP reachability probe.

    The "ping" method needs no privileges; at most max_subprocesses ping
    children run at once, however many probes are awaiting. The "scapy"
    method needs raw socket access (root) and runs the blocking
    send/receive on a worker thread pool.
    """

    probe_type = "liveness"

    def __init__(
        self,
        method: str = "ping",
        logger: Optional[Logger] = None,
        error_handler: Optional[ErrorHandler] = None,
        max_workers: int = 64,
        max_subprocesses: Optional[int] = None,
    ):
        """
        Initialize the liveness probe.

        Args:
            method: Transport, "ping" or "scapy"
            logger: Logger instance for probe diagnostics
            error_handler: ErrorHandler used to count transport faults
            max_workers: Worker threads for the scapy transport
            max_subprocesses: Ping children allowed to run at once
                (default: derived from the open file limit)

        Raises:
            ConfigurationError: If the method is unknown
        """
        super().__init__(logger, error_handler)
        if method not in LIVENESS_METHODS:
            raise ConfigurationError(f"Unknown liveness method {method!r}, expected one of {LIVENESS_METHODS}")
        self.method = method
        self.max_workers = max_workers
        self.max_subprocesses = max_subprocesses or default_subprocess_limit()
        self._system = platform.system().lower()
        self._executor: Optional[ThreadPoolExecutor] = None
        self._spawn_slots: Optional[asyncio.Semaphore] = None
        self._spawn_loop: Optional[asyncio.AbstractEventLoop] = None

    async def probe(self, address: str, timeout: float, cancel_token: Optional[CancellationToken] = None) -> bool:
        """
        Send one echo request and wait for the reply.

        Args:
            address: Target IPv4 or IPv6 address
            timeout: Reply timeout in seconds
            cancel_token: Scan cancellation token

        Returns:
            True if an echo reply arrived in time, False otherwise
        """
        return await self.echo(address, timeout, cancel_token) is not None

    async def echo(
        self, address: str, timeout: float, cancel_token: Optional[CancellationToken] = None
    ) -> Optional[float]:
        """
        Run one echo exchange and report its round-trip time.

        Returns:
            Round-trip milliseconds, or None when no reply arrived
        """
        if is_cancelled(cancel_token):
            return None

        if self.method == "scapy":
            rtt_ms = await self._echo_with_scapy(address, timeout)
        else:
            rtt_ms = await self._echo_with_ping(address, timeout, cancel_token)

        if rtt_ms is None:
            self._log_debug(f"No echo reply from {address}")
        else:
            self._log_debug(f"Echo reply from {address} in {rtt_ms:.2f} ms")
        return rtt_ms

    def _slots(self) -> asyncio.Semaphore:
        loop = asyncio.get_running_loop()
        if self._spawn_slots is None or self._spawn_loop is not loop:
            self._spawn_slots = asyncio.Semaphore(self.max_subprocesses)
            self._spawn_loop = loop
        return self._spawn_slots

    async def _echo_with_ping(
        self, address: str, timeout: float, cancel_token: Optional[CancellationToken]
    ) -> Optional[float]:
        cmd = build_ping_command(address, timeout, self._system)

        async with self._slots():
            if is_cancelled(cancel_token):
                return None

            try:
                proc = await asyncio.create_subprocess_exec(
                    *cmd,
                    stdout=asyncio.subprocess.PIPE,
                    stderr=asyncio.subprocess.DEVNULL,
                )
            except OSError as e:
                self._record_failure(address, e)
                return None

            started = time.monotonic()
            try:
                output, _ = await asyncio.wait_for(proc.communicate(), timeout + PING_GRACE_S)
            except asyncio.TimeoutError:
                await self._terminate(proc)
                return None
            elapsed_ms = (time.monotonic() - started) * 1000.0

        output = output or b""
        if proc.returncode != 0:
            return None
        if self._system == "windows" and b"TTL=" not in output.upper():
            # Windows ping exits 0 for "Destination host unreachable" replies
            return None

        rtt_ms = parse_ping_rtt(output)
        # Localized ping output without a time field
        return rtt_ms if rtt_ms is not None else elapsed_ms

    @staticmethod
    async def _terminate(proc) -> None:
        try:
            proc.kill()
        except ProcessLookupError:
            # Exited between the timeout and the kill
            pass
        await proc.wait()

    async def _echo_with_scapy(self, address: str, timeout: float) -> Optional[float]:
        if self._executor is None:
            self._executor = ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="netscan-icmp")

        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(self._executor, self._scapy_echo, address, timeout)
        except Exception as e:
            # Raw socket permission errors and scapy send failures
            self._record_failure(address, e)
            return None

    @staticmethod
    def _scapy_echo(address: str, timeout: float) -> Optional[float]:
        from scapy.all import ICMP, IP, sr1
        from scapy.layers.inet6 import ICMPv6EchoReply, ICMPv6EchoRequest, IPv6

        ipv6 = ipaddress.ip_address(address).version == 6
        if ipv6:
            request = IPv6(dst=address) / ICMPv6EchoRequest(id=ECHO_ID, seq=ECHO_SEQ)
        else:
            request = IP(dst=address) / ICMP(id=ECHO_ID, seq=ECHO_SEQ)

        started = time.monotonic()
        reply = sr1(request, timeout=timeout, verbose=False)
        elapsed_ms = (time.monotonic() - started) * 1000.0

        if reply is None:
            return None
        if ipv6:
            answered = reply.haslayer(ICMPv6EchoReply)
        else:
            answered = reply.haslayer(ICMP) and reply[ICMP].type == 0
        return elapsed_ms if answered else None

    def close(self) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=False, cancel_futures=True)
            self._executor = None
