"""
Core data models and enums for netscan.

This module defines the data structures that flow through the discovery
pipeline: the parsed network range, per-address scan targets, probe
results, the per-host profile and the final collection of discovered hosts.
"""

import ipaddress
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, Iterator, List, Optional, Tuple, Union

from ..utils.error_handler import ConfigurationError

IPAddress = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]
IPNetwork = Union[ipaddress.IPv4Network, ipaddress.IPv6Network]

DEFAULT_PORTS: Tuple[int, ...] = (
    21, 22, 23, 25, 53, 80, 110, 143, 443, 445, 3306, 3389, 5432, 5900, 8080, 8443,
)

# Reported when the latency probe got no reply
UNMEASURED_LATENCY_MS = 0.0


class AddressFamily(Enum):
    """IP address family of a network range."""
    IPV4 = 4
    IPV6 = 6

    @property
    def max_prefix(self) -> int:
        return 32 if self is AddressFamily.IPV4 else 128


class ScanStatus(Enum):
    """Enumeration of possible scan outcomes."""
    COMPLETED = "completed"
    CANCELLED = "cancelled"


def address_sort_key(address: str) -> Tuple[int, int]:
    """Sort key ordering IPv4 before IPv6, then numerically."""
    ip = ipaddress.ip_address(address)
    return ip.version, int(ip)


@dataclass(frozen=True)
class NetworkRange:
    """
    A parsed CIDR block.

    Attributes:
        family: Address family of the block
        base_address: Network address of the block (host bits cleared)
        prefix_length: Prefix length, 0-32 for IPv4 and 0-128 for IPv6
    """
    family: AddressFamily
    base_address: str
    prefix_length: int

    def __post_init__(self):
        if not 0 <= self.prefix_length <= self.family.max_prefix:
            raise ValueError(
                f"Prefix length {self.prefix_length} out of range for {self.family.name}"
            )

    @property
    def network(self) -> IPNetwork:
        return ipaddress.ip_network(f"{self.base_address}/{self.prefix_length}")

    @property
    def num_addresses(self) -> int:
        return 2 ** (self.family.max_prefix - self.prefix_length)

    def __str__(self) -> str:
        return f"{self.base_address}/{self.prefix_length}"


class PortSet:
    """
    Immutable ordered set of distinct TCP ports.

    Insertion order is kept for probing; reported open ports are always
    sorted independently of it.
    """

    __slots__ = ("_ports",)

    def __init__(self, ports: Iterable[int] = DEFAULT_PORTS):
        seen = []
        for port in ports:
            if isinstance(port, bool) or not isinstance(port, int):
                raise ConfigurationError(f"Port must be an integer, got {port!r}")
            if not 1 <= port <= 65535:
                raise ConfigurationError(f"Port {port} out of range (1-65535)")
            if port not in seen:
                seen.append(port)
        object.__setattr__(self, "_ports", tuple(seen))

    def __setattr__(self, name, value):
        raise AttributeError("PortSet is immutable")

    @classmethod
    def default(cls) -> "PortSet":
        return cls(DEFAULT_PORTS)

    @classmethod
    def parse(cls, text: str) -> "PortSet":
        """
        Parse a comma-separated port list such as "22,80,443".

        Raises:
            ConfigurationError: If an entry is not a port number
        """
        ports = []
        for chunk in str(text).split(","):
            chunk = chunk.strip()
            if not chunk:
                continue
            try:
                ports.append(int(chunk))
            except ValueError:
                raise ConfigurationError(f"Invalid port {chunk!r} in {text!r}") from None
        if not ports:
            raise ConfigurationError(f"No ports in {text!r}")
        return cls(ports)

    @property
    def ports(self) -> Tuple[int, ...]:
        return self._ports

    def __iter__(self) -> Iterator[int]:
        return iter(self._ports)

    def __len__(self) -> int:
        return len(self._ports)

    def __contains__(self, port: object) -> bool:
        return port in self._ports

    def __eq__(self, other: object) -> bool:
        if isinstance(other, PortSet):
            return self._ports == other._ports
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self._ports)

    def __repr__(self) -> str:
        return f"PortSet({list(self._ports)!r})"

    def __str__(self) -> str:
        return ",".join(str(port) for port in self._ports)


def _normalize_ports(ports: Iterable[int]) -> Tuple[int, ...]:
    return tuple(sorted(set(ports)))


@dataclass(frozen=True)
class ScanTarget:
    """One candidate address together with the settings needed to probe it."""
    address: str
    timeout_ms: int
    ports: PortSet = field(default_factory=PortSet.default)

    @property
    def timeout(self) -> float:
        """Probe timeout in seconds."""
        return self.timeout_ms / 1000.0


@dataclass(frozen=True)
class LivenessResult:
    """Outcome of the phase-1 liveness probe for one address."""
    address: str
    reachable: bool


@dataclass(frozen=True)
class PortScanResult:
    """Open ports of one host, ascending and duplicate-free."""
    address: str
    open_ports: Tuple[int, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, "open_ports", _normalize_ports(self.open_ports))


@dataclass(frozen=True)
class HostInfo:
    """
    Profile of one live host.

    Attributes:
        address: IP address of the host
        hostname: Reverse-DNS name, None when the lookup failed
        latency_ms: Round-trip time in milliseconds, UNMEASURED_LATENCY_MS
            when the latency probe got no reply
        open_ports: Open TCP ports, ascending and duplicate-free
    """
    address: str
    hostname: Optional[str] = None
    latency_ms: float = UNMEASURED_LATENCY_MS
    open_ports: Tuple[int, ...] = ()

    def __post_init__(self):
        if self.latency_ms < 0:
            raise ValueError(f"latency_ms must be >= 0, got {self.latency_ms}")
        object.__setattr__(self, "open_ports", _normalize_ports(self.open_ports))

    @property
    def display_hostname(self) -> str:
        return self.hostname or "Unknown"

    @property
    def latency_measured(self) -> bool:
        return self.latency_ms != UNMEASURED_LATENCY_MS

    def to_dict(self) -> Dict[str, Any]:
        return {
            "address": self.address,
            "hostname": self.hostname,
            "latency_ms": round(self.latency_ms, 2),
            "open_ports": list(self.open_ports),
        }


@dataclass
class ScanStatistics:
    """
    Statistics about one discovery run.

    Attributes:
        candidates: Number of addresses enumerated from the range
        live_hosts: Number of addresses that answered the liveness probe
        phase_times: Duration of each phase in seconds
        degraded_probes: Count of degraded probe results by probe kind
    """
    candidates: int = 0
    live_hosts: int = 0
    phase_times: Dict[str, float] = field(default_factory=dict)
    degraded_probes: Dict[str, int] = field(default_factory=dict)

    @property
    def total_time(self) -> float:
        return sum(self.phase_times.values())


class DiscoveredHostSet:
    """
    The HostInfo records of one scan run.

    Hosts are kept sorted by address (IPv4 before IPv6, then numerically), so
    the output does not depend on the order in which probe tasks finished.
    Each address appears at most once.
    """

    def __init__(
        self,
        hosts: Iterable[HostInfo] = (),
        network: Optional[NetworkRange] = None,
        status: ScanStatus = ScanStatus.COMPLETED,
        statistics: Optional[ScanStatistics] = None,
    ):
        ordered = sorted(hosts, key=lambda host: address_sort_key(host.address))
        index: Dict[str, HostInfo] = {}
        for host in ordered:
            if host.address in index:
                raise ValueError(f"Duplicate host entry for {host.address}")
            index[host.address] = host

        self._hosts: Tuple[HostInfo, ...] = tuple(ordered)
        self._index = index
        self.network = network
        self.status = status
        self.statistics = statistics or ScanStatistics(live_hosts=len(ordered))

    @property
    def hosts(self) -> Tuple[HostInfo, ...]:
        return self._hosts

    @property
    def addresses(self) -> List[str]:
        return [host.address for host in self._hosts]

    def get(self, address: str) -> Optional[HostInfo]:
        return self._index.get(address)

    def by_address(self) -> Dict[str, HostInfo]:
        return dict(self._index)

    def __iter__(self) -> Iterator[HostInfo]:
        return iter(self._hosts)

    def __len__(self) -> int:
        return len(self._hosts)

    def __contains__(self, address: object) -> bool:
        return address in self._index

    def __repr__(self) -> str:
        return f"DiscoveredHostSet(network={self.network}, hosts={self.addresses!r}, status={self.status.value})"
