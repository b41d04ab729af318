"""
netscan

Discovers live hosts on an IPv4 or IPv6 network range and reports, for each
one, its reverse-DNS name, round-trip latency and open TCP ports.
"""

__version__ = "1.0.0"

from .core.discovery_coordinator import DiscoveryCoordinator, discover
from .core.data_models import DiscoveredHostSet, HostInfo, PortSet
from .utils.error_handler import InvalidRangeError, NetscanError

__all__ = [
    'DiscoveryCoordinator',
    'discover',
    'DiscoveredHostSet',
    'HostInfo',
    'PortSet',
    'InvalidRangeError',
    'NetscanError',
]
