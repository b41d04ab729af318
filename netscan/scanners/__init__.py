"""
Probe implementations for netscan.

This package contains the ICMP liveness probe, the TCP connect port probe
and the reverse-DNS resolver, all built on the BaseProbe interface.
"""

from .base_scanner import BaseProbe
from .liveness_probe import LivenessProbe
from .port_probe import PortProbe
from .hostname_resolver import HostnameResolver

__all__ = [
    'BaseProbe',
    'LivenessProbe',
    'PortProbe',
    'HostnameResolver',
]
