"""
Core components of the discovery pipeline.
"""

from .data_models import (
    AddressFamily,
    NetworkRange,
    PortSet,
    ScanTarget,
    LivenessResult,
    PortScanResult,
    HostInfo,
    ScanStatus,
    ScanStatistics,
    DiscoveredHostSet,
)
from .address_enumerator import parse_network_range, enumerate_addresses
from .cancellation import CancellationToken

__all__ = [
    'AddressFamily',
    'NetworkRange',
    'PortSet',
    'ScanTarget',
    'LivenessResult',
    'PortScanResult',
    'HostInfo',
    'ScanStatus',
    'ScanStatistics',
    'DiscoveredHostSet',
    'parse_network_range',
    'enumerate_addresses',
    'CancellationToken',
]
