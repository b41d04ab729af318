"""
Network range parsing and address enumeration.

Turns a CIDR specification into a NetworkRange and expands a NetworkRange
into every address it contains. IPv4 and IPv6 go through the same ipaddress
code path.
"""

import ipaddress
from typing import List

from .data_models import AddressFamily, NetworkRange
from ..utils.error_handler import InvalidRangeError


def parse_network_range(network_spec: str) -> NetworkRange:
    """
    Parse a CIDR specification such as "192.168.1.0/24" or "fd00::/120".

    Host bits are allowed and masked off ("192.168.1.7/24" is the same block
    as "192.168.1.0/24"). A bare address is a single-address range.

    Args:
        network_spec: Network in CIDR notation

    Returns:
        NetworkRange for the block

    Raises:
        InvalidRangeError: If the string is not IPv4 or IPv6 CIDR notation
    """
    if not isinstance(network_spec, str):
        raise InvalidRangeError(network_spec, "expected a string")

    text = network_spec.strip()
    if not text:
        raise InvalidRangeError(network_spec, "empty specification")

    try:
        network = ipaddress.ip_network(text, strict=False)
    except ValueError as e:
        raise InvalidRangeError(network_spec, str(e)) from e

    family = AddressFamily.IPV4 if network.version == 4 else AddressFamily.IPV6
    return NetworkRange(
        family=family,
        base_address=str(network.network_address),
        prefix_length=network.prefixlen,
    )


def enumerate_addresses(network_range: NetworkRange) -> List[str]:
    """
    List every address of a range in ascending order.

    Network and broadcast addresses are included.

    Args:
        network_range: Parsed network range

    Returns:
        List of address strings, 2 ** (max_prefix - prefix_length) entries
    """
    return [str(address) for address in network_range.network]
