"""
Local network detection.

Finds the subnet the host is attached to so that a scan can be started
without an explicit --network argument.
"""

import ipaddress
import socket
from typing import Optional, Tuple

import psutil

from ..utils.error_handler import ErrorContext, ErrorSeverity, ErrorType, NetworkError
from ..utils.logger import Logger, get_logger


class NetworkDetector:
    """
    Detects the host's primary IPv4 network.

    The primary address is the source address the kernel picks for an
    outbound UDP socket; its netmask comes from psutil's interface table.
    """

    def __init__(self, logger: Optional[Logger] = None, probe_address: str = "8.8.8.8"):
        """
        Initialize the NetworkDetector.

        Args:
            logger: Logger instance for detection messages
            probe_address: Public address used to select the outbound interface
                (no packet is sent)
        """
        self.logger = logger or get_logger(__name__)
        self.probe_address = probe_address

    def detect_local_network(self) -> str:
        """
        Detect the CIDR of the network the primary interface is attached to.

        Returns:
            Network in CIDR notation, e.g. "192.168.1.0/24"

        Raises:
            NetworkError: If the network configuration cannot be detected
        """
        host_ip = self.get_primary_ip()
        interface_name, netmask = self.get_interface_netmask(host_ip)

        network = ipaddress.IPv4Network(f"{host_ip}/{netmask}", strict=False)
        self.logger.info(f"Detected network {network} on {interface_name} (host {host_ip})")
        return str(network)

    def get_primary_ip(self) -> str:
        try:
            # connect() on a UDP socket only selects a route, nothing is sent
            with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as s:
                s.connect((self.probe_address, 80))
                host_ip = s.getsockname()[0]
        except OSError as e:
            raise self._detection_error(f"Cannot determine primary IP address: {e}") from e

        if not host_ip or ipaddress.IPv4Address(host_ip).is_loopback:
            raise self._detection_error(f"No usable primary IP address (got {host_ip!r})")
        return host_ip

    def get_interface_netmask(self, host_ip: str) -> Tuple[str, str]:
        """
        Find the interface holding an address and return its netmask.

        Returns:
            Tuple of (interface_name, netmask)
        """
        for interface_name, addresses in psutil.net_if_addrs().items():
            for address in addresses:
                if address.family == socket.AF_INET and address.address == host_ip and address.netmask:
                    self.logger.debug(f"Interface {interface_name} holds {host_ip}/{address.netmask}")
                    return interface_name, address.netmask

        raise self._detection_error(f"No interface found holding {host_ip}")

    @staticmethod
    def _detection_error(message: str) -> NetworkError:
        return NetworkError(
            message,
            ErrorContext(
                error_type=ErrorType.NETWORK_ERROR,
                severity=ErrorSeverity.HIGH,
                operation="detect_local_network",
                component="NetworkDetector",
            ),
        )
