"""
TCP connect port probe.
"""

import asyncio
from typing import Optional

from .base_scanner import BaseProbe
from ..core.cancellation import CancellationToken, is_cancelled


class PortProbe(BaseProbe):
    """
    Checks whether a TCP port accepts connections.

    Refused, timed out, unreachable and any other connect error all mean
    "closed"; no finer port state is reported.
    """

    probe_type = "port"

    async def probe(
        self,
        address: str,
        port: int,
        timeout: float,
        cancel_token: Optional[CancellationToken] = None,
    ) -> bool:
        """
        Attempt one TCP handshake with (address, port).

        Args:
            address: Target IPv4 or IPv6 address
            port: TCP port
            timeout: Connect timeout in seconds
            cancel_token: Scan cancellation token

        Returns:
            True if the handshake completed, False otherwise
        """
        if is_cancelled(cancel_token):
            return False

        try:
            _, writer = await asyncio.wait_for(asyncio.open_connection(address, port), timeout)
        except (OSError, asyncio.TimeoutError):
            return False

        try:
            self._log_debug(f"Port {port} open on {address}")
            return True
        finally:
            writer.close()
            try:
                await writer.wait_closed()
            except OSError:
                # Peer reset while closing; the port was open regardless
                pass
