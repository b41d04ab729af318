"""
Reverse-DNS hostname resolver.

socket.gethostbyaddr blocks inside the system resolver, so every lookup runs
on a dedicated thread pool and the event loop only awaits the result.
"""

import asyncio
import socket
from concurrent.futures import ThreadPoolExecutor
from typing import Optional

from .base_scanner import BaseProbe
from ..core.cancellation import CancellationToken, is_cancelled
from ..utils.error_handler import ErrorHandler
from ..utils.logger import Logger


class HostnameResolver(BaseProbe):
    """Best-effort PTR lookup: returns the name or None, never raises."""

    probe_type = "hostname"

    def __init__(
        self,
        max_workers: int = 32,
        logger: Optional[Logger] = None,
        error_handler: Optional[ErrorHandler] = None,
    ):
        """
        Initialize the resolver.

        Args:
            max_workers: Size of the lookup thread pool
            logger: Logger instance for probe diagnostics
            error_handler: ErrorHandler used to count transport faults
        """
        super().__init__(logger, error_handler)
        self.max_workers = max_workers
        self._executor: Optional[ThreadPoolExecutor] = None

    async def resolve(
        self,
        address: str,
        timeout: float,
        cancel_token: Optional[CancellationToken] = None,
    ) -> Optional[str]:
        """
        Look up the hostname of an address.

        Args:
            address: IPv4 or IPv6 address
            timeout: Upper bound in seconds the caller waits for the lookup
            cancel_token: Scan cancellation token

        Returns:
            Resolved hostname, or None on NXDOMAIN, timeout or any other failure
        """
        if is_cancelled(cancel_token):
            return None

        if self._executor is None:
            self._executor = ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="netscan-dns")

        loop = asyncio.get_running_loop()
        lookup = loop.run_in_executor(self._executor, socket.gethostbyaddr, address)
        try:
            hostname, _, _ = await asyncio.wait_for(lookup, timeout)
        except (socket.herror, socket.gaierror, asyncio.TimeoutError):
            return None
        except (OSError, UnicodeError) as e:
            self._record_failure(address, e)
            return None

        self._log_debug(f"Resolved {address} -> {hostname}")
        return hostname or None

    def close(self) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=False, cancel_futures=True)
            self._executor = None
