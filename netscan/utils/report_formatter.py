"""
Report rendering for discovery results.

Renders a DiscoveredHostSet as a fixed-width table for terminals or as a
JSON document for other tools.
"""

import json
from typing import List

from colorama import Style

from ..core.data_models import DiscoveredHostSet, HostInfo

TABLE_HEADERS = ["IP Address", "Hostname", "Latency", "Open Ports"]
MIN_WIDTHS = [15, 20, 10, 10]


def host_row(host: HostInfo) -> List[str]:
    """Table cells of one host: degraded fields render as Unknown / 0.00 ms / None."""
    open_ports = ", ".join(str(port) for port in host.open_ports) if host.open_ports else "None"
    return [
        host.address,
        host.display_hostname,
        f"{host.latency_ms:.2f} ms",
        open_ports,
    ]


def format_table(host_set: DiscoveredHostSet, color: bool = True) -> str:
    """
    Render the hosts as a table.

    Args:
        host_set: Scan result
        color: Emit colorama styling for the header and separator

    Returns:
        Table text; a single notice line when no host was found
    """
    if not len(host_set):
        return "No live hosts found."

    rows = [host_row(host) for host in host_set]
    widths = [
        max([minimum, len(header)] + [len(row[i]) for row in rows])
        for i, (header, minimum) in enumerate(zip(TABLE_HEADERS, MIN_WIDTHS))
    ]

    bright = Style.BRIGHT if color else ""
    dim = Style.DIM if color else ""
    reset = Style.RESET_ALL if color else ""

    header_row = " | ".join(f"{header:<{width}}" for header, width in zip(TABLE_HEADERS, widths))
    separator = "-+-".join("-" * width for width in widths)

    lines = [f"{bright}{header_row}{reset}", f"{dim}{separator}{reset}"]
    for row in rows:
        lines.append(" | ".join(f"{value:<{width}}" for value, width in zip(row, widths)).rstrip())
    return "\n".join(lines)


def format_summary(host_set: DiscoveredHostSet) -> str:
    stats = host_set.statistics
    summary = (
        f"{len(host_set)} live hosts out of {stats.candidates} addresses "
        f"in {stats.total_time:.2f}s"
    )
    if host_set.network is not None:
        summary = f"{host_set.network}: {summary}"
    return summary


def format_json(host_set: DiscoveredHostSet, indent: int = 2) -> str:
    """Render the scan result as a JSON document."""
    stats = host_set.statistics
    document = {
        "network": str(host_set.network) if host_set.network is not None else None,
        "status": host_set.status.value,
        "statistics": {
            "candidates": stats.candidates,
            "live_hosts": stats.live_hosts,
            "phase_times": {phase: round(seconds, 3) for phase, seconds in stats.phase_times.items()},
            "degraded_probes": stats.degraded_probes,
        },
        "hosts": [host.to_dict() for host in host_set],
    }
    return json.dumps(document, indent=indent, ensure_ascii=False)
