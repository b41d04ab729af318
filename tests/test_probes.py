import asyncio
import socket

import pytest

from netscan.core.cancellation import CancellationToken
from netscan.scanners.hostname_resolver import HostnameResolver
from netscan.scanners import liveness_probe
from netscan.scanners.liveness_probe import (
    LivenessProbe,
    build_ping_command,
    default_subprocess_limit,
    parse_ping_rtt,
)
from netscan.scanners.port_probe import PortProbe
from netscan.utils.error_handler import ConfigurationError, ErrorHandler

from fakes import PingSpawner


async def _probe_local_port(open_server: bool) -> bool:
    async def handle(reader, writer):
        writer.close()

    server = await asyncio.start_server(handle, "127.0.0.1", 0)
    port = server.sockets[0].getsockname()[1]
    if not open_server:
        server.close()
        await server.wait_closed()
        return await PortProbe().probe("127.0.0.1", port, 1.0)

    async with server:
        return await PortProbe().probe("127.0.0.1", port, 1.0)


def test_port_probe_detects_listening_port() -> None:
    assert asyncio.run(_probe_local_port(open_server=True)) is True


def test_port_probe_reports_refused_port_as_closed() -> None:
    assert asyncio.run(_probe_local_port(open_server=False)) is False


def test_port_probe_skips_work_once_cancelled(monkeypatch) -> None:
    def fail(*args, **kwargs):
        raise AssertionError("connection attempted after cancellation")

    monkeypatch.setattr(asyncio, "open_connection", fail)
    token = CancellationToken()
    token.cancel()

    assert asyncio.run(PortProbe().probe("127.0.0.1", 22, 1.0, token)) is False


def test_hostname_resolver_returns_name(monkeypatch) -> None:
    monkeypatch.setattr(socket, "gethostbyaddr", lambda address: ("nas.lan", [], [address]))
    resolver = HostnameResolver(max_workers=2)
    try:
        assert asyncio.run(resolver.resolve("10.0.0.7", 1.0)) == "nas.lan"
    finally:
        resolver.close()


def test_hostname_resolver_returns_none_for_missing_record(monkeypatch, quiet_logger) -> None:
    def no_record(address):
        raise socket.herror(1, "Unknown host")

    monkeypatch.setattr(socket, "gethostbyaddr", no_record)
    error_handler = ErrorHandler(quiet_logger)
    resolver = HostnameResolver(max_workers=2, error_handler=error_handler)
    try:
        assert asyncio.run(resolver.resolve("10.0.0.7", 1.0)) is None
    finally:
        resolver.close()
    assert error_handler.degraded_counts() == {}


def test_hostname_resolver_counts_unexpected_failures(monkeypatch, quiet_logger) -> None:
    def broken(address):
        raise OSError("resolver socket closed")

    monkeypatch.setattr(socket, "gethostbyaddr", broken)
    error_handler = ErrorHandler(quiet_logger)
    resolver = HostnameResolver(max_workers=2, error_handler=error_handler)
    try:
        assert asyncio.run(resolver.resolve("10.0.0.7", 1.0)) is None
    finally:
        resolver.close()
    assert error_handler.degraded_counts() == {"hostname": 1}


@pytest.mark.parametrize(
    "system, address, timeout, expected",
    [
        ("Linux", "10.0.0.1", 1.0, ["ping", "-c", "1", "-W", "1", "10.0.0.1"]),
        ("Linux", "10.0.0.1", 1.5, ["ping", "-c", "1", "-W", "2", "10.0.0.1"]),
        ("Linux", "fd00::1", 0.2, ["ping", "-c", "1", "-W", "1", "-6", "fd00::1"]),
        ("Windows", "10.0.0.1", 0.5, ["ping", "-n", "1", "-w", "500", "10.0.0.1"]),
        ("Windows", "fd00::1", 1.0, ["ping", "-n", "1", "-w", "1000", "-6", "fd00::1"]),
        ("Darwin", "10.0.0.1", 1.0, ["ping", "-c", "1", "-W", "1000", "10.0.0.1"]),
        ("Darwin", "fd00::1", 1.0, ["ping6", "-c", "1", "fd00::1"]),
    ],
)
def test_build_ping_command(system, address, timeout, expected) -> None:
    assert build_ping_command(address, timeout, system) == expected


def test_unknown_liveness_method_is_rejected() -> None:
    with pytest.raises(ConfigurationError):
        LivenessProbe("arp")


def test_missing_ping_binary_means_unreachable(monkeypatch, quiet_logger) -> None:
    async def missing(*args, **kwargs):
        raise FileNotFoundError("ping")

    monkeypatch.setattr(asyncio, "create_subprocess_exec", missing)
    error_handler = ErrorHandler(quiet_logger)
    probe = LivenessProbe("ping", error_handler=error_handler)

    assert asyncio.run(probe.probe("10.0.0.1", 0.1)) is False
    assert error_handler.degraded_counts() == {"liveness": 1}


@pytest.mark.parametrize(
    "system, returncode, output, expected",
    [
        ("linux", 0, b"64 bytes from 10.0.0.1: icmp_seq=1 ttl=64 time=0.312 ms", True),
        ("linux", 1, b"", False),
        ("windows", 0, b"Reply from 10.0.0.1: bytes=32 time<1ms TTL=64", True),
        ("windows", 0, b"Reply from 10.0.0.9: Destination host unreachable.", False),
    ],
)
def test_ping_exit_status_decides_reachability(monkeypatch, system, returncode, output, expected) -> None:
    monkeypatch.setattr(asyncio, "create_subprocess_exec", PingSpawner(output=output, returncode=returncode))
    probe = LivenessProbe("ping")
    probe._system = system

    assert asyncio.run(probe.probe("10.0.0.1", 0.1)) is expected


@pytest.mark.parametrize(
    "output, expected",
    [
        (b"64 bytes from 10.0.0.1: icmp_seq=1 ttl=64 time=0.045 ms", 0.045),
        (b"64 bytes from fd00::1: icmp_seq=1 ttl=64 time=12 ms", 12.0),
        (b"Reply from 10.0.0.1: bytes=32 time=7ms TTL=128", 7.0),
        (b"Reply from 10.0.0.1: bytes=32 time<1ms TTL=128", 1.0),
        (b"1 packets transmitted, 1 received", None),
    ],
)
def test_parse_ping_rtt(output: bytes, expected) -> None:
    assert parse_ping_rtt(output) == expected


def test_echo_reports_round_trip_printed_by_ping(monkeypatch) -> None:
    monkeypatch.setattr(asyncio, "create_subprocess_exec", PingSpawner(delay=0.05))
    probe = LivenessProbe("ping")
    probe._system = "linux"

    assert asyncio.run(probe.echo("10.0.0.1", 1.0)) == 0.05


def test_echo_without_time_field_falls_back_to_elapsed_time(monkeypatch) -> None:
    monkeypatch.setattr(asyncio, "create_subprocess_exec", PingSpawner(output=b"Antwort von 10.0.0.1", delay=0.01))
    probe = LivenessProbe("ping")
    probe._system = "linux"

    rtt_ms = asyncio.run(probe.echo("10.0.0.1", 1.0))

    assert rtt_ms is not None and rtt_ms > 0.0


@pytest.mark.parametrize("kill_error", [None, ProcessLookupError()])
def test_hung_ping_is_killed_after_timeout(monkeypatch, kill_error) -> None:
    spawner = PingSpawner(delay=10.0, kill_error=kill_error)
    monkeypatch.setattr(asyncio, "create_subprocess_exec", spawner)
    monkeypatch.setattr(liveness_probe, "PING_GRACE_S", 0.0)
    probe = LivenessProbe("ping")

    assert asyncio.run(probe.probe("10.0.0.1", 0.05)) is False
    assert spawner.processes[0].killed
    assert spawner.alive == 0


def test_ping_children_are_capped(monkeypatch) -> None:
    spawner = PingSpawner(delay=0.01, fd_budget=4)
    monkeypatch.setattr(asyncio, "create_subprocess_exec", spawner)
    probe = LivenessProbe("ping", max_subprocesses=4)
    probe._system = "linux"

    async def sweep():
        return await asyncio.gather(*(probe.probe(f"10.0.0.{i}", 1.0) for i in range(1, 41)))

    assert all(asyncio.run(sweep()))
    assert spawner.max_alive == 4
    assert len(spawner.processes) == 40


def test_waiting_for_a_ping_slot_honours_cancellation(monkeypatch) -> None:
    spawner = PingSpawner(delay=0.02)
    monkeypatch.setattr(asyncio, "create_subprocess_exec", spawner)
    probe = LivenessProbe("ping", max_subprocesses=1)
    probe._system = "linux"
    token = CancellationToken()

    async def sweep():
        first = asyncio.create_task(probe.probe("10.0.0.1", 1.0, token))
        second = asyncio.create_task(probe.probe("10.0.0.2", 1.0, token))
        await asyncio.sleep(0)
        token.cancel()
        return await asyncio.gather(first, second)

    assert asyncio.run(sweep()) == [True, False]
    assert len(spawner.processes) == 1


def test_subprocess_limit_follows_open_file_limit(monkeypatch) -> None:
    resource = pytest.importorskip("resource")

    monkeypatch.setattr(resource, "getrlimit", lambda kind: (1024, 4096))
    assert default_subprocess_limit() == 128

    monkeypatch.setattr(resource, "getrlimit", lambda kind: (8, 8))
    assert default_subprocess_limit() == 1

    monkeypatch.setattr(resource, "getrlimit", lambda kind: (resource.RLIM_INFINITY, resource.RLIM_INFINITY))
    assert default_subprocess_limit() == liveness_probe.DEFAULT_MAX_SUBPROCESSES


def test_scapy_permission_error_means_unreachable(monkeypatch, quiet_logger) -> None:
    def no_raw_socket(address, timeout):
        raise PermissionError(1, "Operation not permitted")

    monkeypatch.setattr(LivenessProbe, "_scapy_echo", staticmethod(no_raw_socket))
    error_handler = ErrorHandler(quiet_logger)
    probe = LivenessProbe("scapy", error_handler=error_handler, max_workers=2)
    try:
        assert asyncio.run(probe.probe("10.0.0.1", 0.1)) is False
    finally:
        probe.close()
    assert error_handler.degraded_counts() == {"liveness": 1}


def test_port_probe_gives_up_after_timeout(monkeypatch) -> None:
    async def unanswered(*args, **kwargs):
        await asyncio.sleep(10)

    monkeypatch.setattr(asyncio, "open_connection", unanswered)

    async def timed_probe():
        loop = asyncio.get_running_loop()
        started = loop.time()
        result = await PortProbe().probe("10.0.0.1", 22, 0.05)
        return result, loop.time() - started

    result, elapsed = asyncio.run(timed_probe())

    assert result is False
    assert elapsed < 1.0
