import asyncio

import pytest

from netscan import discover
from netscan.config.config_loader import ScanConfig
from netscan.core.cancellation import CancellationToken
from netscan.core.data_models import PortSet, ScanStatus
from netscan.core.discovery_coordinator import DiscoveryCoordinator, SharedAccumulator
from netscan.scanners.liveness_probe import LivenessProbe
from netscan.utils.error_handler import ErrorHandler, InvalidRangeError, RangeTooLargeError

from fakes import FakeHostnameResolver, FakeLivenessProbe, FakePortProbe, PingSpawner


def _components(quiet_logger, live=(), open_ports=None, names=None, **liveness_kwargs):
    return {
        "liveness_probe": FakeLivenessProbe(live=live, **liveness_kwargs),
        "port_probe": FakePortProbe(open_ports=open_ports),
        "hostname_resolver": FakeHostnameResolver(names),
        "logger": quiet_logger,
        "error_handler": ErrorHandler(quiet_logger),
    }


def test_end_to_end_slash_30(quiet_logger) -> None:
    components = _components(
        quiet_logger,
        live={"10.0.0.1", "10.0.0.2"},
        open_ports={"10.0.0.1": {80}},
        names={"10.0.0.1": "web.lan"},
    )

    host_set = discover("10.0.0.0/30", timeout_ms=200, **components)

    assert host_set.addresses == ["10.0.0.1", "10.0.0.2"]
    assert host_set.get("10.0.0.1").open_ports == (80,)
    assert host_set.get("10.0.0.1").hostname == "web.lan"
    assert host_set.get("10.0.0.2").open_ports == ()
    assert host_set.get("10.0.0.2").hostname is None
    assert host_set.status is ScanStatus.COMPLETED
    assert host_set.statistics.candidates == 4
    assert host_set.statistics.live_hosts == 2
    assert sorted(components["liveness_probe"].calls[:4]) == [
        "10.0.0.0", "10.0.0.1", "10.0.0.2", "10.0.0.3",
    ]


@pytest.mark.parametrize("network_spec", ["10.0.0.0/33", "garbage", "", "10.0.0.0/8/8"])
def test_invalid_range_fails_before_any_probe(quiet_logger, network_spec: str) -> None:
    components = _components(quiet_logger, live={"10.0.0.1"})

    with pytest.raises(InvalidRangeError):
        discover(network_spec, **components)

    assert components["liveness_probe"].calls == []
    assert components["port_probe"].calls == []
    assert components["hostname_resolver"].calls == []


def test_unreachable_addresses_never_profiled(quiet_logger) -> None:
    components = _components(quiet_logger, live=set(), open_ports={"10.0.0.1": {22}})

    host_set = discover("10.0.0.0/29", **components)

    assert len(host_set) == 0
    assert components["port_probe"].calls == []
    assert components["hostname_resolver"].calls == []
    assert len(components["liveness_probe"].calls) == 8


def test_crashing_liveness_probe_excludes_address(quiet_logger) -> None:
    components = _components(quiet_logger, live={"10.0.0.1"}, error=OSError("sendto: permission denied"))

    host_set = discover("10.0.0.0/30", **components)

    assert len(host_set) == 0
    assert host_set.statistics.degraded_probes == {"liveness": 4}


def test_failed_hostname_lookup_keeps_host(quiet_logger) -> None:
    components = _components(quiet_logger, live={"10.0.0.1"}, open_ports={"10.0.0.1": {22, 80, 443}})
    components["hostname_resolver"] = FakeHostnameResolver(error=OSError("no resolver"))

    host_set = discover("10.0.0.0/30", **components)

    host = host_set.get("10.0.0.1")
    assert host.hostname is None
    assert host.open_ports == (22, 80, 443)
    assert host.latency_ms >= 0.0
    assert host_set.statistics.degraded_probes["hostname"] == 1


def test_repeated_scans_give_identical_results(quiet_logger) -> None:
    def run():
        components = _components(
            quiet_logger,
            live={"10.0.0.3", "10.0.0.9", "10.0.0.12"},
            open_ports={"10.0.0.9": {22, 443}, "10.0.0.12": {80}},
            names={"10.0.0.3": "printer.lan"},
        )
        return discover("10.0.0.0/28", ports=[22, 80, 443], **components)

    first, second = run(), run()

    def summary(host_set):
        return {
            address: (host.hostname, host.open_ports)
            for address, host in host_set.by_address().items()
        }

    assert summary(first) == summary(second)
    assert first.addresses == second.addresses == ["10.0.0.3", "10.0.0.9", "10.0.0.12"]


def test_only_configured_ports_are_probed(quiet_logger) -> None:
    components = _components(quiet_logger, live={"10.0.0.1"})

    discover("10.0.0.1/32", ports=[8080, 22], **components)

    assert sorted(components["port_probe"].calls) == [("10.0.0.1", 22), ("10.0.0.1", 8080)]


def test_fan_out_is_unbounded_by_default(quiet_logger) -> None:
    components = _components(quiet_logger, delay=0.01)

    discover("10.0.0.0/28", **components)

    assert components["liveness_probe"].max_in_flight == 16


def test_concurrency_limit_is_honoured(quiet_logger) -> None:
    components = _components(quiet_logger, delay=0.01)
    config = ScanConfig(max_concurrency=3)

    discover("10.0.0.0/28", config=config, **components)

    assert components["liveness_probe"].max_in_flight <= 3
    assert len(components["liveness_probe"].calls) == 16


def test_range_above_limit_is_rejected(quiet_logger) -> None:
    components = _components(quiet_logger)
    config = ScanConfig(max_addresses=256)

    with pytest.raises(RangeTooLargeError):
        discover("10.0.0.0/23", config=config, **components)

    assert components["liveness_probe"].calls == []


def test_cancellation_skips_profiling(quiet_logger) -> None:
    token = CancellationToken()
    components = _components(quiet_logger, live={"10.0.0.1", "10.0.0.2"})
    liveness = components["liveness_probe"]
    real_probe = liveness.probe

    async def cancelling_probe(address, timeout, cancel_token=None):
        if address == "10.0.0.3":
            token.cancel()
        return await real_probe(address, timeout, cancel_token)

    liveness.probe = cancelling_probe
    host_set = discover("10.0.0.0/30", cancel_token=token, **components)

    assert host_set.status is ScanStatus.CANCELLED
    assert components["port_probe"].calls == []
    assert len(host_set) == 0


def test_coordinator_discover_accepts_per_scan_config(quiet_logger) -> None:
    components = _components(quiet_logger, live={"fd00::2"}, open_ports={"fd00::2": {443}})
    coordinator = DiscoveryCoordinator(ScanConfig(), **components)

    host_set = asyncio.run(coordinator.discover("fd00::/126", config=ScanConfig(ports=PortSet([443]))))

    assert host_set.addresses == ["fd00::2"]
    assert host_set.get("fd00::2").open_ports == (443,)
    assert components["port_probe"].calls == [("fd00::2", 443)]


def test_shared_accumulator_collects_every_append() -> None:
    async def fill():
        accumulator = SharedAccumulator()
        await asyncio.gather(*(accumulator.append(i) for i in range(500)))
        return accumulator

    accumulator = asyncio.run(fill())

    assert len(accumulator) == 500
    assert sorted(accumulator.snapshot()) == list(range(500))


def test_unbounded_ping_sweep_keeps_every_live_host(monkeypatch, quiet_logger) -> None:
    # Far more addresses than the descriptor budget allows ping children
    spawner = PingSpawner(delay=0.001, fd_budget=64)
    monkeypatch.setattr(asyncio, "create_subprocess_exec", spawner)
    error_handler = ErrorHandler(quiet_logger)
    liveness = LivenessProbe("ping", quiet_logger, error_handler, max_subprocesses=64)
    liveness._system = "linux"

    host_set = discover(
        "10.0.0.0/20",
        ports=[22],
        liveness_probe=liveness,
        port_probe=FakePortProbe(),
        hostname_resolver=FakeHostnameResolver(),
        logger=quiet_logger,
        error_handler=error_handler,
    )

    assert host_set.statistics.candidates == 4096
    assert len(host_set) == 4096
    assert "liveness" not in host_set.statistics.degraded_probes
    assert spawner.max_alive <= 64
    assert host_set.get("10.0.15.255").latency_ms == 0.05


def test_subprocess_limit_comes_from_config(quiet_logger) -> None:
    coordinator = DiscoveryCoordinator(ScanConfig(max_subprocesses=12), logger=quiet_logger)
    try:
        assert coordinator.liveness_probe.max_subprocesses == 12
    finally:
        coordinator.close()
