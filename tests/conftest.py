"""pytest configuration and platform fakes for lanssh tests."""

from __future__ import annotations

import asyncio

import pytest

from lanssh.config import DiscoveryConfig
from lanssh.discovery.browser import ResolvedService, ServiceAdvertisement, ServiceBrowser
from lanssh.discovery.prober import TcpProber
from lanssh.discovery.subnet import InterfaceSnapshot, InterfaceSnapshotProvider


def pytest_configure(config):
    config.addinivalue_line(
        "markers", "asyncio: mark test as async"
    )


class FakeInterfaces(InterfaceSnapshotProvider):
    def __init__(self, snapshots: list[InterfaceSnapshot] | None = None) -> None:
        self.snapshots = snapshots or []

    def snapshot(self) -> list[InterfaceSnapshot]:
        return list(self.snapshots)


class FakeProber(TcpProber):
    """Answers from a host → latency table, tracking concurrency."""

    def __init__(
        self,
        reachable: dict[str, int] | None = None,
        delay: float = 0.0,
    ) -> None:
        self.reachable = reachable or {}
        self.delay = delay
        self.calls: list[tuple[str, int, float]] = []
        self.in_flight = 0
        self.max_in_flight = 0
        self.cancelled = 0

    async def probe(self, host: str, port: int, timeout: float) -> int | None:
        self.calls.append((host, port, timeout))
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            return self.reachable.get(host)
        except asyncio.CancelledError:
            self.cancelled += 1
            raise
        finally:
            self.in_flight -= 1


class FakeBrowser(ServiceBrowser):
    """Delivers a fixed list of advertisements once browsing starts."""

    def __init__(
        self,
        advertisements: list[ServiceAdvertisement] | None = None,
        resolutions: dict[str, ResolvedService] | None = None,
        start_error: Exception | None = None,
        resolve_delay: float = 0.0,
    ) -> None:
        self.advertisements = advertisements or []
        self.resolutions = resolutions or {}
        self.start_error = start_error
        self.resolve_delay = resolve_delay
        self.started_with: tuple[str, ...] | None = None
        self.start_count = 0
        self.stop_count = 0
        self.resolved: list[str] = []

    async def start(self, service_types, on_found) -> None:
        self.start_count += 1
        self.started_with = tuple(service_types)
        if self.start_error is not None:
            raise self.start_error
        loop = asyncio.get_running_loop()
        for adv in self.advertisements:
            loop.call_soon(on_found, adv)

    async def resolve(self, advertisement, timeout):
        self.resolved.append(advertisement.key)
        if self.resolve_delay:
            await asyncio.sleep(self.resolve_delay)
        return self.resolutions.get(advertisement.name)

    async def stop(self) -> None:
        self.stop_count += 1


def lan(address: str = "192.168.1.42", netmask: str = "255.255.255.0", name: str = "en0") -> InterfaceSnapshot:
    return InterfaceSnapshot(name=name, address=address, netmask=netmask)


@pytest.fixture
def fast_config() -> DiscoveryConfig:
    return DiscoveryConfig(
        scan_duration=0.3,
        probe_timeout=0.05,
        probe_concurrency=8,
        resolve_timeout=0.1,
    )
