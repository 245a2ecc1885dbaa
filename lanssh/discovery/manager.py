"""Folds discovery events into the host list shown to the user."""

from __future__ import annotations

import asyncio
import enum
import logging
from typing import Callable

from lanssh.config import DEFAULT_MAX_HOSTS, DiscoveryConfig
from lanssh.discovery.session import DiscoverySessionController, EventStream
from lanssh.discovery.subnet import has_lan_interface
from lanssh.models import DiscoveredHost, DiscoveryEvent, DiscoverySource, EventKind, SourceState

logger = logging.getLogger(__name__)


class ScanState(str, enum.Enum):
    IDLE = "idle"
    SCANNING = "scanning"
    COMPLETED = "completed"
    UNSUPPORTED_NETWORK = "unsupported_network"
    FAILED = "failed"


class PermissionState(str, enum.Enum):
    UNKNOWN = "unknown"
    GRANTED = "granted"
    DENIED = "denied"


def _sort_key(host: DiscoveredHost) -> tuple[bool, str, str]:
    return (
        DiscoverySource.SERVICE_DISCOVERY not in host.sources,
        host.display_name.casefold(),
        host.host.casefold(),
    )


class HostAggregator:
    """Deduplicated, sorted host list keyed by ``host:port``."""

    def __init__(self, max_hosts: int = DEFAULT_MAX_HOSTS) -> None:
        self.max_hosts = max_hosts
        self._by_key: dict[str, DiscoveredHost] = {}
        self._ordered: list[DiscoveredHost] = []

    def __len__(self) -> int:
        return len(self._by_key)

    def __contains__(self, key: str) -> bool:
        return key in self._by_key

    @property
    def hosts(self) -> list[DiscoveredHost]:
        return list(self._ordered)

    def get(self, key: str) -> DiscoveredHost | None:
        return self._by_key.get(key)

    def upsert(self, host: DiscoveredHost) -> bool:
        """Merge *host* into the list.  Returns False if it was ignored."""
        if not host.host:
            return False
        existing = self._by_key.get(host.identity_key)
        if existing is not None:
            existing.merge(host)
        else:
            if len(self._by_key) >= self.max_hosts:
                logger.debug("Host list full — ignoring %s", host.identity_key)
                return False
            self._by_key[host.identity_key] = DiscoveredHost(
                display_name=host.display_name,
                host=host.host,
                port=host.port,
                sources=set(host.sources),
                last_seen_at=host.last_seen_at,
                latency_ms=host.latency_ms,
            )
        self._ordered = sorted(self._by_key.values(), key=_sort_key)
        return True

    def clear(self) -> None:
        self._by_key.clear()
        self._ordered = []


class DiscoveryManager:
    """UI-facing discovery state.

    Drives a :class:`DiscoverySessionController`, consumes its event stream
    and exposes the aggregated hosts plus scan/permission status.  Listeners
    registered with :meth:`on_change` are called after every state change.
    """

    def __init__(
        self,
        controller: DiscoverySessionController | None = None,
        config: DiscoveryConfig | None = None,
    ) -> None:
        self.controller = controller or DiscoverySessionController(config)
        self.config = self.controller.config
        self.aggregator = HostAggregator(self.config.max_hosts)
        self.scan_state = ScanState.IDLE
        self.permission_state = PermissionState.UNKNOWN
        self.error: str | None = None
        self.service_discovery_active = False
        self.probe_active = False
        self._stream_task: asyncio.Task[None] | None = None
        self._listeners: list[Callable[[DiscoveryManager], None]] = []

    # ── State ──────────────────────────────────────────────────────

    @property
    def hosts(self) -> list[DiscoveredHost]:
        return self.aggregator.hosts

    @property
    def is_scanning(self) -> bool:
        return self.scan_state is ScanState.SCANNING

    @property
    def status_text(self) -> str:
        if self.scan_state is ScanState.IDLE:
            return "Ready to scan your local network."
        if self.scan_state is ScanState.UNSUPPORTED_NETWORK:
            return "Connect to Wi-Fi or ethernet to discover local SSH hosts."
        if self.scan_state is ScanState.SCANNING:
            if self.service_discovery_active and self.probe_active:
                return "Scanning with Bonjour and SSH port probe..."
            if self.service_discovery_active:
                return "Scanning Bonjour services..."
            if self.probe_active:
                return f"Scanning local subnet for SSH port {self.config.ssh_port}..."
            return "Scanning..."
        if self.scan_state is ScanState.COMPLETED:
            if not self.hosts:
                return "No SSH hosts found."
            return f"{len(self.hosts)} SSH host(s) found."
        return self.error or "Scan failed."

    def on_change(self, callback: Callable[[DiscoveryManager], None]) -> None:
        self._listeners.append(callback)

    def _notify(self) -> None:
        for cb in self._listeners:
            try:
                cb(self)
            except Exception:
                logger.exception("Error in discovery change listener")

    # ── Lifecycle ──────────────────────────────────────────────────

    async def start_scan(self) -> None:
        """Start a fresh scan in the background."""
        if not has_lan_interface(self.controller.interfaces):
            await self.stop_scan(clear_results=True)
            self.scan_state = ScanState.UNSUPPORTED_NETWORK
            self._notify()
            return

        await self.stop_scan()
        self.aggregator.clear()
        self.error = None
        self.scan_state = ScanState.SCANNING
        self.permission_state = PermissionState.UNKNOWN
        self.service_discovery_active = False
        self.probe_active = False

        stream = await self.controller.start_scan()
        self._stream_task = asyncio.ensure_future(self._consume(stream))
        self._notify()

    async def rescan(self) -> None:
        await self.start_scan()

    async def stop_scan(self, clear_results: bool = False) -> None:
        task, self._stream_task = self._stream_task, None
        if task is not None and task is not asyncio.current_task():
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
        await self.controller.stop_scan()
        if self.scan_state is ScanState.SCANNING:
            self.scan_state = ScanState.IDLE if clear_results else ScanState.COMPLETED
        self.service_discovery_active = False
        self.probe_active = False
        if clear_results:
            self.aggregator.clear()
            self.error = None
            self.scan_state = ScanState.IDLE
            self.permission_state = PermissionState.UNKNOWN
        self._notify()

    async def run(self) -> list[DiscoveredHost]:
        """Run one complete scan and return the aggregated hosts."""
        await self.start_scan()
        if self._stream_task is not None:
            await asyncio.gather(self._stream_task, return_exceptions=True)
        return self.hosts

    async def _consume(self, stream: EventStream) -> None:
        async for event in stream:
            self.handle_event(event)

    # ── Event folding ──────────────────────────────────────────────

    def handle_event(self, event: DiscoveryEvent) -> None:
        if event.kind is EventKind.SCANNING_STARTED:
            self.scan_state = ScanState.SCANNING
        elif event.kind is EventKind.SOURCE_STATUS:
            active = event.state is SourceState.STARTED
            if event.source is DiscoverySource.SERVICE_DISCOVERY:
                self.service_discovery_active = active
            else:
                self.probe_active = active
        elif event.kind is EventKind.HOST_FOUND and event.host is not None:
            if (
                self.permission_state is PermissionState.UNKNOWN
                and DiscoverySource.SERVICE_DISCOVERY in event.host.sources
            ):
                self.permission_state = PermissionState.GRANTED
            self.aggregator.upsert(event.host)
        elif event.kind is EventKind.PERMISSION_DENIED:
            self.permission_state = PermissionState.DENIED
        elif event.kind is EventKind.FAILED:
            self.error = event.message
            self.scan_state = ScanState.FAILED
        elif event.kind is EventKind.SCANNING_FINISHED:
            self.service_discovery_active = False
            self.probe_active = False
            if self.scan_state is ScanState.SCANNING:
                self.scan_state = ScanState.COMPLETED
            logger.info("Scan finished — %d host(s)", len(self.hosts))
        self._notify()
