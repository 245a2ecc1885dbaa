"""lanssh.discovery — local network SSH discovery engine.

Exports:
    DiscoverySessionController  — starts/stops time-bounded scan sessions
    DiscoveryManager            — UI-facing aggregated host list and status
    HostAggregator              — merge-by-key host list
    ProbeScheduler              — wave-based TCP probing of the subnet
    ServiceDiscoverySource      — mDNS advertisements → host events
"""

from __future__ import annotations

from lanssh.discovery.browser import (
    ServiceBrowser,
    ServiceDiscoverySource,
    ZeroconfServiceBrowser,
    sanitize_local_hostname,
)
from lanssh.discovery.manager import DiscoveryManager, HostAggregator, PermissionState, ScanState
from lanssh.discovery.prober import AsyncioTcpProber, TcpProber
from lanssh.discovery.scheduler import ProbeScheduler
from lanssh.discovery.session import DiscoverySessionController, EventStream, ScanSession
from lanssh.discovery.subnet import (
    InterfaceSnapshot,
    InterfaceSnapshotProvider,
    PsutilInterfaceProvider,
    enumerate_hosts,
    local_subnet_candidates,
)

__all__ = [
    "AsyncioTcpProber",
    "DiscoveryManager",
    "DiscoverySessionController",
    "EventStream",
    "HostAggregator",
    "InterfaceSnapshot",
    "InterfaceSnapshotProvider",
    "PermissionState",
    "ProbeScheduler",
    "PsutilInterfaceProvider",
    "ScanSession",
    "ScanState",
    "ServiceBrowser",
    "ServiceDiscoverySource",
    "TcpProber",
    "ZeroconfServiceBrowser",
    "enumerate_hosts",
    "local_subnet_candidates",
    "sanitize_local_hostname",
]
