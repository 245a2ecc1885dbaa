"""Local subnet candidate enumeration.

Reads a snapshot of the host's network interfaces, picks the one that
looks like the primary LAN link, and lists the IPv4 addresses worth
probing on it.  Subnets wider than /24 are clamped to the /24 slice that
contains our own address so a scan never exceeds 254 targets.
"""

from __future__ import annotations

import abc
import ipaddress
import logging
import socket
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)

SLICE_MASK = 0xFFFFFF00
_PRIMARY_PREFIXES = ("en", "eth", "wl")


@dataclass(frozen=True)
class InterfaceSnapshot:
    """IPv4 state of one network interface at the time of the scan."""

    name: str
    address: str | None
    netmask: str | None
    is_up: bool = True
    is_loopback: bool = False


@dataclass
class CandidateAddressSet:
    network: int
    broadcast: int
    local_address: int
    prefix_length: int
    clamped: bool = False
    addresses: list[str] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.addresses)


class InterfaceSnapshotProvider(abc.ABC):
    """Read-only source of interface state."""

    @abc.abstractmethod
    def snapshot(self) -> list[InterfaceSnapshot]:
        raise NotImplementedError


class PsutilInterfaceProvider(InterfaceSnapshotProvider):
    """Interface snapshot backed by :mod:`psutil`."""

    def snapshot(self) -> list[InterfaceSnapshot]:
        import psutil

        stats = psutil.net_if_stats()
        result: list[InterfaceSnapshot] = []
        for name, addrs in psutil.net_if_addrs().items():
            iface_stats = stats.get(name)
            for addr in addrs:
                if addr.family != socket.AF_INET:
                    continue
                is_loopback = False
                try:
                    is_loopback = ipaddress.IPv4Address(addr.address).is_loopback
                except ValueError:
                    pass
                result.append(InterfaceSnapshot(
                    name=name,
                    address=addr.address,
                    netmask=addr.netmask,
                    is_up=bool(iface_stats and iface_stats.isup),
                    is_loopback=is_loopback or name.startswith("lo"),
                ))
        return result


def _to_int(value: str | None) -> int:
    if not value:
        return 0
    try:
        return int(ipaddress.IPv4Address(value))
    except ValueError:
        return 0


def select_interface(snapshots: list[InterfaceSnapshot]) -> tuple[int, int, str] | None:
    """Pick the interface to scan.

    Returns ``(address, netmask, name)`` as host-order integers, or ``None``
    when nothing qualifies.  The first interface with a primary-looking name
    wins; otherwise the last qualifying one is used.
    """
    selected: tuple[int, int, str] | None = None
    for snap in snapshots:
        address = _to_int(snap.address)
        netmask = _to_int(snap.netmask)
        if not address or not netmask:
            continue
        if snap.is_loopback or not snap.is_up:
            continue
        selected = (address, netmask, snap.name)
        if snap.name.startswith(_PRIMARY_PREFIXES):
            break
    return selected


def hosts_between(network: int, broadcast: int, excluding: int) -> list[str]:
    """Addresses strictly between *network* and *broadcast*, minus *excluding*."""
    if broadcast <= network + 1:
        return []
    return [
        str(ipaddress.IPv4Address(ip))
        for ip in range(network + 1, broadcast)
        if ip != excluding
    ]


def enumerate_hosts(address: int, netmask: int) -> CandidateAddressSet:
    prefix_length = bin(netmask).count("1")
    if prefix_length < 24:
        network = address & SLICE_MASK
        broadcast = network | 0xFF
        clamped = True
    else:
        network = address & netmask
        broadcast = network | (~netmask & 0xFFFFFFFF)
        clamped = False
    return CandidateAddressSet(
        network=network,
        broadcast=broadcast,
        local_address=address,
        prefix_length=prefix_length,
        clamped=clamped,
        addresses=hosts_between(network, broadcast, address),
    )


def local_subnet_candidates(provider: InterfaceSnapshotProvider) -> list[str]:
    """Return the probe targets for the current network, or ``[]``."""
    try:
        snapshots = provider.snapshot()
    except OSError:
        logger.warning("Could not read network interfaces", exc_info=True)
        return []

    selected = select_interface(snapshots)
    if selected is None:
        logger.info("No usable IPv4 interface — skipping subnet probe")
        return []

    address, netmask, name = selected
    candidates = enumerate_hosts(address, netmask)
    logger.debug(
        "Interface %s %s/%d → %d candidate(s)%s",
        name,
        ipaddress.IPv4Address(address),
        candidates.prefix_length,
        len(candidates),
        " (clamped to /24)" if candidates.clamped else "",
    )
    return candidates.addresses


def has_lan_interface(provider: InterfaceSnapshotProvider) -> bool:
    try:
        return select_interface(provider.snapshot()) is not None
    except OSError:
        return False
