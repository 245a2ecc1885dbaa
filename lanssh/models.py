"""Value types shared by the discovery engine and its consumers."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime, timezone

DEFAULT_SSH_PORT = 22


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DiscoverySource(str, enum.Enum):
    """Where a host observation came from."""

    SERVICE_DISCOVERY = "service_discovery"
    ACTIVE_PROBE = "active_probe"

    @property
    def label(self) -> str:
        if self is DiscoverySource.SERVICE_DISCOVERY:
            return "Bonjour"
        return "Port Scan"


class SourceState(str, enum.Enum):
    STARTED = "started"
    FINISHED = "finished"


@dataclass
class DiscoveredHost:
    """One candidate SSH endpoint found on the local network."""

    display_name: str
    host: str
    port: int = DEFAULT_SSH_PORT
    sources: set[DiscoverySource] = field(default_factory=set)
    last_seen_at: datetime = field(default_factory=_utcnow)
    latency_ms: int | None = None

    def __post_init__(self) -> None:
        if not self.display_name:
            self.display_name = self.host
        self.sources = set(self.sources)

    @property
    def identity_key(self) -> str:
        return f"{self.host}:{self.port}"

    @property
    def has_generic_name(self) -> bool:
        """True when the display name is only the address echoed back."""
        return not self.display_name or self.display_name == self.host

    def merge(self, newer: DiscoveredHost) -> None:
        """Fold a re-observation of the same endpoint into this record.

        Sources are unioned and ``last_seen_at`` keeps the latest value, so
        merging is insensitive to the order observations arrive in.  A
        generic name never replaces a descriptive one.  Observations with the
        same timestamp tie-break on the greater name and the lower latency.
        """
        same_time = newer.last_seen_at == self.last_seen_at
        if not newer.has_generic_name:
            if self.has_generic_name or newer.last_seen_at > self.last_seen_at:
                self.display_name = newer.display_name
            elif same_time:
                self.display_name = max(self.display_name, newer.display_name)
        if newer.latency_ms is not None:
            if self.latency_ms is None or newer.last_seen_at > self.last_seen_at:
                self.latency_ms = newer.latency_ms
            elif same_time:
                self.latency_ms = min(self.latency_ms, newer.latency_ms)
        self.sources |= newer.sources
        self.last_seen_at = max(self.last_seen_at, newer.last_seen_at)


@dataclass(frozen=True)
class ServerFormPrefill:
    """Payload handed to the server form when the user picks a host."""

    name: str
    host: str
    port: int = DEFAULT_SSH_PORT
    username: str | None = None

    @classmethod
    def from_discovered_host(cls, host: DiscoveredHost) -> ServerFormPrefill:
        return cls(name=host.display_name, host=host.host, port=host.port)


class EventKind(str, enum.Enum):
    SCANNING_STARTED = "scanning_started"
    SOURCE_STATUS = "source_status"
    HOST_FOUND = "host_found"
    PERMISSION_DENIED = "permission_denied"
    FAILED = "failed"
    SCANNING_FINISHED = "scanning_finished"


@dataclass(frozen=True)
class DiscoveryEvent:
    """A single item on a scan session's event stream.

    Build instances through the classmethod constructors; only the fields
    relevant to ``kind`` are populated.
    """

    kind: EventKind
    source: DiscoverySource | None = None
    state: SourceState | None = None
    host: DiscoveredHost | None = None
    message: str = ""

    @classmethod
    def scanning_started(cls) -> DiscoveryEvent:
        return cls(EventKind.SCANNING_STARTED)

    @classmethod
    def source_status(cls, source: DiscoverySource, state: SourceState) -> DiscoveryEvent:
        return cls(EventKind.SOURCE_STATUS, source=source, state=state)

    @classmethod
    def host_found(cls, host: DiscoveredHost) -> DiscoveryEvent:
        return cls(EventKind.HOST_FOUND, host=host)

    @classmethod
    def permission_denied(cls) -> DiscoveryEvent:
        return cls(EventKind.PERMISSION_DENIED)

    @classmethod
    def failed(cls, message: str) -> DiscoveryEvent:
        return cls(EventKind.FAILED, message=message)

    @classmethod
    def scanning_finished(cls) -> DiscoveryEvent:
        return cls(EventKind.SCANNING_FINISHED)
