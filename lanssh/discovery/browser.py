"""Passive SSH discovery via mDNS / DNS-SD service advertisements.

Browses ``_ssh._tcp`` and ``_sftp-ssh._tcp`` in the ``local.`` domain and
turns every advertisement into a host entry.  Advertisements that fail to
resolve are still reported under a best-effort ``<name>.local`` hostname,
since the user confirms the prefill before anything connects.
"""

from __future__ import annotations

import abc
import asyncio
import logging
import re
import unicodedata
from dataclasses import dataclass, field
from typing import Any, Callable, Coroutine

from zeroconf import BadTypeInNameException, IPVersion, ServiceStateChange, Zeroconf
from zeroconf.asyncio import AsyncServiceBrowser, AsyncServiceInfo, AsyncZeroconf

from lanssh.config import DEFAULT_RESOLVE_TIMEOUT, SSH_SERVICE_TYPES
from lanssh.models import (
    DEFAULT_SSH_PORT,
    DiscoveredHost,
    DiscoveryEvent,
    DiscoverySource,
    SourceState,
)

logger = logging.getLogger(__name__)

LOCAL_DOMAIN = "local."

_WHITESPACE_RE = re.compile(r"\s+")

Emit = Callable[[DiscoveryEvent], None]
Spawn = Callable[[Coroutine[Any, Any, None]], "asyncio.Task[None] | None"]


@dataclass(frozen=True)
class ServiceAdvertisement:
    """One advertised service instance, e.g. ``raspberrypi`` / ``_ssh._tcp.`` / ``local.``."""

    name: str
    service_type: str
    domain: str = LOCAL_DOMAIN

    @property
    def key(self) -> str:
        return f"{self.name}|{self.service_type}|{self.domain}"

    @property
    def full_type(self) -> str:
        return f"{self.service_type}{self.domain}"

    @property
    def full_name(self) -> str:
        return f"{self.name}.{self.full_type}"

    @classmethod
    def from_zeroconf(cls, full_type: str, full_name: str) -> ServiceAdvertisement:
        """Split zeroconf's ``name._ssh._tcp.local.`` form into its parts."""
        service_type, domain = full_type, ""
        if full_type.endswith("." + LOCAL_DOMAIN):
            service_type = full_type[: -len(LOCAL_DOMAIN)]
            domain = LOCAL_DOMAIN
        name = full_name
        if full_name.endswith("." + full_type):
            name = full_name[: -len(full_type) - 1]
        return cls(name=name, service_type=service_type, domain=domain)


@dataclass
class ResolvedService:
    hostname: str
    port: int = 0
    addresses: list[str] = field(default_factory=list)


class ServiceBrowser(abc.ABC):
    """Platform service-discovery facility."""

    @abc.abstractmethod
    async def start(
        self,
        service_types: tuple[str, ...],
        on_found: Callable[[ServiceAdvertisement], None],
    ) -> None:
        """Begin browsing.  Raises :class:`PermissionError` if the platform
        refuses local-network search."""
        raise NotImplementedError

    @abc.abstractmethod
    async def resolve(
        self, advertisement: ServiceAdvertisement, timeout: float
    ) -> ResolvedService | None:
        raise NotImplementedError

    @abc.abstractmethod
    async def stop(self) -> None:
        raise NotImplementedError


class ZeroconfServiceBrowser(ServiceBrowser):
    """:class:`ServiceBrowser` backed by python-zeroconf's asyncio API."""

    def __init__(self) -> None:
        self._aiozc: AsyncZeroconf | None = None
        self._browser: AsyncServiceBrowser | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._on_found: Callable[[ServiceAdvertisement], None] | None = None

    async def start(
        self,
        service_types: tuple[str, ...],
        on_found: Callable[[ServiceAdvertisement], None],
    ) -> None:
        self._loop = asyncio.get_running_loop()
        self._on_found = on_found
        # Socket setup raises PermissionError (EPERM/EACCES) when multicast is
        # not allowed; that propagates to the caller unchanged.
        self._aiozc = AsyncZeroconf(ip_version=IPVersion.V4Only)
        self._browser = AsyncServiceBrowser(
            self._aiozc.zeroconf,
            list(service_types),
            handlers=[self._on_state_change],
        )
        logger.info("mDNS: browsing for %s", ", ".join(service_types))

    def _on_state_change(
        self,
        zeroconf: Zeroconf,
        service_type: str,
        name: str,
        state_change: ServiceStateChange,
    ) -> None:
        if state_change is not ServiceStateChange.Added:
            return
        if self._loop is None or self._on_found is None:
            return
        advertisement = ServiceAdvertisement.from_zeroconf(service_type, name)
        self._loop.call_soon_threadsafe(self._on_found, advertisement)

    async def resolve(
        self, advertisement: ServiceAdvertisement, timeout: float
    ) -> ResolvedService | None:
        if self._aiozc is None:
            return None
        try:
            info = AsyncServiceInfo(advertisement.full_type, advertisement.full_name)
        except BadTypeInNameException:
            logger.debug("mDNS: malformed service name %r", advertisement.full_name)
            return None
        if not await info.async_request(self._aiozc.zeroconf, int(timeout * 1000)):
            return None
        return ResolvedService(
            hostname=info.server or "",
            port=info.port or 0,
            addresses=info.parsed_addresses(IPVersion.V4Only),
        )

    async def stop(self) -> None:
        self._on_found = None
        if self._browser is not None:
            await self._browser.async_cancel()
            self._browser = None
        if self._aiozc is not None:
            await self._aiozc.async_close()
            self._aiozc = None
            logger.info("mDNS: browsing stopped")


def sanitize_local_hostname(service_name: str) -> str:
    """Best-effort hostname from an advertised service name.

    ``"Jane's MacBook Pro"`` becomes ``"jane's-macbook-pro"``; diacritics are
    folded away.  Falls back to the input when nothing is left.
    """
    decomposed = unicodedata.normalize("NFKD", service_name)
    folded = "".join(c for c in decomposed if not unicodedata.combining(c))
    normalized = _WHITESPACE_RE.sub("-", folded.strip()).casefold()
    return normalized or service_name


def _clean_hostname(hostname: str | None) -> str:
    if not hostname:
        return ""
    return hostname.strip().strip(".").strip()


class ServiceDiscoverySource:
    """Session-scoped adapter from advertisements to discovery events."""

    def __init__(
        self,
        browser: ServiceBrowser,
        service_types: tuple[str, ...] = SSH_SERVICE_TYPES,
        resolve_timeout: float = DEFAULT_RESOLVE_TIMEOUT,
        default_port: int = DEFAULT_SSH_PORT,
    ) -> None:
        self.browser = browser
        self.service_types = service_types
        self.resolve_timeout = resolve_timeout
        self.default_port = default_port
        self._seen: set[str] = set()
        self._permission_reported = False
        self._emit: Emit | None = None
        self._spawn: Spawn | None = None

    async def start(self, emit: Emit, spawn: Spawn) -> None:
        self._emit = emit
        self._spawn = spawn
        emit(DiscoveryEvent.source_status(DiscoverySource.SERVICE_DISCOVERY, SourceState.STARTED))
        try:
            await self.browser.start(self.service_types, self._on_found)
        except PermissionError:
            logger.warning("mDNS: local network search not permitted")
            self._report_permission_denied()
        except Exception as exc:
            logger.exception("mDNS: failed to start browsing")
            emit(DiscoveryEvent.failed(f"Service discovery unavailable: {exc}"))

    async def stop(self) -> None:
        self._emit = None
        self._spawn = None
        await self.browser.stop()
        self._seen.clear()

    def _report_permission_denied(self) -> None:
        if self._permission_reported or self._emit is None:
            return
        self._permission_reported = True
        self._emit(DiscoveryEvent.permission_denied())

    def _on_found(self, advertisement: ServiceAdvertisement) -> None:
        if self._spawn is None or advertisement.key in self._seen:
            return
        self._seen.add(advertisement.key)
        logger.debug("mDNS: found %s", advertisement.key)
        self._spawn(self._resolve(advertisement))

    async def _resolve(self, advertisement: ServiceAdvertisement) -> None:
        resolved: ResolvedService | None = None
        try:
            resolved = await asyncio.wait_for(
                self.browser.resolve(advertisement, self.resolve_timeout),
                timeout=self.resolve_timeout,
            )
        except PermissionError:
            self._report_permission_denied()
        except (asyncio.TimeoutError, OSError):
            logger.debug("mDNS: could not resolve %s", advertisement.key)
        except Exception:
            logger.debug("mDNS: resolve raised for %s", advertisement.key, exc_info=True)

        host = _clean_hostname(resolved.hostname) if resolved else ""
        if not host:
            host = f"{sanitize_local_hostname(advertisement.name)}.local"
        port = resolved.port if resolved and resolved.port > 0 else self.default_port

        if self._emit is not None:
            self._emit(DiscoveryEvent.host_found(DiscoveredHost(
                display_name=advertisement.name or host,
                host=host,
                port=port,
                sources={DiscoverySource.SERVICE_DISCOVERY},
            )))
