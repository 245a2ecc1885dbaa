"""Discovery session lifecycle.

A :class:`DiscoverySessionController` owns at most one :class:`ScanSession`
at a time.  Each session runs the mDNS browser, the subnet probe scheduler
and a timeout timer as asyncio tasks that all report into the session's
:class:`EventStream`.  Stopping a session cancels and awaits every task it
owns before returning, so nothing from an old session can reach a new one.
"""

from __future__ import annotations

import asyncio
import enum
import itertools
import logging
from typing import Any, Coroutine

from lanssh.config import DiscoveryConfig
from lanssh.discovery.browser import ServiceBrowser, ServiceDiscoverySource, ZeroconfServiceBrowser
from lanssh.discovery.prober import AsyncioTcpProber, TcpProber
from lanssh.discovery.scheduler import ProbeScheduler
from lanssh.discovery.subnet import InterfaceSnapshotProvider, PsutilInterfaceProvider
from lanssh.models import DiscoveryEvent, DiscoverySource, EventKind, SourceState

logger = logging.getLogger(__name__)

_CLOSED = object()
_session_ids = itertools.count(1)


class SessionState(str, enum.Enum):
    CREATED = "created"
    RUNNING = "running"
    DRAINING = "draining"
    TERMINATED = "terminated"


class ControllerState(str, enum.Enum):
    IDLE = "idle"
    SCANNING = "scanning"
    FINISHED = "finished"


class EventStream:
    """Multi-producer, single-consumer async iterator of discovery events."""

    def __init__(self) -> None:
        self._queue: asyncio.Queue[Any] = asyncio.Queue()
        self._closed = False
        self._exhausted = False

    @property
    def closed(self) -> bool:
        return self._closed

    def put(self, event: DiscoveryEvent) -> bool:
        if self._closed:
            return False
        self._queue.put_nowait(event)
        return True

    def close(self) -> None:
        if not self._closed:
            self._closed = True
            self._queue.put_nowait(_CLOSED)

    def __aiter__(self) -> EventStream:
        return self

    async def __anext__(self) -> DiscoveryEvent:
        if self._exhausted:
            raise StopAsyncIteration
        item = await self._queue.get()
        if item is _CLOSED:
            self._exhausted = True
            raise StopAsyncIteration
        return item


class ScanSession:
    """One user-initiated discovery run and everything it owns."""

    def __init__(self) -> None:
        self.id = next(_session_ids)
        self.state = SessionState.CREATED
        self.stream = EventStream()
        self.browser_source: ServiceDiscoverySource | None = None
        self._tasks: set[asyncio.Task[None]] = set()
        self._finished_sources: set[DiscoverySource] = set()

    @property
    def in_flight(self) -> int:
        return len(self._tasks)

    @property
    def is_running(self) -> bool:
        return self.state is SessionState.RUNNING

    def emit(self, event: DiscoveryEvent) -> None:
        """Producer entry point; dropped unless the session is running."""
        if self.state is not SessionState.RUNNING:
            return
        self._push(event)

    def _push(self, event: DiscoveryEvent) -> None:
        if event.kind is EventKind.SOURCE_STATUS and event.state is SourceState.FINISHED:
            if event.source in self._finished_sources:
                return
            self._finished_sources.add(event.source)
        self.stream.put(event)

    def spawn(self, coro: Coroutine[Any, Any, None]) -> asyncio.Task[None] | None:
        if self.state not in (SessionState.CREATED, SessionState.RUNNING):
            coro.close()
            return None
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._on_task_done)
        return task

    def _on_task_done(self, task: asyncio.Task[None]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Session %d task failed", self.id, exc_info=exc)
            self.emit(DiscoveryEvent.failed(str(exc) or type(exc).__name__))

    def drain(self) -> None:
        """Stop accepting producer events and report the session complete."""
        if self.state is not SessionState.RUNNING:
            return
        self.state = SessionState.DRAINING
        for source in DiscoverySource:
            self._push(DiscoveryEvent.source_status(source, SourceState.FINISHED))
        self._push(DiscoveryEvent.scanning_finished())

    async def close(self) -> None:
        if self.state is SessionState.TERMINATED:
            return
        self.state = SessionState.DRAINING
        current = asyncio.current_task()
        pending = [t for t in self._tasks if t is not current]
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        if self.browser_source is not None:
            try:
                await self.browser_source.stop()
            except Exception:
                logger.exception("Session %d: failed to stop service browser", self.id)
            self.browser_source = None
        self._tasks.clear()
        self.stream.close()
        self.state = SessionState.TERMINATED


class DiscoverySessionController:
    """Starts, times out and stops discovery sessions."""

    def __init__(
        self,
        config: DiscoveryConfig | None = None,
        *,
        interfaces: InterfaceSnapshotProvider | None = None,
        prober: TcpProber | None = None,
        browser: ServiceBrowser | None = None,
    ) -> None:
        self.config = config or DiscoveryConfig()
        self.interfaces = interfaces or PsutilInterfaceProvider()
        self.prober = prober or AsyncioTcpProber()
        self.browser = browser or ZeroconfServiceBrowser()
        self._session: ScanSession | None = None
        self._state = ControllerState.IDLE
        self._lock = asyncio.Lock()

    @property
    def state(self) -> ControllerState:
        return self._state

    @property
    def session(self) -> ScanSession | None:
        return self._session

    async def start_scan(self) -> EventStream:
        """Stop any running session, then start a new one and return its stream."""
        async with self._lock:
            await self._stop_locked()

            session = ScanSession()
            self._session = session
            session.browser_source = ServiceDiscoverySource(
                self.browser,
                service_types=tuple(self.config.service_types),
                resolve_timeout=self.config.resolve_timeout,
                default_port=self.config.ssh_port,
            )
            scheduler = ProbeScheduler(
                self.prober,
                self.interfaces,
                concurrency=self.config.probe_concurrency,
                timeout=self.config.probe_timeout,
                port=self.config.ssh_port,
            )

            session.state = SessionState.RUNNING
            self._state = ControllerState.SCANNING
            logger.info("Scan session %d started", session.id)
            session.emit(DiscoveryEvent.scanning_started())

            session.spawn(session.browser_source.start(session.emit, session.spawn))
            session.spawn(scheduler.run(session.emit, lambda: not session.is_running))
            session.spawn(self._run_timer(session))
            return session.stream

    async def stop_scan(self) -> None:
        """Cancel the active session; a no-op when nothing is running."""
        async with self._lock:
            await self._stop_locked()

    async def rescan(self) -> EventStream:
        await self.stop_scan()
        return await self.start_scan()

    async def _stop_locked(self) -> None:
        session = self._session
        if session is None:
            return
        self._session = None
        await session.close()
        self._state = ControllerState.FINISHED
        logger.info("Scan session %d stopped", session.id)

    async def _run_timer(self, session: ScanSession) -> None:
        await asyncio.sleep(self.config.scan_duration)
        if self._session is not session:
            return
        logger.debug("Scan session %d reached its %.1fs limit", session.id, self.config.scan_duration)
        session.drain()
        async with self._lock:
            if self._session is session:
                await self._stop_locked()
