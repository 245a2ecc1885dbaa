"""Wave-based scheduling of reachability probes over the local subnet."""

from __future__ import annotations

import asyncio
import logging
from typing import Callable

from lanssh.config import DEFAULT_CONCURRENCY, DEFAULT_PROBE_TIMEOUT
from lanssh.discovery.prober import TcpProber
from lanssh.discovery.subnet import InterfaceSnapshotProvider, local_subnet_candidates
from lanssh.models import (
    DEFAULT_SSH_PORT,
    DiscoveredHost,
    DiscoveryEvent,
    DiscoverySource,
    SourceState,
)

logger = logging.getLogger(__name__)

Emit = Callable[[DiscoveryEvent], None]


class ProbeScheduler:
    """Runs the prober over every candidate, at most *concurrency* at a time.

    Candidates are probed in waves; the next wave starts as soon as the
    previous one settles.  Each success is emitted the moment its probe
    completes rather than at the end of the wave.
    """

    def __init__(
        self,
        prober: TcpProber,
        interfaces: InterfaceSnapshotProvider,
        concurrency: int = DEFAULT_CONCURRENCY,
        timeout: float = DEFAULT_PROBE_TIMEOUT,
        port: int = DEFAULT_SSH_PORT,
    ) -> None:
        self.prober = prober
        self.interfaces = interfaces
        self.concurrency = max(1, concurrency)
        self.timeout = timeout
        self.port = port

    async def run(self, emit: Emit, is_cancelled: Callable[[], bool]) -> None:
        """Enumerate the subnet and probe it, reporting through *emit*."""
        emit(DiscoveryEvent.source_status(DiscoverySource.ACTIVE_PROBE, SourceState.STARTED))
        candidates = local_subnet_candidates(self.interfaces)
        await self.probe_all(candidates, emit, is_cancelled)

    async def probe_all(
        self,
        candidates: list[str],
        emit: Emit,
        is_cancelled: Callable[[], bool],
    ) -> None:
        found = 0
        for start in range(0, len(candidates), self.concurrency):
            if is_cancelled():
                logger.debug("Probe phase cancelled after %d candidate(s)", start)
                return
            wave = candidates[start:start + self.concurrency]
            found += await self._run_wave(wave, emit)

        logger.debug("Probe phase finished — %d of %d reachable", found, len(candidates))
        emit(DiscoveryEvent.source_status(DiscoverySource.ACTIVE_PROBE, SourceState.FINISHED))

    async def _run_wave(self, wave: list[str], emit: Emit) -> int:
        tasks = {
            asyncio.ensure_future(self._probe(host)): host for host in wave
        }
        found = 0
        try:
            for next_done in asyncio.as_completed(tasks):
                try:
                    result = await next_done
                except Exception:
                    logger.debug("Probe raised unexpectedly", exc_info=True)
                    continue
                if result is None:
                    continue
                host, latency_ms = result
                found += 1
                emit(DiscoveryEvent.host_found(DiscoveredHost(
                    display_name=host,
                    host=host,
                    port=self.port,
                    sources={DiscoverySource.ACTIVE_PROBE},
                    latency_ms=latency_ms,
                )))
        finally:
            pending = [t for t in tasks if not t.done()]
            for task in pending:
                task.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)
        return found

    async def _probe(self, host: str) -> tuple[str, int] | None:
        latency_ms = await self.prober.probe(host, self.port, self.timeout)
        if latency_ms is None:
            return None
        return host, max(1, latency_ms)
