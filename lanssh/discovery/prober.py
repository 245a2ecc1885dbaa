"""TCP reachability probing."""

from __future__ import annotations

import abc
import asyncio
import logging
import time

from lanssh.config import DEFAULT_PROBE_TIMEOUT

logger = logging.getLogger(__name__)


class TcpProber(abc.ABC):
    """Timed TCP connect to a single endpoint."""

    @abc.abstractmethod
    async def probe(self, host: str, port: int, timeout: float) -> int | None:
        """Return the connect latency in milliseconds, or ``None`` on failure.

        Reported latency is never below 1 ms.
        """
        raise NotImplementedError


class AsyncioTcpProber(TcpProber):
    """Probe with :func:`asyncio.open_connection`; each call owns its socket."""

    async def probe(
        self, host: str, port: int, timeout: float = DEFAULT_PROBE_TIMEOUT
    ) -> int | None:
        started = time.monotonic()
        try:
            _, writer = await asyncio.wait_for(
                asyncio.open_connection(host, port), timeout=timeout
            )
        except (asyncio.TimeoutError, OSError):
            return None
        latency_ms = max(1, int((time.monotonic() - started) * 1000))
        writer.close()
        try:
            await writer.wait_closed()
        except OSError:
            pass
        logger.debug("TCP probe OK: %s:%d (%d ms)", host, port, latency_ms)
        return latency_ms
