"""
Idle-Timeout Monitor

Periodically evicts datagram clients that have gone silent. Liveness
bookkeeping only: it never touches the event store and never blocks a
late packet, which simply registers the client again.
"""

import asyncio
import contextlib

import structlog

from shared.concurrency.registry import ClientRegistration, ClientRegistry

logger = structlog.get_logger(__name__)


class IdleTimeoutMonitor:
    """Background sweep over a ClientRegistry."""

    def __init__(self, registry: ClientRegistry, interval_seconds: float | None = None):
        """
        Initialize monitor.

        Args:
            registry: Registry shared with the datagram listener
            interval_seconds: Sweep period (defaults to the registry timeout)
        """
        self.registry = registry
        self.interval_seconds = interval_seconds or registry.timeout_seconds
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        """Start the sweep loop."""
        if self.running:
            return

        logger.info(
            "Starting idle-timeout monitor",
            interval_seconds=self.interval_seconds,
            timeout_seconds=self.registry.timeout_seconds,
        )
        self._task = asyncio.create_task(self._sweep_loop())

    async def stop(self) -> None:
        """Stop the sweep loop."""
        if self._task is None:
            return

        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None

        logger.info("Idle-timeout monitor stopped")

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self.interval_seconds)
            await self.sweep()

    async def sweep(self) -> list[ClientRegistration]:
        """
        Evict idle clients once.

        Returns:
            Registrations that were evicted
        """
        evicted = await self.registry.evict_idle()

        for registration in evicted:
            logger.info(
                "Client disconnected",
                client_host=registration.host,
                client_port=registration.port,
            )

        logger.debug(
            "Idle sweep complete",
            evicted=len(evicted),
            clients=await self.registry.get_all_clients(),
        )

        return evicted
