"""
Client Registry

Last-contact bookkeeping for connectionless clients. The datagram listener
touches an entry for every packet; the idle-timeout monitor evicts entries
that have been silent for too long.
"""

import asyncio
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

import structlog

logger = structlog.get_logger(__name__)

ClientAddress = tuple[str, int]


@dataclass
class ClientRegistration:
    """Liveness record for one client address."""

    host: str
    port: int
    first_seen: float
    last_contact: float

    @property
    def client_key(self) -> str:
        return f"{self.host}:{self.port}"

    def idle_for(self, now: float) -> float:
        """Seconds since the last packet."""
        return now - self.last_contact


class ClientRegistry:
    """
    Mapping of client address to last-contact time.

    All access goes through one lock, held only for the dictionary operation.
    """

    def __init__(
        self,
        timeout_seconds: float,
        clock: Callable[[], float] | None = None,
    ):
        """
        Initialize registry.

        Args:
            timeout_seconds: Inactivity threshold for eviction
            clock: Monotonic time source in seconds (defaults to time.monotonic)
        """
        self.timeout_seconds = timeout_seconds
        self._clock = clock or time.monotonic
        self._clients: dict[ClientAddress, ClientRegistration] = {}
        self._lock = asyncio.Lock()

    async def touch(self, address: ClientAddress) -> bool:
        """
        Record contact from a client.

        Args:
            address: (host, port) of the sender

        Returns:
            True if the client was not registered before this packet
        """
        host, port = address[0], address[1]
        now = self._clock()

        async with self._lock:
            registration = self._clients.get((host, port))
            if registration is None:
                self._clients[(host, port)] = ClientRegistration(
                    host=host, port=port, first_seen=now, last_contact=now
                )
                return True

            registration.last_contact = now
            return False

    async def evict_idle(self) -> list[ClientRegistration]:
        """
        Remove clients idle for at least the timeout.

        Returns:
            Registrations that were removed
        """
        now = self._clock()

        async with self._lock:
            expired = [
                address
                for address, registration in self._clients.items()
                if registration.idle_for(now) >= self.timeout_seconds
            ]
            evicted = [self._clients.pop(address) for address in expired]

        for registration in evicted:
            logger.debug(
                "Idle client evicted",
                client=registration.client_key,
                idle_seconds=round(registration.idle_for(now), 3),
            )

        return evicted

    async def is_registered(self, address: ClientAddress) -> bool:
        """Check if a client is currently registered."""
        async with self._lock:
            return (address[0], address[1]) in self._clients

    async def get_all_clients(self) -> dict[str, dict[str, Any]]:
        """Get information about all registered clients."""
        now = self._clock()

        async with self._lock:
            return {
                registration.client_key: {
                    "host": registration.host,
                    "port": registration.port,
                    "idle_seconds": registration.idle_for(now),
                    "connected_seconds": now - registration.first_seen,
                }
                for registration in self._clients.values()
            }

    async def count(self) -> int:
        """Number of registered clients."""
        async with self._lock:
            return len(self._clients)
