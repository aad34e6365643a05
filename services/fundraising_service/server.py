"""
Fundraising Server

Wires the event store, request handler and the configured transport
listener into one startable/stoppable unit.
"""

import asyncio

import structlog

from services.fundraising_service.handler import RequestHandler
from services.fundraising_service.listener import DatagramListener, Listener, StreamListener
from shared.concurrency.registry import ClientRegistry
from shared.config import Settings
from shared.events.store import FundraisingEventStore

logger = structlog.get_logger(__name__)


class FundraisingServer:
    """
    Coordination server over one transport.

    The store lives exactly as long as this object; nothing is persisted.
    """

    def __init__(
        self,
        settings: Settings,
        store: FundraisingEventStore | None = None,
        registry: ClientRegistry | None = None,
    ):
        """
        Initialize server.

        Args:
            settings: Server configuration
            store: Event store (a fresh empty one by default)
            registry: Datagram client registry (built from settings by default)
        """
        self.settings = settings
        self.store = store or FundraisingEventStore()
        self.handler = RequestHandler(self.store)
        self.listener = self._build_listener(registry)
        self._stopped = asyncio.Event()

    def _build_listener(self, registry: ClientRegistry | None) -> Listener:
        if self.settings.transport == "tcp":
            return StreamListener(
                self.handler, self.settings.server_host, self.settings.server_port
            )

        return DatagramListener(
            self.handler,
            self.settings.server_host,
            self.settings.server_port,
            registry=registry or ClientRegistry(self.settings.client_timeout_seconds),
            max_datagram_size=self.settings.max_datagram_size,
        )

    @property
    def address(self) -> tuple[str, int]:
        """Bound (host, port); the port is resolved once started."""
        return self.listener.host, self.listener.port

    async def start(self) -> None:
        """
        Bind the listener.

        Raises:
            ServerStartupError: If the address cannot be bound
        """
        await self.listener.start()
        self._stopped.clear()

        logger.info(
            "Server started",
            transport=self.listener.transport_name,
            host=self.listener.host,
            port=self.listener.port,
        )

    async def stop(self) -> None:
        """Stop the listener and release the socket."""
        await self.listener.stop()
        self._stopped.set()

        logger.info(
            "Server stopped",
            transport=self.listener.transport_name,
            events=await self.store.count(),
        )

    async def serve_forever(self) -> None:
        """Start and block until stop() is called or the task is cancelled."""
        await self.start()
        try:
            await self._stopped.wait()
        finally:
            if not self._stopped.is_set():
                await self.stop()

    async def __aenter__(self) -> "FundraisingServer":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()
