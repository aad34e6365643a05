"""
Transport Listeners

StreamListener accepts TCP connections and runs one session task per
connection. DatagramListener receives UDP packets, tracks sender liveness,
and answers each packet from its own task.
"""

import asyncio
from abc import ABC, abstractmethod

import structlog

from services.fundraising_service.handler import RequestHandler
from services.fundraising_service.monitor import IdleTimeoutMonitor
from services.fundraising_service.session import serve_connection
from shared.concurrency.registry import ClientRegistry
from shared.domain.exceptions import ServerStartupError
from shared.protocol import messages
from shared.protocol.codec import encode_response
from shared.protocol.messages import MessageResponse

logger = structlog.get_logger(__name__)


class Listener(ABC):
    """Abstract transport listener."""

    transport_name: str = "base"

    def __init__(self, handler: RequestHandler, host: str, port: int):
        """
        Initialize listener.

        Args:
            handler: Shared request handler
            host: Bind address
            port: Bind port (0 picks an ephemeral port)
        """
        self.handler = handler
        self.host = host
        self.port = port

    @abstractmethod
    async def start(self) -> None:
        """
        Bind and begin serving.

        Raises:
            ServerStartupError: If the address cannot be bound
        """

    @abstractmethod
    async def stop(self) -> None:
        """Stop serving and release the socket."""

    def _startup_error(self, error: OSError) -> ServerStartupError:
        return ServerStartupError(
            f"Could not start the server. Port {self.port} is unavailable: {error.strerror or error}",
            host=self.host,
            port=self.port,
            cause=error,
        )


class StreamListener(Listener):
    """TCP acceptor; each connection gets its own session."""

    transport_name = "tcp"

    def __init__(self, handler: RequestHandler, host: str, port: int):
        super().__init__(handler, host, port)
        self._server: asyncio.Server | None = None
        self._sessions: set[asyncio.Task] = set()

    async def start(self) -> None:
        try:
            self._server = await asyncio.start_server(
                self._on_connection, self.host, self.port
            )
        except OSError as e:
            raise self._startup_error(e) from e

        sockname = self._server.sockets[0].getsockname()
        self.host, self.port = sockname[0], sockname[1]

    async def _on_connection(
        self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter
    ) -> None:
        task = asyncio.current_task()
        if task is not None:
            self._sessions.add(task)
        try:
            await serve_connection(reader, writer, self.handler)
        finally:
            if task is not None:
                self._sessions.discard(task)

    @property
    def session_count(self) -> int:
        return len(self._sessions)

    async def stop(self) -> None:
        if self._server is None:
            return

        self._server.close()
        if self._sessions:
            logger.info("Closing open sessions", sessions=self.session_count)
        for task in list(self._sessions):
            task.cancel()
        await asyncio.gather(*self._sessions, return_exceptions=True)
        await self._server.wait_closed()
        self._server = None


class _DatagramServerProtocol(asyncio.DatagramProtocol):
    """Bridges asyncio datagram callbacks to the DatagramListener."""

    def __init__(self, listener: "DatagramListener"):
        self.listener = listener

    def datagram_received(self, data: bytes, addr: tuple) -> None:
        self.listener.dispatch(data, (addr[0], addr[1]))

    def error_received(self, exc: Exception) -> None:
        logger.warning("Datagram transport error", error=str(exc), error_type=type(exc).__name__)


class DatagramListener(Listener):
    """UDP receiver with last-contact tracking and idle eviction."""

    transport_name = "udp"

    def __init__(
        self,
        handler: RequestHandler,
        host: str,
        port: int,
        registry: ClientRegistry,
        max_datagram_size: int = 65507,
        monitor_interval_seconds: float | None = None,
    ):
        """
        Initialize datagram listener.

        Args:
            handler: Shared request handler
            host: Bind address
            port: Bind port (0 picks an ephemeral port)
            registry: Client liveness table
            max_datagram_size: Largest reply that will be sent
            monitor_interval_seconds: Idle sweep period (defaults to the registry timeout)
        """
        super().__init__(handler, host, port)
        self.registry = registry
        self.max_datagram_size = max_datagram_size
        self.monitor = IdleTimeoutMonitor(registry, monitor_interval_seconds)
        self._transport: asyncio.DatagramTransport | None = None
        self._pending: set[asyncio.Task] = set()

    async def start(self) -> None:
        loop = asyncio.get_running_loop()
        try:
            self._transport, _ = await loop.create_datagram_endpoint(
                lambda: _DatagramServerProtocol(self),
                local_addr=(self.host, self.port),
            )
        except OSError as e:
            raise self._startup_error(e) from e

        sockname = self._transport.get_extra_info("sockname")
        self.host, self.port = sockname[0], sockname[1]

        await self.monitor.start()

    def dispatch(self, data: bytes, address: tuple[str, int]) -> None:
        """Process a datagram in its own task."""
        task = asyncio.create_task(self._process(data, address))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _process(self, data: bytes, address: tuple[str, int]) -> None:
        host, port = address
        log = logger.bind(client_host=host, client_port=port)

        if await self.registry.touch(address):
            log.info("Client connected")

        try:
            with structlog.contextvars.bound_contextvars(client_host=host, client_port=port):
                reply = await self.handler.handle_datagram(data)
        except Exception as e:
            log.error(
                "Unexpected error processing datagram",
                error=str(e),
                error_type=type(e).__name__,
                exc_info=True,
            )
            reply = encode_response(MessageResponse(message=messages.ERROR_PROCESSING_REQUEST))

        if len(reply) > self.max_datagram_size:
            log.error(
                "Reply exceeds datagram size",
                reply_bytes=len(reply),
                max_datagram_size=self.max_datagram_size,
            )
            reply = encode_response(MessageResponse(message=messages.ERROR_PROCESSING_REQUEST))

        log.debug("Sending reply", reply_bytes=len(reply))

        if self._transport is None or self._transport.is_closing():
            log.warning("Dropping reply, transport closed")
            return
        self._transport.sendto(reply, address)

    async def stop(self) -> None:
        await self.monitor.stop()

        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)

        if self._transport is not None:
            self._transport.close()
            self._transport = None
