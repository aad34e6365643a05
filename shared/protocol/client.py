"""
Protocol Clients

Async clients for the fundraising server over a stream (TCP) or datagram
(UDP) transport. Both expose the same request helpers; they differ only in
how one request/reply exchange is carried.

No retries are attempted: transport failures surface as TransportError.
"""

import asyncio
from abc import ABC, abstractmethod
from datetime import datetime

import structlog

from shared.domain.exceptions import MalformedRequestError, TransportError
from shared.protocol.codec import decode_response, encode_request, read_frame
from shared.protocol.messages import (
    CheckDetailsRequest,
    CheckEventsExistRequest,
    CreateEventRequest,
    DonateRequest,
    EventDetailsResponse,
    EventListResponse,
    EventsExistResponse,
    ListEventsRequest,
    MessageResponse,
    Request,
    Response,
)

logger = structlog.get_logger(__name__)


class BaseProtocolClient(ABC):
    """
    Request helpers shared by both transports.

    Subclasses implement send(); helpers build the request and narrow the reply.
    """

    def __init__(self, host: str, port: int, timeout: float = 10.0):
        """
        Initialize client.

        Args:
            host: Server host
            port: Server port
            timeout: Seconds to wait for each reply
        """
        self.host = host
        self.port = port
        self.timeout = timeout

    @abstractmethod
    async def send(self, request: Request) -> Response:
        """
        Send one request and wait for its reply.

        Raises:
            TransportError: If the exchange fails or times out
        """

    async def create_event(
        self, name: str, target_amount: float, deadline: datetime
    ) -> MessageResponse:
        """Create an event."""
        return await self._expect(
            CreateEventRequest(name=name, target_amount=target_amount, deadline=deadline),
            MessageResponse,
        )

    async def list_events(self) -> EventListResponse | MessageResponse:
        """List current and past events."""
        return await self._expect(ListEventsRequest(), EventListResponse, MessageResponse)

    async def donate(self, event_id: int, amount: float) -> MessageResponse:
        """Donate to an event by zero-based id."""
        return await self._expect(
            DonateRequest(event_id=event_id, amount=amount), MessageResponse
        )

    async def check_details(self, event_id: int) -> EventDetailsResponse | MessageResponse:
        """Fetch event details; an invalid id yields a MessageResponse."""
        return await self._expect(
            CheckDetailsRequest(event_id=event_id), EventDetailsResponse, MessageResponse
        )

    async def check_events_exist(self) -> bool:
        """Ask whether any event exists."""
        response = await self._expect(CheckEventsExistRequest(), EventsExistResponse)
        return response.exists

    async def _expect(self, request: Request, *expected: type[Response]) -> Response:
        response = await self.send(request)
        if not isinstance(response, expected):
            raise MalformedRequestError(
                "Unexpected reply type",
                context={
                    "request_type": request.get_request_type().value,
                    "response_type": type(response).__name__,
                },
            )
        return response


class StreamClient(BaseProtocolClient):
    """Client holding one TCP connection; replies are length-framed."""

    def __init__(self, host: str, port: int, timeout: float = 10.0):
        super().__init__(host, port, timeout)
        self._reader: asyncio.StreamReader | None = None
        self._writer: asyncio.StreamWriter | None = None
        self._lock = asyncio.Lock()  # One outstanding request per connection

    async def connect(self) -> None:
        """Open the connection."""
        try:
            self._reader, self._writer = await asyncio.wait_for(
                asyncio.open_connection(self.host, self.port), self.timeout
            )
        except (OSError, asyncio.TimeoutError) as e:
            raise TransportError(
                f"Could not connect to {self.host}:{self.port}",
                host=self.host,
                port=self.port,
                cause=e,
            ) from e

        logger.debug("Connected to server", host=self.host, port=self.port)

    async def close(self) -> None:
        """Close the connection."""
        if self._writer is None:
            return
        writer, self._writer, self._reader = self._writer, None, None
        writer.close()
        try:
            await writer.wait_closed()
        except OSError:
            logger.debug("Connection already reset on close", host=self.host, port=self.port)

    async def __aenter__(self) -> "StreamClient":
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def send_raw(self, payload: bytes) -> bytes:
        """
        Write raw request bytes and read one framed reply.

        A failed exchange closes the connection; connect() again to continue.
        """
        async with self._lock:
            if self._writer is None or self._reader is None:
                raise TransportError("Client is not connected", host=self.host, port=self.port)

            try:
                self._writer.write(payload)
                await self._writer.drain()
                return await asyncio.wait_for(read_frame(self._reader), self.timeout)
            except (OSError, asyncio.IncompleteReadError, asyncio.TimeoutError) as e:
                # The stream may be left mid-frame
                await self.close()
                raise TransportError(
                    "Stream exchange failed",
                    host=self.host,
                    port=self.port,
                    cause=e,
                ) from e

    async def send(self, request: Request) -> Response:
        payload = await self.send_raw(encode_request(request))
        return decode_response(request.get_request_type(), payload)


class _ReplyQueueProtocol(asyncio.DatagramProtocol):
    """Collects reply datagrams into a queue."""

    def __init__(self) -> None:
        self.replies: asyncio.Queue[bytes] = asyncio.Queue()

    def datagram_received(self, data: bytes, addr: tuple[str, int]) -> None:
        self.replies.put_nowait(data)

    def error_received(self, exc: Exception) -> None:
        logger.warning("Datagram error received", error=str(exc))


class DatagramClient(BaseProtocolClient):
    """Client sending one UDP datagram per request from a fixed local port."""

    def __init__(self, host: str, port: int, timeout: float = 10.0):
        super().__init__(host, port, timeout)
        self._transport: asyncio.DatagramTransport | None = None
        self._protocol: _ReplyQueueProtocol | None = None
        self._lock = asyncio.Lock()  # Replies are matched to requests by order

    async def connect(self) -> None:
        """Create the local endpoint."""
        loop = asyncio.get_running_loop()
        try:
            self._transport, self._protocol = await loop.create_datagram_endpoint(
                _ReplyQueueProtocol,
                remote_addr=(self.host, self.port),
            )
        except OSError as e:
            raise TransportError(
                f"Could not open datagram endpoint to {self.host}:{self.port}",
                host=self.host,
                port=self.port,
                cause=e,
            ) from e

    @property
    def local_address(self) -> tuple[str, int]:
        """(host, port) this client sends from."""
        if self._transport is None:
            raise TransportError("Client is not connected", host=self.host, port=self.port)
        sockname = self._transport.get_extra_info("sockname")
        return sockname[0], sockname[1]

    async def close(self) -> None:
        """Close the local endpoint."""
        if self._transport is not None:
            self._transport.close()
            self._transport = None
            self._protocol = None

    async def __aenter__(self) -> "DatagramClient":
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def send_raw(self, payload: bytes) -> bytes:
        """
        Send one datagram and wait for one reply datagram.

        A timed-out exchange reopens the endpoint on a new local port.
        """
        async with self._lock:
            if self._transport is None or self._protocol is None:
                raise TransportError("Client is not connected", host=self.host, port=self.port)

            try:
                self._transport.sendto(payload)
                return await asyncio.wait_for(self._protocol.replies.get(), self.timeout)
            except (OSError, asyncio.TimeoutError) as e:
                # Reopen before closing so the new local port differs and a late
                # reply is never read as the next one
                stale, self._transport, self._protocol = self._transport, None, None
                try:
                    await self.connect()
                finally:
                    stale.close()
                raise TransportError(
                    "Datagram exchange failed",
                    host=self.host,
                    port=self.port,
                    cause=e,
                ) from e

    async def send(self, request: Request) -> Response:
        payload = await self.send_raw(encode_request(request))
        return decode_response(request.get_request_type(), payload)
