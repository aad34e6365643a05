"""
Stream Session

Per-connection request loop: wait for a request, process it, reply, repeat.
One session owns its connection for its whole lifetime and handles requests
strictly in order.
"""

import asyncio

import structlog

from services.fundraising_service.handler import RequestHandler
from shared.domain.exceptions import MalformedRequestError, UnknownRequestTypeError
from shared.protocol import messages
from shared.protocol.codec import encode_response, frame, read_request
from shared.protocol.messages import MessageResponse, Response

logger = structlog.get_logger(__name__)


async def serve_connection(
    reader: asyncio.StreamReader,
    writer: asyncio.StreamWriter,
    handler: RequestHandler,
) -> None:
    """
    Serve one client connection until it ends.

    The loop exits on clean end-of-stream, on a request that cannot be
    decoded (the stream cannot be resynchronized), or on a transport error.
    An unknown request tag is answered and the loop continues.

    Args:
        reader: Connection input
        writer: Connection output
        handler: Shared request handler
    """
    peer = writer.get_extra_info("peername") or ("unknown", 0)
    host, port = peer[0], peer[1]
    log = logger.bind(client_host=host, client_port=port)

    log.info("Client connected")

    try:
        with structlog.contextvars.bound_contextvars(client_host=host, client_port=port):
            await _request_loop(reader, writer, handler)
    except MalformedRequestError as e:
        log.info("Closing session on undecodable request", reason=e.message)
    except (ConnectionError, OSError) as e:
        log.warning("Session transport error", error=str(e), error_type=type(e).__name__)
    finally:
        writer.close()
        try:
            await writer.wait_closed()
        except (ConnectionError, OSError) as e:
            log.debug("Connection reset during close", error=str(e))
        log.info("Client disconnected")


async def _request_loop(
    reader: asyncio.StreamReader,
    writer: asyncio.StreamWriter,
    handler: RequestHandler,
) -> None:
    """Idle until a request arrives, process it, reply; return on clean end-of-stream."""
    while True:
        try:
            request = await read_request(reader)
        except UnknownRequestTypeError as e:
            logger.info("Received request", request_type=e.request_type)
            await _reply(writer, MessageResponse(message=messages.INVALID_REQUEST_TYPE))
            continue

        if request is None:
            return

        await _reply(writer, await handler.handle(request))


async def _reply(writer: asyncio.StreamWriter, response: Response) -> None:
    writer.write(frame(encode_response(response)))
    await writer.drain()
