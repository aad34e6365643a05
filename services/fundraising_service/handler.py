"""
Request Handler

Dispatches decoded requests to the event store and turns every outcome,
including domain failures, into a response value.
"""

from collections.abc import Awaitable, Callable

import structlog

from shared.domain.exceptions import ErrorCode, MalformedRequestError, UnknownRequestTypeError
from shared.events.store import FundraisingEventStore
from shared.protocol import messages
from shared.protocol.codec import decode_request, encode_response
from shared.protocol.messages import (
    CheckDetailsRequest,
    CreateEventRequest,
    DonateRequest,
    EventDetailsResponse,
    EventListResponse,
    EventsExistResponse,
    MessageResponse,
    Request,
    RequestType,
    Response,
)

logger = structlog.get_logger(__name__)

_STORE_ERROR_MESSAGES: dict[ErrorCode, str] = {
    ErrorCode.INVALID_INDEX: messages.INVALID_EVENT_INDEX,
    ErrorCode.EVENT_ENDED: messages.EVENT_ALREADY_ENDED,
}


class RequestHandler:
    """
    Maps each request type to one store operation.

    Holds no per-client state, so one instance serves every session.
    """

    def __init__(self, store: FundraisingEventStore):
        """
        Initialize handler.

        Args:
            store: Shared event store
        """
        self.store = store
        self._handlers: dict[RequestType, Callable[[Request], Awaitable[Response]]] = {
            RequestType.CREATE_EVENT: self._create_event,
            RequestType.LIST_EVENTS: self._list_events,
            RequestType.DONATE: self._donate,
            RequestType.CHECK_DETAILS: self._check_details,
            RequestType.CHECK_EVENTS_EXIST: self._check_events_exist,
        }

        missing = set(RequestType) - set(self._handlers)
        if missing:
            raise RuntimeError(f"No handler for request types: {sorted(m.value for m in missing)}")

    async def handle(self, request: Request) -> Response:
        """
        Execute a request against the store.

        Args:
            request: Decoded request

        Returns:
            Response: Reply to encode for the client
        """
        request_type = request.get_request_type()
        logger.info("Received request", request_type=request_type.value)
        return await self._handlers[request_type](request)

    async def handle_datagram(self, payload: bytes) -> bytes:
        """
        Decode, execute and encode one self-contained request.

        Undecodable payloads and unknown tags are answered, never raised.

        Args:
            payload: Raw datagram

        Returns:
            bytes: Encoded reply
        """
        try:
            request = decode_request(payload)
        except UnknownRequestTypeError as e:
            logger.info("Received request", request_type=e.request_type)
            return encode_response(MessageResponse(message=messages.INVALID_REQUEST_TYPE))
        except MalformedRequestError:
            return encode_response(MessageResponse(message=messages.ERROR_PROCESSING_REQUEST))

        return encode_response(await self.handle(request))

    def _message_for(self, error: ErrorCode | None) -> MessageResponse:
        return MessageResponse(
            message=_STORE_ERROR_MESSAGES.get(error, messages.ERROR_PROCESSING_REQUEST)
        )

    async def _create_event(self, request: CreateEventRequest) -> Response:
        await self.store.create(request.name, request.target_amount, request.deadline)
        return MessageResponse(message=messages.EVENT_CREATED)

    async def _list_events(self, request: Request) -> Response:
        return EventListResponse.from_listing(await self.store.list_events())

    async def _donate(self, request: DonateRequest) -> Response:
        result = await self.store.donate(request.event_id, request.amount)
        if not result.ok:
            return self._message_for(result.error)
        return MessageResponse(message=messages.DONATION_SUCCESSFUL)

    async def _check_details(self, request: CheckDetailsRequest) -> Response:
        result = await self.store.details(request.event_id)
        if not result.ok:
            return self._message_for(result.error)
        return EventDetailsResponse.from_snapshot(result.value)

    async def _check_events_exist(self, request: Request) -> Response:
        return EventsExistResponse(exists=await self.store.exists())
