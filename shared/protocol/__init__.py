"""
Fundraising Wire Protocol

Typed requests and responses, the binary codec, and async clients.
"""

from shared.protocol.codec import (
    decode_request,
    decode_response,
    encode_request,
    encode_response,
    frame,
    read_frame,
    read_request,
)
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
    RequestType,
    Response,
)

__all__ = [
    # Messages
    "RequestType",
    "Request",
    "CreateEventRequest",
    "ListEventsRequest",
    "DonateRequest",
    "CheckDetailsRequest",
    "CheckEventsExistRequest",
    "Response",
    "MessageResponse",
    "EventListResponse",
    "EventDetailsResponse",
    "EventsExistResponse",
    # Codec
    "encode_request",
    "decode_request",
    "read_request",
    "encode_response",
    "decode_response",
    "frame",
    "read_frame",
]
