"""
Protocol Messages

Typed requests and responses exchanged between clients and the server.
Every request type is a frozen model that names its wire tag and the
ordered list of fields that follow the tag on the wire.
"""

from abc import ABC
from datetime import datetime
from enum import Enum
from typing import ClassVar

from pydantic import BaseModel, ConfigDict, field_validator

from shared.domain.fundraising import EventListing, EventSnapshot, as_utc

# Reply texts
EVENT_CREATED = "Event created successfully."
DONATION_SUCCESSFUL = "Donation successful. Thank you for your contribution!"
INVALID_EVENT_INDEX = "Invalid event index."
EVENT_ALREADY_ENDED = "Donation failed. The event has already ended."
INVALID_REQUEST_TYPE = "Invalid request type."
ERROR_PROCESSING_REQUEST = "Error processing request."


class RequestType(str, Enum):
    """Wire tags of the known requests."""

    CREATE_EVENT = "CREATE_EVENT"
    LIST_EVENTS = "LIST_EVENTS"
    DONATE = "DONATE"
    CHECK_DETAILS = "CHECK_DETAILS"
    CHECK_EVENTS_EXIST = "CHECK_EVENTS_EXIST"


class FieldKind(str, Enum):
    """Primitive wire types."""

    STRING = "string"  # 2-byte length + UTF-8
    REAL = "real"  # 8-byte IEEE-754
    TIMESTAMP = "timestamp"  # 8-byte epoch milliseconds
    INT = "int"  # 4-byte signed
    BOOL = "bool"  # 1 byte


class Request(BaseModel, ABC):
    """Abstract base request."""

    model_config = ConfigDict(frozen=True)

    REQUEST_TYPE: ClassVar[RequestType]
    FIELDS: ClassVar[tuple[tuple[str, FieldKind], ...]] = ()

    @classmethod
    def get_request_type(cls) -> RequestType:
        """Get the wire tag of this request."""
        return cls.REQUEST_TYPE


class CreateEventRequest(Request):
    """Create a new fundraising event."""

    REQUEST_TYPE: ClassVar[RequestType] = RequestType.CREATE_EVENT
    FIELDS: ClassVar[tuple[tuple[str, FieldKind], ...]] = (
        ("name", FieldKind.STRING),
        ("target_amount", FieldKind.REAL),
        ("deadline", FieldKind.TIMESTAMP),
    )

    name: str
    target_amount: float
    deadline: datetime

    @field_validator("deadline")
    @classmethod
    def _normalize_deadline(cls, value: datetime) -> datetime:
        return as_utc(value)


class ListEventsRequest(Request):
    """List current and past events."""

    REQUEST_TYPE: ClassVar[RequestType] = RequestType.LIST_EVENTS


class DonateRequest(Request):
    """Donate to an event by zero-based id."""

    REQUEST_TYPE: ClassVar[RequestType] = RequestType.DONATE
    FIELDS: ClassVar[tuple[tuple[str, FieldKind], ...]] = (
        ("event_id", FieldKind.INT),
        ("amount", FieldKind.REAL),
    )

    event_id: int
    amount: float


class CheckDetailsRequest(Request):
    """Fetch the details of one event by zero-based id."""

    REQUEST_TYPE: ClassVar[RequestType] = RequestType.CHECK_DETAILS
    FIELDS: ClassVar[tuple[tuple[str, FieldKind], ...]] = (
        ("event_id", FieldKind.INT),
    )

    event_id: int


class CheckEventsExistRequest(Request):
    """Ask whether any event exists."""

    REQUEST_TYPE: ClassVar[RequestType] = RequestType.CHECK_EVENTS_EXIST


REQUEST_MODELS: dict[RequestType, type[Request]] = {
    model.REQUEST_TYPE: model
    for model in (
        CreateEventRequest,
        ListEventsRequest,
        DonateRequest,
        CheckDetailsRequest,
        CheckEventsExistRequest,
    )
}


class Response(BaseModel, ABC):
    """Abstract base response."""

    model_config = ConfigDict(frozen=True)


class MessageResponse(Response):
    """Plain text reply: confirmations and all error replies."""

    message: str


class EventListResponse(Response):
    """Current and past events, each sorted by deadline."""

    current: tuple[EventSnapshot, ...] = ()
    past: tuple[EventSnapshot, ...] = ()

    @classmethod
    def from_listing(cls, listing: EventListing) -> "EventListResponse":
        return cls(current=listing.current, past=listing.past)


class EventDetailsResponse(Response):
    """Details of a single event."""

    name: str
    target_amount: float
    current_amount: float
    deadline: datetime

    @field_validator("deadline")
    @classmethod
    def _normalize_deadline(cls, value: datetime) -> datetime:
        return as_utc(value)

    @classmethod
    def from_snapshot(cls, snapshot: EventSnapshot) -> "EventDetailsResponse":
        return cls(
            name=snapshot.name,
            target_amount=snapshot.target_amount,
            current_amount=snapshot.current_amount,
            deadline=snapshot.deadline,
        )


class EventsExistResponse(Response):
    """Whether at least one event exists."""

    exists: bool
