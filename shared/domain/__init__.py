"""
Fundraising Domain Models

Event records, immutable views handed out by the store, and the error taxonomy.
"""

from shared.domain.exceptions import (
    DomainException,
    ErrorCode,
    MalformedRequestError,
    ServerStartupError,
    TransportError,
    UnknownRequestTypeError,
)
from shared.domain.fundraising import (
    EventListing,
    EventSnapshot,
    FundraisingEvent,
    StoreResult,
    as_utc,
    utc_now,
)

__all__ = [
    # Models
    "FundraisingEvent",
    "EventSnapshot",
    "EventListing",
    "StoreResult",
    "as_utc",
    "utc_now",
    # Errors
    "ErrorCode",
    "DomainException",
    "MalformedRequestError",
    "UnknownRequestTypeError",
    "TransportError",
    "ServerStartupError",
]
