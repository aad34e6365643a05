"""
Wire Codec

Binary encoding of requests and responses. A message is a flat sequence of
big-endian primitive fields; a request starts with its tag as a string.

Datagram payloads are decoded from a complete buffer. Stream requests are
decoded field by field from an asyncio.StreamReader, and stream responses are
framed with a 4-byte length so clients can read one reply at a time.
"""

import asyncio
import struct
from datetime import UTC, datetime, timedelta
from typing import Any

from pydantic import ValidationError

from shared.domain.exceptions import MalformedRequestError, UnknownRequestTypeError
from shared.domain.fundraising import EventSnapshot, as_utc
from shared.protocol.messages import (
    REQUEST_MODELS,
    EventDetailsResponse,
    EventListResponse,
    EventsExistResponse,
    FieldKind,
    MessageResponse,
    Request,
    RequestType,
    Response,
)

EPOCH = datetime(1970, 1, 1, tzinfo=UTC)
MAX_STRING_BYTES = 0xFFFF

_STRING_LENGTH = struct.Struct(">H")
_FRAME_LENGTH = struct.Struct(">i")
_FIXED: dict[FieldKind, struct.Struct] = {
    FieldKind.REAL: struct.Struct(">d"),
    FieldKind.TIMESTAMP: struct.Struct(">q"),
    FieldKind.INT: struct.Struct(">i"),
    FieldKind.BOOL: struct.Struct(">B"),
}

_SNAPSHOT_FIELDS: tuple[tuple[str, FieldKind], ...] = (
    ("id", FieldKind.INT),
    ("name", FieldKind.STRING),
    ("target_amount", FieldKind.REAL),
    ("current_amount", FieldKind.REAL),
    ("deadline", FieldKind.TIMESTAMP),
)
_DETAILS_FIELDS: tuple[tuple[str, FieldKind], ...] = _SNAPSHOT_FIELDS[1:]


def to_epoch_millis(value: datetime) -> int:
    """Milliseconds since the Unix epoch (UTC), truncated toward negative infinity."""
    return (as_utc(value) - EPOCH) // timedelta(milliseconds=1)


def from_epoch_millis(millis: int) -> datetime:
    """UTC datetime for an epoch-millisecond timestamp."""
    return EPOCH + timedelta(milliseconds=millis)


class PayloadWriter:
    """Accumulates encoded fields."""

    def __init__(self) -> None:
        self._parts: list[bytes] = []

    def write(self, kind: FieldKind, value: Any) -> "PayloadWriter":
        """
        Append one field.

        Raises:
            ValueError: If the value does not fit its wire type
        """
        if kind is FieldKind.STRING:
            raw = value.encode("utf-8")
            if len(raw) > MAX_STRING_BYTES:
                raise ValueError(f"String of {len(raw)} bytes exceeds {MAX_STRING_BYTES}")
            self._parts.append(_STRING_LENGTH.pack(len(raw)))
            self._parts.append(raw)
            return self

        if kind is FieldKind.TIMESTAMP:
            value = to_epoch_millis(value)
        elif kind is FieldKind.BOOL:
            value = 1 if value else 0

        try:
            self._parts.append(_FIXED[kind].pack(value))
        except struct.error as e:
            raise ValueError(f"Value {value!r} does not fit {kind.value}") from e
        return self

    def write_fields(
        self, fields: tuple[tuple[str, FieldKind], ...], source: Any
    ) -> "PayloadWriter":
        """Append the named attributes of source in order."""
        for name, kind in fields:
            self.write(kind, getattr(source, name))
        return self

    def getvalue(self) -> bytes:
        return b"".join(self._parts)


def _convert(kind: FieldKind, raw: bytes, field: str | None) -> Any:
    if kind is FieldKind.STRING:
        try:
            return raw.decode("utf-8")
        except UnicodeDecodeError as e:
            raise MalformedRequestError("Invalid UTF-8 string", field=field, cause=e)

    value = _FIXED[kind].unpack(raw)[0]
    if kind is FieldKind.TIMESTAMP:
        try:
            return from_epoch_millis(value)
        except OverflowError as e:
            raise MalformedRequestError("Timestamp out of range", field=field, cause=e)
    if kind is FieldKind.BOOL:
        return value != 0
    return value


class PayloadReader:
    """Reads fields from a complete buffer."""

    def __init__(self, payload: bytes) -> None:
        self._payload = bytes(payload)
        self._offset = 0

    @property
    def remaining(self) -> int:
        return len(self._payload) - self._offset

    def _take(self, size: int, field: str | None) -> bytes:
        if size > self.remaining:
            raise MalformedRequestError(
                "Truncated payload",
                field=field,
                context={"needed": size, "available": self.remaining},
            )
        chunk = self._payload[self._offset:self._offset + size]
        self._offset += size
        return chunk

    def read(self, kind: FieldKind, field: str | None = None) -> Any:
        if kind is FieldKind.STRING:
            (length,) = _STRING_LENGTH.unpack(self._take(_STRING_LENGTH.size, field))
            return _convert(kind, self._take(length, field), field)
        return _convert(kind, self._take(_FIXED[kind].size, field), field)

    def read_fields(self, fields: tuple[tuple[str, FieldKind], ...]) -> dict[str, Any]:
        return {name: self.read(kind, name) for name, kind in fields}


class StreamPayloadReader:
    """Reads fields from a byte stream."""

    def __init__(self, reader: asyncio.StreamReader) -> None:
        self._reader = reader

    async def read_bytes(self, size: int, field: str | None = None) -> bytes:
        try:
            return await self._reader.readexactly(size)
        except asyncio.IncompleteReadError as e:
            raise MalformedRequestError(
                "Stream ended mid-request",
                field=field,
                context={"needed": size, "available": len(e.partial)},
                cause=e,
            )

    async def read(self, kind: FieldKind, field: str | None = None) -> Any:
        if kind is FieldKind.STRING:
            (length,) = _STRING_LENGTH.unpack(await self.read_bytes(_STRING_LENGTH.size, field))
            return _convert(kind, await self.read_bytes(length, field), field)
        return _convert(kind, await self.read_bytes(_FIXED[kind].size, field), field)

    async def read_fields(self, fields: tuple[tuple[str, FieldKind], ...]) -> dict[str, Any]:
        values: dict[str, Any] = {}
        for name, kind in fields:
            values[name] = await self.read(kind, name)
        return values


def _model_for(tag: str) -> type[Request]:
    try:
        return REQUEST_MODELS[RequestType(tag)]
    except ValueError:
        raise UnknownRequestTypeError(tag) from None


def _build(model: type[Request], values: dict[str, Any]) -> Request:
    try:
        return model(**values)
    except ValidationError as e:
        raise MalformedRequestError(
            "Request fields failed validation",
            context={"request_type": model.REQUEST_TYPE.value},
            cause=e,
        )


def encode_request(request: Request) -> bytes:
    """Encode a request: tag, then its declared fields."""
    writer = PayloadWriter()
    writer.write(FieldKind.STRING, request.get_request_type().value)
    writer.write_fields(request.FIELDS, request)
    return writer.getvalue()


def decode_request(payload: bytes) -> Request:
    """
    Decode a request from a complete buffer.

    Trailing bytes after the last field are ignored.

    Raises:
        MalformedRequestError: If a field is missing or invalid
        UnknownRequestTypeError: If the tag is not a known request type
    """
    reader = PayloadReader(payload)
    model = _model_for(reader.read(FieldKind.STRING, "request_type"))
    return _build(model, reader.read_fields(model.FIELDS))


async def read_request(reader: asyncio.StreamReader) -> Request | None:
    """
    Decode the next request from a stream.

    Returns:
        The request, or None if the stream ended cleanly between requests

    Raises:
        MalformedRequestError: If the stream ends mid-request or a field is invalid
        UnknownRequestTypeError: If the tag is not a known request type
    """
    try:
        header = await reader.readexactly(_STRING_LENGTH.size)
    except asyncio.IncompleteReadError as e:
        if not e.partial:
            return None
        raise MalformedRequestError("Stream ended mid-request", field="request_type", cause=e)

    stream = StreamPayloadReader(reader)
    (length,) = _STRING_LENGTH.unpack(header)
    tag = _convert(FieldKind.STRING, await stream.read_bytes(length, "request_type"), "request_type")
    model = _model_for(tag)
    return _build(model, await stream.read_fields(model.FIELDS))


def encode_response(response: Response) -> bytes:
    """Encode a response in the layout its request type defines."""
    writer = PayloadWriter()

    if isinstance(response, MessageResponse):
        writer.write(FieldKind.STRING, response.message)
    elif isinstance(response, EventListResponse):
        writer.write(FieldKind.INT, len(response.current))
        writer.write(FieldKind.INT, len(response.past))
        for snapshot in (*response.current, *response.past):
            writer.write_fields(_SNAPSHOT_FIELDS, snapshot)
    elif isinstance(response, EventDetailsResponse):
        writer.write_fields(_DETAILS_FIELDS, response)
    elif isinstance(response, EventsExistResponse):
        writer.write(FieldKind.BOOL, response.exists)
    else:
        raise TypeError(f"Cannot encode {type(response).__name__}")

    return writer.getvalue()


def _as_message(payload: bytes) -> str | None:
    """The payload's text if it is exactly one complete string, else None."""
    if len(payload) < _STRING_LENGTH.size:
        return None
    (length,) = _STRING_LENGTH.unpack_from(payload)
    if length != len(payload) - _STRING_LENGTH.size:
        return None
    try:
        return payload[_STRING_LENGTH.size:].decode("utf-8")
    except UnicodeDecodeError:
        return None


def decode_response(request_type: RequestType, payload: bytes) -> Response:
    """
    Decode the reply to a request of the given type.

    Error replies are plain messages for every request type, so a payload
    holding exactly one string is always a MessageResponse.

    Raises:
        MalformedRequestError: If the payload does not match the expected layout
    """
    message = _as_message(payload)
    if message is not None:
        return MessageResponse(message=message)

    reader = PayloadReader(payload)

    if request_type is RequestType.LIST_EVENTS:
        current_count = reader.read(FieldKind.INT, "current_count")
        past_count = reader.read(FieldKind.INT, "past_count")
        if current_count < 0 or past_count < 0:
            raise MalformedRequestError("Negative event count")
        current = tuple(
            EventSnapshot(**reader.read_fields(_SNAPSHOT_FIELDS)) for _ in range(current_count)
        )
        past = tuple(
            EventSnapshot(**reader.read_fields(_SNAPSHOT_FIELDS)) for _ in range(past_count)
        )
        return EventListResponse(current=current, past=past)

    if request_type is RequestType.CHECK_DETAILS:
        return EventDetailsResponse(**reader.read_fields(_DETAILS_FIELDS))

    if request_type is RequestType.CHECK_EVENTS_EXIST:
        return EventsExistResponse(exists=reader.read(FieldKind.BOOL, "exists"))

    raise MalformedRequestError(
        "Expected a message reply",
        context={"request_type": request_type.value},
    )


def frame(payload: bytes) -> bytes:
    """Prefix a stream reply with its length."""
    return _FRAME_LENGTH.pack(len(payload)) + payload


async def read_frame(reader: asyncio.StreamReader) -> bytes:
    """
    Read one length-prefixed reply from a stream.

    Raises:
        asyncio.IncompleteReadError: If the stream ends before the frame is complete
        MalformedRequestError: If the length prefix is negative
    """
    (length,) = _FRAME_LENGTH.unpack(await reader.readexactly(_FRAME_LENGTH.size))
    if length < 0:
        raise MalformedRequestError("Negative frame length", context={"length": length})
    return await reader.readexactly(length)
