"""
Tests for the binary wire codec
"""

import asyncio
import struct
from datetime import UTC, datetime, timedelta

import pytest

from shared.domain.exceptions import MalformedRequestError, UnknownRequestTypeError
from shared.domain.fundraising import EventSnapshot
from shared.protocol.codec import (
    EPOCH,
    MAX_STRING_BYTES,
    PayloadWriter,
    decode_request,
    decode_response,
    encode_request,
    encode_response,
    frame,
    from_epoch_millis,
    read_frame,
    read_request,
    to_epoch_millis,
)
from shared.protocol.messages import (
    CheckDetailsRequest,
    CheckEventsExistRequest,
    CreateEventRequest,
    DonateRequest,
    EventDetailsResponse,
    EventListResponse,
    EventsExistResponse,
    FieldKind,
    ListEventsRequest,
    MessageResponse,
    RequestType,
)
from tests.conftest import START


def wire_string(text: str) -> bytes:
    raw = text.encode("utf-8")
    return struct.pack(">H", len(raw)) + raw


def stream_of(data: bytes, eof: bool = True) -> asyncio.StreamReader:
    reader = asyncio.StreamReader()
    reader.feed_data(data)
    if eof:
        reader.feed_eof()
    return reader


class TestRequestEncoding:
    """Byte layout of requests"""

    def test_donate_layout(self):
        """Test tag then int id then real amount, all big-endian"""
        payload = encode_request(DonateRequest(event_id=2, amount=5.5))

        assert payload == wire_string("DONATE") + struct.pack(">i", 2) + struct.pack(">d", 5.5)

    def test_create_event_layout(self):
        """Test name, target and epoch-millisecond deadline follow the tag"""
        deadline = datetime(2030, 1, 1, tzinfo=UTC)
        payload = encode_request(
            CreateEventRequest(name="Shelter", target_amount=1000.0, deadline=deadline)
        )

        assert payload == (
            wire_string("CREATE_EVENT")
            + wire_string("Shelter")
            + struct.pack(">d", 1000.0)
            + struct.pack(">q", 1893456000000)
        )

    def test_field_less_requests_are_just_the_tag(self):
        """Test LIST_EVENTS and CHECK_EVENTS_EXIST carry no fields"""
        assert encode_request(ListEventsRequest()) == wire_string("LIST_EVENTS")
        assert encode_request(CheckEventsExistRequest()) == wire_string("CHECK_EVENTS_EXIST")

    def test_encoding_is_deterministic(self):
        """Test the same request always encodes to the same bytes"""
        request = CreateEventRequest(name="Ünïcode", target_amount=1.25, deadline=START)

        assert encode_request(request) == encode_request(request)
        assert encode_request(request) == encode_request(request.model_copy())

    def test_non_ascii_length_counts_bytes(self):
        """Test the string length prefix counts UTF-8 bytes, not characters"""
        writer = PayloadWriter().write(FieldKind.STRING, "é")

        assert writer.getvalue() == b"\x00\x02\xc3\xa9"

    def test_oversize_string_is_rejected(self):
        """Test strings longer than the length prefix allows cannot be written"""
        with pytest.raises(ValueError):
            PayloadWriter().write(FieldKind.STRING, "x" * (MAX_STRING_BYTES + 1))

    def test_out_of_range_int_is_rejected(self):
        """Test ids that do not fit 4 signed bytes cannot be written"""
        with pytest.raises(ValueError):
            PayloadWriter().write(FieldKind.INT, 2**31)


class TestRequestDecoding:
    """Decoding requests from complete buffers"""

    def test_decodes_donate(self):
        """Test a well-formed DONATE payload decodes to a DonateRequest"""
        payload = wire_string("DONATE") + struct.pack(">i", 0) + struct.pack(">d", 250.0)

        request = decode_request(payload)

        assert request == DonateRequest(event_id=0, amount=250.0)

    def test_decodes_create_event(self):
        """Test deadlines come back as UTC datetimes"""
        request = CreateEventRequest(name="Shelter", target_amount=1000.0, deadline=START)

        decoded = decode_request(encode_request(request))

        assert decoded == request
        assert decoded.deadline.tzinfo is not None

    def test_decodes_details_request(self):
        """Test a CHECK_DETAILS payload decodes to the requested id"""
        payload = encode_request(CheckDetailsRequest(event_id=7))

        assert decode_request(payload) == CheckDetailsRequest(event_id=7)

    def test_unknown_tag(self):
        """Test an unknown tag raises UnknownRequestTypeError carrying the tag"""
        with pytest.raises(UnknownRequestTypeError) as exc_info:
            decode_request(wire_string("FOO"))

        assert exc_info.value.request_type == "FOO"

    def test_tags_are_case_sensitive(self):
        """Test a lower-case tag is not recognised"""
        with pytest.raises(UnknownRequestTypeError):
            decode_request(wire_string("donate"))

    @pytest.mark.parametrize(
        "payload",
        [
            b"",
            b"\x00",
            b"\x00\x06DON",
            wire_string("DONATE") + b"\x00\x00",
            wire_string("DONATE") + struct.pack(">i", 0) + b"\x40",
            wire_string("CREATE_EVENT") + b"\x00\x10Shel",
        ],
    )
    def test_truncated_payload(self, payload):
        """Test a payload that ends inside a field is malformed"""
        with pytest.raises(MalformedRequestError):
            decode_request(payload)

    def test_invalid_utf8(self):
        """Test undecodable string bytes are malformed"""
        with pytest.raises(MalformedRequestError) as exc_info:
            decode_request(b"\x00\x02\xff\xfe")

        assert exc_info.value.field == "request_type"

    def test_out_of_range_timestamp(self):
        """Test a deadline beyond the representable range is malformed"""
        payload = (
            wire_string("CREATE_EVENT")
            + wire_string("x")
            + struct.pack(">d", 1.0)
            + struct.pack(">q", 2**62)
        )

        with pytest.raises(MalformedRequestError) as exc_info:
            decode_request(payload)

        assert exc_info.value.field == "deadline"

    def test_trailing_bytes_are_ignored(self):
        """Test bytes after the last field do not affect decoding"""
        payload = encode_request(CheckDetailsRequest(event_id=1)) + b"junk"

        assert decode_request(payload) == CheckDetailsRequest(event_id=1)


class TestStreamDecoding:
    """Decoding requests field by field from a stream"""

    @pytest.mark.asyncio
    async def test_reads_consecutive_requests(self):
        """Test several requests on one stream decode in order"""
        data = encode_request(DonateRequest(event_id=0, amount=1.0)) + encode_request(
            ListEventsRequest()
        )
        reader = stream_of(data)

        assert await read_request(reader) == DonateRequest(event_id=0, amount=1.0)
        assert await read_request(reader) == ListEventsRequest()
        assert await read_request(reader) is None

    @pytest.mark.asyncio
    async def test_clean_end_of_stream(self):
        """Test end-of-stream before a request starts yields None"""
        assert await read_request(stream_of(b"")) is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "data",
        [
            b"\x00",
            b"\x00\x06DON",
            wire_string("DONATE") + b"\x00\x00\x00",
        ],
    )
    async def test_end_of_stream_mid_request(self, data):
        """Test end-of-stream inside a request is malformed"""
        with pytest.raises(MalformedRequestError):
            await read_request(stream_of(data))

    @pytest.mark.asyncio
    async def test_unknown_tag_consumes_only_the_tag(self):
        """Test an unknown field-less tag leaves the next request readable"""
        reader = stream_of(wire_string("FOO") + encode_request(CheckEventsExistRequest()))

        with pytest.raises(UnknownRequestTypeError):
            await read_request(reader)

        assert await read_request(reader) == CheckEventsExistRequest()

    @pytest.mark.asyncio
    async def test_waits_for_split_request(self):
        """Test a request delivered in pieces is decoded once complete"""
        payload = encode_request(DonateRequest(event_id=3, amount=9.0))
        reader = asyncio.StreamReader()
        reader.feed_data(payload[:5])

        pending = asyncio.create_task(read_request(reader))
        await asyncio.sleep(0)
        assert not pending.done()

        reader.feed_data(payload[5:])
        assert await pending == DonateRequest(event_id=3, amount=9.0)


class TestResponses:
    """Encoding and decoding of replies"""

    def test_message_layout(self):
        """Test a message reply is a single string"""
        payload = encode_response(MessageResponse(message="Event created successfully."))

        assert payload == wire_string("Event created successfully.")

    def test_exists_layout(self):
        """Test the exists reply is a single byte"""
        assert encode_response(EventsExistResponse(exists=True)) == b"\x01"
        assert encode_response(EventsExistResponse(exists=False)) == b"\x00"

    def test_any_non_zero_bool_is_true(self):
        """Test booleans decode as true for any non-zero byte"""
        response = decode_response(RequestType.CHECK_EVENTS_EXIST, b"\x02")

        assert response == EventsExistResponse(exists=True)

    def test_list_layout(self):
        """Test counts come first, then current then past snapshots"""
        current = EventSnapshot(
            id=1, name="a", target_amount=10.0, current_amount=2.0, deadline=START
        )
        past = EventSnapshot(
            id=0, name="b", target_amount=20.0, current_amount=0.0, deadline=EPOCH
        )

        payload = encode_response(EventListResponse(current=(current,), past=(past,)))

        assert payload == (
            struct.pack(">ii", 1, 1)
            + struct.pack(">i", 1) + wire_string("a") + struct.pack(">ddq", 10.0, 2.0, to_epoch_millis(START))
            + struct.pack(">i", 0) + wire_string("b") + struct.pack(">ddq", 20.0, 0.0, 0)
        )

    def test_list_decodes(self):
        """Test a list reply decodes back into snapshots"""
        snapshot = EventSnapshot(
            id=4, name="Shelter", target_amount=1000.0, current_amount=500.0, deadline=START
        )
        response = EventListResponse(current=(snapshot,), past=())

        decoded = decode_response(RequestType.LIST_EVENTS, encode_response(response))

        assert decoded == response

    def test_empty_list_is_not_mistaken_for_a_message(self):
        """Test two zero counts decode as an empty list"""
        decoded = decode_response(RequestType.LIST_EVENTS, struct.pack(">ii", 0, 0))

        assert decoded == EventListResponse()

    def test_details_decode(self):
        """Test a details reply decodes with its deadline in UTC"""
        response = EventDetailsResponse(
            name="Shelter", target_amount=1000.0, current_amount=250.0, deadline=START
        )

        decoded = decode_response(RequestType.CHECK_DETAILS, encode_response(response))

        assert decoded == response

    @pytest.mark.parametrize("request_type", list(RequestType))
    def test_message_replies_decode_for_every_request_type(self, request_type):
        """Test an error message is recognised whatever was asked"""
        payload = encode_response(MessageResponse(message="Invalid event index."))

        assert decode_response(request_type, payload) == MessageResponse(
            message="Invalid event index."
        )

    def test_truncated_details_reply(self):
        """Test a details reply missing its deadline is malformed"""
        payload = wire_string("Shelter") + struct.pack(">dd", 1.0, 2.0)

        with pytest.raises(MalformedRequestError):
            decode_response(RequestType.CHECK_DETAILS, payload)

    def test_unknown_response_type(self):
        """Test encoding refuses objects that are not responses"""
        with pytest.raises(TypeError):
            encode_response(object())


class TestFraming:
    """Length prefix on stream replies"""

    def test_frame_prefixes_length(self):
        """Test frame prepends a 4-byte big-endian length"""
        assert frame(b"abc") == b"\x00\x00\x00\x03abc"

    @pytest.mark.asyncio
    async def test_read_frame(self):
        """Test consecutive frames are read one at a time"""
        reader = stream_of(frame(b"one") + frame(b"") + frame(b"three"))

        assert await read_frame(reader) == b"one"
        assert await read_frame(reader) == b""
        assert await read_frame(reader) == b"three"

    @pytest.mark.asyncio
    async def test_incomplete_frame(self):
        """Test a frame cut short raises IncompleteReadError"""
        with pytest.raises(asyncio.IncompleteReadError):
            await read_frame(stream_of(b"\x00\x00\x00\x05ab"))

    @pytest.mark.asyncio
    async def test_negative_frame_length(self):
        """Test a negative length prefix is malformed"""
        with pytest.raises(MalformedRequestError):
            await read_frame(stream_of(struct.pack(">i", -1)))


class TestTimestamps:
    """Epoch-millisecond conversion"""

    def test_epoch_is_zero(self):
        assert to_epoch_millis(EPOCH) == 0
        assert from_epoch_millis(0) == EPOCH

    def test_sub_millisecond_precision_is_dropped(self):
        """Test microseconds are truncated to whole milliseconds"""
        value = EPOCH + timedelta(milliseconds=5, microseconds=999)

        assert to_epoch_millis(value) == 5

    def test_pre_epoch_values(self):
        """Test instants before 1970 map to negative millis"""
        value = EPOCH - timedelta(milliseconds=1500)

        assert to_epoch_millis(value) == -1500
        assert from_epoch_millis(-1500) == value

    def test_naive_values_are_utc(self):
        """Test naive datetimes convert as if they were UTC"""
        naive = datetime(1970, 1, 1, 0, 0, 1)

        assert to_epoch_millis(naive) == 1000
