"""Relay protocol encoder/decoder.

Implements the 5-byte header codec and the Message abstraction on top of it.
The header codec is pure bit layout; Message adds type dispatch and body
encoding.
"""

from __future__ import annotations

import struct
from collections.abc import Iterable
from dataclasses import dataclass, field

from pinrelay.logging_abstraction import get_logger
from pinrelay.protocol.exceptions import (
    InvalidHeaderError,
    InvalidMessageIdError,
    InvalidStatusError,
    MalformedBodyError,
    UnknownMessageTypeError,
    UnsupportedInboundTypeError,
)
from pinrelay.protocol.message_types import (
    FIELD_SEPARATOR,
    HEADER_FORMAT,
    HEADER_LENGTH,
    INBOUND_BODY_TYPES,
    HeaderValueKind,
    MessageType,
    ProtocolStatus,
    value_kind,
)

logger = get_logger(__name__)

_HEADER = struct.Struct(HEADER_FORMAT)


def encode_header(msg_type: int, msg_id: int, value: int) -> bytes:
    """Encode a 5-byte big-endian header.

    Example:
        >>> encode_header(20, 32, 5)
        b'\\x14\\x00 \\x00\\x05'

    """
    try:
        return _HEADER.pack(msg_type, msg_id, value)
    except struct.error as e:
        raise InvalidHeaderError(f"field_out_of_range: {e}") from e


def decode_header(data: bytes) -> tuple[int, int, int]:
    """Decode the first 5 bytes of ``data`` into (type, id, value).

    Raises:
        InvalidHeaderError: If fewer than 5 bytes are available

    """
    if len(data) < HEADER_LENGTH:
        raise InvalidHeaderError("too_short", data)
    return _HEADER.unpack_from(data)


def frame_length(data: bytes) -> int:
    """Return the full frame size (header + body) announced by a header.

    Unknown type codes are treated as header-only; decoding them fails anyway.
    """
    msg_type, _, value = decode_header(data)
    try:
        kind = value_kind(MessageType(msg_type))
    except ValueError:
        return HEADER_LENGTH
    if kind is HeaderValueKind.STATUS:
        return HEADER_LENGTH
    return HEADER_LENGTH + value


@dataclass(frozen=True)
class Message:
    """One protocol message: header fields plus ordered body fields.

    Attributes:
        msg_type: Protocol verb
        id: Message id (1..65535 for anything read from the wire)
        status: Status code, only for RESPONSE/PING
        body_len: Body byte length as announced by the header (decoded frames)
        body: Positional UTF-8 fields, NUL-separated on the wire

    """

    msg_type: MessageType
    id: int
    status: ProtocolStatus | None = None
    body_len: int | None = None
    body: tuple[str, ...] = field(default_factory=tuple)

    @property
    def is_status(self) -> bool:
        return value_kind(self.msg_type) is HeaderValueKind.STATUS

    def payload(self) -> bytes:
        """Return the encoded body (fields joined by a single NUL byte)."""
        return FIELD_SEPARATOR.join(part.encode("utf-8") for part in self.body)

    def serialize(self) -> bytes:
        """Encode header + body.

        For status-bearing types the header value is the status code when one
        is set; otherwise it is the body byte length.
        """
        payload = self.payload()
        if self.is_status and self.status is not None:
            value = int(self.status)
        else:
            value = len(payload)
        return encode_header(int(self.msg_type), self.id, value) + payload

    @classmethod
    def deserialize(cls, data: bytes) -> Message:
        """Decode one message from the front of ``data``.

        Trailing bytes beyond the announced frame are ignored.

        Raises:
            InvalidHeaderError: Fewer than 5 bytes
            InvalidMessageIdError: Message id is 0
            UnknownMessageTypeError: Type code not enumerated
            InvalidStatusError: Unknown status on RESPONSE/PING
            MalformedBodyError: Truncated body or invalid UTF-8
            UnsupportedInboundTypeError: Known type the server must never send

        """
        type_code, msg_id, value = decode_header(data)

        if msg_id == 0:
            raise InvalidMessageIdError(data)

        try:
            msg_type = MessageType(type_code)
        except ValueError:
            raise UnknownMessageTypeError(type_code, data) from None

        if value_kind(msg_type) is HeaderValueKind.STATUS:
            try:
                status = ProtocolStatus(value)
            except ValueError:
                raise InvalidStatusError(value, data) from None
            return cls(msg_type=msg_type, id=msg_id, status=status)

        if msg_type not in INBOUND_BODY_TYPES:
            raise UnsupportedInboundTypeError(type_code, data)

        raw_body = bytes(data[HEADER_LENGTH : HEADER_LENGTH + value])
        if len(raw_body) < value:
            reason = f"truncated_body: expected {value} bytes, got {len(raw_body)}"
            raise MalformedBodyError(reason, data)
        try:
            text = raw_body.decode("utf-8")
        except UnicodeDecodeError as e:
            raise MalformedBodyError(f"invalid_utf8 at byte {e.start}", data) from e

        body = tuple(text.split("\x00"))
        logger.debug(
            "Decoded %s id=%d body_len=%d fields=%d",
            msg_type.name,
            msg_id,
            value,
            len(body),
        )
        return cls(msg_type=msg_type, id=msg_id, body_len=value, body=body)

    # Outbound constructors, one per verb

    @classmethod
    def with_body(cls, msg_type: MessageType, msg_id: int, fields: Iterable[object]) -> Message:
        return cls(msg_type=msg_type, id=msg_id, body=tuple(str(f) for f in fields))

    @classmethod
    def login(cls, msg_id: int, token: str) -> Message:
        return cls.with_body(MessageType.LOGIN, msg_id, [token])

    @classmethod
    def ping(cls, msg_id: int) -> Message:
        return cls(msg_type=MessageType.PING, id=msg_id)

    @classmethod
    def response(cls, msg_id: int, status: ProtocolStatus = ProtocolStatus.OK) -> Message:
        return cls(msg_type=MessageType.RESPONSE, id=msg_id, status=status)

    @classmethod
    def virtual_write(cls, msg_id: int, pin: int, value: object) -> Message:
        return cls.with_body(MessageType.HARDWARE, msg_id, ["vw", pin, value])

    @classmethod
    def virtual_sync(cls, msg_id: int, pins: Iterable[int]) -> Message:
        return cls.with_body(MessageType.HARDWARE_SYNC, msg_id, ["vr", *pins])

    @classmethod
    def email(cls, msg_id: int, to: str, subject: str, body: str) -> Message:
        return cls.with_body(MessageType.EMAIL, msg_id, [to, subject, body])

    @classmethod
    def tweet(cls, msg_id: int, text: str) -> Message:
        return cls.with_body(MessageType.TWEET, msg_id, [text])

    @classmethod
    def notify(cls, msg_id: int, text: str) -> Message:
        return cls.with_body(MessageType.NOTIFY, msg_id, [text])

    @classmethod
    def set_property(cls, msg_id: int, pin: int, prop: str, value: object) -> Message:
        return cls.with_body(MessageType.PROPERTY, msg_id, [pin, prop, value])

    @classmethod
    def internal(cls, msg_id: int, fields: Iterable[object]) -> Message:
        return cls.with_body(MessageType.INTERNAL, msg_id, fields)

    @classmethod
    def heartbeat_config(
        cls,
        msg_id: int,
        heartbeat_seconds: int,
        rcv_buffer: int,
        version: str,
        platform: str,
    ) -> Message:
        """Build the INTERNAL frame that negotiates the keepalive contract."""
        fields = ["ver", version, "buff-in", rcv_buffer, "h-beat", heartbeat_seconds, "dev", platform]
        return cls.internal(msg_id, fields)
