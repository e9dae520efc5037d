"""Relay protocol message type and status definitions.

Every frame starts with a 5-byte header ``[type:u8][id:u16][value:u16]``.
The meaning of ``value`` depends on the message type:

- RESPONSE/PING: ``value`` is a ProtocolStatus code, no body follows
- everything else: ``value`` is the byte length of the NUL-separated body

HEADER_VALUE_KIND resolves that polymorphism once, at decode time.
"""

from __future__ import annotations

from enum import Enum, IntEnum

HEADER_LENGTH = 5  # type (1) + id (2) + value (2)
HEADER_FORMAT = "!BHH"
FIELD_SEPARATOR = b"\x00"
MAX_MESSAGE_ID = 0xFFFF
MAX_BODY_LENGTH = 0xFFFF
MAX_FRAME_SIZE = HEADER_LENGTH + MAX_BODY_LENGTH


class MessageType(IntEnum):
    """Protocol verbs with their wire codes."""

    RESPONSE = 0
    LOGIN = 2
    PING = 6
    TWEET = 12
    EMAIL = 13
    NOTIFY = 14
    BRIDGE = 15
    HARDWARE_SYNC = 16
    INTERNAL = 17
    PROPERTY = 19
    HARDWARE = 20
    REDIRECT = 41


class ProtocolStatus(IntEnum):
    """Response codes carried in the header of RESPONSE and PING frames."""

    INVALID_TOKEN = 9
    NO_DATA = 17
    VPIN_MAX_NUM = 32
    OK = 200


class HeaderValueKind(Enum):
    """How the header ``value`` field is interpreted."""

    STATUS = "status"
    LENGTH = "length"


HEADER_VALUE_KIND: dict[MessageType, HeaderValueKind] = {
    mtype: HeaderValueKind.LENGTH for mtype in MessageType
}
HEADER_VALUE_KIND[MessageType.RESPONSE] = HeaderValueKind.STATUS
HEADER_VALUE_KIND[MessageType.PING] = HeaderValueKind.STATUS

# Types the client knows how to decode when they arrive from the server
INBOUND_BODY_TYPES: frozenset[MessageType] = frozenset(
    {
        MessageType.HARDWARE,
        MessageType.BRIDGE,
        MessageType.INTERNAL,
        MessageType.REDIRECT,
    },
)


def value_kind(mtype: MessageType) -> HeaderValueKind:
    """Return how the header value of ``mtype`` frames is interpreted."""
    return HEADER_VALUE_KIND[mtype]
