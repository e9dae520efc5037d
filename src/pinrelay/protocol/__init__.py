"""Relay wire protocol: header codec, messages and stream framing."""

from pinrelay.protocol.codec import Message, decode_header, encode_header, frame_length
from pinrelay.protocol.frame_buffer import FrameBuffer
from pinrelay.protocol.message_types import HEADER_LENGTH, MessageType, ProtocolStatus

__all__ = [
    "HEADER_LENGTH",
    "FrameBuffer",
    "Message",
    "MessageType",
    "ProtocolStatus",
    "decode_header",
    "encode_header",
    "frame_length",
]
