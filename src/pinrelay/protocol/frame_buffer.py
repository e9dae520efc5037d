"""TCP stream framing for relay protocol messages.

This module provides FrameBuffer for extracting complete messages from TCP byte
streams, handling partial frames, multi-frame reads, and protecting against
unbounded buffer growth.
"""

from __future__ import annotations

from pinrelay.logging_abstraction import get_logger
from pinrelay.protocol.codec import Message, frame_length
from pinrelay.protocol.exceptions import (
    FrameBufferOverflowError,
    RelayProtocolError,
    UnknownMessageTypeError,
)
from pinrelay.protocol.message_types import HEADER_LENGTH, MAX_FRAME_SIZE

logger = get_logger(__name__)


class FrameBuffer:
    r"""Extract complete messages from a TCP byte stream.

    TCP reads may return partial frames, multiple frames, or exact boundaries.
    FrameBuffer keeps incoming bytes and hands out one decoded Message at a
    time, based on the header value of each frame.

    A frame that fails to decode is dropped on its own and the frames behind
    it stay buffered. An unknown type code leaves no reliable boundary, so
    that error clears the whole buffer instead.

    Example:
        buf = FrameBuffer()
        buf.feed(b'\\x14\\x00\\x01\\x00\\x05')
        assert buf.next_message() is None  # Incomplete

        buf.feed(b'vw\\x004')
        msg = buf.next_message()  # HARDWARE frame, body ('vw', '4')

    """

    # Largest legal frame plus the read that follows it
    MAX_BUFFER_SIZE: int = 2 * MAX_FRAME_SIZE

    def __init__(self, max_size: int | None = None) -> None:
        self.buffer: bytearray = bytearray()
        self.max_size: int = max_size or self.MAX_BUFFER_SIZE

    def __len__(self) -> int:
        return len(self.buffer)

    def feed(self, data: bytes) -> None:
        """Append bytes from a TCP read.

        Raises:
            FrameBufferOverflowError: Buffered bytes would exceed ``max_size``

        """
        if len(self.buffer) + len(data) > self.max_size:
            size = len(self.buffer) + len(data)
            logger.error(
                "Frame buffer overflow, discarding %d bytes",
                size,
                extra={"max_size": self.max_size},
            )
            self.clear()
            raise FrameBufferOverflowError(size)
        self.buffer.extend(data)

    def has_frame(self) -> bool:
        """Return True if at least one complete frame is buffered."""
        if len(self.buffer) < HEADER_LENGTH:
            return False
        return len(self.buffer) >= frame_length(bytes(self.buffer[:HEADER_LENGTH]))

    def next_message(self) -> Message | None:
        """Decode and remove the first complete frame.

        Returns:
            The decoded message, or None while the first frame is incomplete

        Raises:
            RelayProtocolError: The frame could not be decoded (frame dropped)

        """
        if not self.has_frame():
            return None

        total = frame_length(bytes(self.buffer[:HEADER_LENGTH]))
        frame = bytes(self.buffer[:total])
        try:
            msg = Message.deserialize(frame)
        except UnknownMessageTypeError as e:
            logger.warning(
                "Dropping %d buffered bytes after unknown type %d",
                len(self.buffer),
                e.type_code,
                extra={"data_preview": e.data_preview.hex()},
            )
            self.clear()
            raise
        except RelayProtocolError as e:
            logger.warning(
                "Dropping %d byte frame: %s",
                total,
                e.reason,
                extra={"data_preview": e.data_preview.hex(), "buffered": len(self.buffer) - total},
            )
            del self.buffer[:total]
            raise
        del self.buffer[:total]
        return msg

    def clear(self) -> None:
        self.buffer = bytearray()
