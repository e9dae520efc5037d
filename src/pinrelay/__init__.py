"""Client endpoint for a Blynk-style IoT relay protocol.

Exposes the blocking and asyncio session drivers, the event handler base
classes and the message codec.
"""

__version__ = "0.4.0"

from pinrelay.config import RelayConfig
from pinrelay.errors import ConfigError, RelayError
from pinrelay.events import AsyncEventHandler, EventHandler
from pinrelay.protocol.codec import Message
from pinrelay.protocol.message_types import MessageType, ProtocolStatus
from pinrelay.session.blocking import RelaySession
from pinrelay.session.cooperative import AsyncRelaySession
from pinrelay.session.state import SessionState

__all__ = [
    "AsyncEventHandler",
    "AsyncRelaySession",
    "ConfigError",
    "EventHandler",
    "Message",
    "MessageType",
    "ProtocolStatus",
    "RelayConfig",
    "RelayError",
    "RelaySession",
    "SessionState",
    "__version__",
]
