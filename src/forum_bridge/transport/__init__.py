"""Chat platform transports."""

from .base import ChatTransport, TransportError, TransportErrorKind, is_transient

__all__ = [
    "ChatTransport",
    "TransportError",
    "TransportErrorKind",
    "is_transient",
]
