from __future__ import annotations

from .codec import LineDecoder, ProtocolError, decode_buffer, encode
from .connector import CanvasConnectionError, ConnectorHandlers, PeerConnection, connect_with_retry
from .listener import ListenerHandlers, ProtocolListener, create_listener

__all__ = [
    "CanvasConnectionError",
    "ConnectorHandlers",
    "LineDecoder",
    "ListenerHandlers",
    "PeerConnection",
    "ProtocolError",
    "ProtocolListener",
    "connect_with_retry",
    "create_listener",
    "decode_buffer",
    "encode",
]
