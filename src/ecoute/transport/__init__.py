"""
Ecoute Transport Layer

The boundary between the relay core and the network:
- Connection: abstract client endpoint (send / close / ping / is_open)
- WebSocketTransport: FastAPI WebSocket adapter feeding the RelayHub
- frames: the tagged inbound variants and server frame builders

Usage:
    from ecoute.relay import RelayHub
    from ecoute.transport import WebSocketTransport

    hub = RelayHub(storage=store)
    transport = WebSocketTransport(hub)
    app.add_api_websocket_route("/ws", transport.handle_connection)
"""

from ecoute.transport.base import (
    CLOSE_GOING_AWAY,
    CLOSE_SUPERSEDED,
    Connection,
    TransportError,
)
from ecoute.transport.frames import (
    AudioFrame,
    ControlFrame,
    ControlKind,
    IdentityClaim,
    InboundFrame,
    ListeningIndicator,
    PingFrame,
    StatusRequest,
    UnknownFrame,
    parse_frame,
    server_frame,
)
from ecoute.transport.websocket import WebSocketConnection, WebSocketTransport

__all__ = [
    # Connection boundary
    "Connection",
    "TransportError",
    "CLOSE_GOING_AWAY",
    "CLOSE_SUPERSEDED",
    # Frames
    "InboundFrame",
    "IdentityClaim",
    "AudioFrame",
    "PingFrame",
    "StatusRequest",
    "ListeningIndicator",
    "ControlFrame",
    "ControlKind",
    "UnknownFrame",
    "parse_frame",
    "server_frame",
    # Transports
    "WebSocketConnection",
    "WebSocketTransport",
]
