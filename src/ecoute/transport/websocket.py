"""
WebSocket Transport — holds FastAPI WebSocket connections for the relay hub.

This transport is a pure connection handler. It:
  1. Accepts WebSocket connections from FastAPI
  2. Wraps each one in a WebSocketConnection
  3. Feeds every inbound text (or UTF-8 binary) message to the hub, in order
  4. Tells the hub when the connection goes away, however it went away

It does NOT parse frames or know about roles and sessions.
That's the hub's job.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any

from fastapi import WebSocket, WebSocketDisconnect
from starlette.websockets import WebSocketState

from ecoute.core.config import config
from ecoute.transport.base import Connection, TransportError
from ecoute.transport.frames import encode, server_frame

if TYPE_CHECKING:
    from ecoute.relay.hub import RelayHub

logger = logging.getLogger(__name__)

CLOSE_INTERNAL_ERROR = 1011


class WebSocketConnection(Connection):
    """A Connection backed by a Starlette WebSocket."""

    def __init__(self, websocket: WebSocket, send_timeout: float | None = None):
        super().__init__()
        self.websocket = websocket
        self._send_timeout = send_timeout or config.server.ws_send_timeout
        self._closed = False

    @property
    def remote(self) -> str:
        client = self.websocket.client
        return f"{client.host}:{client.port}" if client else "unknown"

    @property
    def is_open(self) -> bool:
        return (
            not self._closed
            and self.websocket.client_state == WebSocketState.CONNECTED
            and self.websocket.application_state == WebSocketState.CONNECTED
        )

    def mark_closed(self) -> None:
        self._closed = True

    async def send(self, frame: dict[str, Any]) -> None:
        if not self.is_open:
            raise TransportError("connection is closed")
        try:
            await asyncio.wait_for(
                self.websocket.send_text(encode(frame)),
                timeout=self._send_timeout,
            )
        except asyncio.TimeoutError as e:
            self._closed = True
            raise TransportError("send timed out") from e
        except Exception as e:
            self._closed = True
            raise TransportError(str(e) or type(e).__name__) from e

    async def close(self, code: int = 1000, reason: str = "") -> None:
        self._closed = True
        if self.websocket.application_state != WebSocketState.CONNECTED:
            return
        try:
            await self.websocket.close(code=code, reason=reason)
        except Exception as e:
            logger.debug("Close skipped for %s: %s", self.connection_id, e)

    async def ping(self) -> None:
        await self.send(server_frame("server_ping"))


class WebSocketTransport:
    """
    WebSocket transport — the facade between WebSocket clients and the hub.

    Mount it in FastAPI via:
        app.add_api_websocket_route("/ws", transport.handle_connection)
    """

    name = "websocket"

    def __init__(self, hub: "RelayHub", send_timeout: float | None = None):
        self.hub = hub
        self._send_timeout = send_timeout

    async def handle_connection(self, websocket: WebSocket) -> None:
        """
        Handle one WebSocket connection from accept to close.

        Frames are handed to the hub one at a time, so a connection's frames
        are processed strictly in arrival order.
        """
        await websocket.accept()
        conn = WebSocketConnection(websocket, send_timeout=self._send_timeout)
        logger.info(
            "WS connected: %s from %s (ua=%s)",
            conn.connection_id,
            conn.remote,
            websocket.headers.get("user-agent", "-"),
            extra={"connection_id": conn.connection_id},
        )

        close_code = 1000
        close_reason = ""
        await self.hub.on_open(conn)
        try:
            while True:
                message = await websocket.receive()
                if message["type"] == "websocket.disconnect":
                    close_code = message.get("code", 1000)
                    close_reason = message.get("reason") or ""
                    break

                text = message.get("text")
                if text is None:
                    text = (message.get("bytes") or b"").decode("utf-8", errors="replace")

                logger.debug("← WS IN (%s): %s", conn.label, text[:100])
                await self.hub.on_message(conn, text)
        except WebSocketDisconnect as e:
            close_code = e.code
        except Exception:
            logger.exception("WS error on %s", conn.connection_id)
            close_code = CLOSE_INTERNAL_ERROR
        finally:
            conn.mark_closed()
            await self.hub.on_close(conn, close_code, close_reason)

    def __repr__(self) -> str:
        return f"<WebSocketTransport(hub={self.hub!r})>"
