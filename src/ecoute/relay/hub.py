"""
RelayHub — the facade that owns and wires the relay core.

The hub:
  - Builds the registry, background writer, lifecycle manager, dispatcher
    and liveness supervisor once, and tears them down explicitly
  - Receives on_open / on_message / on_close from the transport
  - Parses each inbound message into a tagged frame and dispatches it
  - Gives every disconnect (clean close, transport error, failed send,
    sweep) the same cleanup: release the role, broadcast user_status

Flow:
  Client → WebSocketTransport → RelayHub.on_message → parse_frame
         → MessageDispatcher → registry / lifecycle / peer connection
"""

from __future__ import annotations

import logging
from typing import Any

import ecoute.core.config as config_module
from ecoute.core.config import LivenessConfig
from ecoute.relay.dispatcher import MessageDispatcher
from ecoute.relay.lifecycle import SessionLifecycleManager
from ecoute.relay.liveness import LivenessSupervisor
from ecoute.relay.registry import ConnectionRegistry
from ecoute.relay.writer import BackgroundWriter
from ecoute.session.interface import SessionStorage
from ecoute.transport.base import CLOSE_GOING_AWAY, Connection
from ecoute.transport.frames import (
    error_frame,
    parse_frame,
    server_frame,
    user_status_frame,
)

logger = logging.getLogger(__name__)

FEATURES = [
    "identification",
    "audio_streaming",
    "real_time_communication",
    "bernard_listening",
    "listening_sessions",
]


class RelayHub:
    """Central relay: one instance per process."""

    def __init__(
        self,
        storage: SessionStorage | None = None,
        liveness: LivenessConfig | None = None,
        write_queue_size: int | None = None,
    ):
        cfg = config_module.config
        self.storage = storage
        self.registry = ConnectionRegistry()
        self.writer = BackgroundWriter(
            queue_limit=write_queue_size or cfg.storage.write_queue_size
        )
        self.lifecycle = SessionLifecycleManager(
            self.registry, storage=storage, writer=self.writer
        )
        self.dispatcher = MessageDispatcher(
            self.registry, self.lifecycle, on_dead=self.disconnect
        )
        self.supervisor = LivenessSupervisor(
            self.registry,
            on_dead=self.disconnect,
            stats=self.status,
            liveness=liveness or cfg.liveness,
        )

        # Every open connection, claimed or not: connection_id → Connection
        self._connections: dict[str, Connection] = {}
        self._running = False

    @property
    def features(self) -> list[str]:
        if self.storage is not None:
            return FEATURES + ["session_persistence"]
        return list(FEATURES)

    # ─── Lifecycle ───────────────────────────────────────────────

    async def start(self) -> None:
        if self._running:
            return
        await self.writer.start()
        await self.supervisor.start()
        self._running = True
        logger.info("Relay hub started (persistence=%s)", self.storage is not None)

    async def stop(self) -> None:
        """Tell every client we're going away, close them, flush pending writes."""
        logger.info("Stopping relay hub (%d connections)...", len(self._connections))
        for conn in list(self._connections.values()):
            await conn.deliver(
                server_frame("server_shutdown", message="Server shutting down")
            )
            await conn.close(CLOSE_GOING_AWAY, "server shutting down")

        await self.supervisor.stop()
        await self.lifecycle.shutdown()
        await self.writer.stop(drain=True)
        self._connections.clear()
        self._running = False
        logger.info("Relay hub stopped")

    # ─── Transport callbacks ─────────────────────────────────────

    async def on_open(self, conn: Connection) -> None:
        self._connections[conn.connection_id] = conn
        cfg = config_module.config.server
        await conn.deliver(
            server_frame(
                "welcome",
                message="WebSocket connection established. "
                "Send 'listener' or 'source' to identify.",
                server=f"{cfg.name} v{cfg.version}",
                features=self.features,
                connectionId=conn.connection_id,
            )
        )
        self.supervisor.watch(conn)

    async def on_message(self, conn: Connection, text: str) -> None:
        conn.touch()
        frame = None
        try:
            frame = parse_frame(text)
            await self.dispatcher.dispatch(conn, frame)
        except Exception:
            logger.exception(
                "Error handling %s from %s",
                type(frame).__name__ if frame is not None else "unparsed frame",
                conn.label,
                extra={"connection_id": conn.connection_id},
            )
            await conn.deliver(error_frame("Internal error", code="internal_error"))

    async def on_close(self, conn: Connection, code: int = 1000, reason: str = "") -> None:
        logger.info(
            "WS closed: %s (code=%s, reason=%s)",
            conn.label,
            code,
            reason or "-",
            extra={"connection_id": conn.connection_id},
        )
        await self.disconnect(conn, close=False)

    # ─── Cleanup ─────────────────────────────────────────────────

    async def disconnect(self, conn: Connection, close: bool = True) -> None:
        """
        Forget a connection. Safe to call any number of times.

        ``close`` also shuts the transport, for connections found dead while
        their receive loop may still be running.
        """
        self._connections.pop(conn.connection_id, None)
        self.supervisor.unwatch(conn)
        if close:
            await conn.close()

        role = await self.registry.release(conn)
        if role is not None:
            await self.registry.broadcast(user_status_frame(self.registry.snapshot()))

    # ─── Status ──────────────────────────────────────────────────

    def status(self) -> dict[str, Any]:
        return {
            "users": self.registry.snapshot(),
            "active_sessions": self.lifecycle.active_count,
            "connections": len(self._connections),
        }

    @property
    def running(self) -> bool:
        return self._running

    def __repr__(self) -> str:
        return f"<RelayHub(connections={len(self._connections)}, roles={len(self.registry)})>"
