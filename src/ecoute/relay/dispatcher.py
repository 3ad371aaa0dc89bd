"""
Message Dispatcher — routes one parsed frame from one connection.

    IdentityClaim       → registry.claim, connection_confirmed, user_status broadcast
    AudioFrame          → forward to the peer role, mirror to the lifecycle manager
    PingFrame           → pong
    StatusRequest       → user_status (to the requester only)
    ListeningIndicator  → forward to the source (listener only)
    ControlFrame        → lifecycle manager
    UnknownFrame        → debug echo

Protocol errors are answered with an error/debug frame and the connection
is kept. Routing errors produce exactly one delivery_failed to the sender.
"""

from __future__ import annotations

import logging
from typing import Awaitable, Callable

from ecoute.relay.lifecycle import SessionLifecycleManager
from ecoute.relay.registry import ConnectionRegistry
from ecoute.relay.roles import Role
from ecoute.transport.base import Connection, TransportError
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
    debug_frame,
    delivery_failed_frame,
    error_frame,
    relay_audio_frame,
    server_frame,
    user_status_frame,
)

logger = logging.getLogger(__name__)

# delivery_failed reasons
INVALID_TARGET = "invalid_target"
TARGET_UNAVAILABLE = "target_unavailable"
SEND_FAILED = "send_failed"


class MessageDispatcher:
    """
    Routes parsed frames.

    ``on_dead`` is awaited with any peer connection found to be unusable
    while routing to it, so the hub can clean it up like a disconnect.
    """

    def __init__(
        self,
        registry: ConnectionRegistry,
        lifecycle: SessionLifecycleManager,
        on_dead: Callable[[Connection], Awaitable[None]] | None = None,
    ):
        self.registry = registry
        self.lifecycle = lifecycle
        self._on_dead = on_dead

    async def dispatch(self, conn: Connection, frame: InboundFrame) -> None:
        if isinstance(frame, IdentityClaim):
            await self._handle_identity(conn, frame)
        elif isinstance(frame, AudioFrame):
            await self._handle_audio(conn, frame)
        elif isinstance(frame, PingFrame):
            await conn.deliver(server_frame("pong"))
        elif isinstance(frame, StatusRequest):
            await conn.deliver(user_status_frame(self.registry.snapshot()))
        elif isinstance(frame, ListeningIndicator):
            await self._handle_listening(conn, frame)
        elif isinstance(frame, ControlFrame):
            await self._handle_control(conn, frame)
        elif isinstance(frame, UnknownFrame):
            logger.debug(
                "Unrecognized frame from %s: %s",
                conn.label,
                frame.reason,
                extra={"connection_id": conn.connection_id},
            )
            await conn.deliver(debug_frame(frame.text, frame.reason))
        else:
            logger.warning("No route for %r", frame)

    # ─── Identity ─────────────────────────────────────────────────

    async def _handle_identity(self, conn: Connection, frame: IdentityClaim) -> None:
        result = await self.registry.claim(frame.role, conn)
        await conn.deliver(
            server_frame(
                "connection_confirmed",
                client=frame.role.value,
                status="connected",
                message=f"Connected as {frame.role.value}. "
                "Audio streaming and listening signals available.",
                connectionId=conn.connection_id,
                supersededConnectionId=result.previous_connection_id,
            )
        )
        await self.registry.broadcast(user_status_frame(self.registry.snapshot()))

    # ─── Audio ────────────────────────────────────────────────────

    async def _handle_audio(self, conn: Connection, frame: AudioFrame) -> None:
        sender = conn.role
        if sender is None or not self.registry.holds(conn):
            await conn.deliver(
                error_frame(
                    "Identify before sending audio",
                    code="not_identified",
                )
            )
            return

        if not frame.data:
            await conn.deliver(error_frame("Audio payload is empty", code="empty_payload"))
            return

        if frame.sender is not None and Role.parse(frame.sender) is not sender:
            await conn.deliver(
                error_frame(
                    f"Sender mismatch: frame says {frame.sender!r}, "
                    f"connection is {sender.value!r}",
                    code="sender_mismatch",
                )
            )
            return

        target_role = Role.parse(frame.target)
        if target_role is None or target_role is sender:
            await conn.deliver(delivery_failed_frame(frame.target, INVALID_TARGET))
            return

        target = self.registry.get(target_role)
        if target is None or not target.is_open:
            logger.debug(
                "Audio from %s dropped: %s not connected",
                sender.value,
                target_role.value,
                extra={"role": sender.value, "frame_type": frame.frame_type},
            )
            await conn.deliver(delivery_failed_frame(target_role.value, TARGET_UNAVAILABLE))
            if target is not None:
                await self._drop(target)
            return

        try:
            await target.send(relay_audio_frame(frame, sender))
        except TransportError as e:
            logger.warning(
                "Audio relay %s -> %s failed: %s",
                sender.value,
                target_role.value,
                e,
                extra={"role": sender.value, "frame_type": frame.frame_type},
            )
            await conn.deliver(delivery_failed_frame(target_role.value, SEND_FAILED))
            await self._drop(target)
        else:
            logger.debug(
                "Audio %s -> %s (%d chars)",
                sender.value,
                target_role.value,
                len(frame.data),
                extra={"role": sender.value, "frame_type": frame.frame_type},
            )

        if frame.session_id is not None:
            self.lifecycle.record_chunk(frame.session_id, frame.order, frame.data)

    # ─── Listening indicator ──────────────────────────────────────

    async def _handle_listening(self, conn: Connection, frame: ListeningIndicator) -> None:
        if conn.role is not Role.LISTENER or not self.registry.holds(conn):
            await conn.deliver(
                error_frame(
                    "Only the listener can send bernard_listening",
                    code="not_listener",
                )
            )
            return

        source = self.registry.get(Role.SOURCE)
        if source is None:
            logger.debug("Listening indicator dropped: source not connected")
            return
        await source.deliver(
            server_frame(
                "bernard_listening",
                listening=frame.listening,
                **{"from": Role.LISTENER.value},
            )
        )

    # ─── Session control ──────────────────────────────────────────

    async def _handle_control(self, conn: Connection, frame: ControlFrame) -> None:
        if frame.kind is ControlKind.START_LISTENING:
            await self.lifecycle.start_listening(conn)
        elif frame.kind is ControlKind.START_RECORDING:
            await self.lifecycle.start_recording(conn, frame.session_id)
        elif frame.kind is ControlKind.STOP_LISTENING:
            await self.lifecycle.stop_listening(conn, frame.session_id)
        elif frame.kind is ControlKind.BATTERY_UPDATE:
            await self.lifecycle.battery_update(conn, frame.battery_level, frame.session_id)

    async def _drop(self, conn: Connection) -> None:
        if self._on_dead is not None:
            await self._on_dead(conn)
