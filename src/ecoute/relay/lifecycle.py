"""
Session Lifecycle Manager — the listening-session state machine.

    [none] --start_listening--> listening --start_recording--> recording
    listening --stop_listening--> stopped
    recording --stop_listening--> stopped

The manager owns the table of active sessions. Every transition updates the
in-memory session and notifies peers first; the durable write is then handed
to the BackgroundWriter and never awaited. With no storage configured the
state machine behaves identically and simply persists nothing.

Several sessions may be active at once. Sessions are never expired; one that
is never stopped stays active until the process exits.
"""

from __future__ import annotations

import base64
import binascii
import logging
import time
from typing import Any, Callable

from ecoute.relay.registry import ConnectionRegistry
from ecoute.relay.roles import Role
from ecoute.relay.writer import BackgroundWriter
from ecoute.session.interface import SessionStorage
from ecoute.session.models import ListeningSession, new_session_id
from ecoute.transport.base import Connection
from ecoute.transport.frames import error_frame, server_frame

logger = logging.getLogger(__name__)


def decode_payload(data: str | bytes) -> bytes:
    """Audio payloads travel as base64 text; anything else is kept as raw bytes."""
    if isinstance(data, bytes):
        return data
    try:
        return base64.b64decode(data, validate=True)
    except (binascii.Error, ValueError):
        return data.encode("utf-8")


def valid_battery_level(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and 0 <= value <= 100


class SessionLifecycleManager:
    """Drives listening sessions and mirrors them to storage."""

    def __init__(
        self,
        registry: ConnectionRegistry,
        storage: SessionStorage | None = None,
        writer: BackgroundWriter | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self.registry = registry
        self.storage = storage
        self.writer = writer
        self._clock = clock
        self._active: dict[str, ListeningSession] = {}

    # ─── Queries ──────────────────────────────────────────────────

    def get(self, session_id: str | None) -> ListeningSession | None:
        if session_id is None:
            return None
        return self._active.get(session_id)

    @property
    def active_count(self) -> int:
        return len(self._active)

    def active_sessions(self) -> list[ListeningSession]:
        return list(self._active.values())

    # ─── Transitions ──────────────────────────────────────────────

    async def start_listening(self, requester: Connection) -> ListeningSession:
        session = ListeningSession(session_id=new_session_id(), started_at=self._clock())
        self._active[session.session_id] = session
        logger.info(
            "Session %s started by %s",
            session.session_id,
            requester.label,
            extra={"session_id": session.session_id, "connection_id": requester.connection_id},
        )

        await self._to_listener(
            requester,
            server_frame(
                "listening_started",
                session_id=session.session_id,
                started_at=session.started_at,
            ),
        )

        source = self.registry.get(Role.SOURCE)
        if source is not None:
            await source.deliver(
                server_frame("start_audio_capture", session_id=session.session_id)
            )

        if self.storage is not None:
            self._persist(
                f"create_session {session.session_id}",
                self.storage.create_session,
                session_id=session.session_id,
                started_at=session.started_at,
            )
        return session

    async def start_recording(
        self, requester: Connection, session_id: str | None
    ) -> ListeningSession | None:
        session = await self._require_active(requester, session_id, "start_recording")
        if session is None:
            return None

        session.recording = True
        logger.info("Session %s recording", session_id, extra={"session_id": session_id})

        await self._to_listener(
            requester, server_frame("recording_started", session_id=session_id)
        )

        if self.storage is not None:
            self._persist(
                f"start_recording {session_id}",
                self.storage.update_session,
                session_id,
                recording=True,
            )
        return session

    def record_chunk(
        self,
        session_id: str | None,
        order: int | None,
        payload: str | bytes,
    ) -> bool:
        """
        Queue one audio chunk for storage if its session is recording.

        Returns True if a write was queued. Never blocks the relay.
        """
        session = self.get(session_id)
        if session is None or not session.recording:
            return False

        if order is None:
            order = session.chunk_count
        session.chunk_count += 1

        if self.storage is None:
            return False

        self._persist(
            f"append_chunk {session.session_id}#{order}",
            self.storage.append_chunk,
            session.session_id,
            order,
            decode_payload(payload),
            self._clock(),
            sheddable=True,
        )
        return True

    async def stop_listening(
        self, requester: Connection, session_id: str | None
    ) -> ListeningSession | None:
        session = await self._require_active(requester, session_id, "stop_listening")
        if session is None:
            return None

        duration = session.stop(self._clock())
        del self._active[session.session_id]
        logger.info(
            "Session %s stopped after %ds (%d chunks)",
            session.session_id,
            duration,
            session.chunk_count,
            extra={"session_id": session.session_id},
        )

        await self.registry.broadcast(
            server_frame(
                "listening_stopped",
                session_id=session.session_id,
                duration_seconds=duration,
            )
        )

        if self.storage is not None:
            self._persist(
                f"stop_listening {session.session_id}",
                self.storage.update_session,
                session.session_id,
                ended_at=session.ended_at,
                duration_seconds=duration,
                recording=False,
            )
        return session

    async def battery_update(
        self,
        requester: Connection,
        battery_level: Any,
        session_id: str | None = None,
    ) -> bool:
        if not valid_battery_level(battery_level):
            await requester.deliver(
                error_frame(
                    "battery_level must be an integer between 0 and 100",
                    code="invalid_battery_level",
                    battery_level=battery_level,
                )
            )
            return False

        session = self.get(session_id)
        if session is not None:
            session.battery_level = battery_level

        listener = self.registry.get(Role.LISTENER)
        if listener is not None:
            fields: dict[str, Any] = {"battery_level": battery_level}
            if session_id is not None:
                fields["session_id"] = session_id
            if requester.role is not None:
                fields["from"] = requester.role.value
            await listener.deliver(server_frame("battery_update", **fields))

        if session is not None and self.storage is not None:
            self._persist(
                f"battery_update {session.session_id}",
                self.storage.update_session,
                session.session_id,
                battery_level=battery_level,
            )
        return True

    # ─── Internals ────────────────────────────────────────────────

    async def _require_active(
        self, requester: Connection, session_id: str | None, action: str
    ) -> ListeningSession | None:
        session = self.get(session_id)
        if session is None:
            logger.warning(
                "%s for unknown session %s from %s",
                action,
                session_id,
                requester.label,
                extra={"connection_id": requester.connection_id, "frame_type": action},
            )
            await requester.deliver(
                error_frame(
                    f"Unknown or inactive session: {session_id}",
                    code="unknown_session",
                    session_id=session_id,
                )
            )
        return session

    async def _to_listener(self, requester: Connection, frame: dict[str, Any]) -> None:
        """Send to the listener, or back to the requester when no listener is connected."""
        listener = self.registry.get(Role.LISTENER)
        await (listener or requester).deliver(frame)

    def _persist(
        self,
        label: str,
        fn: Callable[..., Any],
        *args: Any,
        sheddable: bool = False,
        **kwargs: Any,
    ) -> None:
        if self.writer is None:
            logger.debug("No writer, dropping %s", label)
            return
        if sheddable:
            self.writer.submit_sheddable(label, fn, *args, **kwargs)
        else:
            self.writer.submit(label, fn, *args, **kwargs)

    async def shutdown(self) -> None:
        """Log sessions still open at exit. They are left active in storage."""
        for session in self._active.values():
            logger.info(
                "Session %s still active at shutdown",
                session.session_id,
                extra={"session_id": session.session_id},
            )
