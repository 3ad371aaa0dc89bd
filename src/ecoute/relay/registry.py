"""
Connection Registry — which live connection holds which role.

Invariant: at most one connection per role. A new claim always wins
(last-writer-wins); the previous holder is told it was superseded and is
closed with code 4000. Claims are never queued or rejected.

claim() and release() run under one asyncio.Lock so the check-then-act on a
role slot is atomic. Notifications to other connections are sent after the
lock is released; a slow socket never holds up the registry.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any

from ecoute.relay.roles import Role
from ecoute.transport.base import CLOSE_SUPERSEDED, Connection
from ecoute.transport.frames import server_frame

logger = logging.getLogger(__name__)

CONNECTED = "connected"
DISCONNECTED = "disconnected"


@dataclass(frozen=True)
class ClaimResult:
    """Outcome of a role claim."""

    role: Role
    previous_connection_id: str | None = None

    @property
    def superseded(self) -> bool:
        return self.previous_connection_id is not None


class ConnectionRegistry:
    """Maps each Role to its current live Connection."""

    def __init__(self) -> None:
        self._slots: dict[Role, Connection] = {}
        self._lock = asyncio.Lock()

    # ─── Claim / Release ──────────────────────────────────────────

    async def claim(self, role: Role, conn: Connection) -> ClaimResult:
        """Install ``conn`` as the holder of ``role``, evicting any previous holder."""
        async with self._lock:
            previous = self._slots.get(role)
            if previous is conn:
                return ClaimResult(role=role)

            # A connection switching roles gives up its old slot
            if conn.role is not None and conn.role is not role:
                if self._slots.get(conn.role) is conn:
                    del self._slots[conn.role]
                    logger.info(
                        "%s switched role %s -> %s",
                        conn.connection_id,
                        conn.role.value,
                        role.value,
                        extra={"connection_id": conn.connection_id},
                    )

            self._slots[role] = conn
            conn.role = role
            if previous is not None:
                previous.role = None

        if previous is not None:
            logger.info(
                "Role %s superseded: %s replaced by %s",
                role.value,
                previous.connection_id,
                conn.connection_id,
                extra={"connection_id": conn.connection_id, "role": role.value},
            )
            await previous.deliver(
                server_frame(
                    "disconnected",
                    reason="peer_superseded",
                    message="Replaced by newer connection",
                )
            )
            await previous.close(CLOSE_SUPERSEDED, "replaced by newer connection")
        else:
            logger.info(
                "Role %s claimed by %s",
                role.value,
                conn.connection_id,
                extra={"connection_id": conn.connection_id, "role": role.value},
            )

        peer = self.get(role.peer)
        if peer is not None:
            await peer.deliver(
                server_frame(
                    "peer_connected",
                    role=role.value,
                    connectionId=conn.connection_id,
                )
            )

        return ClaimResult(
            role=role,
            previous_connection_id=previous.connection_id if previous else None,
        )

    async def release(self, conn: Connection) -> Role | None:
        """
        Vacate whatever slot ``conn`` holds.

        No-op if it holds none (never claimed, already released, or
        superseded). Returns the role that was vacated.
        """
        async with self._lock:
            role = conn.role
            if role is None or self._slots.get(role) is not conn:
                return None
            del self._slots[role]
            conn.role = None

        logger.info(
            "Role %s released by %s",
            role.value,
            conn.connection_id,
            extra={"connection_id": conn.connection_id, "role": role.value},
        )

        peer = self.get(role.peer)
        if peer is not None:
            await peer.deliver(server_frame("peer_disconnected", role=role.value))
        return role

    # ─── Lookup ───────────────────────────────────────────────────

    def get(self, role: Role) -> Connection | None:
        """Current holder of ``role``. May close right after this returns."""
        return self._slots.get(role)

    def holds(self, conn: Connection) -> bool:
        return conn.role is not None and self._slots.get(conn.role) is conn

    def connections(self) -> list[Connection]:
        """Claimed connections, listener first."""
        return [self._slots[role] for role in Role if role in self._slots]

    def snapshot(self) -> dict[str, str]:
        return {
            role.value: CONNECTED if role in self._slots else DISCONNECTED
            for role in Role
        }

    async def broadcast(self, frame: dict[str, Any]) -> int:
        """Send ``frame`` to every claimed connection. Returns how many got it."""
        delivered = 0
        for conn in self.connections():
            if await conn.deliver(frame):
                delivered += 1
        return delivered

    def __len__(self) -> int:
        return len(self._slots)
