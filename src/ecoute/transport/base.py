"""
Base Connection Interface — one live client endpoint.

The relay core only ever talks to a client through this interface: it sends
frames, pings, and closes. Concrete transports (the FastAPI WebSocket
adapter, test fakes) implement the abstract methods; the helpers here turn
transport failures into log lines so a dead socket never takes the relay
down with it.
"""

from __future__ import annotations

import logging
import random
import string
import time
from abc import ABC, abstractmethod
from typing import Any

from ecoute.relay.roles import Role

logger = logging.getLogger(__name__)

# Close codes
CLOSE_GOING_AWAY = 1001
CLOSE_SUPERSEDED = 4000


class TransportError(Exception):
    """Raised when a frame cannot be written to a connection."""


def new_connection_id() -> str:
    """conn_<epoch ms>_<9 random chars>, unique per physical connect."""
    suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=9))
    return f"conn_{int(time.time() * 1000)}_{suffix}"


class Connection(ABC):
    """
    Base class for a client connection.

    A connection starts unclaimed (role is None) and may claim a role via an
    identity frame. The registry is the only writer of ``role``.
    """

    def __init__(self, connection_id: str | None = None):
        self.connection_id = connection_id or new_connection_id()
        self.role: Role | None = None
        self.connected_at = time.time()
        self.last_seen_at = self.connected_at

    @property
    @abstractmethod
    def is_open(self) -> bool:
        """True while frames can still be written."""
        pass

    @abstractmethod
    async def send(self, frame: dict[str, Any]) -> None:
        """
        Write one frame to the client.

        Raises:
            TransportError: if the write fails or the connection is closed
        """
        pass

    @abstractmethod
    async def close(self, code: int = 1000, reason: str = "") -> None:
        """Close the connection. Safe to call more than once."""
        pass

    @abstractmethod
    async def ping(self) -> None:
        """Send a heartbeat to the client."""
        pass

    # ─── Helper Methods ───────────────────────────────────────────

    def touch(self) -> None:
        """Record inbound activity."""
        self.last_seen_at = time.time()

    async def deliver(self, frame: dict[str, Any]) -> bool:
        """Send without raising. Returns False if the frame was not written."""
        if not self.is_open:
            return False
        try:
            await self.send(frame)
            return True
        except TransportError as e:
            logger.warning(
                "Send to %s failed: %s",
                self.label,
                e,
                extra={"connection_id": self.connection_id},
            )
            return False

    @property
    def label(self) -> str:
        return self.role.value if self.role else f"unclaimed:{self.connection_id}"

    def __repr__(self) -> str:
        return f"<{type(self).__name__}(id={self.connection_id}, role={self.role})>"
