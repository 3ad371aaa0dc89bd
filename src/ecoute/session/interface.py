"""
Storage Interface — what the relay core needs from a persistence engine.

The lifecycle manager only ever calls these methods, always from the
background writer, and treats any exception as a logged, ignored failure.
One attempt per call; no retries.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from ecoute.session.models import AudioChunk, ListeningSession

# Fields update_session() accepts
UPDATABLE_FIELDS = frozenset(
    {"ended_at", "duration_seconds", "recording", "battery_level"}
)


class SessionStorage(ABC):
    """
    Abstract persistence for listening sessions and their audio chunks.
    """

    @abstractmethod
    async def start(self) -> None:
        """Open the underlying engine."""
        ...

    @abstractmethod
    async def stop(self) -> None:
        """Release the underlying engine."""
        ...

    @abstractmethod
    async def create_session(
        self,
        session_id: str | None = None,
        started_at: float | None = None,
    ) -> str:
        """Create a session row and return its id (generated if not given)."""
        ...

    @abstractmethod
    async def update_session(self, session_id: str, **fields: Any) -> None:
        """Partial update of ended_at / duration_seconds / recording / battery_level."""
        ...

    @abstractmethod
    async def append_chunk(
        self,
        session_id: str,
        order: int,
        payload: bytes,
        received_at: float,
    ) -> None:
        """Append one audio chunk. Append-only."""
        ...

    @abstractmethod
    async def list_recent_sessions(self, limit: int = 20) -> list[ListeningSession]:
        """Most recently started sessions first."""
        ...

    @abstractmethod
    async def get_session(self, session_id: str) -> ListeningSession | None:
        ...

    @abstractmethod
    async def get_chunks(self, session_id: str) -> list[AudioChunk]:
        """All chunks of a session in (order, arrival) order."""
        ...
