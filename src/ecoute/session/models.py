"""
Session Models — data structures for listening sessions and their audio.

A ListeningSession is one bounded episode between a start_listening and a
stop_listening frame. While it is in the recording state, relayed audio is
also appended as AudioChunk rows.

ListeningSession is mutable: the lifecycle manager owns the live instances
and the store hands out fresh copies. AudioChunk is frozen — chunks are
never modified after they are written.
"""

from __future__ import annotations

import math
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class SessionState(str, Enum):
    """Lifecycle state of a listening session."""

    LISTENING = "listening"
    RECORDING = "recording"
    STOPPED = "stopped"


def new_session_id() -> str:
    return uuid.uuid4().hex


@dataclass
class ListeningSession:
    """One listening episode.

    ended_at is set iff the session is stopped; recording is never true
    once it is.
    """

    session_id: str = field(default_factory=new_session_id)
    started_at: float = field(default_factory=time.time)
    ended_at: float | None = None
    duration_seconds: int | None = None
    recording: bool = False
    battery_level: int | None = None
    chunk_count: int = 0

    @property
    def state(self) -> SessionState:
        if self.ended_at is not None:
            return SessionState.STOPPED
        if self.recording:
            return SessionState.RECORDING
        return SessionState.LISTENING

    @property
    def is_active(self) -> bool:
        return self.ended_at is None

    def stop(self, now: float) -> int:
        """Close the session at ``now`` and return its whole-second duration."""
        self.ended_at = now
        self.duration_seconds = max(0, math.floor(now - self.started_at))
        self.recording = False
        return self.duration_seconds

    def to_dict(self) -> dict[str, Any]:
        return {
            "session_id": self.session_id,
            "state": self.state.value,
            "started_at": self.started_at,
            "ended_at": self.ended_at,
            "duration_seconds": self.duration_seconds,
            "recording": self.recording,
            "battery_level": self.battery_level,
        }


@dataclass(frozen=True)
class AudioChunk:
    """One persisted unit of relayed audio.

    ``order`` is whatever the sending peer supplied; gaps and duplicates are
    stored as-is.
    """

    session_id: str
    order: int
    payload: bytes
    received_at: float = field(default_factory=time.time)
