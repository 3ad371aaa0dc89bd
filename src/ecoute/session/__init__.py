"""
Session persistence — durable records of listening sessions.

Key components:
- ListeningSession / AudioChunk: the persisted shapes
- SessionStorage: the narrow interface the relay core depends on
- SessionStore: aiosqlite implementation
"""

from ecoute.session.interface import SessionStorage
from ecoute.session.models import (
    AudioChunk,
    ListeningSession,
    SessionState,
)
from ecoute.session.store import SessionStore

__all__ = [
    "ListeningSession",
    "SessionState",
    "AudioChunk",
    "SessionStorage",
    "SessionStore",
]
