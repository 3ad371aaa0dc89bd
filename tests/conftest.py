"""Shared fixtures: in-memory connections and storage for relay tests."""

import time
from typing import Any

import pytest
import pytest_asyncio

from ecoute.core.config import LivenessConfig
from ecoute.relay.hub import RelayHub
from ecoute.relay.registry import ConnectionRegistry
from ecoute.relay.writer import BackgroundWriter
from ecoute.session.interface import UPDATABLE_FIELDS, SessionStorage
from ecoute.session.models import AudioChunk, ListeningSession, new_session_id
from ecoute.transport.base import Connection, TransportError
from ecoute.transport.frames import server_frame


class FakeConnection(Connection):
    """Connection that records every frame it is sent."""

    def __init__(self, connection_id: str | None = None, fail_sends: bool = False):
        super().__init__(connection_id)
        self.sent: list[dict[str, Any]] = []
        self.open = True
        self.fail_sends = fail_sends
        self.closed_with: tuple[int, str] | None = None

    @property
    def is_open(self) -> bool:
        return self.open

    async def send(self, frame: dict[str, Any]) -> None:
        if not self.open:
            raise TransportError("connection is closed")
        if self.fail_sends:
            self.open = False
            raise TransportError("broken pipe")
        self.sent.append(frame)

    async def close(self, code: int = 1000, reason: str = "") -> None:
        self.open = False
        if self.closed_with is None:
            self.closed_with = (code, reason)

    async def ping(self) -> None:
        await self.send(server_frame("server_ping"))

    # ─── Test helpers ─────────────────────────────────────────────

    def types(self) -> list[str]:
        return [frame["type"] for frame in self.sent]

    def of_type(self, frame_type: str) -> list[dict[str, Any]]:
        return [frame for frame in self.sent if frame["type"] == frame_type]

    def last(self, frame_type: str) -> dict[str, Any]:
        frames = self.of_type(frame_type)
        assert frames, f"no {frame_type!r} frame in {self.types()}"
        return frames[-1]


class MemoryStorage(SessionStorage):
    """Dict-backed SessionStorage."""

    def __init__(self):
        self.sessions: dict[str, ListeningSession] = {}
        self.chunks: list[AudioChunk] = []
        self.started = False

    async def start(self) -> None:
        self.started = True

    async def stop(self) -> None:
        self.started = False

    def add(self, session: ListeningSession) -> None:
        self.sessions[session.session_id] = session

    async def create_session(self, session_id=None, started_at=None) -> str:
        session = ListeningSession(
            session_id=session_id or new_session_id(),
            started_at=started_at if started_at is not None else time.time(),
        )
        self.sessions[session.session_id] = session
        return session.session_id

    async def update_session(self, session_id: str, **fields: Any) -> None:
        unknown = set(fields) - UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Cannot update session fields: {sorted(unknown)}")
        session = self.sessions.get(session_id)
        if session is None:
            return
        for name, value in fields.items():
            setattr(session, name, value)

    async def append_chunk(self, session_id, order, payload, received_at) -> None:
        self.chunks.append(
            AudioChunk(
                session_id=session_id,
                order=order,
                payload=payload,
                received_at=received_at,
            )
        )
        if session_id in self.sessions:
            self.sessions[session_id].chunk_count += 1

    async def list_recent_sessions(self, limit: int = 20) -> list[ListeningSession]:
        ordered = sorted(self.sessions.values(), key=lambda s: s.started_at, reverse=True)
        return ordered[:limit]

    async def get_session(self, session_id: str) -> ListeningSession | None:
        return self.sessions.get(session_id)

    async def get_chunks(self, session_id: str) -> list[AudioChunk]:
        return sorted(
            (c for c in self.chunks if c.session_id == session_id),
            key=lambda c: c.order,
        )


class FakeClock:
    """Manually advanced clock for duration tests."""

    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


# ─── Fixtures ─────────────────────────────────────────────────


@pytest.fixture
def registry():
    return ConnectionRegistry()


@pytest.fixture
def storage():
    return MemoryStorage()


@pytest.fixture
def clock():
    return FakeClock()


@pytest_asyncio.fixture
async def writer():
    w = BackgroundWriter(queue_limit=100)
    await w.start()
    yield w
    await w.stop()


@pytest_asyncio.fixture
async def hub():
    """A started hub without persistence."""
    h = RelayHub(liveness=LivenessConfig())
    await h.start()
    yield h
    await h.stop()


async def open_connection(hub: RelayHub, role: str | None = None) -> FakeConnection:
    """Open a fake connection on the hub, optionally claim a role, clear its inbox."""
    conn = FakeConnection()
    await hub.on_open(conn)
    if role is not None:
        await hub.on_message(conn, role)
    conn.sent.clear()
    return conn
