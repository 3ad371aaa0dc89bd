"""Tests for SessionStore — persistent listening sessions and audio chunks."""

import tempfile
from pathlib import Path

import pytest
import pytest_asyncio

from ecoute.session.models import SessionState
from ecoute.session.store import SessionStore


@pytest_asyncio.fixture
async def store():
    """Create a SessionStore with a temp DB for each test."""
    with tempfile.TemporaryDirectory() as tmpdir:
        db_path = Path(tmpdir) / "test_sessions.db"
        s = SessionStore(db_path=db_path)
        await s.start()
        yield s
        await s.stop()


# ─── Sessions ─────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_create_and_get_session(store: SessionStore):
    session_id = await store.create_session("s1", started_at=1000.0)
    assert session_id == "s1"

    session = await store.get_session("s1")
    assert session is not None
    assert session.started_at == 1000.0
    assert session.ended_at is None
    assert session.recording is False
    assert session.battery_level is None
    assert session.chunk_count == 0
    assert session.state is SessionState.LISTENING


@pytest.mark.asyncio
async def test_create_session_generates_id(store: SessionStore):
    session_id = await store.create_session()
    assert len(session_id) == 32
    assert await store.get_session(session_id) is not None


@pytest.mark.asyncio
async def test_get_session_not_found(store: SessionStore):
    assert await store.get_session("nonexistent") is None


@pytest.mark.asyncio
async def test_partial_updates(store: SessionStore):
    await store.create_session("s1", started_at=1000.0)

    await store.update_session("s1", recording=True)
    session = await store.get_session("s1")
    assert session.recording is True
    assert session.state is SessionState.RECORDING

    await store.update_session("s1", battery_level=55)
    await store.update_session(
        "s1", ended_at=1012.5, duration_seconds=12, recording=False
    )
    session = await store.get_session("s1")
    assert session.battery_level == 55
    assert session.ended_at == 1012.5
    assert session.duration_seconds == 12
    assert session.recording is False
    assert session.state is SessionState.STOPPED


@pytest.mark.asyncio
async def test_update_rejects_unknown_fields(store: SessionStore):
    await store.create_session("s1")
    with pytest.raises(ValueError):
        await store.update_session("s1", session_id="hijack")


@pytest.mark.asyncio
async def test_update_unknown_session_is_noop(store: SessionStore):
    await store.update_session("ghost", recording=True)
    assert await store.get_session("ghost") is None


@pytest.mark.asyncio
async def test_list_recent_sessions(store: SessionStore):
    await store.create_session("old", started_at=100.0)
    await store.create_session("new", started_at=300.0)
    await store.create_session("mid", started_at=200.0)

    recent = await store.list_recent_sessions()
    assert [s.session_id for s in recent] == ["new", "mid", "old"]

    limited = await store.list_recent_sessions(limit=2)
    assert [s.session_id for s in limited] == ["new", "mid"]


# ─── Chunks ───────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_append_and_get_chunks(store: SessionStore):
    await store.create_session("s1")
    await store.append_chunk("s1", 1, b"\x01\x02", 10.0)
    await store.append_chunk("s1", 0, b"\x00", 11.0)
    await store.append_chunk("s1", 1, b"\x03", 12.0)

    chunks = await store.get_chunks("s1")
    assert [(c.order, c.payload) for c in chunks] == [
        (0, b"\x00"),
        (1, b"\x01\x02"),
        (1, b"\x03"),
    ]
    assert all(c.session_id == "s1" for c in chunks)

    session = await store.get_session("s1")
    assert session.chunk_count == 3


@pytest.mark.asyncio
async def test_chunks_are_scoped_to_session(store: SessionStore):
    await store.create_session("a")
    await store.create_session("b")
    await store.append_chunk("a", 0, b"a", 1.0)

    assert await store.get_chunks("b") == []
    recent = {s.session_id: s.chunk_count for s in await store.list_recent_sessions()}
    assert recent == {"a": 1, "b": 0}


@pytest.mark.asyncio
async def test_data_survives_reopen():
    with tempfile.TemporaryDirectory() as tmpdir:
        db_path = Path(tmpdir) / "test_sessions.db"
        first = SessionStore(db_path=db_path)
        await first.start()
        await first.create_session("s1", started_at=5.0)
        await first.stop()

        second = SessionStore(db_path=db_path)
        await second.start()
        session = await second.get_session("s1")
        await second.stop()

    assert session is not None
    assert session.started_at == 5.0


@pytest.mark.asyncio
async def test_not_started_asserts(tmp_path):
    store = SessionStore(db_path=tmp_path / "x.db")
    with pytest.raises(AssertionError):
        await store.create_session()
