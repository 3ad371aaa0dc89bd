"""
Session Store — SQLite-backed persistence for listening sessions.

Implements SessionStorage with aiosqlite. Two tables:
- sessions: one row per listening episode
- audio_chunks: append-only audio payloads, keyed by session

Usage:
    store = SessionStore()
    await store.start()

    session_id = await store.create_session()
    await store.update_session(session_id, recording=True)
    await store.append_chunk(session_id, order=0, payload=b"...", received_at=time.time())
    recent = await store.list_recent_sessions(limit=10)
"""

from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import Any

import aiosqlite

import ecoute.core.config as config_module
from ecoute.session.interface import UPDATABLE_FIELDS, SessionStorage
from ecoute.session.models import AudioChunk, ListeningSession, new_session_id

logger = logging.getLogger(__name__)

_SESSION_COLUMNS = (
    "s.session_id, s.started_at, s.ended_at, s.duration_seconds, s.recording, "
    "s.battery_level, "
    "(SELECT COUNT(*) FROM audio_chunks c WHERE c.session_id = s.session_id)"
)


def _row_to_session(row: Any) -> ListeningSession:
    return ListeningSession(
        session_id=row[0],
        started_at=row[1],
        ended_at=row[2],
        duration_seconds=row[3],
        recording=bool(row[4]),
        battery_level=row[5],
        chunk_count=row[6] or 0,
    )


class SessionStore(SessionStorage):
    """
    SQLite-backed session persistence.

    Single writer (the relay's background writer), multiple readers (the
    HTTP status surface).
    """

    def __init__(self, db_path: Path | str | None = None):
        if db_path is None:
            db_path = Path(config_module.config.storage.db_path)
        self.db_path = Path(db_path)
        self._db: aiosqlite.Connection | None = None

    async def start(self) -> None:
        """Open the database and create tables."""
        self._db = await aiosqlite.connect(str(self.db_path))
        await self._db.execute("PRAGMA journal_mode=WAL")
        await self._db.execute("PRAGMA foreign_keys=ON")

        await self._db.execute("""
            CREATE TABLE IF NOT EXISTS sessions (
                session_id TEXT PRIMARY KEY,
                started_at REAL NOT NULL,
                ended_at REAL,
                duration_seconds INTEGER,
                recording INTEGER NOT NULL DEFAULT 0,
                battery_level INTEGER
            )
        """)

        await self._db.execute("""
            CREATE TABLE IF NOT EXISTS audio_chunks (
                chunk_id INTEGER PRIMARY KEY AUTOINCREMENT,
                session_id TEXT NOT NULL,
                chunk_order INTEGER NOT NULL,
                payload BLOB NOT NULL,
                received_at REAL NOT NULL,
                FOREIGN KEY (session_id) REFERENCES sessions(session_id)
            )
        """)

        await self._db.execute("""
            CREATE INDEX IF NOT EXISTS idx_chunks_session
            ON audio_chunks(session_id, chunk_order)
        """)
        await self._db.execute("""
            CREATE INDEX IF NOT EXISTS idx_sessions_started
            ON sessions(started_at)
        """)

        await self._db.commit()
        logger.info("SessionStore started (db=%s)", self.db_path)

    async def stop(self) -> None:
        """Close the database connection."""
        if self._db:
            await self._db.close()
            self._db = None

    # ─── Sessions ─────────────────────────────────────────────────

    async def create_session(
        self,
        session_id: str | None = None,
        started_at: float | None = None,
    ) -> str:
        assert self._db is not None, "SessionStore not started"

        session_id = session_id or new_session_id()
        started_at = started_at if started_at is not None else time.time()

        await self._db.execute(
            "INSERT INTO sessions (session_id, started_at) VALUES (?, ?)",
            (session_id, started_at),
        )
        await self._db.commit()
        return session_id

    async def update_session(self, session_id: str, **fields: Any) -> None:
        assert self._db is not None, "SessionStore not started"

        unknown = set(fields) - UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Cannot update session fields: {sorted(unknown)}")
        if not fields:
            return

        if "recording" in fields:
            fields["recording"] = 1 if fields["recording"] else 0

        # Column names come from UPDATABLE_FIELDS, never from the caller
        assignments = ", ".join(f"{name} = ?" for name in fields)
        await self._db.execute(
            f"UPDATE sessions SET {assignments} WHERE session_id = ?",
            (*fields.values(), session_id),
        )
        await self._db.commit()

    async def get_session(self, session_id: str) -> ListeningSession | None:
        assert self._db is not None, "SessionStore not started"

        async with self._db.execute(
            f"SELECT {_SESSION_COLUMNS} FROM sessions s WHERE s.session_id = ?",
            (session_id,),
        ) as cursor:
            row = await cursor.fetchone()
            return _row_to_session(row) if row else None

    async def list_recent_sessions(self, limit: int = 20) -> list[ListeningSession]:
        assert self._db is not None, "SessionStore not started"

        sessions = []
        async with self._db.execute(
            f"SELECT {_SESSION_COLUMNS} FROM sessions s "
            "ORDER BY s.started_at DESC, s.rowid DESC LIMIT ?",
            (limit,),
        ) as cursor:
            async for row in cursor:
                sessions.append(_row_to_session(row))
        return sessions

    # ─── Chunks ───────────────────────────────────────────────────

    async def append_chunk(
        self,
        session_id: str,
        order: int,
        payload: bytes,
        received_at: float,
    ) -> None:
        assert self._db is not None, "SessionStore not started"

        await self._db.execute(
            """
            INSERT INTO audio_chunks (session_id, chunk_order, payload, received_at)
            VALUES (?, ?, ?, ?)
            """,
            (session_id, order, payload, received_at),
        )
        await self._db.commit()

    async def get_chunks(self, session_id: str) -> list[AudioChunk]:
        assert self._db is not None, "SessionStore not started"

        chunks = []
        async with self._db.execute(
            "SELECT session_id, chunk_order, payload, received_at FROM audio_chunks "
            "WHERE session_id = ? ORDER BY chunk_order, chunk_id",
            (session_id,),
        ) as cursor:
            async for row in cursor:
                chunks.append(
                    AudioChunk(
                        session_id=row[0],
                        order=row[1],
                        payload=bytes(row[2]),
                        received_at=row[3],
                    )
                )
        return chunks
