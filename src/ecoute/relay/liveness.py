"""
Liveness Supervisor — keeps connections honest.

Three periodic jobs:
  - heartbeat: one task per connection, sends server_ping every
    heartbeat_interval while the connection is open
  - sweep: every sweep_interval, any claimed connection whose transport is
    no longer open is cleaned up exactly like an explicit disconnect
  - stats: every stats_interval, logs who is connected (read-only)

Protocol-level WebSocket pings are left to uvicorn (ws_ping_interval).
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable

from ecoute.core.config import LivenessConfig
from ecoute.relay.registry import ConnectionRegistry
from ecoute.transport.base import Connection, TransportError

logger = logging.getLogger(__name__)


class LivenessSupervisor:
    """Heartbeats, dead-connection sweep and periodic stats."""

    def __init__(
        self,
        registry: ConnectionRegistry,
        on_dead: Callable[[Connection], Awaitable[None]],
        stats: Callable[[], dict[str, Any]] | None = None,
        liveness: LivenessConfig | None = None,
    ):
        self.registry = registry
        self._on_dead = on_dead
        self._stats = stats
        self.liveness = liveness or LivenessConfig()

        self._heartbeats: dict[str, asyncio.Task] = {}
        self._tasks: list[asyncio.Task] = []
        self._running = False

    # ─── Lifecycle ────────────────────────────────────────────────

    async def start(self) -> None:
        if self._running:
            return
        self._running = True
        self._tasks = [
            asyncio.create_task(self._sweep_loop(), name="ecoute-sweep"),
            asyncio.create_task(self._stats_loop(), name="ecoute-stats"),
        ]
        logger.info(
            "Liveness started (heartbeat=%ss, sweep=%ss, stats=%ss)",
            self.liveness.heartbeat_interval,
            self.liveness.sweep_interval,
            self.liveness.stats_interval,
        )

    async def stop(self) -> None:
        self._running = False
        tasks = self._tasks + list(self._heartbeats.values())
        for task in tasks:
            if not task.done():
                task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()
        self._heartbeats.clear()

    # ─── Heartbeats ───────────────────────────────────────────────

    def watch(self, conn: Connection) -> None:
        """Start the heartbeat for a new connection."""
        if conn.connection_id in self._heartbeats:
            return
        self._heartbeats[conn.connection_id] = asyncio.create_task(
            self._heartbeat(conn),
            name=f"heartbeat-{conn.connection_id}",
        )

    def unwatch(self, conn: Connection) -> None:
        task = self._heartbeats.pop(conn.connection_id, None)
        if task is not None and task is not asyncio.current_task() and not task.done():
            task.cancel()

    @property
    def watched(self) -> int:
        return len(self._heartbeats)

    async def _heartbeat(self, conn: Connection) -> None:
        interval = self.liveness.heartbeat_interval
        try:
            while conn.is_open:
                await asyncio.sleep(interval)
                if not conn.is_open:
                    break
                await conn.ping()
        except TransportError as e:
            # The sweep will release it if it still holds a role
            logger.debug("Heartbeat to %s failed: %s", conn.label, e)
        finally:
            if self._heartbeats.get(conn.connection_id) is asyncio.current_task():
                del self._heartbeats[conn.connection_id]

    # ─── Sweep ────────────────────────────────────────────────────

    async def sweep(self) -> int:
        """Clean up claimed connections that are no longer open. Returns how many."""
        dead = [conn for conn in self.registry.connections() if not conn.is_open]
        for conn in dead:
            logger.info(
                "Sweeping closed connection %s (%s)",
                conn.connection_id,
                conn.label,
                extra={"connection_id": conn.connection_id},
            )
            await self._on_dead(conn)
        return len(dead)

    async def _sweep_loop(self) -> None:
        while self._running:
            await asyncio.sleep(self.liveness.sweep_interval)
            try:
                await self.sweep()
            except Exception:
                logger.exception("Sweep failed")

    # ─── Stats ────────────────────────────────────────────────────

    def log_stats(self) -> None:
        stats = self._stats() if self._stats else {"users": self.registry.snapshot()}
        logger.info("Relay stats: %s", stats)

    async def _stats_loop(self) -> None:
        while self._running:
            await asyncio.sleep(self.liveness.stats_interval)
            self.log_stats()
