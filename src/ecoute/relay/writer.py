"""
Background Writer — fire-and-forget persistence off the relay path.

The relay never awaits storage. Lifecycle transitions and audio chunks are
submitted here as (label, coroutine function, args) jobs and executed one at
a time by a single worker, in submission order.

Bounded queue:
  When the queue is at capacity the oldest pending audio chunk is shed
  (logged). Lifecycle writes are shed only when no chunk is left to drop,
  and an incoming chunk never displaces one. Persistence is best-effort;
  live relay traffic is not.

Failures:
  Every job runs inside try/except. A failing write is logged with its
  traceback and the worker moves on. One attempt per job, no retries.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable

logger = logging.getLogger(__name__)


@dataclass(eq=False)
class _WriteJob:
    label: str
    fn: Callable[..., Awaitable[Any]]
    args: tuple[Any, ...] = ()
    kwargs: dict[str, Any] = field(default_factory=dict)
    submitted_at: float = field(default_factory=time.time)
    sheddable: bool = False


class BackgroundWriter:
    """Single-worker queue that runs persistence jobs in order."""

    def __init__(self, queue_limit: int = 1000):
        self._queue_limit = max(1, queue_limit)
        self._queue: deque[_WriteJob] = deque()
        self._wake = asyncio.Event()
        self._idle = asyncio.Event()
        self._idle.set()
        self._worker: asyncio.Task | None = None
        self._running = False

        # Counters (exposed via stats())
        self.completed = 0
        self.failed = 0
        self.shed = 0

    # ─── Lifecycle ────────────────────────────────────────────────

    async def start(self) -> None:
        if self._running:
            return
        self._running = True
        self._worker = asyncio.create_task(self._worker_loop(), name="ecoute-writer")
        logger.info("Background writer started (queue_limit=%d)", self._queue_limit)

    async def stop(self, drain: bool = True) -> None:
        """Stop the worker, by default after finishing everything queued."""
        if drain:
            await self.drain()
        self._running = False
        if self._worker and not self._worker.done():
            self._worker.cancel()
            await asyncio.gather(self._worker, return_exceptions=True)
        self._worker = None
        if self._queue:
            logger.warning("Background writer stopped with %d jobs pending", len(self._queue))
            self._queue.clear()
        self._idle.set()
        logger.info(
            "Background writer stopped (completed=%d, failed=%d, shed=%d)",
            self.completed,
            self.failed,
            self.shed,
        )

    async def drain(self) -> None:
        """Wait until every job submitted so far has run."""
        if self._worker is None or self._worker.done():
            return
        await self._idle.wait()

    # ─── Submission ───────────────────────────────────────────────

    def submit(
        self,
        label: str,
        fn: Callable[..., Awaitable[Any]],
        *args: Any,
        **kwargs: Any,
    ) -> None:
        """Queue a job. Never blocks and never raises."""
        self._enqueue(_WriteJob(label=label, fn=fn, args=args, kwargs=kwargs))

    def submit_sheddable(
        self,
        label: str,
        fn: Callable[..., Awaitable[Any]],
        *args: Any,
        **kwargs: Any,
    ) -> None:
        """Queue a job that is dropped first when the queue is full (audio chunks)."""
        self._enqueue(
            _WriteJob(label=label, fn=fn, args=args, kwargs=kwargs, sheddable=True)
        )

    def _enqueue(self, job: _WriteJob) -> None:
        if len(self._queue) >= self._queue_limit:
            victim = self._pick_victim(job)
            self.shed += 1
            logger.warning(
                "Write queue full (%d), shed oldest job: %s",
                self._queue_limit,
                victim.label,
            )
            if victim is job:
                return
            self._queue.remove(victim)

        self._queue.append(job)
        self._idle.clear()
        self._wake.set()

    def _pick_victim(self, incoming: _WriteJob) -> _WriteJob:
        # Chunks go before lifecycle writes; a chunk never displaces one
        for pending in self._queue:
            if pending.sheddable:
                return pending
        if incoming.sheddable:
            return incoming
        return self._queue[0]

    @property
    def depth(self) -> int:
        return len(self._queue)

    def stats(self) -> dict[str, int]:
        return {
            "pending": len(self._queue),
            "completed": self.completed,
            "failed": self.failed,
            "shed": self.shed,
        }

    # ─── Worker ───────────────────────────────────────────────────

    async def _worker_loop(self) -> None:
        while True:
            if not self._queue:
                self._idle.set()
                self._wake.clear()
                await self._wake.wait()
                continue

            job = self._queue.popleft()
            await self._execute(job)

    async def _execute(self, job: _WriteJob) -> None:
        try:
            await job.fn(*job.args, **job.kwargs)
            self.completed += 1
        except asyncio.CancelledError:
            raise
        except Exception:
            self.failed += 1
            logger.exception("Background write failed: %s", job.label)
        else:
            delay = time.time() - job.submitted_at
            if delay > 1.0:
                logger.debug("Write %s ran %.2fs after submit", job.label, delay)
