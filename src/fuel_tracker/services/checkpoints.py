"""Durable checkpoints and per-session write serialization."""

import asyncio
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Protocol, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CheckpointRepository(Protocol):
    """Persistence interface for checkpoints and the recovery pointer."""

    def checkpoint(self, session_id: int, duration_minutes: int) -> bool:
        """Write duration and pointer in one transaction.

        Returns False without writing when the session is no longer active.
        """

    def get_pointer(self) -> int | None:
        """Return the session id stored in the recovery pointer, if any."""

    def clear_pointer(self) -> None:
        """Delete the recovery pointer record."""

    def clear_pointer_if(self, session_id: int) -> bool:
        """Delete the pointer only while it refers to ``session_id``."""


@dataclass
class SessionCheckpointStore:
    """Checkpoint writer that serializes writes per session id.

    Every write touching a session row goes through :meth:`writing`, so a
    checkpoint and an end or abandon write for the same session never run
    at the same time. Terminal writes win regardless of order because the
    repository only checkpoints rows that are still active.
    """

    repository: CheckpointRepository
    _locks: dict[int, asyncio.Lock] = field(default_factory=dict, init=False)
    _writers: dict[int, int] = field(default_factory=dict, init=False)

    @asynccontextmanager
    async def writing(self, session_id: int) -> AsyncIterator[None]:
        """Hold the write lock for a session."""
        lock = self._locks.setdefault(session_id, asyncio.Lock())
        self._writers[session_id] = self._writers.get(session_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._writers[session_id] -= 1
            if not self._writers[session_id]:
                del self._writers[session_id]

    async def run_write(
        self, session_id: int, func: Callable[..., T], *args: object
    ) -> T:
        """Run a blocking repository write under the session's lock."""
        async with self.writing(session_id):
            return await _settled(asyncio.to_thread(func, *args))

    async def checkpoint(self, session_id: int, elapsed_seconds: int) -> bool:
        """Persist whole elapsed minutes and point recovery at the session."""
        applied = await self.run_write(
            session_id, self.repository.checkpoint, session_id, elapsed_seconds // 60
        )
        if applied:
            logger.debug("Checkpointed session %s at %ss", session_id, elapsed_seconds)
        else:
            logger.debug("Skipped checkpoint for finished session %s", session_id)
        return applied

    async def clear_pointer(self) -> None:
        """Delete the recovery pointer."""
        await asyncio.to_thread(self.repository.clear_pointer)

    async def clear_pointer_for(self, session_id: int) -> bool:
        """Clear the pointer if it still refers to the session."""
        return await asyncio.to_thread(self.repository.clear_pointer_if, session_id)

    async def get_pointer(self) -> int | None:
        """Return the session id the pointer refers to."""
        return await asyncio.to_thread(self.repository.get_pointer)

    def forget(self, session_id: int) -> None:
        """Drop a session's lock unless a write holds or awaits it."""
        if session_id not in self._writers:
            self._locks.pop(session_id, None)

    @property
    def tracked_sessions(self) -> frozenset[int]:
        """Session ids that currently own a write lock."""
        return frozenset(self._locks)


async def _settled(awaitable: Awaitable[T]) -> T:
    # A cancelled caller still waits for the write, so the lock is never
    # released while a write is in flight.
    task = asyncio.ensure_future(awaitable)
    try:
        return await asyncio.shield(task)
    except asyncio.CancelledError:
        await asyncio.wait([task])
        raise
