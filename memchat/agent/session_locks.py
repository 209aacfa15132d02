"""Per-session mutual exclusion for turn processing."""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, TypeVar

T = TypeVar("T")


class SessionLocks:
    """Keyed ``asyncio.Lock`` table; work for one session runs one at a time.

    A lock entry is only dropped once nobody holds or waits on it, so two
    callers for the same session always share the same lock object.
    """

    _PRUNE_THRESHOLD = 100

    def __init__(self) -> None:
        self.locks: dict[str, asyncio.Lock] = {}
        self.in_progress: set[str] = set()
        self._users: dict[str, int] = {}

    def get_lock(self, session_id: str) -> asyncio.Lock:
        lock = self.locks.get(session_id)
        if lock is None:
            lock = asyncio.Lock()
            self.locks[session_id] = lock
        return lock

    def prune_lock(self, session_id: str) -> None:
        """Drop the entry if unused; batch-clean when the table grows large."""
        if not self._users.get(session_id):
            self._users.pop(session_id, None)
            self.locks.pop(session_id, None)
        if len(self.locks) > self._PRUNE_THRESHOLD:
            stale = [k for k in self.locks if not self._users.get(k)]
            for key in stale:
                del self.locks[key]

    async def run_exclusive(
        self,
        session_id: str,
        work: Callable[[], Awaitable[T]],
    ) -> T:
        """Run *work* while holding the lock for *session_id*."""
        lock = self.get_lock(session_id)
        self._users[session_id] = self._users.get(session_id, 0) + 1
        try:
            async with lock:
                self.in_progress.add(session_id)
                try:
                    return await work()
                finally:
                    self.in_progress.discard(session_id)
        finally:
            self._users[session_id] -= 1
            self.prune_lock(session_id)
