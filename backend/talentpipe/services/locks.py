from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Iterable

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

# Advisory-lock namespaces. Interviewer keys sort before candidate keys.
INTERVIEWER_NAMESPACE = 0x7470
CANDIDATE_NAMESPACE = 0x7471

LockKey = tuple[int, int]


def _as_ids(value: int | Iterable[int] | None) -> set[int]:
    if value is None:
        return set()
    if isinstance(value, int):
        return {value}
    return set(value)


class PipelineLocks:
    """Serializes writers per interviewer and per candidate.

    Booking holds the interviewer key across conflict check, insert and commit.
    Anything that moves a candidate's stages holds the candidate key. In-process
    callers queue on an ``asyncio.Lock`` per key; on PostgreSQL a transaction-scoped
    advisory lock on the same key also serializes other worker processes and is
    released when the caller's transaction ends.

    A key's lock is dropped once nobody holds or waits on it.
    """

    def __init__(self) -> None:
        self._locks: dict[LockKey, asyncio.Lock] = {}
        self._users: dict[LockKey, int] = {}

    @property
    def active_keys(self) -> int:
        return len(self._locks)

    def _checkout(self, key: LockKey) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        self._users[key] = self._users.get(key, 0) + 1
        return lock

    def _checkin(self, key: LockKey) -> None:
        remaining = self._users[key] - 1
        if remaining:
            self._users[key] = remaining
            return
        del self._users[key]
        del self._locks[key]

    @asynccontextmanager
    async def hold(
        self,
        session: AsyncSession,
        *,
        interviewers: int | Iterable[int] | None = None,
        candidates: int | Iterable[int] | None = None,
    ) -> AsyncIterator[None]:
        keys = sorted(
            [(INTERVIEWER_NAMESPACE, key) for key in _as_ids(interviewers)]
            + [(CANDIDATE_NAMESPACE, key) for key in _as_ids(candidates)]
        )
        checked_out: list[LockKey] = []
        acquired: list[asyncio.Lock] = []
        try:
            # One global order so callers sharing keys cannot deadlock.
            for key in keys:
                lock = self._checkout(key)
                checked_out.append(key)
                await lock.acquire()
                acquired.append(lock)
            if session.get_bind().dialect.name == "postgresql":
                for namespace, key in keys:
                    await session.execute(
                        text("SELECT pg_advisory_xact_lock(:namespace, :key)"),
                        {"namespace": namespace, "key": key},
                    )
            yield
        finally:
            for lock in reversed(acquired):
                lock.release()
            for key in checked_out:
                self._checkin(key)
