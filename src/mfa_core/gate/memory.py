"""InMemoryAbuseStateStore — single-process implementation of IAbuseStateStore."""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from ..exceptions import StorageUnavailableError
from .ports import IAbuseStateStore

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from .state import AttemptRecord, RateLimitWindow, StateChanges

logger = logging.getLogger("mfa_core.gate.memory")


@dataclass
class _KeyLock:
    """Lock for one identity plus the number of calls holding or awaiting it."""

    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    ref_count: int = 0


async def _acquire(lock: asyncio.Lock, timeout: float) -> bool:
    """Acquire ``lock`` within ``timeout`` seconds.

    The acquire runs as its own task and is only cancelled while still
    pending, so a timeout or a cancelled caller never leaves the lock held
    by nobody.
    """
    task = asyncio.ensure_future(lock.acquire())
    try:
        await asyncio.wait({task}, timeout=timeout)
    except asyncio.CancelledError:
        if task.done() and not task.cancelled():
            lock.release()
        else:
            task.cancel()
        raise
    if task.done():
        return True
    task.cancel()
    return False


class InMemoryAbuseStateStore(IAbuseStateStore):
    """
    In-memory gate state with one asyncio lock per identity.

    Features:
    - Calls for different identities never contend
    - Per-identity locks are removed once no call references them
    - Commits are plain dict assignments, so they cannot be half applied

    Useful for testing and single-process deployments. Each instance is
    isolated; nothing is shared at module level.
    """

    def __init__(self) -> None:
        self._attempts: dict[str, AttemptRecord] = {}
        self._windows: dict[str, RateLimitWindow] = {}
        self._locks: dict[str, _KeyLock] = {}

    @asynccontextmanager
    async def lock(self, key: str, *, timeout: float) -> AsyncIterator[None]:
        entry = self._locks.get(key)
        if entry is None:
            entry = _KeyLock()
            self._locks[key] = entry
        entry.ref_count += 1

        try:
            if not await _acquire(entry.lock, timeout):
                logger.warning("Gate lock for %s timed out after %.1fs", key, timeout)
                raise StorageUnavailableError(
                    f"Could not obtain exclusive access within {timeout}s"
                )

            try:
                yield
            finally:
                entry.lock.release()
        finally:
            entry.ref_count -= 1
            if entry.ref_count <= 0:
                # Clean up to prevent memory leaks
                self._locks.pop(key, None)

    async def get_attempts(self, key: str) -> AttemptRecord | None:
        return self._attempts.get(key)

    async def get_window(self, key: str) -> RateLimitWindow | None:
        return self._windows.get(key)

    async def commit(self, changes: StateChanges) -> None:
        for key, record in changes.attempts.items():
            if record is None:
                self._attempts.pop(key, None)
            else:
                self._attempts[key] = record
        self._windows.update(changes.windows)

    async def purge_expired(self, now: float) -> int:
        expired_attempts = [
            key
            for key, record in self._attempts.items()
            if record.locked_until is not None and now >= record.locked_until
        ]
        expired_windows = [
            key for key, window in self._windows.items() if now >= window.reset_at
        ]
        for key in expired_attempts:
            del self._attempts[key]
        for key in expired_windows:
            del self._windows[key]

        removed = len(expired_attempts) + len(expired_windows)
        if removed:
            logger.debug("Purged %d expired gate entries", removed)
        return removed


__all__: list[str] = ["InMemoryAbuseStateStore"]
