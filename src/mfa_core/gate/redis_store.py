"""Redis implementation of IAbuseStateStore.

Requires the ``redis`` extra: ``pip install mfa-core[redis]``.
"""

from __future__ import annotations

import json
import logging
import math
from contextlib import asynccontextmanager
from contextvars import ContextVar
from typing import TYPE_CHECKING

from redis.exceptions import LockError, RedisError

from ..exceptions import StorageUnavailableError
from .ports import IAbuseStateStore
from .state import AttemptRecord, RateLimitWindow

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from redis.asyncio import Redis
    from redis.asyncio.lock import Lock

    from .state import StateChanges

logger = logging.getLogger("mfa_core.gate.redis")

# Lock held by the current task, checked again before its commit
_held_lock: ContextVar[Lock | None] = ContextVar("mfa_gate_held_lock", default=None)


class RedisAbuseStateStore(IAbuseStateStore):
    """
    Redis-backed gate state shared by every process of a deployment.

    - Exclusive access per identity uses a Redis lock with a TTL, so a
      crashed process cannot hold an identity forever.
    - Commits run as one MULTI/EXEC pipeline.
    - Locked attempt records and rate windows carry a Redis expiry at the
      moment they stop mattering, so stale state disappears without a sweep.

    Unlike a cache, every Redis error is surfaced as
    :class:`StorageUnavailableError`; the gate must fail closed.
    """

    def __init__(
        self,
        redis_client: Redis[bytes],
        *,
        prefix: str = "mfa",
        lock_ttl: float = 10.0,
    ) -> None:
        self._redis = redis_client
        self._prefix = prefix
        self._lock_ttl = lock_ttl

    def _key(self, kind: str, key: str) -> str:
        return f"{self._prefix}:{kind}:{key}"

    @asynccontextmanager
    async def lock(self, key: str, *, timeout: float) -> AsyncIterator[None]:
        redis_lock = self._redis.lock(
            self._key("lock", key),
            timeout=self._lock_ttl,
            blocking_timeout=timeout,
            thread_local=False,
        )
        try:
            acquired = await redis_lock.acquire()
        except RedisError as e:
            raise StorageUnavailableError("Gate lock acquisition failed") from e
        if not acquired:
            logger.warning("Gate lock for %s timed out after %.1fs", key, timeout)
            raise StorageUnavailableError(
                f"Could not obtain exclusive access within {timeout}s"
            )

        token = _held_lock.set(redis_lock)
        try:
            yield
        finally:
            _held_lock.reset(token)
            try:
                await redis_lock.release()
            except LockError:
                logger.warning("Gate lock for %s expired before release", key)
            except RedisError as e:
                logger.warning("Gate lock release failed for %s: %s", key, e)

    async def _get_json(self, key: str) -> dict[str, object] | None:
        try:
            raw = await self._redis.get(key)
        except RedisError as e:
            raise StorageUnavailableError(f"Redis get failed for {key}") from e
        if not raw:
            return None
        data: dict[str, object] = json.loads(raw)
        return data

    async def get_attempts(self, key: str) -> AttemptRecord | None:
        data = await self._get_json(self._key("attempts", key))
        return AttemptRecord.from_dict(data) if data is not None else None

    async def get_window(self, key: str) -> RateLimitWindow | None:
        data = await self._get_json(self._key("window", key))
        return RateLimitWindow.from_dict(data) if data is not None else None

    async def _ensure_lock_held(self) -> None:
        """Refuse to commit once the lock TTL has run out.

        Another process may already hold the identity and have read the
        state this commit would overwrite.
        """
        redis_lock = _held_lock.get()
        if redis_lock is None:
            return
        try:
            owned = await redis_lock.owned()
        except RedisError as e:
            raise StorageUnavailableError("Gate lock check failed") from e
        if not owned:
            logger.warning(
                "Gate lock %s expired before commit, discarding changes",
                redis_lock.name,
            )
            raise StorageUnavailableError("Gate lock expired before commit")

    async def commit(self, changes: StateChanges) -> None:
        if not changes:
            return
        await self._ensure_lock_held()
        try:
            async with self._redis.pipeline(transaction=True) as pipe:
                for key, record in changes.attempts.items():
                    redis_key = self._key("attempts", key)
                    if record is None:
                        pipe.delete(redis_key)
                    elif record.locked_until is not None:
                        pipe.set(
                            redis_key,
                            json.dumps(record.to_dict()),
                            pxat=math.ceil(record.locked_until * 1000),
                        )
                    else:
                        pipe.set(redis_key, json.dumps(record.to_dict()))
                for key, window in changes.windows.items():
                    pipe.set(
                        self._key("window", key),
                        json.dumps(window.to_dict()),
                        pxat=math.ceil(window.reset_at * 1000),
                    )
                await pipe.execute()
        except RedisError as e:
            raise StorageUnavailableError("Redis commit failed") from e

    async def purge_expired(self, now: float) -> int:  # noqa: ARG002
        # Expiring keys are removed by Redis itself
        return 0


__all__: list[str] = ["RedisAbuseStateStore"]
