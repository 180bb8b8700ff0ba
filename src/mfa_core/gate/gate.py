"""AntiAbuseGate — lockout and rate limiting around every verification.

Two independent sub-machines are consulted in a fixed order:

1. Rate limit (fixed window per identity and purpose). Cheapest check,
   sheds request volume before any lockout bookkeeping.
2. Lockout (consecutive failures per identity)::

       Clear ──failure──▶ Accumulating(n) ──failure, n+1 ≥ max──▶ Locked(until)
         ▲                      │                                    │
         └──────success─────────┘◀──────── lazy expiry (now ≥ until) ┘

Only when both checks pass does the caller run cryptographic verification,
then report its outcome on the yielded :class:`GateAttempt`.
"""

from __future__ import annotations

import logging
import math
import time
from contextlib import AsyncExitStack, asynccontextmanager
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING, TypeVar

from ..config import GatePolicy
from ..exceptions import (
    LockedError,
    MfaCoreError,
    RateLimitedError,
    StorageUnavailableError,
)
from .memory import InMemoryAbuseStateStore
from .state import AttemptRecord, LockoutState, RateLimitWindow, StateChanges

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Awaitable, Callable

    from .ports import IAbuseStateStore

logger = logging.getLogger("mfa_core.gate")

T = TypeVar("T")

DEFAULT_PURPOSE = "verify"


@dataclass(frozen=True)
class GateOutcome:
    """Lockout bookkeeping after an attempt's outcome was recorded.

    Attributes:
        success: Whether the attempt succeeded.
        failures: Consecutive failures after this attempt.
        remaining_attempts: Failures left before lockout.
        locked_until: Lockout expiry if this failure triggered one.
    """

    success: bool
    failures: int
    remaining_attempts: int
    locked_until: float | None = None

    @property
    def state(self) -> LockoutState:
        if self.locked_until is not None:
            return LockoutState.LOCKED
        return LockoutState.ACCUMULATING if self.failures else LockoutState.CLEAR


class GateAttempt:
    """One admitted attempt, valid inside :meth:`AntiAbuseGate.attempt`.

    Exactly one outcome may be recorded. If none is recorded (for example
    because a collaborator failed) only the rate-limit increment is kept.
    """

    def __init__(
        self,
        *,
        identity: str,
        purpose: str,
        now: float,
        policy: GatePolicy,
        record: AttemptRecord | None,
        changes: StateChanges,
    ) -> None:
        self.identity = identity
        self.purpose = purpose
        self.now = now
        self._policy = policy
        self._record = record
        self._changes = changes
        self.outcome: GateOutcome | None = None

    def _check_open(self) -> None:
        if self.outcome is not None:
            raise RuntimeError("Attempt outcome already recorded")

    def succeed(self) -> GateOutcome:
        """Record a success: the identity returns to Clear."""
        self._check_open()
        if self._record is not None:
            self._changes.attempts[self.identity] = None
        self.outcome = GateOutcome(
            success=True,
            failures=0,
            remaining_attempts=self._policy.max_attempts,
        )
        logger.debug("Gate %s: %s success, cleared", self.identity, self.purpose)
        return self.outcome

    def fail(self) -> GateOutcome:
        """Record a failure, locking the identity once the limit is reached."""
        self._check_open()
        failures = (self._record.failures if self._record else 0) + 1
        locked_until: float | None = None
        if failures >= self._policy.max_attempts:
            locked_until = self.now + self._policy.lockout_duration
            logger.warning(
                "Gate %s: locked for %ds after %d consecutive failures",
                self.identity,
                self._policy.lockout_duration,
                failures,
            )
        else:
            logger.debug(
                "Gate %s: %s failure %d", self.identity, self.purpose, failures
            )

        self._changes.attempts[self.identity] = AttemptRecord(
            failures=failures,
            last_attempt_at=self.now,
            locked_until=locked_until,
        )
        self.outcome = GateOutcome(
            success=False,
            failures=failures,
            remaining_attempts=max(0, self._policy.max_attempts - failures),
            locked_until=locked_until,
        )
        return self.outcome


class AntiAbuseGate:
    """Per-identity lockout and rate limiting.

    The gate is the sole owner of attempt records and rate windows. Every
    call holds exclusive access to its identity from the first check until
    its single commit, so concurrent attempts for one identity cannot lose
    updates, and partial state is never visible.

    Example:
        ```python
        gate = AntiAbuseGate(store=RedisAbuseStateStore(redis))

        async with gate.attempt("user-123") as attempt:
            if code_is_valid():
                attempt.succeed()
            else:
                outcome = attempt.fail()
                print(f"{outcome.remaining_attempts} attempts left")
        ```
    """

    def __init__(
        self,
        *,
        store: IAbuseStateStore | None = None,
        policy: GatePolicy | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the gate.

        Args:
            store: State store (a private in-memory store if omitted).
            policy: Thresholds (defaults: 5 failures, 900s lockout,
                10 requests per 300s window).
            clock: Time source in seconds since the epoch.
        """
        self.store = store or InMemoryAbuseStateStore()
        self.policy = policy or GatePolicy()
        self._clock = clock

    async def _store_call(self, call: Awaitable[T]) -> T:
        """Await a store call, turning unexpected errors into fail-closed."""
        try:
            return await call
        except MfaCoreError:
            raise
        except Exception as e:
            logger.warning("Gate store call failed", exc_info=True)
            raise StorageUnavailableError("Gate state store failed") from e

    async def _enter_lock(self, stack: AsyncExitStack, identity: str) -> None:
        try:
            await stack.enter_async_context(
                self.store.lock(identity, timeout=self.policy.lock_timeout)
            )
        except MfaCoreError:
            raise
        except Exception as e:
            logger.warning("Gate lock failed for %s", identity, exc_info=True)
            raise StorageUnavailableError("Gate state store failed") from e

    async def _count_request(
        self,
        identity: str,
        purpose: str,
        now: float,
        changes: StateChanges,
    ) -> None:
        """Rate-limit sub-machine: admit and count, or reject."""
        key = f"{purpose}:{identity}"
        window = await self._store_call(self.store.get_window(key))

        if window is None or now >= window.reset_at:
            window = RateLimitWindow(
                count=1, reset_at=now + self.policy.rate_limit_window
            )
        elif window.count >= self.policy.max_requests_per_window:
            retry_after = max(1, math.ceil(window.reset_at - now))
            logger.warning(
                "Gate %s: rate limited for %s (retry after %ds)",
                identity,
                purpose,
                retry_after,
            )
            raise RateLimitedError(retry_after=retry_after)
        else:
            window = replace(window, count=window.count + 1)

        changes.windows[key] = window

    async def _check_lockout(
        self,
        identity: str,
        now: float,
        changes: StateChanges,
    ) -> AttemptRecord | None:
        """Lockout sub-machine: reject while locked, expire lazily."""
        record = await self._store_call(self.store.get_attempts(identity))
        if record is None or record.locked_until is None:
            return record

        if now < record.locked_until:
            # The request still counts towards the rate window
            await self._store_call(self.store.commit(changes))
            raise LockedError(
                seconds_remaining=max(1, math.ceil(record.locked_until - now)),
                failed_attempts=record.failures,
            )

        logger.debug("Gate %s: lockout elapsed, cleared", identity)
        changes.attempts[identity] = None
        return None

    @asynccontextmanager
    async def attempt(
        self,
        identity: str,
        purpose: str = DEFAULT_PURPOSE,
        *,
        now: float | None = None,
    ) -> AsyncIterator[GateAttempt]:
        """Admit one verification attempt for an identity.

        Checks the rate limit, then the lockout. On admission yields a
        :class:`GateAttempt` on which the caller records the outcome. All
        state changes are committed together when the block exits, including
        when it exits with an ordinary exception. A cancelled block commits
        nothing.

        Args:
            identity: User id or composite identity key.
            purpose: Rate-limit bucket (``"verify"``, ``"enroll"``, ...).
            now: Override for the current time.

        Raises:
            RateLimitedError: Too many requests in the current window.
            LockedError: The identity is locked.
            StorageUnavailableError: The state store failed.
        """
        now = self._clock() if now is None else now
        changes = StateChanges()

        async with AsyncExitStack() as stack:
            await self._enter_lock(stack, identity)
            await self._count_request(identity, purpose, now, changes)
            record = await self._check_lockout(identity, now, changes)

            attempt = GateAttempt(
                identity=identity,
                purpose=purpose,
                now=now,
                policy=self.policy,
                record=record,
                changes=changes,
            )
            try:
                yield attempt
            except Exception:
                await self._store_call(self.store.commit(changes))
                raise
            await self._store_call(self.store.commit(changes))

    async def throttle(
        self,
        identity: str,
        purpose: str,
        *,
        now: float | None = None,
    ) -> None:
        """Count one request against a rate window without lockout checks.

        Used for operations that are volume-limited but cannot fail a
        credential check, such as enrollment.

        Raises:
            RateLimitedError: Too many requests in the current window.
            StorageUnavailableError: The state store failed.
        """
        now = self._clock() if now is None else now
        changes = StateChanges()
        async with AsyncExitStack() as stack:
            await self._enter_lock(stack, identity)
            await self._count_request(identity, purpose, now, changes)
            await self._store_call(self.store.commit(changes))

    async def lockout_state(
        self, identity: str, *, now: float | None = None
    ) -> LockoutState:
        """Read the current lockout state without changing it."""
        now = self._clock() if now is None else now
        record = await self._store_call(self.store.get_attempts(identity))
        return record.state(now) if record is not None else LockoutState.CLEAR

    async def purge_expired(self, *, now: float | None = None) -> int:
        """Drop elapsed lockouts and reset windows from the store.

        Optional housekeeping. Lazy expiry on access remains authoritative.
        """
        now = self._clock() if now is None else now
        return await self._store_call(self.store.purge_expired(now))


__all__: list[str] = [
    "DEFAULT_PURPOSE",
    "GateOutcome",
    "GateAttempt",
    "AntiAbuseGate",
]
