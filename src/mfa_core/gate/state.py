"""State records owned by the anti-abuse gate."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any


class LockoutState(str, Enum):
    """States of the lockout sub-machine."""

    CLEAR = "clear"
    ACCUMULATING = "accumulating"
    LOCKED = "locked"


@dataclass(frozen=True)
class AttemptRecord:
    """Consecutive-failure bookkeeping for one identity.

    Created on the first failure, deleted on success and deleted once an
    elapsed lockout is observed.

    Attributes:
        failures: Consecutive failed attempts.
        last_attempt_at: Time of the most recent failure.
        locked_until: Lockout expiry, or None while accumulating.
    """

    failures: int
    last_attempt_at: float
    locked_until: float | None = None

    def state(self, now: float) -> LockoutState:
        if self.locked_until is not None and now < self.locked_until:
            return LockoutState.LOCKED
        if self.locked_until is not None:
            return LockoutState.CLEAR
        return LockoutState.ACCUMULATING if self.failures else LockoutState.CLEAR

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AttemptRecord:
        return cls(
            failures=int(data["failures"]),
            last_attempt_at=float(data["last_attempt_at"]),
            locked_until=(
                float(data["locked_until"])
                if data.get("locked_until") is not None
                else None
            ),
        )


@dataclass(frozen=True)
class RateLimitWindow:
    """Fixed request window for one identity and purpose.

    Attributes:
        count: Attempts admitted in the current window.
        reset_at: Time at which the window starts over.
    """

    count: int
    reset_at: float

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RateLimitWindow:
        return cls(count=int(data["count"]), reset_at=float(data["reset_at"]))


@dataclass
class StateChanges:
    """Buffered gate writes, applied by the store in one commit.

    A ``None`` attempt record means "delete".
    """

    attempts: dict[str, AttemptRecord | None] = field(default_factory=dict)
    windows: dict[str, RateLimitWindow] = field(default_factory=dict)

    def __bool__(self) -> bool:
        return bool(self.attempts or self.windows)


__all__: list[str] = [
    "LockoutState",
    "AttemptRecord",
    "RateLimitWindow",
    "StateChanges",
]
