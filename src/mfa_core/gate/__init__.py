"""Anti-abuse gate: per-identity lockout and rate limiting.

The Redis store lives in :mod:`mfa_core.gate.redis_store` and is imported
explicitly so the core works without the ``redis`` extra.
"""

from __future__ import annotations

from .gate import DEFAULT_PURPOSE, AntiAbuseGate, GateAttempt, GateOutcome
from .memory import InMemoryAbuseStateStore
from .ports import IAbuseStateStore
from .state import AttemptRecord, LockoutState, RateLimitWindow, StateChanges

__all__: list[str] = [
    # Gate
    "AntiAbuseGate",
    "GateAttempt",
    "GateOutcome",
    "DEFAULT_PURPOSE",
    # State
    "LockoutState",
    "AttemptRecord",
    "RateLimitWindow",
    "StateChanges",
    # Stores
    "IAbuseStateStore",
    "InMemoryAbuseStateStore",
]
