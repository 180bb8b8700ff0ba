"""IAbuseStateStore — protocol for gate state persistence.

The store is the only place attempt records and rate-limit windows live.
It is owned by a single :class:`~mfa_core.gate.AntiAbuseGate`; no other
component reads or writes it.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from contextlib import AbstractAsyncContextManager

    from .state import AttemptRecord, RateLimitWindow, StateChanges


@runtime_checkable
class IAbuseStateStore(Protocol):
    """Protocol for attempt-record and rate-window storage.

    Implementations must provide exclusive access per key through
    :meth:`lock` and apply a :class:`StateChanges` atomically in
    :meth:`commit`. Implementations should use Redis for distributed
    systems.
    """

    def lock(self, key: str, *, timeout: float) -> AbstractAsyncContextManager[None]:
        """Hold exclusive access to one identity for the duration of a call.

        Args:
            key: Identity key.
            timeout: Seconds to wait before giving up.

        Raises:
            StorageUnavailableError: If access cannot be obtained in time.
        """
        ...

    async def get_attempts(self, key: str) -> AttemptRecord | None:
        """Get the attempt record for an identity, or None."""
        ...

    async def get_window(self, key: str) -> RateLimitWindow | None:
        """Get the rate-limit window for an identity and purpose, or None."""
        ...

    async def commit(self, changes: StateChanges) -> None:
        """Apply buffered writes all together or not at all.

        Raises:
            StorageUnavailableError: If the write fails, or if the lock held
                by the calling task was lost before the write.
        """
        ...

    async def purge_expired(self, now: float) -> int:
        """Drop elapsed lockouts and reset windows.

        Returns:
            Number of entries removed.
        """
        ...


__all__: list[str] = ["IAbuseStateStore"]
