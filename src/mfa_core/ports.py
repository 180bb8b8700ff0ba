"""Ports (protocols) for the collaborators of the MFA core.

The core never persists anything itself. Applications provide the
credential store, the WebAuthn delegate and the challenge store; the
in-memory adapters in :mod:`mfa_core.memory` exist for tests.

Every method is a coroutine. Any exception raised by an implementation is
treated by the service as "storage unavailable" and fails verification
closed.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from .requests import WebAuthnAssertion


# ═══════════════════════════════════════════════════════════════
# RECORDS
# ═══════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class TotpCredential:
    """Stored TOTP credential for one user.

    Parameters are fixed at enrollment. Re-enrolling creates a new record
    with a new secret instead of mutating this one.

    Attributes:
        secret: Base32-encoded shared secret (no padding).
        digits: Code length.
        period: Time step in seconds.
        window: Accepted drift in time steps.
        last_accepted_counter: Highest counter ever accepted, or None.
    """

    secret: str
    digits: int = 6
    period: int = 30
    window: int = 2
    last_accepted_counter: int | None = None


@dataclass(frozen=True)
class StoredBackupCode:
    """One stored backup code.

    Attributes:
        code_hash: Hex SHA-256 of the (optionally salted) normalized code.
        used: Whether the code was already consumed.
    """

    code_hash: str
    used: bool = False


@dataclass(frozen=True)
class AssertionResult:
    """Result returned by the WebAuthn delegate.

    Attributes:
        verified: Whether the assertion signature and challenge verified.
        error: Delegate-provided reason, never shown to end users.
    """

    verified: bool
    error: str | None = None


# ═══════════════════════════════════════════════════════════════
# CREDENTIAL STORE PORT
# ═══════════════════════════════════════════════════════════════


@runtime_checkable
class ICredentialStore(Protocol):
    """Protocol for TOTP credential and backup code persistence.

    Secrets should be encrypted at rest by the implementation.
    """

    async def get_credential(self, user_id: str) -> TotpCredential | None:
        """Get the TOTP credential for a user.

        Args:
            user_id: User identifier.

        Returns:
            The credential, or None if TOTP is not enrolled.
        """
        ...

    async def save_credential(self, user_id: str, credential: TotpCredential) -> None:
        """Store a freshly enrolled TOTP credential, replacing any previous one.

        Args:
            user_id: User identifier.
            credential: New credential record.
        """
        ...

    async def update_last_accepted_counter(self, user_id: str, counter: int) -> None:
        """Persist the counter of the most recently accepted TOTP code.

        Args:
            user_id: User identifier.
            counter: Accepted time-step counter.
        """
        ...

    async def get_backup_code_hashes(self, user_id: str) -> list[StoredBackupCode]:
        """Get the stored backup code set, in issue order.

        Args:
            user_id: User identifier.

        Returns:
            Stored hashes with their used flags (empty if none issued).
        """
        ...

    async def mark_backup_code_used(self, user_id: str, index: int) -> None:
        """Flag one stored backup code as used.

        Args:
            user_id: User identifier.
            index: Position of the code in the stored set.
        """
        ...

    async def replace_backup_codes(self, user_id: str, code_hashes: list[str]) -> None:
        """Atomically discard the current set and store a new one.

        Args:
            user_id: User identifier.
            code_hashes: Hashes of the new batch, all unused.
        """
        ...


# ═══════════════════════════════════════════════════════════════
# WEBAUTHN PORTS
# ═══════════════════════════════════════════════════════════════


@runtime_checkable
class IWebAuthnDelegate(Protocol):
    """Protocol for the external WebAuthn verifier.

    The delegate owns assertion cryptography and signature-counter replay
    protection. The core only forwards the canonical assertion and the
    challenge it issued earlier.
    """

    async def verify_assertion(
        self,
        assertion: WebAuthnAssertion,
        expected_challenge: str,
    ) -> AssertionResult:
        """Verify an authentication assertion.

        Args:
            assertion: Canonical base64url assertion.
            expected_challenge: Base64url challenge issued for this user.

        Returns:
            AssertionResult with the verification outcome.
        """
        ...


@runtime_checkable
class IChallengeStore(Protocol):
    """Protocol for pending WebAuthn challenge storage.

    One pending challenge per user; issuing a new one replaces the old.
    """

    async def create(self, user_id: str, challenge: str, expires_at: float) -> None:
        """Store a pending challenge.

        Args:
            user_id: User identifier.
            challenge: Base64url challenge.
            expires_at: Expiry as seconds since the epoch.
        """
        ...

    async def consume(self, user_id: str, now: float) -> str | None:
        """Remove and return the pending challenge (single-use).

        Args:
            user_id: User identifier.
            now: Current time in seconds since the epoch.

        Returns:
            The challenge, or None if none is pending or it expired.
        """
        ...


__all__: list[str] = [
    "TotpCredential",
    "StoredBackupCode",
    "AssertionResult",
    "ICredentialStore",
    "IWebAuthnDelegate",
    "IChallengeStore",
]
