"""Exceptions for mfa-core.

Domain errors describe why a verification or enrollment was refused.
Infrastructure errors describe collaborators that could not be reached.
Only :class:`~mfa_core.service.MfaService` turns these into caller-facing
results; every other module raises.
"""

from __future__ import annotations

# ═══════════════════════════════════════════════════════════════
# BASE ERRORS
# ═══════════════════════════════════════════════════════════════


class MfaCoreError(Exception):
    """Root exception for the entire mfa-core package."""


class MfaDomainError(MfaCoreError):
    """Base class for verification and enrollment refusals."""


class MfaInfrastructureError(MfaCoreError):
    """Base class for failures of external collaborators."""


class ConfigurationError(MfaCoreError):
    """Raised when a policy object is constructed with invalid values."""


# ═══════════════════════════════════════════════════════════════
# SHAPE ERRORS
# ═══════════════════════════════════════════════════════════════


class FormatError(MfaDomainError):
    """Raised when a secret or code does not have the expected shape.

    Examples:
        - Base32 secret that decodes to zero bytes
        - Base32 text containing an impossible trailing group
    """


class ValidationError(MfaDomainError):
    """Raised when a request is structurally invalid.

    Carries structured errors: ``{field: [messages]}``.
    """

    def __init__(self, errors: dict[str, list[str]] | str | None = None) -> None:
        if isinstance(errors, str):
            self.errors: dict[str, list[str]] = {"__root__": [errors]}
        elif errors is None:
            self.errors = {}
        else:
            self.errors = errors
        super().__init__(str(self.errors))


class MissingFieldError(ValidationError):
    """Raised when a payload lacks a field required by its method."""

    @property
    def fields(self) -> list[str]:
        """Names of the offending fields."""
        return sorted(self.errors)


class UnsupportedMethodError(MfaDomainError):
    """Raised when the requested MFA method is unknown or not configured."""

    def __init__(self, method: object) -> None:
        self.method = method
        super().__init__(f"Unsupported MFA method: {method!r}")


# ═══════════════════════════════════════════════════════════════
# GATE ERRORS
# ═══════════════════════════════════════════════════════════════


class GateRejectedError(MfaDomainError):
    """Base class for attempts refused by the anti-abuse gate.

    Gate rejections happen before any cryptographic comparison runs.
    """


class RateLimitedError(GateRejectedError):
    """Raised when an identity exceeded its request volume for the window.

    Attributes:
        retry_after: Seconds until the current window resets.
    """

    def __init__(
        self,
        message: str = "Too many verification attempts. Please try again later.",
        retry_after: int | None = None,
    ) -> None:
        super().__init__(message)
        self.retry_after = retry_after


class LockedError(GateRejectedError):
    """Raised when an identity is locked after consecutive failures.

    Attributes:
        seconds_remaining: Time in seconds until the lockout ends.
        failed_attempts: Number of failed attempts that triggered the lock.
    """

    def __init__(
        self,
        message: str = "Temporarily locked due to too many failed attempts",
        seconds_remaining: int | None = None,
        failed_attempts: int | None = None,
    ) -> None:
        super().__init__(message)
        self.seconds_remaining = seconds_remaining
        self.failed_attempts = failed_attempts


# ═══════════════════════════════════════════════════════════════
# CREDENTIAL ERRORS
# ═══════════════════════════════════════════════════════════════


class InvalidCredentialError(MfaDomainError):
    """Raised when a submitted code or assertion does not verify.

    Engine-level format and comparison failures all collapse into this
    error so callers cannot tell *why* a code was wrong.
    """


class AlreadyUsedError(MfaDomainError):
    """Raised when a TOTP counter is replayed or a backup code is reused."""


class EnrollmentError(MfaDomainError):
    """Raised when enrollment material cannot be produced.

    Examples:
        - Backup code batch kept colliding after the retry budget
        - TOTP enrollment requested for an empty user id
    """


# ═══════════════════════════════════════════════════════════════
# INFRASTRUCTURE ERRORS
# ═══════════════════════════════════════════════════════════════


class StorageUnavailableError(MfaInfrastructureError):
    """Raised when a credential, challenge or gate store call fails.

    Verification always fails closed on this error.
    """


__all__: list[str] = [
    # Base
    "MfaCoreError",
    "MfaDomainError",
    "MfaInfrastructureError",
    "ConfigurationError",
    # Shape
    "FormatError",
    "ValidationError",
    "MissingFieldError",
    "UnsupportedMethodError",
    # Gate
    "GateRejectedError",
    "RateLimitedError",
    "LockedError",
    # Credentials
    "InvalidCredentialError",
    "AlreadyUsedError",
    "EnrollmentError",
    # Infrastructure
    "StorageUnavailableError",
]
