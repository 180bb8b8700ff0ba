"""Normalized results returned to callers of the MFA service."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from .requests import MfaMethod


class MfaErrorCode(str, Enum):
    """Machine-readable failure reasons surfaced to callers."""

    RATE_LIMITED = "rate_limited"
    LOCKED = "locked"
    INVALID_CREDENTIAL = "invalid_credential"
    ALREADY_USED = "already_used"
    UNSUPPORTED_METHOD = "unsupported_method"
    MISSING_FIELD = "missing_field"
    STORAGE_UNAVAILABLE = "storage_unavailable"


# Caller-safe text. INVALID_CREDENTIAL never says *why* a code was wrong.
ERROR_MESSAGES: dict[MfaErrorCode, str] = {
    MfaErrorCode.RATE_LIMITED: (
        "Too many verification attempts. Please try again later."
    ),
    MfaErrorCode.LOCKED: "Temporarily locked due to too many failed attempts.",
    MfaErrorCode.INVALID_CREDENTIAL: "Invalid verification code.",
    MfaErrorCode.ALREADY_USED: "This code has already been used.",
    MfaErrorCode.UNSUPPORTED_METHOD: "Unsupported verification method.",
    MfaErrorCode.MISSING_FIELD: "Verification request is incomplete.",
    MfaErrorCode.STORAGE_UNAVAILABLE: "Verification is temporarily unavailable.",
}


@dataclass(frozen=True)
class VerificationResult:
    """Outcome of one :meth:`~mfa_core.service.MfaService.verify` call.

    Attributes:
        success: Whether the second factor was proven.
        method: Method the caller asked for, or None if it was not recognized.
        error: Failure reason, None on success.
        message: Caller-safe description of the failure.
        remaining_attempts: Failures left before lockout (credential failures).
        lockout_seconds_remaining: Seconds until an active lockout ends.
        retry_after_seconds: Seconds until the rate-limit window resets.
    """

    success: bool
    method: MfaMethod | None
    error: MfaErrorCode | None = None
    message: str | None = None
    remaining_attempts: int | None = None
    lockout_seconds_remaining: int | None = None
    retry_after_seconds: int | None = None

    @classmethod
    def ok(cls, method: MfaMethod) -> VerificationResult:
        return cls(success=True, method=method)

    @classmethod
    def failure(
        cls,
        method: MfaMethod | None,
        error: MfaErrorCode,
        *,
        remaining_attempts: int | None = None,
        lockout_seconds_remaining: int | None = None,
        retry_after_seconds: int | None = None,
    ) -> VerificationResult:
        return cls(
            success=False,
            method=method,
            error=error,
            message=ERROR_MESSAGES[error],
            remaining_attempts=remaining_attempts,
            lockout_seconds_remaining=lockout_seconds_remaining,
            retry_after_seconds=retry_after_seconds,
        )


@dataclass(frozen=True)
class TotpProvisioning:
    """Enrollment material, returned exactly once.

    Attributes:
        secret_base32: Shared secret for manual entry or storage by the app.
        otpauth_uri: ``otpauth://`` URI to render as a QR code.
        manual_key: Secret grouped in blocks of four for typing.
        backup_codes: Plaintext recovery codes.
    """

    secret_base32: str
    otpauth_uri: str
    manual_key: str
    backup_codes: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class MfaStatus:
    """Second-factor state of one user."""

    totp_enrolled: bool
    backup_codes_remaining: int
    webauthn_available: bool


__all__: list[str] = [
    "MfaErrorCode",
    "ERROR_MESSAGES",
    "VerificationResult",
    "TotpProvisioning",
    "MfaStatus",
]
