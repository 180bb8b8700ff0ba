"""MFA Core Package

Second factor — "Prove you hold it."

Verifies TOTP codes, single-use backup codes and WebAuthn assertions behind
an anti-abuse gate that rate-limits requests and locks out identities after
repeated failures.

Usage:
    ```python
    from mfa_core import InMemoryCredentialStore, MfaService

    service = MfaService(credential_store=InMemoryCredentialStore())

    provisioning = await service.enroll_totp("user-123", "alice@example.com")
    print(f"Scan this QR: {provisioning.otpauth_uri}")

    result = await service.verify("user-123", "totp", {"code": "492039"})
    if result.success:
        print("Verified")
    ```

Submodules:
    - `otp`: base32 codec, HOTP/TOTP engine, provisioning URIs
    - `backup_codes`: recovery code generation and matching
    - `gate`: lockout and rate limiting (`gate.redis_store` needs the redis extra)
    - `service`: the verification and enrollment entry point
"""

from __future__ import annotations

# Backup codes
from .backup_codes import BackupCodeBatch, BackupCodeManager

# Configuration
from .config import BackupCodePolicy, ChallengePolicy, GatePolicy, MfaConfig, TotpPolicy

# Exceptions
from .exceptions import (
    AlreadyUsedError,
    ConfigurationError,
    EnrollmentError,
    FormatError,
    GateRejectedError,
    InvalidCredentialError,
    LockedError,
    MfaCoreError,
    MfaDomainError,
    MfaInfrastructureError,
    MissingFieldError,
    RateLimitedError,
    StorageUnavailableError,
    UnsupportedMethodError,
    ValidationError,
)

# Gate
from .gate import AntiAbuseGate, IAbuseStateStore, InMemoryAbuseStateStore

# Collaborators
from .memory import InMemoryChallengeStore, InMemoryCredentialStore
from .ports import (
    AssertionResult,
    IChallengeStore,
    ICredentialStore,
    IWebAuthnDelegate,
    StoredBackupCode,
    TotpCredential,
)

# Requests and results
from .requests import (
    BackupCodeRequest,
    MfaMethod,
    TotpRequest,
    VerificationRequest,
    WebAuthnAssertion,
    WebAuthnRequest,
    parse_request,
)
from .results import MfaErrorCode, MfaStatus, TotpProvisioning, VerificationResult

# Service
from .service import MfaService

__all__: list[str] = [
    # Configuration
    "MfaConfig",
    "TotpPolicy",
    "BackupCodePolicy",
    "GatePolicy",
    "ChallengePolicy",
    # Exceptions
    "MfaCoreError",
    "MfaDomainError",
    "MfaInfrastructureError",
    "ConfigurationError",
    "FormatError",
    "ValidationError",
    "MissingFieldError",
    "UnsupportedMethodError",
    "GateRejectedError",
    "RateLimitedError",
    "LockedError",
    "InvalidCredentialError",
    "AlreadyUsedError",
    "EnrollmentError",
    "StorageUnavailableError",
    # Backup codes
    "BackupCodeBatch",
    "BackupCodeManager",
    # Gate
    "AntiAbuseGate",
    "IAbuseStateStore",
    "InMemoryAbuseStateStore",
    # Collaborators
    "TotpCredential",
    "StoredBackupCode",
    "AssertionResult",
    "ICredentialStore",
    "IWebAuthnDelegate",
    "IChallengeStore",
    "InMemoryCredentialStore",
    "InMemoryChallengeStore",
    # Requests and results
    "MfaMethod",
    "TotpRequest",
    "BackupCodeRequest",
    "WebAuthnRequest",
    "WebAuthnAssertion",
    "VerificationRequest",
    "parse_request",
    "MfaErrorCode",
    "VerificationResult",
    "TotpProvisioning",
    "MfaStatus",
    # Service
    "MfaService",
]

__version__ = "0.1.0"
