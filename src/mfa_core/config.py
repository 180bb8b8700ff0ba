"""Policy objects for mfa-core.

All policies are immutable and passed into the components that use them.
Nothing in this package reads configuration from the environment.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from .exceptions import ConfigurationError


@dataclass(frozen=True)
class TotpPolicy:
    """TOTP parameters applied at enrollment.

    The algorithm is fixed to HMAC-SHA1 for authenticator app interoperability.

    Attributes:
        digits: Number of digits in a code (6-8).
        period: Time step in seconds.
        window: Accepted drift in time steps on either side of the current one.
        secret_length: Raw secret length in bytes.
        issuer: Application name shown in the authenticator app.
    """

    digits: int = 6
    period: int = 30
    window: int = 2  # ±60 seconds at the default period
    secret_length: int = 32  # 256 bits
    issuer: str = "mfa-core"

    def __post_init__(self) -> None:
        if not 6 <= self.digits <= 8:
            raise ConfigurationError("TOTP digits must be between 6 and 8")
        if self.period <= 0:
            raise ConfigurationError("TOTP period must be positive")
        if self.window < 0:
            raise ConfigurationError("TOTP window must not be negative")
        if self.secret_length < 16:
            raise ConfigurationError("TOTP secrets must be at least 16 bytes")


@dataclass(frozen=True)
class BackupCodePolicy:
    """Backup code batch parameters.

    Attributes:
        count: Number of codes per batch.
        length: Number of uppercase hex characters per code.
        salt_per_user: Salt stored hashes with the user id.
        max_generation_attempts: Batches drawn before giving up on collisions.
    """

    count: int = 10
    length: int = 8
    salt_per_user: bool = True
    max_generation_attempts: int = 5

    def __post_init__(self) -> None:
        if self.count <= 0:
            raise ConfigurationError("Backup code count must be positive")
        if not 8 <= self.length <= 32:
            raise ConfigurationError("Backup code length must be between 8 and 32")
        if self.max_generation_attempts <= 0:
            raise ConfigurationError("max_generation_attempts must be positive")


@dataclass(frozen=True)
class GatePolicy:
    """Anti-abuse gate thresholds.

    Attributes:
        max_attempts: Consecutive failures before lockout.
        lockout_duration: Lockout length in seconds.
        rate_limit_window: Fixed window length in seconds.
        max_requests_per_window: Attempts allowed per identity and purpose
            within one window.
        lock_timeout: Seconds to wait for exclusive access to one identity.
    """

    max_attempts: int = 5
    lockout_duration: int = 900  # 15 minutes
    rate_limit_window: int = 300  # 5 minutes
    max_requests_per_window: int = 10
    lock_timeout: float = 5.0

    def __post_init__(self) -> None:
        if self.max_attempts <= 0:
            raise ConfigurationError("max_attempts must be positive")
        if self.lockout_duration <= 0:
            raise ConfigurationError("lockout_duration must be positive")
        if self.rate_limit_window <= 0:
            raise ConfigurationError("rate_limit_window must be positive")
        if self.max_requests_per_window <= 0:
            raise ConfigurationError("max_requests_per_window must be positive")
        if self.lock_timeout <= 0:
            raise ConfigurationError("lock_timeout must be positive")


@dataclass(frozen=True)
class ChallengePolicy:
    """WebAuthn challenge parameters.

    Attributes:
        ttl_seconds: Lifetime of an issued challenge.
        challenge_bytes: Random bytes per challenge.
    """

    ttl_seconds: int = 300
    challenge_bytes: int = 32

    def __post_init__(self) -> None:
        if self.ttl_seconds <= 0:
            raise ConfigurationError("Challenge ttl_seconds must be positive")
        if self.challenge_bytes < 16:
            raise ConfigurationError("Challenges must be at least 16 bytes")


@dataclass(frozen=True)
class MfaConfig:
    """All policies consumed by :class:`~mfa_core.service.MfaService`."""

    totp: TotpPolicy = field(default_factory=TotpPolicy)
    backup_codes: BackupCodePolicy = field(default_factory=BackupCodePolicy)
    gate: GatePolicy = field(default_factory=GatePolicy)
    challenge: ChallengePolicy = field(default_factory=ChallengePolicy)


__all__: list[str] = [
    "TotpPolicy",
    "BackupCodePolicy",
    "GatePolicy",
    "ChallengePolicy",
    "MfaConfig",
]
