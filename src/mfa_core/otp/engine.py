"""HOTP (RFC 4226) and TOTP (RFC 6238) engine.

The engine is stateless: it computes and compares codes but never decides
whether a counter was already used. Replay rejection is an explicit step
performed by the caller against the credential's last accepted counter.

Uses pyotp internally for the HMAC and dynamic truncation.
"""

from __future__ import annotations

import hashlib
import re
import secrets
from dataclasses import dataclass

import pyotp

from ..exceptions import FormatError, ValidationError
from . import base32

DEFAULT_SECRET_LENGTH = 32  # 256 bits


@dataclass(frozen=True)
class TotpVerification:
    """Outcome of a TOTP window scan.

    Attributes:
        valid: Whether any counter in the window produced the submitted code.
        counter: The matching counter, used for the replay check.
    """

    valid: bool
    counter: int | None = None


def generate_secret(length: int = DEFAULT_SECRET_LENGTH) -> bytes:
    """Generate a new shared secret from the OS CSPRNG.

    Args:
        length: Secret length in bytes (default 32).

    Returns:
        Raw secret bytes. Persist only their base32 form.
    """
    return secrets.token_bytes(length)


def time_step(unix_time: float, period: int) -> int:
    """Return the TOTP counter for a point in time."""
    return int(unix_time // period)


def compute_hotp(secret: bytes, counter: int, digits: int = 6) -> str:
    """Compute an HOTP code.

    HMAC-SHA1 over the 8-byte big-endian counter, dynamically truncated and
    reduced modulo ``10**digits``, zero-padded to ``digits`` characters.

    Args:
        secret: Raw secret bytes.
        counter: Non-negative moving factor.
        digits: Code length.

    Returns:
        The code as a string of ``digits`` decimal characters.
    """
    hotp = pyotp.HOTP(base32.encode(secret), digits=digits, digest=hashlib.sha1)
    return hotp.at(counter)


def compute_totp(
    secret: str,
    unix_time: float,
    period: int = 30,
    digits: int = 6,
) -> str:
    """Compute the TOTP code for a point in time.

    Args:
        secret: Base32-encoded secret.
        unix_time: Seconds since the epoch.
        period: Time step in seconds.
        digits: Code length.

    Raises:
        FormatError: If the secret is not valid base32.
    """
    return compute_hotp(base32.decode(secret), time_step(unix_time, period), digits)


def validate_code_format(code: object, digits: int) -> str:
    """Check that a submitted code is exactly ``digits`` ASCII digits.

    This runs before any cryptographic work. It depends only on the shape of
    the submission, never on the secret.

    Raises:
        ValidationError: If the code has the wrong type or pattern.
    """
    if not isinstance(code, str) or re.fullmatch(f"[0-9]{{{digits}}}", code) is None:
        raise ValidationError({"code": [f"Code must be {digits} digits"]})
    return code


def check_parameters(digits: int, period: int, window: int) -> None:
    """Reject TOTP parameters no authenticator app can have produced.

    Raises:
        FormatError: If digits is outside 6-8, period is not positive, or
            window is negative.
    """
    if not 6 <= digits <= 8:
        raise FormatError(f"TOTP digits must be between 6 and 8, got {digits}")
    if period <= 0:
        raise FormatError(f"TOTP period must be positive, got {period}")
    if window < 0:
        raise FormatError(f"TOTP window must not be negative, got {window}")


def verify_totp(
    submitted_code: str,
    secret: str,
    now: float,
    window: int = 2,
    period: int = 30,
    digits: int = 6,
) -> TotpVerification:
    """Scan the time window for a counter producing the submitted code.

    Counters are scanned in ascending order from ``current - window`` to
    ``current + window`` inclusive. Every candidate is computed and compared
    in constant time; the first match is reported.

    Args:
        submitted_code: Code entered by the user.
        secret: Base32-encoded secret.
        now: Current time in seconds since the epoch.
        window: Accepted drift in time steps.
        period: Time step in seconds.
        digits: Code length.

    Returns:
        TotpVerification with the matching counter, or ``valid=False``.

    Raises:
        ValidationError: If the submission does not match the digit pattern.
        FormatError: If the secret is not valid base32 or the parameters
            are out of range.
    """
    check_parameters(digits, period, window)
    code = validate_code_format(submitted_code, digits).encode("ascii")
    secret_bytes = base32.decode(secret)
    current = time_step(now, period)

    matched: int | None = None
    for counter in range(current - window, current + window + 1):
        # Counters before the epoch cannot have produced a code
        if counter < 0:
            continue
        candidate = compute_hotp(secret_bytes, counter, digits).encode("ascii")
        if secrets.compare_digest(candidate, code) and matched is None:
            matched = counter

    if matched is None:
        return TotpVerification(valid=False)
    return TotpVerification(valid=True, counter=matched)


__all__: list[str] = [
    "DEFAULT_SECRET_LENGTH",
    "TotpVerification",
    "generate_secret",
    "time_step",
    "compute_hotp",
    "compute_totp",
    "validate_code_format",
    "check_parameters",
    "verify_totp",
]
