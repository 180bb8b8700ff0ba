"""One-time password engine.

Submodules:
    - `base32`: RFC 4648 codec for shared secrets
    - `engine`: HOTP/TOTP computation and window verification
    - `provisioning`: otpauth URIs and manual-entry keys
"""

from __future__ import annotations

from . import base32
from .engine import (
    DEFAULT_SECRET_LENGTH,
    TotpVerification,
    compute_hotp,
    compute_totp,
    generate_secret,
    time_step,
    validate_code_format,
    verify_totp,
)
from .provisioning import build_otpauth_uri, format_manual_key

__all__: list[str] = [
    "base32",
    # Engine
    "DEFAULT_SECRET_LENGTH",
    "TotpVerification",
    "generate_secret",
    "time_step",
    "compute_hotp",
    "compute_totp",
    "validate_code_format",
    "verify_totp",
    # Provisioning
    "build_otpauth_uri",
    "format_manual_key",
]
