"""Authenticator app provisioning helpers.

Works with any TOTP-compatible authenticator app:
- Google Authenticator
- Microsoft Authenticator
- Authy
- 1Password
- FreeOTP
"""

from __future__ import annotations

import pyotp


def build_otpauth_uri(
    secret: str,
    account_name: str,
    *,
    issuer: str,
    digits: int = 6,
    period: int = 30,
) -> str:
    """Build the ``otpauth://totp/...`` URI rendered as a QR code.

    Args:
        secret: Base32-encoded secret.
        account_name: Label shown in the authenticator app.
        issuer: Application name shown in the authenticator app.
        digits: Code length.
        period: Time step in seconds.

    Returns:
        Provisioning URI with issuer, digits and period parameters.
    """
    totp = pyotp.TOTP(secret, digits=digits, interval=period, issuer=issuer)
    return totp.provisioning_uri(name=account_name, issuer_name=issuer)


def format_manual_key(secret: str) -> str:
    """Format a secret as space-separated groups of 4 for manual entry."""
    secret = secret.rstrip("=")
    return " ".join(secret[i : i + 4] for i in range(0, len(secret), 4))


__all__: list[str] = ["build_otpauth_uri", "format_manual_key"]
