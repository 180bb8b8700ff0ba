"""RFC 4648 base32 codec for shared secrets.

Secrets are persisted and provisioned without ``=`` padding, the form
authenticator apps expect in otpauth URIs.
"""

from __future__ import annotations

import base64
import binascii
import re

from ..exceptions import FormatError

ALPHABET = "ABCDEFGHIJKLMNOPQRSTUVWXYZ234567"

_NOT_IN_ALPHABET = re.compile(r"[^A-Z2-7]")


def encode(data: bytes) -> str:
    """Encode raw bytes as unpadded upper-case base32."""
    return base64.b32encode(data).decode("ascii").rstrip("=")


def decode(text: str) -> bytes:
    """Decode base32 text back into raw bytes.

    Decoding is case-insensitive and ignores every character outside the
    alphabet, so grouped manual-entry keys (``"JBSW Y3DP"``) and padded
    input decode the same as the canonical form.

    Args:
        text: Base32 text, padded or not.

    Returns:
        The decoded bytes. ``b""`` for an empty input.

    Raises:
        FormatError: If non-empty input cleans to nothing, or the cleaned
            length cannot be produced by an encoder.
    """
    cleaned = _NOT_IN_ALPHABET.sub("", text.upper())
    if not cleaned:
        if text:
            raise FormatError("Base32 text contains no alphabet characters")
        return b""

    padded = cleaned + "=" * (-len(cleaned) % 8)
    try:
        decoded = base64.b32decode(padded)
    except binascii.Error as e:
        raise FormatError("Invalid base32 length") from e

    if not decoded:
        raise FormatError("Base32 text decodes to zero bytes")
    return decoded


__all__: list[str] = ["ALPHABET", "encode", "decode"]
