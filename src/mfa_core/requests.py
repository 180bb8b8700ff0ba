"""Verification request models.

A request is a closed tagged variant over the supported methods, each
carrying exactly the payload its method needs. Structural validation runs
before the anti-abuse gate is consulted: it is cheap and does not depend
on the identity.
"""

from __future__ import annotations

from collections.abc import Mapping
from enum import Enum
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, StringConstraints, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from .exceptions import MissingFieldError, UnsupportedMethodError


class MfaMethod(str, Enum):
    """Second-factor methods accepted by the service."""

    TOTP = "totp"
    BACKUP_CODE = "backup_code"
    WEBAUTHN = "webauthn"


SubmittedCode = Annotated[
    str, StringConstraints(strict=True, strip_whitespace=True, min_length=1)
]

# Unpadded base64url, the encoding WebAuthn uses on the wire
Base64Url = Annotated[
    str, StringConstraints(strict=True, min_length=1, pattern=r"^[A-Za-z0-9_-]+$")
]


class WebAuthnAssertion(BaseModel):
    """Canonical authentication assertion handed to the WebAuthn delegate.

    Every binary field is an unpadded base64url string. Callers convert
    browser ``ArrayBuffer`` values before building the request; the core
    never guesses an encoding.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    credential_id: Base64Url
    authenticator_data: Base64Url
    client_data_json: Base64Url
    signature: Base64Url
    user_handle: Base64Url | None = None


class TotpRequest(BaseModel):
    """TOTP code from an authenticator app."""

    model_config = ConfigDict(frozen=True)

    method: Literal["totp"] = "totp"
    code: SubmittedCode


class BackupCodeRequest(BaseModel):
    """Single-use recovery code."""

    model_config = ConfigDict(frozen=True)

    method: Literal["backup_code"] = "backup_code"
    code: SubmittedCode


class WebAuthnRequest(BaseModel):
    """Assertion produced by a hardware or platform authenticator."""

    model_config = ConfigDict(frozen=True)

    method: Literal["webauthn"] = "webauthn"
    assertion: WebAuthnAssertion


VerificationRequest = Annotated[
    TotpRequest | BackupCodeRequest | WebAuthnRequest,
    Field(discriminator="method"),
]

_request_adapter: TypeAdapter[
    TotpRequest | BackupCodeRequest | WebAuthnRequest
] = TypeAdapter(VerificationRequest)


def parse_method(method: str | MfaMethod) -> MfaMethod:
    """Resolve a method name.

    Raises:
        UnsupportedMethodError: If the name is not a known method.
    """
    try:
        return MfaMethod(method)
    except ValueError as e:
        raise UnsupportedMethodError(method) from e


def parse_request(
    method: str | MfaMethod,
    payload: Mapping[str, Any] | None,
) -> TotpRequest | BackupCodeRequest | WebAuthnRequest:
    """Build a typed request from a method name and a raw payload.

    Args:
        method: Method name (``"totp"``, ``"backup_code"``, ``"webauthn"``).
        payload: Method-specific fields.

    Returns:
        The request variant for the method.

    Raises:
        UnsupportedMethodError: If the method is unknown.
        MissingFieldError: If a required field is absent or unusable.
    """
    resolved = parse_method(method)
    if not isinstance(payload, Mapping):
        raise MissingFieldError({"__root__": ["Payload is required"]})

    try:
        return _request_adapter.validate_python(
            {**payload, "method": resolved.value}
        )
    except PydanticValidationError as exc:
        errors: dict[str, list[str]] = {}
        for error in exc.errors():
            # Drop the discriminator tag from the location
            loc = ".".join(str(p) for p in error.get("loc", ("__root__",))[1:])
            msg = error.get("msg", "validation error")
            errors.setdefault(loc or "__root__", []).append(msg)
        raise MissingFieldError(errors) from exc


__all__: list[str] = [
    "MfaMethod",
    "WebAuthnAssertion",
    "TotpRequest",
    "BackupCodeRequest",
    "WebAuthnRequest",
    "VerificationRequest",
    "parse_method",
    "parse_request",
]
