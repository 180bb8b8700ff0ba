"""MfaService — public entry point for second-factor verification.

Every verification flows through the same pipeline::

    parse request ─▶ gate (rate limit, lockout) ─▶ method handler ─▶ gate outcome
                                                   │ totp: engine + replay counter
                                                   │ backup_code: manager + single use
                                                   └ webauthn: challenge + delegate

Handlers raise; :meth:`MfaService.verify` is the only place exceptions
are turned into a :class:`~mfa_core.results.VerificationResult`.
"""

from __future__ import annotations

import logging
import math
import secrets
import time
from typing import TYPE_CHECKING, Any, TypeVar

from typing_extensions import assert_never

from .backup_codes import BackupCodeManager
from .config import MfaConfig
from .exceptions import (
    AlreadyUsedError,
    EnrollmentError,
    FormatError,
    InvalidCredentialError,
    LockedError,
    MfaCoreError,
    MissingFieldError,
    RateLimitedError,
    StorageUnavailableError,
    UnsupportedMethodError,
    ValidationError,
)
from .gate import DEFAULT_PURPOSE, AntiAbuseGate
from .memory import InMemoryChallengeStore
from .otp import base32
from .otp.engine import generate_secret, verify_totp
from .otp.provisioning import build_otpauth_uri, format_manual_key
from .ports import TotpCredential
from .requests import (
    BackupCodeRequest,
    MfaMethod,
    TotpRequest,
    WebAuthnRequest,
    parse_method,
    parse_request,
)
from .results import MfaErrorCode, MfaStatus, TotpProvisioning, VerificationResult

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Mapping

    from .gate import GateOutcome
    from .ports import IChallengeStore, ICredentialStore, IWebAuthnDelegate

logger = logging.getLogger("mfa_core.service")

T = TypeVar("T")

ENROLL_PURPOSE = "enroll"


class MfaService:
    """Verify and enroll second factors.

    Collaborators are injected; nothing is global. Each verification passes
    the anti-abuse gate exactly once and records exactly one outcome.

    Example:
        ```python
        service = MfaService(
            credential_store=MyCredentialStore(),
            webauthn_delegate=MyWebAuthnVerifier(),
        )

        # Enrollment - show the QR code and backup codes once
        provisioning = await service.enroll_totp("user-123", "alice@example.com")

        # Verification
        result = await service.verify("user-123", "totp", {"code": "492039"})
        if not result.success:
            print(result.error, result.message)
        ```
    """

    def __init__(
        self,
        *,
        credential_store: ICredentialStore,
        gate: AntiAbuseGate | None = None,
        webauthn_delegate: IWebAuthnDelegate | None = None,
        challenge_store: IChallengeStore | None = None,
        config: MfaConfig | None = None,
        backup_manager: BackupCodeManager | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the service.

        Args:
            credential_store: TOTP credential and backup code persistence.
            gate: Anti-abuse gate (a private in-memory gate if omitted).
            webauthn_delegate: WebAuthn verifier. Without one the
                ``webauthn`` method is unsupported.
            challenge_store: Pending WebAuthn challenges (in-memory if omitted).
            config: Policies for every component.
            backup_manager: Backup code manager (built from config if omitted).
            clock: Time source in seconds since the epoch.
        """
        self.config = config or MfaConfig()
        self.credential_store = credential_store
        self.gate = gate or AntiAbuseGate(policy=self.config.gate, clock=clock)
        self.webauthn_delegate = webauthn_delegate
        self.challenge_store = challenge_store or InMemoryChallengeStore()
        self.backup_codes = backup_manager or BackupCodeManager(
            self.config.backup_codes
        )
        self._clock = clock

    # ═══════════════════════════════════════════════════════════════
    # HELPERS
    # ═══════════════════════════════════════════════════════════════

    async def _call(self, call: Awaitable[T], operation: str) -> T:
        """Await a collaborator, turning any failure into fail-closed."""
        try:
            return await call
        except MfaCoreError:
            raise
        except Exception as e:
            logger.warning("Collaborator call %s failed", operation, exc_info=True)
            raise StorageUnavailableError(f"{operation} failed") from e

    def _salt(self, user_id: str) -> str | None:
        return user_id if self.config.backup_codes.salt_per_user else None

    # ═══════════════════════════════════════════════════════════════
    # VERIFICATION
    # ═══════════════════════════════════════════════════════════════

    async def verify(
        self,
        identity: str,
        method: str | MfaMethod,
        payload: Mapping[str, Any] | None,
        *,
        now: float | None = None,
    ) -> VerificationResult:
        """Verify one second-factor submission.

        Structural validation runs first and does not touch the gate.

        Args:
            identity: User id. Gate state and credentials are keyed by it.
            method: ``"totp"``, ``"backup_code"`` or ``"webauthn"``.
            payload: Method fields: ``{"code": ...}`` for TOTP and backup
                codes, ``{"assertion": {...}}`` for WebAuthn.
            now: Override for the current time.

        Returns:
            VerificationResult. This method does not raise for refused or
            failed verifications.
        """
        try:
            request = parse_request(method, payload)
        except UnsupportedMethodError:
            logger.debug("Rejected unsupported MFA method %r", method)
            return VerificationResult.failure(None, MfaErrorCode.UNSUPPORTED_METHOD)
        except MissingFieldError as e:
            logger.debug("Rejected incomplete %s request: %s", method, e.fields)
            return VerificationResult.failure(
                parse_method(method), MfaErrorCode.MISSING_FIELD
            )

        return await self.verify_request(identity, request, now=now)

    async def verify_request(
        self,
        identity: str,
        request: TotpRequest | BackupCodeRequest | WebAuthnRequest,
        *,
        now: float | None = None,
    ) -> VerificationResult:
        """Verify an already parsed request.

        See :meth:`verify`.
        """
        method = MfaMethod(request.method)
        if isinstance(request, WebAuthnRequest) and self.webauthn_delegate is None:
            logger.debug("WebAuthn requested but no delegate is configured")
            return VerificationResult.failure(method, MfaErrorCode.UNSUPPORTED_METHOD)

        now = self._clock() if now is None else now
        try:
            async with self.gate.attempt(identity, DEFAULT_PURPOSE, now=now) as attempt:
                try:
                    await self._dispatch(identity, request, now)
                except (InvalidCredentialError, AlreadyUsedError) as e:
                    outcome = attempt.fail()
                    return self._credential_failure(method, e, outcome, now)
                attempt.succeed()
        except RateLimitedError as e:
            return VerificationResult.failure(
                method,
                MfaErrorCode.RATE_LIMITED,
                retry_after_seconds=e.retry_after,
            )
        except LockedError as e:
            logger.info("MFA verification for %s refused: locked", identity)
            return VerificationResult.failure(
                method,
                MfaErrorCode.LOCKED,
                remaining_attempts=0,
                lockout_seconds_remaining=e.seconds_remaining,
            )
        except StorageUnavailableError:
            logger.warning(
                "MFA verification for %s failed closed: storage unavailable",
                identity,
            )
            return VerificationResult.failure(
                method, MfaErrorCode.STORAGE_UNAVAILABLE
            )

        logger.info("MFA verification succeeded for %s via %s", identity, method.value)
        return VerificationResult.ok(method)

    def _credential_failure(
        self,
        method: MfaMethod,
        error: MfaCoreError,
        outcome: GateOutcome,
        now: float,
    ) -> VerificationResult:
        code = (
            MfaErrorCode.ALREADY_USED
            if isinstance(error, AlreadyUsedError)
            else MfaErrorCode.INVALID_CREDENTIAL
        )
        lockout_seconds: int | None = None
        if outcome.locked_until is not None:
            lockout_seconds = max(1, math.ceil(outcome.locked_until - now))
        return VerificationResult.failure(
            method,
            code,
            remaining_attempts=outcome.remaining_attempts,
            lockout_seconds_remaining=lockout_seconds,
        )

    async def _dispatch(
        self,
        identity: str,
        request: TotpRequest | BackupCodeRequest | WebAuthnRequest,
        now: float,
    ) -> None:
        if isinstance(request, TotpRequest):
            await self._verify_totp(identity, request, now)
        elif isinstance(request, BackupCodeRequest):
            await self._verify_backup_code(identity, request)
        elif isinstance(request, WebAuthnRequest):
            await self._verify_webauthn(identity, request, now)
        else:
            assert_never(request)

    async def _verify_totp(
        self, identity: str, request: TotpRequest, now: float
    ) -> None:
        credential = await self._call(
            self.credential_store.get_credential(identity), "get_credential"
        )
        if credential is None:
            raise InvalidCredentialError("TOTP is not enrolled")

        try:
            verification = verify_totp(
                request.code,
                credential.secret,
                now,
                window=credential.window,
                period=credential.period,
                digits=credential.digits,
            )
        except ValidationError as e:
            raise InvalidCredentialError("Code did not verify") from e
        except (FormatError, ValueError) as e:
            logger.warning("Stored TOTP credential for %s is unusable: %s", identity, e)
            raise InvalidCredentialError("Code did not verify") from e

        counter = verification.counter
        if not verification.valid or counter is None:
            raise InvalidCredentialError("Code did not verify")

        last = credential.last_accepted_counter
        if last is not None and counter <= last:
            raise AlreadyUsedError("TOTP code was already used")

        await self._call(
            self.credential_store.update_last_accepted_counter(identity, counter),
            "update_last_accepted_counter",
        )

    async def _verify_backup_code(
        self, identity: str, request: BackupCodeRequest
    ) -> None:
        stored = await self._call(
            self.credential_store.get_backup_code_hashes(identity),
            "get_backup_code_hashes",
        )
        index = self.backup_codes.verify_backup_code(
            request.code,
            [code.code_hash for code in stored],
            salt=self._salt(identity),
        )
        if index is None:
            raise InvalidCredentialError("Backup code did not verify")
        if stored[index].used:
            raise AlreadyUsedError("Backup code was already used")

        await self._call(
            self.credential_store.mark_backup_code_used(identity, index),
            "mark_backup_code_used",
        )

    async def _verify_webauthn(
        self, identity: str, request: WebAuthnRequest, now: float
    ) -> None:
        delegate = self.webauthn_delegate
        if delegate is None:
            raise UnsupportedMethodError(MfaMethod.WEBAUTHN)

        challenge = await self._call(
            self.challenge_store.consume(identity, now), "consume_challenge"
        )
        if challenge is None:
            raise InvalidCredentialError("No pending WebAuthn challenge")

        result = await self._call(
            delegate.verify_assertion(request.assertion, challenge),
            "verify_assertion",
        )
        if not result.verified:
            logger.debug(
                "WebAuthn assertion for %s rejected: %s", identity, result.error
            )
            raise InvalidCredentialError("Assertion did not verify")

    # ═══════════════════════════════════════════════════════════════
    # ENROLLMENT
    # ═══════════════════════════════════════════════════════════════

    async def enroll_totp(
        self,
        user_id: str,
        account_name: str,
        *,
        now: float | None = None,
    ) -> TotpProvisioning:
        """Enroll a new TOTP credential with a fresh set of backup codes.

        Any previous credential and backup code set are replaced. The
        returned plaintext material is not stored and cannot be fetched
        again.

        Args:
            user_id: User identifier.
            account_name: Label shown in the authenticator app.
            now: Override for the current time.

        Returns:
            TotpProvisioning to present to the user once.

        Raises:
            EnrollmentError: If the user id is empty or codes cannot be drawn.
            RateLimitedError: Too many enrollment requests for this user.
            StorageUnavailableError: A store call failed.
        """
        if not user_id:
            raise EnrollmentError("A user id is required for enrollment")
        await self.gate.throttle(user_id, ENROLL_PURPOSE, now=now)

        policy = self.config.totp
        secret = base32.encode(generate_secret(policy.secret_length))
        batch = self.backup_codes.regenerate_backup_codes(salt=self._salt(user_id))

        credential = TotpCredential(
            secret=secret,
            digits=policy.digits,
            period=policy.period,
            window=policy.window,
        )
        await self._call(
            self.credential_store.save_credential(user_id, credential),
            "save_credential",
        )
        await self._call(
            self.credential_store.replace_backup_codes(user_id, batch.hashed),
            "replace_backup_codes",
        )
        logger.info("Enrolled TOTP for %s", user_id)

        return TotpProvisioning(
            secret_base32=secret,
            otpauth_uri=build_otpauth_uri(
                secret,
                account_name,
                issuer=policy.issuer,
                digits=policy.digits,
                period=policy.period,
            ),
            manual_key=format_manual_key(secret),
            backup_codes=batch.plaintext,
        )

    async def regenerate_backup_codes(
        self, user_id: str, *, now: float | None = None
    ) -> list[str]:
        """Replace the user's whole backup code set.

        Returns:
            The new plaintext codes, shown once.

        Raises:
            RateLimitedError: Too many enrollment requests for this user.
            StorageUnavailableError: A store call failed.
        """
        await self.gate.throttle(user_id, ENROLL_PURPOSE, now=now)
        batch = self.backup_codes.regenerate_backup_codes(salt=self._salt(user_id))
        await self._call(
            self.credential_store.replace_backup_codes(user_id, batch.hashed),
            "replace_backup_codes",
        )
        logger.info("Regenerated %d backup codes for %s", len(batch.plaintext), user_id)
        return batch.plaintext

    async def issue_webauthn_challenge(
        self, user_id: str, *, now: float | None = None
    ) -> str:
        """Issue a single-use challenge for the next WebAuthn assertion.

        Issuing replaces any challenge still pending for the user.

        Returns:
            Unpadded base64url challenge to pass to the browser.

        Raises:
            UnsupportedMethodError: If no WebAuthn delegate is configured.
            StorageUnavailableError: The challenge store failed.
        """
        if self.webauthn_delegate is None:
            raise UnsupportedMethodError(MfaMethod.WEBAUTHN)

        now = self._clock() if now is None else now
        policy = self.config.challenge
        challenge = secrets.token_urlsafe(policy.challenge_bytes)
        await self._call(
            self.challenge_store.create(user_id, challenge, now + policy.ttl_seconds),
            "create_challenge",
        )
        logger.debug("Issued WebAuthn challenge for %s", user_id)
        return challenge

    async def get_status(self, user_id: str) -> MfaStatus:
        """Summarize which second factors a user can currently use.

        Raises:
            StorageUnavailableError: A store call failed.
        """
        credential = await self._call(
            self.credential_store.get_credential(user_id), "get_credential"
        )
        stored = await self._call(
            self.credential_store.get_backup_code_hashes(user_id),
            "get_backup_code_hashes",
        )
        return MfaStatus(
            totp_enrolled=credential is not None,
            backup_codes_remaining=sum(1 for code in stored if not code.used),
            webauthn_available=self.webauthn_delegate is not None,
        )


__all__: list[str] = ["ENROLL_PURPOSE", "MfaService"]
