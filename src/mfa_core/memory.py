"""In-memory collaborators for testing and development.

This module provides simple in-memory implementations of
:class:`~mfa_core.ports.ICredentialStore` and
:class:`~mfa_core.ports.IChallengeStore`.
"""

from __future__ import annotations

from dataclasses import replace

from .ports import IChallengeStore, ICredentialStore, StoredBackupCode, TotpCredential


class InMemoryCredentialStore(ICredentialStore):
    """In-memory implementation of ICredentialStore.

    Note:
        Secrets are kept in plain text in memory and lost on restart.
        Not suitable for production use.

    Example:
        ```python
        store = InMemoryCredentialStore()
        service = MfaService(credential_store=store)

        provisioning = await service.enroll_totp("user-123", "alice@example.com")
        ```
    """

    def __init__(self) -> None:
        self._credentials: dict[str, TotpCredential] = {}
        self._backup_codes: dict[str, list[StoredBackupCode]] = {}

    async def get_credential(self, user_id: str) -> TotpCredential | None:
        return self._credentials.get(user_id)

    async def save_credential(self, user_id: str, credential: TotpCredential) -> None:
        self._credentials[user_id] = credential

    async def update_last_accepted_counter(self, user_id: str, counter: int) -> None:
        credential = self._credentials.get(user_id)
        if credential is None:
            raise KeyError(f"No TOTP credential for {user_id!r}")
        self._credentials[user_id] = replace(
            credential, last_accepted_counter=counter
        )

    async def get_backup_code_hashes(self, user_id: str) -> list[StoredBackupCode]:
        return list(self._backup_codes.get(user_id, []))

    async def mark_backup_code_used(self, user_id: str, index: int) -> None:
        codes = self._backup_codes[user_id]
        codes[index] = replace(codes[index], used=True)

    async def replace_backup_codes(self, user_id: str, code_hashes: list[str]) -> None:
        self._backup_codes[user_id] = [StoredBackupCode(h) for h in code_hashes]

    def clear(self) -> None:
        """Clear all credentials and backup codes (for testing)."""
        self._credentials.clear()
        self._backup_codes.clear()


class InMemoryChallengeStore(IChallengeStore):
    """In-memory implementation of IChallengeStore.

    Holds at most one pending challenge per user. Expired challenges are
    dropped when consumed.
    """

    def __init__(self) -> None:
        self._pending: dict[str, tuple[str, float]] = {}

    async def create(self, user_id: str, challenge: str, expires_at: float) -> None:
        self._pending[user_id] = (challenge, expires_at)

    async def consume(self, user_id: str, now: float) -> str | None:
        entry = self._pending.pop(user_id, None)
        if entry is None:
            return None
        challenge, expires_at = entry
        if now >= expires_at:
            return None
        return challenge


__all__: list[str] = ["InMemoryCredentialStore", "InMemoryChallengeStore"]
