"""Backup code manager for MFA recovery.

Generates single-use recovery codes, hashes them for storage and matches
submissions against a stored set. Plaintext codes are shown to the user
once and never stored.
"""

from __future__ import annotations

import hashlib
import logging
import secrets
from collections.abc import Sequence
from dataclasses import dataclass

from .config import BackupCodePolicy
from .exceptions import EnrollmentError

logger = logging.getLogger("mfa_core.backup_codes")


@dataclass(frozen=True)
class BackupCodeBatch:
    """A freshly generated batch.

    Attributes:
        plaintext: Codes to show the user exactly once.
        hashed: Hashes to persist, in the same order.
    """

    plaintext: list[str]
    hashed: list[str]


class BackupCodeManager:
    """Backup code lifecycle: generate, hash, verify, regenerate.

    Codes are uppercase hexadecimal drawn from the OS CSPRNG. Stored hashes
    are SHA-256, optionally salted with a per-user value.

    Example:
        ```python
        manager = BackupCodeManager()

        batch = manager.regenerate_backup_codes(salt="user-123")
        print(f"Save these codes: {batch.plaintext}")
        await store.replace_backup_codes("user-123", batch.hashed)

        # Later, when the user needs to recover
        stored = await store.get_backup_code_hashes("user-123")
        index = manager.verify_backup_code(
            submitted, [c.code_hash for c in stored], salt="user-123"
        )
        if index is not None and not stored[index].used:
            await store.mark_backup_code_used("user-123", index)
        ```
    """

    def __init__(self, policy: BackupCodePolicy | None = None) -> None:
        """Initialize the manager.

        Args:
            policy: Batch size and code length (defaults to 10 codes of 8).
        """
        self.policy = policy or BackupCodePolicy()

    def _generate_code(self, length: int) -> str:
        """Generate a single uppercase hex code of ``length`` characters."""
        return secrets.token_hex((length + 1) // 2).upper()[:length]

    @staticmethod
    def normalize(code: str) -> str:
        """Normalize user input: strip whitespace and dashes, upper-case."""
        return "".join(code.split()).replace("-", "").upper()

    def generate_backup_codes(
        self,
        count: int | None = None,
        length: int | None = None,
    ) -> list[str]:
        """Generate a batch of distinct plaintext codes.

        Each code is drawn independently. A batch containing an accidental
        duplicate is discarded and redrawn as a whole.

        Args:
            count: Number of codes (default from policy).
            length: Hex characters per code (default from policy).

        Returns:
            List of plaintext codes.

        Raises:
            EnrollmentError: If count is negative, length is not positive, or
                every attempt produced a colliding batch.
        """
        if count is None:
            count = self.policy.count
        if length is None:
            length = self.policy.length
        if count < 0 or length <= 0:
            raise EnrollmentError(f"Invalid backup code batch: {count} x {length}")

        for attempt in range(1, self.policy.max_generation_attempts + 1):
            codes = [self._generate_code(length) for _ in range(count)]
            if len(set(codes)) == len(codes):
                return codes
            logger.debug(
                "Backup code batch collided on attempt %d/%d",
                attempt,
                self.policy.max_generation_attempts,
            )

        raise EnrollmentError(
            f"Could not generate {count} distinct backup codes of length {length}"
        )

    def hash_code(self, code: str, salt: str | None = None) -> str:
        """Hash one normalized code.

        Args:
            code: Plaintext code.
            salt: Optional per-user salt.

        Returns:
            Hex SHA-256 digest.
        """
        material = self.normalize(code)
        if salt is not None:
            material = f"{salt}:{material}"
        return hashlib.sha256(material.encode("utf-8")).hexdigest()

    def hash_codes(self, codes: Sequence[str], salt: str | None = None) -> list[str]:
        """Hash each code independently, preserving order."""
        return [self.hash_code(code, salt) for code in codes]

    def verify_backup_code(
        self,
        submitted: str,
        stored_hashes: Sequence[str],
        salt: str | None = None,
    ) -> int | None:
        """Find the stored hash matching a submission.

        The submission is hashed once and compared against *every* stored
        hash in constant time. The scan never stops early, so timing does
        not reveal the position of a match.

        The caller must mark the matched code used and persist it before
        reporting success.

        Args:
            submitted: Code entered by the user.
            stored_hashes: Stored hashes in issue order.
            salt: Salt used when the set was hashed.

        Returns:
            Index of the matching hash, or None.
        """
        candidate = self.hash_code(submitted, salt).encode("ascii")

        match: int | None = None
        for index, stored in enumerate(stored_hashes):
            if secrets.compare_digest(candidate, stored.encode("utf-8")) and (
                match is None
            ):
                match = index
        return match

    def regenerate_backup_codes(self, salt: str | None = None) -> BackupCodeBatch:
        """Produce a wholly new batch with matching hashes.

        The previous set must be replaced as a unit by the caller.
        """
        plaintext = self.generate_backup_codes()
        return BackupCodeBatch(
            plaintext=plaintext, hashed=self.hash_codes(plaintext, salt)
        )


__all__: list[str] = ["BackupCodeBatch", "BackupCodeManager"]
