"""Test configuration and fixtures."""

from __future__ import annotations

import pytest
import pytest_asyncio

from mfa_core import (
    AntiAbuseGate,
    AssertionResult,
    GatePolicy,
    InMemoryAbuseStateStore,
    InMemoryChallengeStore,
    InMemoryCredentialStore,
    MfaService,
    TotpCredential,
    WebAuthnAssertion,
)
from mfa_core.otp import base32

# RFC 4226 Appendix D secret
RFC_SECRET_BYTES = b"12345678901234567890"
RFC_SECRET = base32.encode(RFC_SECRET_BYTES)


def pytest_addoption(parser):
    parser.addoption(
        "--run-timing",
        action="store_true",
        default=False,
        help="run statistical constant-time comparison checks",
    )


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers",
        "timing: statistical timing checks, skipped unless --run-timing is given",
    )


def pytest_collection_modifyitems(config, items):
    if config.getoption("--run-timing"):
        return
    skip_timing = pytest.mark.skip(reason="needs --run-timing")
    for item in items:
        if "timing" in item.keywords:
            item.add_marker(skip_timing)


class FakeClock:
    """Manually advanced time source."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class MockWebAuthnDelegate:
    """WebAuthn delegate that records calls and returns a preset result."""

    def __init__(self, verified: bool = True) -> None:
        self.result = AssertionResult(verified=verified)
        self.calls: list[tuple[WebAuthnAssertion, str]] = []

    async def verify_assertion(
        self, assertion: WebAuthnAssertion, expected_challenge: str
    ) -> AssertionResult:
        self.calls.append((assertion, expected_challenge))
        return self.result


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def gate_store() -> InMemoryAbuseStateStore:
    return InMemoryAbuseStateStore()


@pytest.fixture
def gate(gate_store: InMemoryAbuseStateStore, clock: FakeClock) -> AntiAbuseGate:
    return AntiAbuseGate(store=gate_store, policy=GatePolicy(), clock=clock)


@pytest.fixture
def credential_store() -> InMemoryCredentialStore:
    return InMemoryCredentialStore()


@pytest.fixture
def challenge_store() -> InMemoryChallengeStore:
    return InMemoryChallengeStore()


@pytest.fixture
def webauthn_delegate() -> MockWebAuthnDelegate:
    return MockWebAuthnDelegate()


@pytest.fixture
def service(
    credential_store: InMemoryCredentialStore,
    gate: AntiAbuseGate,
    challenge_store: InMemoryChallengeStore,
    webauthn_delegate: MockWebAuthnDelegate,
    clock: FakeClock,
) -> MfaService:
    return MfaService(
        credential_store=credential_store,
        gate=gate,
        webauthn_delegate=webauthn_delegate,
        challenge_store=challenge_store,
        clock=clock,
    )


@pytest.fixture
def rfc_secret() -> str:
    return RFC_SECRET


@pytest_asyncio.fixture
async def rfc_user(credential_store: InMemoryCredentialStore) -> str:
    """User enrolled with the RFC test secret."""
    await credential_store.save_credential("alice", TotpCredential(secret=RFC_SECRET))
    return "alice"
