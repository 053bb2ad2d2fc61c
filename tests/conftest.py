"""
Shared test fixtures for the cactl test suite.

Key material is real (cryptography, RSA-2048 to keep the suite fast); secrets
come from an in-memory source so nothing prompts. All operations run at a
fixed moment so certificate lifetimes do not depend on the wall clock.
"""

from __future__ import annotations

from datetime import UTC, datetime
from pathlib import Path

import pytest
from railway.assertions import ResultAssertions

from cactl.adapters.secrets import InMemorySecretSource
from cactl.adapters.x509_toolkit import CryptographyToolkit
from cactl.authority import AuthorityInitializer
from cactl.config import AuthorityConfig
from cactl.coordinator import IntermediateCoordinator
from cactl.hosts import HostOnboarder
from cactl.issuer import CertificateIssuer
from cactl.revocation import RevocationManager
from cactl.store import AuthorityStore

NOW = datetime(2024, 1, 1, 12, 0, 0, tzinfo=UTC)
PASSPHRASE = "correct horse battery staple"
TEST_KEY_BITS = 2048


def make_config(common_name: str, days: int | None = 825, **overrides: object) -> AuthorityConfig:
    """An AuthorityConfig under the Acme organization with small test keys."""
    return AuthorityConfig(
        subject={"C": "US", "O": "Acme", "CN": common_name},
        validity_days=days,
        key_bits=TEST_KEY_BITS,
        **overrides,
    )


@pytest.fixture(scope="session")
def toolkit() -> CryptographyToolkit:
    return CryptographyToolkit()


@pytest.fixture()
def secrets() -> InMemorySecretSource:
    return InMemorySecretSource(default=PASSPHRASE)


@pytest.fixture()
def issuer(toolkit: CryptographyToolkit, secrets: InMemorySecretSource) -> CertificateIssuer:
    return CertificateIssuer(toolkit, secrets)


@pytest.fixture()
def revocation(toolkit: CryptographyToolkit, secrets: InMemorySecretSource) -> RevocationManager:
    return RevocationManager(toolkit, secrets)


@pytest.fixture()
def coordinator(
    toolkit: CryptographyToolkit, secrets: InMemorySecretSource, issuer: CertificateIssuer
) -> IntermediateCoordinator:
    return IntermediateCoordinator(toolkit, secrets, issuer)


@pytest.fixture()
def initializer(
    toolkit: CryptographyToolkit,
    secrets: InMemorySecretSource,
    coordinator: IntermediateCoordinator,
    revocation: RevocationManager,
) -> AuthorityInitializer:
    return AuthorityInitializer(toolkit, secrets, coordinator, revocation)


@pytest.fixture()
def onboarder() -> HostOnboarder:
    return HostOnboarder()


@pytest.fixture()
def root_store(tmp_path: Path, initializer: AuthorityInitializer) -> AuthorityStore:
    """An initialized root CA named 'Acme Root' under tmp_path/root."""
    result = initializer.initialize_root(tmp_path / "root", make_config("Acme Root", days=3650), now=NOW)
    return ResultAssertions.assert_success(result)


@pytest.fixture()
def intermediate_store(
    tmp_path: Path, initializer: AuthorityInitializer, root_store: AuthorityStore
) -> AuthorityStore:
    """An initialized intermediate CA 'Acme Issuing' signed by root_store."""
    result = initializer.initialize_intermediate(
        tmp_path / "issuing", make_config("Acme Issuing", days=1825), root_store, now=NOW
    )
    return ResultAssertions.assert_success(result)
