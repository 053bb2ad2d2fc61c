"""
Ports — Protocol-based interfaces for the collaborators the core delegates to.

  Core (ledger, issuer, revocation) ← Ports (protocols) ← Adapters

Each port is a Protocol (structural typing): adapters satisfy the contract by
implementing the methods, and tests substitute MagicMock fakes.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime
from pathlib import Path
from typing import Protocol, runtime_checkable

from railway.result import Result

from cactl.domain.models import (
    AltName,
    CertificateRecord,
    DistinguishedName,
    IssuerCredentials,
    SigningRequest,
)


@runtime_checkable
class X509Toolkit(Protocol):
    """
    Port: the cryptographic black box.

    Every artifact crosses this boundary as PEM bytes, except PKCS#12 bundles
    (DER bytes). Failures come back as EXTERNAL_TOOL_ERROR results.
    """

    def generate_private_key(self, bits: int, passphrase: str | None) -> Result[bytes]:
        """RSA key as PKCS#8 PEM, AES-256 encrypted when a passphrase is given."""
        ...

    def build_csr(
        self,
        key_pem: bytes,
        passphrase: str | None,
        subject: DistinguishedName,
        alt_names: Sequence[AltName] = (),
    ) -> Result[bytes]: ...

    def inspect_csr(self, csr_pem: bytes) -> Result[DistinguishedName]:
        """Subject of a CSR whose self-signature verifies."""
        ...

    def self_sign(self, request: SigningRequest, key_pem: bytes, passphrase: str) -> Result[bytes]:
        """Sign a CSR with its own key (root CA); issuer == subject."""
        ...

    def sign(self, request: SigningRequest, issuer: IssuerCredentials) -> Result[bytes]: ...

    def export_crl(
        self,
        revoked: Sequence[CertificateRecord],
        issuer: IssuerCredentials,
        crl_number: int,
        days: int,
        issued_at: datetime,
    ) -> Result[bytes]: ...

    def bundle_pkcs12(
        self,
        name: str,
        key_pem: bytes,
        certificate_pem: bytes,
        passphrase: str,
        extra_certificates_pem: bytes | None = None,
    ) -> Result[bytes]: ...


@runtime_checkable
class SecretSource(Protocol):
    """
    Port: where CA key passphrases come from.

    One instance lives for one command invocation and may cache what it
    resolved; it is passed to every operation that needs a passphrase.
    """

    def passphrase_for(self, store_path: Path) -> Result[str]: ...


@runtime_checkable
class KeystoreConverter(Protocol):
    """
    Port: optional PKCS#12 → Java keystore conversion.

    available() False simply means "skip": absence of the tool is not an error.
    """

    def available(self) -> bool: ...

    def convert(self, pkcs12_path: Path, keystore_path: Path, passphrase: str) -> Result[Path]: ...
