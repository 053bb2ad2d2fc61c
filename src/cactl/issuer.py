"""
CertificateIssuer — one signing event, from request to export bundles.

Host issuance (issue_for_host):
  1. load host.cnf, require a validity period
  2. allocate <host>/<YYYY-MM-DD>-<n>/ (first unused n, never overwritten)
  3. take the operator's pre-supplied <host>/<host>.csr (CN = hostname), or
  4. generate key + CSR from the host profile
  5. sign against the store (sign_csr): serial, ledger record, newcerts archive
  6. with a local key: .keycrt, export passphrase (.pass, 0600), .p12 and,
     when keytool is available, .jks
  7. when the store has a chain file: .chained.crt (+ .chained.keycrt/.p12)

A toolkit failure aborts the issuance and leaves already written artifacts
in the instance directory for inspection; nothing is rolled back.
"""

from __future__ import annotations

import os
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field, replace
from datetime import UTC, date, datetime
from pathlib import Path
from typing import Any, TypeVar

import structlog
from railway import ErrorCode
from railway.result import Result

from cactl.adapters.secrets import generate_passphrase
from cactl.chain import concatenate
from cactl.config import AuthorityConfig
from cactl.domain.models import (
    DistinguishedName,
    ExtensionProfile,
    HostProfile,
    IssuanceInstance,
    PolicyRule,
    SignedCertificate,
    SigningRequest,
)
from cactl.domain.ports import KeystoreConverter, SecretSource, X509Toolkit
from cactl.hosts import load_host_profile
from cactl.ledger import Ledger
from cactl.store import AuthorityStore, read_artifact, write_artifact

T = TypeVar("T")
log = structlog.get_logger()


@dataclass(frozen=True, slots=True)
class CsrMaterial:
    """The request to sign and, when generated here, its private key."""

    csr_pem: bytes = field(repr=False)
    key_pem: bytes | None = field(default=None, repr=False)


def run_all(steps: Iterable[Callable[[], Result[T]]]) -> Result[list[T]]:
    """Run Result-returning steps in order; stop at the first failure."""
    done: list[T] = []
    for step in steps:
        result = step()
        if result.is_failure():
            return Result.failure_from(result.error())
        done.append(result.value())
    return Result.success(done)


def enforce_policy(config: AuthorityConfig, subject: DistinguishedName) -> Result[DistinguishedName]:
    """
    Check a request subject against the CA's DN policy.

    match    → value must equal the CA's own value for the attribute
    supplied → value must be present
    optional → anything
    A common name is always required and no value may hold a control
    character.
    """
    if subject.has_control_characters:
        return Result.failure(
            ErrorCode.VALIDATION_ERROR, f"Request subject {subject!r} contains control characters"
        )
    if not subject.common_name:
        return Result.failure(ErrorCode.VALIDATION_ERROR, f"Request subject {subject} has no common name")

    ca_subject = config.distinguished_name
    for attribute, rule in config.policy.items():
        value = subject.get(attribute)
        if rule is PolicyRule.SUPPLIED and not value:
            return Result.failure(
                ErrorCode.VALIDATION_ERROR, f"Request subject must supply {attribute}"
            )
        if rule is PolicyRule.MATCH and value != ca_subject.get(attribute):
            return Result.failure(
                ErrorCode.VALIDATION_ERROR,
                f"Request {attribute}={value!r} does not match CA {attribute}={ca_subject.get(attribute)!r}",
            )
    return Result.success(subject)


def allocate_instance(host_dir: Path, hostname: str, day: date) -> Result[IssuanceInstance]:
    """Create the first free `<day>-<n>` directory under host_dir."""

    def allocate() -> IssuanceInstance:
        index = 1
        while True:
            path = host_dir / f"{day.isoformat()}-{index}"
            try:
                path.mkdir(parents=False, exist_ok=False)
            except FileExistsError:
                index += 1
                continue
            return IssuanceInstance(hostname=hostname, issued_on=day, index=index, path=path)

    return (
        Result.from_computation(allocate, ErrorCode.STORAGE_ERROR, f"Cannot allocate instance in {host_dir}")
        .peek(lambda inst: log.info("issuer.instance_allocated", hostname=hostname, instance=inst.name))
    )


class CertificateIssuer:
    """Signs requests against an AuthorityStore and lays out issuance artifacts."""

    def __init__(
        self,
        toolkit: X509Toolkit,
        secrets: SecretSource,
        keystore: KeystoreConverter | None = None,
    ) -> None:
        self._toolkit = toolkit
        self._secrets = secrets
        self._keystore = keystore

    # ─────────────────────── Signing (shared with intermediates) ───────────────────────

    def sign_csr(
        self,
        store: AuthorityStore,
        csr_pem: bytes,
        validity_days: int,
        profile: ExtensionProfile,
        issued_at: datetime,
    ) -> Result[SignedCertificate]:
        """
        Sign a request with the store's key and record it in the store's ledger.

        Runs under the store lock. The serial is read first and only advanced
        once the toolkit returned a certificate, so a failed signing consumes
        nothing and leaves the ledger untouched.
        """
        return store.lock.execute(
            lambda: store.require_initialized()
            .flat_map(lambda _: self._toolkit.inspect_csr(csr_pem))
            .flat_map(lambda subject: enforce_policy(store.config, subject))
            .flat_map(lambda subject: store.ledger().flat_map(
                lambda ledger: self._sign_and_record(
                    store, ledger, subject, csr_pem, validity_days, profile, issued_at
                )
            ))
        )

    def _sign_and_record(
        self,
        store: AuthorityStore,
        ledger: Ledger,
        subject: DistinguishedName,
        csr_pem: bytes,
        validity_days: int,
        profile: ExtensionProfile,
        issued_at: datetime,
    ) -> Result[SignedCertificate]:
        def sign(serial: str) -> Result[SignedCertificate]:
            if serial in ledger:
                log.error("issuer.serial_reused", serial=serial, store=str(store.path))
                return Result.failure(
                    ErrorCode.INTEGRITY_ERROR,
                    f"Next serial {serial} is already in the ledger of {store.path}",
                )
            request = SigningRequest(
                csr_pem=csr_pem,
                serial=serial,
                validity_days=validity_days,
                profile=profile,
                issued_at=issued_at,
            )
            return (
                self._secrets.passphrase_for(store.path)
                .flat_map(store.issuer_credentials)
                .flat_map(lambda credentials: self._toolkit.sign(request, credentials))
                .flat_map(lambda cert_pem: self._record(store, ledger, request, subject, cert_pem))
            )

        return store.serials.peek_serial().flat_map(sign)

    def _record(
        self,
        store: AuthorityStore,
        ledger: Ledger,
        request: SigningRequest,
        subject: DistinguishedName,
        certificate_pem: bytes,
    ) -> Result[SignedCertificate]:
        return (
            store.serials.next_serial()
            .ensure(
                lambda serial: serial == request.serial,
                ErrorCode.INTEGRITY_ERROR,
                f"Serial counter of {store.path} moved while signing {request.serial}",
            )
            .flat_map(lambda serial: ledger.append(serial, subject, request.not_after))
            .then(lambda record: store.archive(record.serial, certificate_pem))
            .map(lambda record: SignedCertificate(certificate_pem=certificate_pem, record=record))
            .peek(lambda signed: log.info(
                "issuer.signed",
                store=str(store.path),
                serial=signed.serial,
                common_name=signed.record.common_name,
                profile=request.profile.value,
                not_after=signed.record.not_after.isoformat(),
            ))
        )

    # ─────────────────────── Host issuance ───────────────────────

    def issue_for_host(
        self,
        store: AuthorityStore,
        hostname: str,
        now: datetime | None = None,
    ) -> Result[IssuanceInstance]:
        issued_at = (now or datetime.now(UTC)).replace(microsecond=0)
        return store.lock.execute(
            lambda: store.require_initialized()
            .flat_map(lambda _: load_host_profile(store, hostname))
            .ensure(
                lambda profile: profile.validity_days is not None,
                ErrorCode.CONFIGURATION_ERROR,
                f"Host {hostname} has no validity period (default_days) in its configuration",
            )
            .flat_map(lambda profile: allocate_instance(
                store.host_dir(hostname), hostname, issued_at.date()
            ).flat_map(lambda instance: self._issue_into(store, profile, instance, issued_at)))
        )

    def _issue_into(
        self,
        store: AuthorityStore,
        profile: HostProfile,
        instance: IssuanceInstance,
        issued_at: datetime,
    ) -> Result[IssuanceInstance]:
        assert profile.validity_days is not None  # checked by issue_for_host
        days = profile.validity_days
        return self._acquire_csr(store, profile, instance).flat_map(
            lambda material: self.sign_csr(store, material.csr_pem, days, store.config.leaf_profile, issued_at)
            .then(lambda signed: write_artifact(instance.artifact("crt"), signed.certificate_pem))
            .then(lambda signed: self._derive_artifacts(store, instance, material, signed))
            .map(lambda signed: replace(
                instance, serial=signed.serial, key_generated=material.key_pem is not None
            ))
            .peek(lambda inst: log.info(
                "issuer.issued",
                hostname=inst.hostname,
                instance=str(inst.path),
                serial=inst.serial,
                key_generated=inst.key_generated,
            ))
        )

    def _acquire_csr(
        self,
        store: AuthorityStore,
        profile: HostProfile,
        instance: IssuanceInstance,
    ) -> Result[CsrMaterial]:
        supplied = store.host_dir(profile.hostname) / f"{profile.hostname}.csr"
        if supplied.is_file():
            return self._take_supplied_csr(profile.hostname, supplied, instance.artifact("csr"))
        return self._generate_csr(profile, instance)

    def _take_supplied_csr(self, hostname: str, supplied: Path, target: Path) -> Result[CsrMaterial]:
        """
        Move the operator's CSR into the instance; its key stays with the operator.

        Its CN must equal the hostname. A rejected CSR stays where the
        operator put it.
        """

        def move() -> Path:
            os.replace(supplied, target)
            return target

        return (
            read_artifact(supplied, "Supplied CSR")
            .then(lambda csr_pem: self._toolkit.inspect_csr(csr_pem).ensure(
                lambda subject: subject.common_name == hostname,
                ErrorCode.VALIDATION_ERROR,
                f"Supplied CSR {supplied} must carry CN={hostname}",
            ))
            .then(lambda _: Result.from_computation(move, ErrorCode.STORAGE_ERROR, f"Cannot relocate {supplied}"))
            .peek(lambda _: log.info("issuer.csr_supplied", csr=str(target)))
            .map(lambda csr_pem: CsrMaterial(csr_pem=csr_pem))
        )

    def _generate_csr(self, profile: HostProfile, instance: IssuanceInstance) -> Result[CsrMaterial]:
        return (
            self._toolkit.generate_private_key(profile.key_bits, None)
            .then(lambda key_pem: write_artifact(instance.artifact("key"), key_pem, private=True))
            .flat_map(lambda key_pem: self._toolkit.build_csr(
                key_pem, None, profile.subject, profile.alt_names
            ).map(lambda csr_pem: CsrMaterial(csr_pem=csr_pem, key_pem=key_pem)))
            .then(lambda material: write_artifact(instance.artifact("csr"), material.csr_pem))
        )

    def _derive_artifacts(
        self,
        store: AuthorityStore,
        instance: IssuanceInstance,
        material: CsrMaterial,
        signed: SignedCertificate,
    ) -> Result[list[Any]]:
        chain_result = store.chain_pem() if store.has_chain else Result.success(b"")
        return chain_result.flat_map(
            lambda chain: run_all(self._artifact_steps(instance, material, signed.certificate_pem, chain))
        )

    def _artifact_steps(
        self,
        instance: IssuanceInstance,
        material: CsrMaterial,
        cert: bytes,
        chain: bytes,
    ) -> list[Callable[[], Result[Any]]]:
        key = material.key_pem
        steps: list[Callable[[], Result[Any]]] = []
        passphrase = generate_passphrase()

        if key is not None:
            steps += [
                lambda: write_artifact(instance.artifact("keycrt"), concatenate(key, cert), private=True),
                lambda: write_artifact(instance.artifact("pass"), (passphrase + "\n").encode(), private=True),
                lambda: self._toolkit.bundle_pkcs12(instance.hostname, key, cert, passphrase).flat_map(
                    lambda p12: write_artifact(instance.artifact("p12"), p12, private=True)
                ),
            ]
            if self._keystore is not None and self._keystore.available():
                steps.append(
                    lambda: self._keystore.convert(  # type: ignore[union-attr]
                        instance.artifact("p12"), instance.artifact("jks"), passphrase
                    )
                )
            else:
                log.info("issuer.keystore_skipped", hostname=instance.hostname)

        if chain:
            steps.append(
                lambda: write_artifact(instance.artifact("chained.crt"), concatenate(cert, chain))
            )
            if key is not None:
                steps += [
                    lambda: write_artifact(
                        instance.artifact("chained.keycrt"), concatenate(key, cert, chain), private=True
                    ),
                    lambda: self._toolkit.bundle_pkcs12(
                        instance.hostname, key, cert, passphrase, extra_certificates_pem=chain
                    ).flat_map(lambda p12: write_artifact(instance.artifact("chained.p12"), p12, private=True)),
                ]
        return steps
