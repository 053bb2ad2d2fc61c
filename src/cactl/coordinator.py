"""
IntermediateCoordinator — the two-party protocol between a child CA and its parent.

  child   request_signing()     key + ca.csr, parent not involved
  parent  sign_intermediate()   v3_ca certificate, serial and ledger entry
                                in the PARENT's store, never the child's
  child   import_certificate()  ca.crt + chain.pem

Both sides are plain AuthorityStore handles in the same process. Every
precondition of the signing step is checked before a serial is touched.
"""

from __future__ import annotations

from datetime import datetime

import structlog
from railway import ErrorCode
from railway.result import Result

from cactl.chain import build_chain
from cactl.domain.models import DistinguishedName, SignedCertificate
from cactl.domain.ports import SecretSource, X509Toolkit
from cactl.issuer import CertificateIssuer
from cactl.store import CERT_FILE, CONFIG_FILE, AuthorityStore, read_artifact, write_artifact

log = structlog.get_logger()


class IntermediateCoordinator:
    """Drives request → sign → import across two stores."""

    def __init__(self, toolkit: X509Toolkit, secrets: SecretSource, issuer: CertificateIssuer) -> None:
        self._toolkit = toolkit
        self._secrets = secrets
        self._issuer = issuer

    # ─────────────────────── Child side ───────────────────────

    def request_signing(self, child: AuthorityStore) -> Result[bytes]:
        """
        Produce the child's CSR.

        Key and CSR left behind by an earlier, failed attempt are reused, so a
        retry asks the parent to sign the same request. A pending CSR whose
        subject no longer matches ca.cnf is replaced by one built from the
        same key.
        """
        if child.is_initialized:
            return Result.failure(
                ErrorCode.ALREADY_EXISTS, f"Intermediate CA {child.path} already has a certificate"
            )
        if child.csr_path.is_file() and child.key_path.is_file():
            return read_artifact(child.csr_path, "Intermediate CSR").flat_map(
                lambda csr_pem: self._reuse_or_rebuild(child, csr_pem)
            )
        return self._new_csr(child)

    def _reuse_or_rebuild(self, child: AuthorityStore, csr_pem: bytes) -> Result[bytes]:
        expected = child.config.distinguished_name

        def choose(pending: DistinguishedName) -> Result[bytes]:
            if pending == expected:
                log.info("coordinator.csr_reused", child=str(child.path))
                return Result.success(csr_pem)
            log.warning(
                "coordinator.csr_stale",
                child=str(child.path),
                pending=pending.to_openssl(),
                configured=expected.to_openssl(),
            )
            return self._discard_csr(child).flat_map(lambda _: self._new_csr(child))

        return self._toolkit.inspect_csr(csr_pem).flat_map(choose)

    def _discard_csr(self, child: AuthorityStore) -> Result[AuthorityStore]:
        def unlink() -> AuthorityStore:
            child.csr_path.unlink()
            return child

        return Result.from_computation(unlink, ErrorCode.STORAGE_ERROR, f"Cannot remove {child.csr_path}")

    def _new_csr(self, child: AuthorityStore) -> Result[bytes]:
        return self._secrets.passphrase_for(child.path).flat_map(
            lambda passphrase: self._child_key(child, passphrase).flat_map(
                lambda key_pem: self._toolkit.build_csr(
                    key_pem, passphrase, child.config.distinguished_name
                )
            )
        ).then(
            lambda csr_pem: write_artifact(child.csr_path, csr_pem)
        ).peek(lambda _: log.info("coordinator.csr_created", child=str(child.path)))

    def _child_key(self, child: AuthorityStore, passphrase: str) -> Result[bytes]:
        if child.key_path.is_file():
            return read_artifact(child.key_path, "Intermediate key")
        return self._toolkit.generate_private_key(child.config.key_bits, passphrase).then(
            lambda key_pem: write_artifact(child.key_path, key_pem, private=True)
        )

    # ─────────────────────── Parent side ───────────────────────

    def sign_intermediate(
        self,
        parent: AuthorityStore,
        child: AuthorityStore,
        issued_at: datetime,
    ) -> Result[SignedCertificate]:
        """Sign the child's pending CSR with the parent's key, in the parent's ledger."""
        return (
            self._check_signable(child)
            .flat_map(lambda days: read_artifact(child.csr_path, "Intermediate CSR").flat_map(
                lambda csr_pem: self._issuer.sign_csr(
                    parent, csr_pem, days, parent.config.ca_profile, issued_at
                )
            ))
            .peek(lambda signed: log.info(
                "coordinator.intermediate_signed",
                parent=str(parent.path),
                child=str(child.path),
                serial=signed.serial,
            ))
        )

    def _check_signable(self, child: AuthorityStore) -> Result[int]:
        """Exists, configured, not initialized, pending CSR, validity set → validity days."""
        if not AuthorityStore.exists(child.path):
            return Result.failure(ErrorCode.NOT_FOUND, f"Intermediate CA store not found: {child.path}")
        if not (child.path / CONFIG_FILE).is_file():
            return Result.failure(ErrorCode.CONFIGURATION_ERROR, f"Intermediate CA {child.path} is not configured")
        if child.is_initialized:
            return Result.failure(
                ErrorCode.ALREADY_EXISTS, f"Intermediate CA {child.path} already has {CERT_FILE}"
            )
        if not child.has_pending_csr:
            return Result.failure(ErrorCode.NOT_FOUND, f"Intermediate CA {child.path} has no pending CSR")
        return Result.from_optional(
            child.config.validity_days,
            f"Intermediate CA {child.path} has no validity period (default_days)",
            ErrorCode.CONFIGURATION_ERROR,
        )

    # ─────────────────────── Child side, again ───────────────────────

    def import_certificate(
        self,
        child: AuthorityStore,
        parent: AuthorityStore,
        certificate_pem: bytes,
    ) -> Result[AuthorityStore]:
        """Install the signed certificate and build the child's chain file."""
        parent_chain = parent.chain_pem() if parent.has_chain else Result.success(b"")
        return (
            parent_chain.map(lambda chain: build_chain(certificate_pem, chain or None))
            .then(lambda _: write_artifact(child.certificate_path, certificate_pem))
            .flat_map(lambda chain: write_artifact(child.chain_path, chain))
            .map(lambda _: child)
            .peek(lambda c: log.info("coordinator.certificate_imported", child=str(c.path)))
        )
