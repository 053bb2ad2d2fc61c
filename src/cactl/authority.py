"""
Authority initialization — creating root and intermediate CAs.

Root:          config + key + self-signed v3_ca certificate (serial 01),
               empty ledger, serial counter at 02, initial empty CRL.
Intermediate:  config + key + CSR, signed by the parent through the
               IntermediateCoordinator, chain file, empty ledger, serial
               counter at 01, initial empty CRL.

All precondition checks run before anything is written. The first CRL
carries number 00, leaving crlnumber at 01.
"""

from __future__ import annotations

from datetime import UTC, datetime
from pathlib import Path

import structlog
from railway import ErrorCode
from railway.result import Result

from cactl.config import AuthorityConfig
from cactl.coordinator import IntermediateCoordinator
from cactl.domain.models import SigningRequest
from cactl.domain.ports import SecretSource, X509Toolkit
from cactl.ledger import Ledger
from cactl.revocation import RevocationManager
from cactl.serials import SerialAllocator, format_serial
from cactl.store import CERT_FILE, AuthorityStore, read_artifact, write_artifact

log = structlog.get_logger()

ROOT_SERIAL = 1


class AuthorityInitializer:
    """Creates AuthorityStores. Existing CA certificates are never replaced."""

    def __init__(
        self,
        toolkit: X509Toolkit,
        secrets: SecretSource,
        coordinator: IntermediateCoordinator,
        revocation: RevocationManager,
    ) -> None:
        self._toolkit = toolkit
        self._secrets = secrets
        self._coordinator = coordinator
        self._revocation = revocation

    # ─────────────────────── Root ───────────────────────

    def initialize_root(
        self,
        path: Path,
        config: AuthorityConfig,
        passphrase: str | None = None,
        now: datetime | None = None,
    ) -> Result[AuthorityStore]:
        issued_at = (now or datetime.now(UTC)).replace(microsecond=0)
        return (
            self._check_new(path, config)
            .ensure(
                lambda c: c.is_root,
                ErrorCode.VALIDATION_ERROR,
                "A root CA configuration must not name a parent",
            )
            .flat_map(lambda c: self._resolve_passphrase(path, passphrase).flat_map(
                lambda secret: AuthorityStore.create(path, c).flat_map(
                    lambda store: store.lock.execute(
                        lambda: self._self_sign(store, secret, issued_at)
                        .flat_map(lambda _: self._open_books(store, first_serial=ROOT_SERIAL + 1))
                        .flat_map(lambda _: self._revocation.generate_crl(store, issued_at))
                        .map(lambda _: store)
                    )
                )
            ))
            .peek(lambda store: log.info(
                "authority.root_initialized", store=str(store.path), common_name=store.config.common_name
            ))
        )

    def _self_sign(self, store: AuthorityStore, passphrase: str, issued_at: datetime) -> Result[bytes]:
        key_result = (
            read_artifact(store.key_path, "CA key")
            if store.key_path.is_file()
            else self._toolkit.generate_private_key(store.config.key_bits, passphrase).then(
                lambda key_pem: write_artifact(store.key_path, key_pem, private=True)
            )
        )
        days = store.config.validity_days or 0
        return key_result.flat_map(
            lambda key_pem: self._toolkit.build_csr(key_pem, passphrase, store.config.distinguished_name)
            .map(lambda csr_pem: SigningRequest(
                csr_pem=csr_pem,
                serial=format_serial(ROOT_SERIAL),
                validity_days=days,
                profile=store.config.ca_profile,
                issued_at=issued_at,
            ))
            .flat_map(lambda request: self._toolkit.self_sign(request, key_pem, passphrase))
        ).then(lambda cert_pem: write_artifact(store.certificate_path, cert_pem))

    # ─────────────────────── Intermediate ───────────────────────

    def initialize_intermediate(
        self,
        path: Path,
        config: AuthorityConfig,
        parent: AuthorityStore,
        now: datetime | None = None,
    ) -> Result[AuthorityStore]:
        """
        Create an intermediate CA signed by `parent`.

        When the parent cannot sign, the child keeps its key and pending CSR
        (a retry reuses them) but has no certificate, and neither ledger
        gained an entry.
        """
        issued_at = (now or datetime.now(UTC)).replace(microsecond=0)
        child_config = config.model_copy(update={"parent": parent.path})
        return (
            parent.require_initialized()
            .flat_map(lambda _: self._check_new(path, child_config))
            .flat_map(lambda c: AuthorityStore.create(path, c))
            .flat_map(lambda child: child.lock.execute(
                lambda: self._coordinator.request_signing(child)
                .flat_map(lambda _: self._coordinator.sign_intermediate(parent, child, issued_at))
                .flat_map(lambda signed: self._coordinator.import_certificate(
                    child, parent, signed.certificate_pem
                ))
                .flat_map(lambda _: self._open_books(child, first_serial=1))
                .flat_map(lambda _: self._revocation.generate_crl(child, issued_at))
                .map(lambda _: child)
            ))
            .peek(lambda child: log.info(
                "authority.intermediate_initialized",
                store=str(child.path),
                parent=str(parent.path),
                common_name=child.config.common_name,
            ))
        )

    # ─────────────────────── Shared ───────────────────────

    def _check_new(self, path: Path, config: AuthorityConfig) -> Result[AuthorityConfig]:
        if (path / CERT_FILE).exists():
            return Result.failure(
                ErrorCode.ALREADY_EXISTS, f"CA certificate already exists: {path / CERT_FILE}"
            )
        if config.validity_days is None:
            return Result.failure(
                ErrorCode.CONFIGURATION_ERROR, "CA configuration has no validity period (default_days)"
            )
        return Result.success(config)

    def _resolve_passphrase(self, path: Path, passphrase: str | None) -> Result[str]:
        if passphrase:
            return Result.success(passphrase)
        return self._secrets.passphrase_for(path)

    def _open_books(self, store: AuthorityStore, first_serial: int) -> Result[SerialAllocator]:
        return Ledger.initialize(store.path).flat_map(
            lambda _: SerialAllocator.initialize(store.path, serial=first_serial, crl_number=0)
        )
