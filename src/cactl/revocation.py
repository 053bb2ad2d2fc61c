"""
RevocationManager — Valid → Revoked, then a fresh CRL.

Marking a ledger record revoked and regenerating crl.pem are two writes;
both happen under the store lock and always as a pair. The CRL is derived
from the full ledger every time, so its entries are exactly the Revoked
records at that moment.
"""

from __future__ import annotations

from datetime import UTC, datetime

import structlog
from railway import ErrorCode
from railway.result import Result

from cactl.config import load_authority_config
from cactl.domain.models import CertificateRecord, Host, IntermediateCaPath, Target
from cactl.domain.ports import SecretSource, X509Toolkit
from cactl.ledger import Ledger
from cactl.serials import parse_serial
from cactl.store import CONFIG_FILE, AuthorityStore

log = structlog.get_logger()


def resolve_common_name(target: Target) -> Result[str]:
    """A host is its own CN; an intermediate CA is the CN of its configuration."""
    match target:
        case Host(name):
            return Result.success(name)
        case IntermediateCaPath(path):
            return load_authority_config(path / CONFIG_FILE).map(lambda config: config.common_name)
    return Result.failure(ErrorCode.VALIDATION_ERROR, f"Unsupported revocation target: {target!r}")


class RevocationManager:
    """Revokes ledger entries and keeps crl.pem consistent with the ledger."""

    def __init__(self, toolkit: X509Toolkit, secrets: SecretSource) -> None:
        self._toolkit = toolkit
        self._secrets = secrets

    def revoke(
        self,
        store: AuthorityStore,
        target: Target,
        now: datetime | None = None,
    ) -> Result[CertificateRecord]:
        """Revoke the Valid certificate issued to `target` by `store`."""
        moment = (now or datetime.now(UTC)).replace(microsecond=0)
        return resolve_common_name(target).flat_map(
            lambda common_name: store.lock.execute(
                lambda: self._prepared_ledger(store, moment)
                .flat_map(lambda ledger: ledger.find_valid_by_common_name(common_name)
                    .flat_map(lambda record: self._revoke_record(store, ledger, record.serial, moment)))
            )
        )

    def revoke_serial(
        self,
        store: AuthorityStore,
        serial: str,
        now: datetime | None = None,
    ) -> Result[CertificateRecord]:
        """Revoke by serial; the serial must be archived in newcerts/ and in the ledger."""
        moment = (now or datetime.now(UTC)).replace(microsecond=0)
        return parse_serial(serial).flat_map(
            lambda normalized: store.lock.execute(
                lambda: store.archived_certificate(normalized)
                .flat_map(lambda _: self._prepared_ledger(store, moment))
                .flat_map(lambda ledger: self._revoke_record(store, ledger, normalized, moment))
            )
        )

    def generate_crl(self, store: AuthorityStore, now: datetime | None = None) -> Result[int]:
        """
        Rebuild crl.pem from the ledger with the current CRL number, then advance it.

        Returns the CRL number that was published.
        """
        moment = (now or datetime.now(UTC)).replace(microsecond=0)
        return store.lock.execute(
            lambda: store.require_initialized()
            .flat_map(lambda _: store.ledger())
            .flat_map(lambda ledger: self._publish_crl(store, ledger, moment))
        )

    # ─────────────────────── Internals ───────────────────────

    def _prepared_ledger(self, store: AuthorityStore, moment: datetime) -> Result[Ledger]:
        """Initialized store, ledger loaded, expiry applied so expired entries are not revocable."""
        return (
            store.require_initialized()
            .flat_map(lambda _: store.ledger())
            .then(lambda ledger: ledger.refresh_expiry(moment))
        )

    def _revoke_record(
        self,
        store: AuthorityStore,
        ledger: Ledger,
        serial: str,
        moment: datetime,
    ) -> Result[CertificateRecord]:
        return (
            ledger.mark_revoked(serial, moment)
            .then(lambda _: self._publish_crl(store, ledger, moment))
            .peek(lambda record: log.info(
                "revocation.revoked",
                store=str(store.path),
                serial=record.serial,
                common_name=record.common_name,
            ))
        )

    def _publish_crl(self, store: AuthorityStore, ledger: Ledger, moment: datetime) -> Result[int]:
        revoked = ledger.revoked()

        def export(crl_number: int) -> Result[int]:
            return (
                self._secrets.passphrase_for(store.path)
                .flat_map(store.issuer_credentials)
                .flat_map(lambda credentials: self._toolkit.export_crl(
                    revoked, credentials, crl_number, store.config.crl_days, moment
                ))
                .flat_map(lambda crl_pem: Result.from_computation(
                    lambda: store.crl_path.write_bytes(crl_pem),
                    ErrorCode.STORAGE_ERROR,
                    f"Cannot write {store.crl_path}",
                ))
                .flat_map(lambda _: store.serials.next_crl_number())
                .ensure(
                    lambda published: published == crl_number,
                    ErrorCode.INTEGRITY_ERROR,
                    f"CRL number of {store.path} moved while publishing #{crl_number}",
                )
            )

        return (
            store.serials.peek_crl_number()
            .flat_map(export)
            .peek(lambda number: log.info(
                "revocation.crl_published",
                store=str(store.path),
                crl_number=number,
                revoked=len(revoked),
            ))
        )
