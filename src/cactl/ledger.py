"""
Ledger — every serial one CA has signed, persisted as an OpenSSL index.txt.

Line format (tab separated, one record per line):

    V   260405000000Z       02  unknown /C=US/O=Acme/CN=api.example.com
    R   260405000000Z   240301120000Z   03  unknown /C=US/O=Acme/CN=old.example.com
    ^   ^ not after     ^ revoked at    ^ serial    ^ subject

Records are appended, never deleted; only the status flag changes:
Valid → Expired (time based, on refresh) and Valid → Revoked (operator).
Every mutation rewrites the file atomically before returning.
"""

from __future__ import annotations

import os
from dataclasses import replace
from datetime import UTC, datetime
from pathlib import Path

import structlog
from railway import ErrorCode
from railway.result import Result

from cactl.domain.models import CertificateRecord, CertificateStatus, DistinguishedName

log = structlog.get_logger()

INDEX_FILE = "index.txt"
INDEX_ATTR_FILE = "index.txt.attr"

_UTC_TIME = "%y%m%d%H%M%SZ"
_GENERALIZED_TIME = "%Y%m%d%H%M%SZ"


def format_timestamp(moment: datetime) -> str:
    """ASN.1 UTCTime for years before 2050, GeneralizedTime after (as OpenSSL writes them)."""
    moment = moment.astimezone(UTC)
    return moment.strftime(_UTC_TIME if moment.year < 2050 else _GENERALIZED_TIME)


def parse_timestamp(text: str) -> datetime:
    pattern = _UTC_TIME if len(text) == 13 else _GENERALIZED_TIME
    return datetime.strptime(text, pattern).replace(tzinfo=UTC)


def format_record(record: CertificateRecord) -> str:
    revoked = format_timestamp(record.revoked_at) if record.revoked_at else ""
    return "\t".join(
        (
            record.status.value,
            format_timestamp(record.not_after),
            revoked,
            record.serial,
            "unknown",
            record.subject.to_openssl(),
        )
    )


def parse_record(line: str) -> CertificateRecord:
    fields = line.rstrip("\n").split("\t")
    if len(fields) != 6:
        raise ValueError(f"Expected 6 tab-separated fields, got {len(fields)}: {line!r}")
    flag, not_after, revoked, serial, _filename, subject = fields
    return CertificateRecord(
        serial=serial.upper(),
        subject=DistinguishedName.from_openssl(subject),
        not_after=parse_timestamp(not_after),
        status=CertificateStatus(flag),
        revoked_at=parse_timestamp(revoked.split(",")[0]) if revoked else None,
    )


class Ledger:
    """
    In-memory view of index.txt bound to its file.

    Owned by exactly one AuthorityStore; callers hold the store lock around
    any sequence of mutations.
    """

    def __init__(self, path: Path, records: list[CertificateRecord] | None = None) -> None:
        self._path = path
        self._records: dict[str, CertificateRecord] = {}
        for record in records or []:
            self._records[record.serial] = record

    # ─────────────────────── Persistence ───────────────────────

    @staticmethod
    def initialize(directory: Path) -> Result[Ledger]:
        """Create an empty index.txt (plus index.txt.attr). Refuses to clobber one."""
        path = directory / INDEX_FILE
        if path.exists():
            return Result.failure(ErrorCode.ALREADY_EXISTS, f"Ledger already exists: {path}")

        def create() -> Ledger:
            path.write_text("", encoding="utf-8")
            (directory / INDEX_ATTR_FILE).write_text("unique_subject = no\n", encoding="utf-8")
            return Ledger(path)

        return Result.from_computation(create, ErrorCode.STORAGE_ERROR, f"Cannot create ledger {path}")

    @staticmethod
    def load(directory: Path) -> Result[Ledger]:
        path = directory / INDEX_FILE
        if not path.is_file():
            return Result.failure(ErrorCode.NOT_FOUND, f"Ledger not found: {path}")

        def read() -> Ledger:
            lines = path.read_text(encoding="utf-8").splitlines()
            records = [parse_record(line) for line in lines if line.strip()]
            serials = [r.serial for r in records]
            if len(serials) != len(set(serials)):
                raise ValueError("duplicate serials in ledger")
            return Ledger(path, records)

        return Result.from_computation(read, ErrorCode.INTEGRITY_ERROR, f"Corrupt ledger {path}")

    def _save(self) -> Result[Ledger]:
        def write() -> Ledger:
            tmp = self._path.with_name(f".{self._path.name}.tmp")
            body = "".join(format_record(r) + "\n" for r in self._records.values())
            tmp.write_text(body, encoding="utf-8")
            os.replace(tmp, self._path)
            return self

        return Result.from_computation(write, ErrorCode.STORAGE_ERROR, f"Cannot write ledger {self._path}")

    # ─────────────────────── Mutations ───────────────────────

    def append(self, serial: str, subject: DistinguishedName, not_after: datetime) -> Result[CertificateRecord]:
        """Insert a new Valid record. A serial collision is an integrity failure."""
        serial = serial.upper()
        if serial in self._records:
            log.error("ledger.serial_collision", serial=serial, ledger=str(self._path))
            return Result.failure(
                ErrorCode.INTEGRITY_ERROR,
                f"Serial {serial} is already recorded in {self._path}",
            )
        if not subject.common_name:
            return Result.failure(
                ErrorCode.VALIDATION_ERROR, f"Subject {subject} has no common name"
            )
        if subject.has_control_characters:
            return Result.failure(
                ErrorCode.VALIDATION_ERROR, f"Subject {subject!r} cannot be written to {self._path.name}"
            )

        record = CertificateRecord(serial=serial, subject=subject, not_after=not_after.replace(microsecond=0))
        self._records[serial] = record
        return (
            self._save()
            .map(lambda _: record)
            .peek(lambda r: log.info("ledger.appended", serial=r.serial, common_name=r.common_name))
        )

    def mark_revoked(self, serial: str, revoked_at: datetime | None = None) -> Result[CertificateRecord]:
        """
        Valid → Revoked. Any other current status is rejected.

        The CRL is NOT regenerated here: the caller must do it right after.
        """
        serial = serial.upper()
        record = self._records.get(serial)
        if record is None:
            return Result.failure(ErrorCode.NOT_FOUND, f"Serial {serial} is not in the ledger")
        if record.status is not CertificateStatus.VALID:
            return Result.failure(
                ErrorCode.BUSINESS_RULE_ERROR,
                f"Serial {serial} is {record.status.name.lower()}, only valid certificates can be revoked",
            )

        revoked = replace(
            record,
            status=CertificateStatus.REVOKED,
            revoked_at=(revoked_at or datetime.now(UTC)).replace(microsecond=0),
        )
        self._records[serial] = revoked
        return (
            self._save()
            .map(lambda _: revoked)
            .peek(lambda r: log.info("ledger.revoked", serial=r.serial, common_name=r.common_name))
        )

    def refresh_expiry(self, now: datetime | None = None) -> Result[int]:
        """Apply Valid → Expired to every record past its not-after. Returns the count."""
        now = now or datetime.now(UTC)
        expired = [
            r for r in self._records.values()
            if r.status is CertificateStatus.VALID and r.not_after <= now
        ]
        if not expired:
            return Result.success(0)

        for record in expired:
            self._records[record.serial] = replace(record, status=CertificateStatus.EXPIRED)
        log.info("ledger.expired", count=len(expired), serials=[r.serial for r in expired])
        return self._save().map(lambda _: len(expired))

    # ─────────────────────── Queries ───────────────────────

    def find_valid_by_common_name(self, common_name: str) -> Result[CertificateRecord]:
        """
        The Valid record for `common_name`.

        Several Valid records with the same name are not prevented structurally.
        The most recently issued (highest serial) wins; the rest are logged.
        """
        matches = sorted(
            (
                r for r in self._records.values()
                if r.status is CertificateStatus.VALID and r.common_name == common_name
            ),
            key=lambda r: r.serial_number,
        )
        if not matches:
            return Result.failure(
                ErrorCode.NOT_FOUND, f"No valid certificate for common name {common_name!r}"
            )
        if len(matches) > 1:
            log.warning(
                "ledger.duplicate_common_name",
                common_name=common_name,
                selected=matches[-1].serial,
                ignored=[r.serial for r in matches[:-1]],
            )
        return Result.success(matches[-1])

    def list_by_status(self, status: CertificateStatus) -> list[str]:
        return sorted(
            r.common_name or "" for r in self._records.values() if r.status is status
        )

    def revoked(self) -> list[CertificateRecord]:
        return [r for r in self._records.values() if r.status is CertificateStatus.REVOKED]

    def records(self) -> list[CertificateRecord]:
        return list(self._records.values())

    def get(self, serial: str) -> CertificateRecord | None:
        return self._records.get(serial.upper())

    @property
    def path(self) -> Path:
        return self._path

    def __contains__(self, serial: object) -> bool:
        return isinstance(serial, str) and serial.upper() in self._records

    def __len__(self) -> int:
        return len(self._records)
