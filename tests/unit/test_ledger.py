"""
Unit tests for the Ledger — index.txt persistence and the status state machine.

State machine under test:
  Valid → Expired   (refresh_expiry, time based)
  Valid → Revoked   (mark_revoked, terminal)
  anything else     → rejected
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest
from railway import ErrorCode, ResultAssertions

from cactl.domain.models import CertificateRecord, CertificateStatus, DistinguishedName
from cactl.ledger import (
    INDEX_ATTR_FILE,
    INDEX_FILE,
    Ledger,
    format_record,
    format_timestamp,
    parse_record,
    parse_timestamp,
)

NOW = datetime(2024, 1, 1, 12, 0, 0, tzinfo=UTC)


def _subject(cn: str) -> DistinguishedName:
    return DistinguishedName((("C", "US"), ("O", "Acme"), ("CN", cn)))


def _ledger(tmp_path: Path) -> Ledger:
    return ResultAssertions.assert_success(Ledger.initialize(tmp_path))


class TestTimestamps:
    def test_utc_time_before_2050(self) -> None:
        assert format_timestamp(datetime(2026, 4, 5, 0, 0, 0, tzinfo=UTC)) == "260405000000Z"

    def test_generalized_time_from_2050(self) -> None:
        assert format_timestamp(datetime(2051, 1, 2, 3, 4, 5, tzinfo=UTC)) == "20510102030405Z"

    @pytest.mark.parametrize("text", ["260405000000Z", "20510102030405Z"])
    def test_parse_inverts_format(self, text: str) -> None:
        assert format_timestamp(parse_timestamp(text)) == text


class TestRecordFormat:
    def test_valid_record_has_empty_revocation_field(self) -> None:
        record = CertificateRecord(
            serial="02", subject=_subject("api.example.com"), not_after=datetime(2026, 4, 5, tzinfo=UTC)
        )
        assert format_record(record) == "V\t260405000000Z\t\t02\tunknown\t/C=US/O=Acme/CN=api.example.com"

    def test_parses_openssl_revoked_line(self) -> None:
        """
        GIVEN an index.txt line written by `openssl ca -revoke`
        WHEN parsed
        THEN status, serial, revocation time and subject are recovered.
        """
        line = "R\t260405000000Z\t240301120000Z\t0a\tunknown\t/C=US/O=Acme/CN=old.example.com\n"

        record = parse_record(line)

        assert record.status is CertificateStatus.REVOKED
        assert record.serial == "0A"
        assert record.revoked_at == datetime(2024, 3, 1, 12, 0, 0, tzinfo=UTC)
        assert record.common_name == "old.example.com"

    def test_rejects_short_line(self) -> None:
        with pytest.raises(ValueError, match="6 tab-separated"):
            parse_record("V\t260405000000Z\t02")


class TestInitializeAndLoad:
    def test_initialize_creates_empty_index_and_attr(self, tmp_path: Path) -> None:
        ledger = _ledger(tmp_path)

        assert len(ledger) == 0
        assert (tmp_path / INDEX_FILE).read_text() == ""
        assert "unique_subject = no" in (tmp_path / INDEX_ATTR_FILE).read_text()

    def test_initialize_refuses_existing_ledger(self, tmp_path: Path) -> None:
        _ledger(tmp_path)
        ResultAssertions.assert_failure(Ledger.initialize(tmp_path), ErrorCode.ALREADY_EXISTS)

    def test_load_missing_is_not_found(self, tmp_path: Path) -> None:
        ResultAssertions.assert_failure(Ledger.load(tmp_path), ErrorCode.NOT_FOUND)

    def test_load_rejects_duplicate_serials(self, tmp_path: Path) -> None:
        """
        GIVEN an index.txt with the same serial twice
        WHEN loaded
        THEN the ledger is reported as corrupt (INTEGRITY_ERROR).
        """
        line = "V\t260405000000Z\t\t02\tunknown\t/CN=a\n"
        (tmp_path / INDEX_FILE).write_text(line + line)

        ResultAssertions.assert_failure(Ledger.load(tmp_path), ErrorCode.INTEGRITY_ERROR)

    def test_load_rejects_garbage(self, tmp_path: Path) -> None:
        (tmp_path / INDEX_FILE).write_text("this is not an index\n")
        ResultAssertions.assert_failure(Ledger.load(tmp_path), ErrorCode.INTEGRITY_ERROR)

    def test_mutations_are_persisted(self, tmp_path: Path) -> None:
        """
        GIVEN one appended and one revoked record
        WHEN the ledger is loaded from disk again
        THEN both records are there with their statuses.
        """
        ledger = _ledger(tmp_path)
        ledger.append("02", _subject("a.example.com"), NOW + timedelta(days=30))
        ledger.append("03", _subject("b.example.com"), NOW + timedelta(days=30))
        ledger.mark_revoked("03", NOW)

        reloaded = ResultAssertions.assert_success(Ledger.load(tmp_path))

        assert reloaded.get("02").status is CertificateStatus.VALID  # type: ignore[union-attr]
        assert reloaded.get("03").status is CertificateStatus.REVOKED  # type: ignore[union-attr]
        assert reloaded.get("03").revoked_at == NOW  # type: ignore[union-attr]


class TestAppend:
    def test_appends_valid_record(self, tmp_path: Path) -> None:
        ledger = _ledger(tmp_path)

        record = ResultAssertions.assert_success(
            ledger.append("02", _subject("api.example.com"), NOW + timedelta(days=825, microseconds=5))
        )

        assert record.status is CertificateStatus.VALID
        assert record.not_after.microsecond == 0
        assert "02" in ledger

    def test_duplicate_serial_is_integrity_error(self, tmp_path: Path) -> None:
        ledger = _ledger(tmp_path)
        ledger.append("02", _subject("a"), NOW)

        result = ledger.append("02", _subject("b"), NOW)

        ResultAssertions.assert_failure(result, ErrorCode.INTEGRITY_ERROR)
        assert ledger.get("02").common_name == "a"  # type: ignore[union-attr]

    def test_subject_without_cn_is_rejected(self, tmp_path: Path) -> None:
        ledger = _ledger(tmp_path)

        result = ledger.append("02", DistinguishedName((("O", "Acme"),)), NOW)

        ResultAssertions.assert_failure(result, ErrorCode.VALIDATION_ERROR)
        assert len(ledger) == 0

    @pytest.mark.parametrize(
        "cn",
        [
            "api.example.com\nX",
            "api\tx",
            "api\r",
            "x\nR\t240101000000Z\t240101000000Z\t03\tunknown\t/CN=victim",
        ],
    )
    def test_control_characters_never_reach_the_file(self, tmp_path: Path, cn: str) -> None:
        """
        GIVEN a subject whose CN holds a tab or line break
        WHEN it is appended
        THEN VALIDATION_ERROR, and index.txt still loads with no records.
        """
        ledger = _ledger(tmp_path)

        result = ledger.append("02", _subject(cn), NOW)

        ResultAssertions.assert_failure(result, ErrorCode.VALIDATION_ERROR)
        assert len(ledger) == 0
        assert len(ResultAssertions.assert_success(Ledger.load(tmp_path))) == 0


class TestMarkRevoked:
    def test_valid_becomes_revoked(self, tmp_path: Path) -> None:
        ledger = _ledger(tmp_path)
        ledger.append("02", _subject("api"), NOW + timedelta(days=1))

        record = ResultAssertions.assert_success(ledger.mark_revoked("02", NOW))

        assert record.status is CertificateStatus.REVOKED
        assert ledger.revoked() == [record]

    def test_unknown_serial_is_not_found(self, tmp_path: Path) -> None:
        ResultAssertions.assert_failure(_ledger(tmp_path).mark_revoked("FF", NOW), ErrorCode.NOT_FOUND)

    def test_revoked_cannot_be_revoked_again(self, tmp_path: Path) -> None:
        ledger = _ledger(tmp_path)
        ledger.append("02", _subject("api"), NOW + timedelta(days=1))
        ledger.mark_revoked("02", NOW)

        ResultAssertions.assert_failure(ledger.mark_revoked("02", NOW), ErrorCode.BUSINESS_RULE_ERROR)

    def test_expired_cannot_be_revoked(self, tmp_path: Path) -> None:
        """
        GIVEN a record past its not-after, refreshed to Expired
        WHEN revocation is attempted
        THEN it fails: Expired → Revoked is not a transition.
        """
        ledger = _ledger(tmp_path)
        ledger.append("02", _subject("api"), NOW - timedelta(days=1))
        ledger.refresh_expiry(NOW)

        ResultAssertions.assert_failure(ledger.mark_revoked("02", NOW), ErrorCode.BUSINESS_RULE_ERROR)


class TestRefreshExpiry:
    def test_only_valid_records_past_not_after_expire(self, tmp_path: Path) -> None:
        ledger = _ledger(tmp_path)
        ledger.append("02", _subject("old"), NOW - timedelta(days=1))
        ledger.append("03", _subject("current"), NOW + timedelta(days=1))
        ledger.append("04", _subject("revoked-old"), NOW + timedelta(days=1))
        ledger.mark_revoked("04", NOW)

        count = ResultAssertions.assert_success(ledger.refresh_expiry(NOW + timedelta(days=2)))

        assert count == 2
        assert ledger.list_by_status(CertificateStatus.EXPIRED) == ["current", "old"]
        assert ledger.list_by_status(CertificateStatus.REVOKED) == ["revoked-old"]

    def test_nothing_to_expire_returns_zero(self, tmp_path: Path) -> None:
        assert ResultAssertions.assert_success(_ledger(tmp_path).refresh_expiry(NOW)) == 0


class TestFindValidByCommonName:
    def test_ignores_non_valid_records(self, tmp_path: Path) -> None:
        ledger = _ledger(tmp_path)
        ledger.append("02", _subject("api"), NOW + timedelta(days=1))
        ledger.mark_revoked("02", NOW)

        ResultAssertions.assert_failure(ledger.find_valid_by_common_name("api"), ErrorCode.NOT_FOUND)

    def test_duplicate_valid_names_pick_highest_serial(self, tmp_path: Path) -> None:
        """
        GIVEN two Valid records for the same common name
        WHEN looked up by name
        THEN the most recently issued (highest serial) is returned.
        """
        ledger = _ledger(tmp_path)
        ledger.append("02", _subject("api"), NOW + timedelta(days=1))
        ledger.append("0A", _subject("api"), NOW + timedelta(days=1))
        ledger.append("03", _subject("other"), NOW + timedelta(days=1))

        record = ResultAssertions.assert_success(ledger.find_valid_by_common_name("api"))

        assert record.serial == "0A"
