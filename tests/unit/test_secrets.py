"""
Unit tests for secret sources — CA key passphrases.
"""

from __future__ import annotations

import stat
from pathlib import Path
from unittest.mock import MagicMock

from railway import ErrorCode, ResultAssertions

from cactl.adapters.secrets import FileSecretSource, InMemorySecretSource, generate_passphrase


class TestInMemorySecretSource:
    def test_per_store_overrides_default(self, tmp_path: Path) -> None:
        source = InMemorySecretSource(default="default", per_store={tmp_path / "root": "root-pass"})

        assert ResultAssertions.assert_success(source.passphrase_for(tmp_path / "root")) == "root-pass"
        assert ResultAssertions.assert_success(source.passphrase_for(tmp_path / "other")) == "default"

    def test_nothing_configured(self, tmp_path: Path) -> None:
        ResultAssertions.assert_failure(InMemorySecretSource().passphrase_for(tmp_path), ErrorCode.SECRET_ERROR)


class TestFileSecretSource:
    def test_reads_existing_file(self, tmp_path: Path) -> None:
        source = FileSecretSource(tmp_path)
        source.file_for(Path("/srv/ca/root")).write_text("from-file\n")

        assert ResultAssertions.assert_success(source.passphrase_for(Path("/srv/ca/root"))) == "from-file"

    def test_empty_file_is_an_error(self, tmp_path: Path) -> None:
        source = FileSecretSource(tmp_path)
        source.file_for(Path("/srv/ca/root")).write_text("\n")
        result = source.passphrase_for(Path("/srv/ca/root"))
        ResultAssertions.assert_failure(result, ErrorCode.SECRET_ERROR)

    def test_prompt_answer_is_used_and_cached(self, tmp_path: Path) -> None:
        """
        GIVEN no passphrase file and an operator who types a passphrase
        WHEN the passphrase is requested twice
        THEN the operator is asked once and nothing is written to disk.
        """
        prompt = MagicMock(return_value="typed")
        source = FileSecretSource(tmp_path / "secrets", prompt=prompt)

        first = source.passphrase_for(tmp_path / "root")
        second = source.passphrase_for(tmp_path / "root")

        assert ResultAssertions.assert_success(first) == ResultAssertions.assert_success(second) == "typed"
        prompt.assert_called_once()
        assert not (tmp_path / "secrets").exists()

    def test_empty_answer_generates_and_persists(self, tmp_path: Path) -> None:
        """
        GIVEN no passphrase file and an operator who presses enter
        WHEN the passphrase is requested
        THEN a random passphrase is generated and stored 0600 for next time.
        """
        source = FileSecretSource(tmp_path / "secrets", prompt=lambda label: "")

        value = ResultAssertions.assert_success(source.passphrase_for(tmp_path / "root"))

        stored = source.file_for(tmp_path / "root")
        assert stored.read_text().strip() == value
        assert stat.S_IMODE(stored.stat().st_mode) == 0o600
        assert ResultAssertions.assert_success(FileSecretSource(tmp_path / "secrets").passphrase_for(tmp_path / "root")) == value

    def test_same_named_stores_get_separate_files(self, tmp_path: Path) -> None:
        """
        GIVEN two stores called "issuing" under different roots
        WHEN passphrases are generated for both
        THEN each store gets its own file and its own passphrase.
        """
        first_store = tmp_path / "east" / "issuing"
        second_store = tmp_path / "west" / "issuing"
        source = FileSecretSource(tmp_path / "secrets", prompt=lambda label: "")

        first = ResultAssertions.assert_success(source.passphrase_for(first_store))
        second = ResultAssertions.assert_success(source.passphrase_for(second_store))

        assert source.file_for(first_store) != source.file_for(second_store)
        assert source.file_for(first_store).name.startswith("issuing-")
        assert first != second
        fresh = FileSecretSource(tmp_path / "secrets")
        assert ResultAssertions.assert_success(fresh.passphrase_for(second_store)) == second

    def test_no_file_and_no_prompt(self, tmp_path: Path) -> None:
        result = FileSecretSource(tmp_path).passphrase_for(tmp_path / "root")
        ResultAssertions.assert_failure_message_contains(result, "no interactive prompt")


class TestGeneratePassphrase:
    def test_random_and_long(self) -> None:
        first, second = generate_passphrase(), generate_passphrase()
        assert first != second
        assert len(first) >= 40
