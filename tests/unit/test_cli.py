"""
Unit tests for the click command line — exit codes and output.

Commands run in-process through click's CliRunner against real stores in
tmp_path, with an env-backed passphrase and keytool disabled.
"""

from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path

import pytest
from click.testing import CliRunner, Result
from railway import ResultAssertions
from structlog.testing import capture_logs

from cactl.cli import cli
from cactl.config import AppSettings, KeystoreSettings, SecretSettings
from cactl.main import Services, create_services


@pytest.fixture(autouse=True)
def _captured_logs() -> Iterator[None]:
    """Keep structlog lines out of the command output under test."""
    with capture_logs():
        yield


@pytest.fixture()
def services() -> Services:
    settings = AppSettings(
        key_bits=2048,
        secrets=SecretSettings(backend="env", passphrase="cli-pass"),
        keystore=KeystoreSettings(enabled=False),
    )
    return ResultAssertions.assert_success(create_services(settings))


@pytest.fixture()
def invoke(services: Services):
    runner = CliRunner()

    def run(*args: str | Path) -> Result:
        return runner.invoke(cli, [str(a) for a in args], obj=services)

    return run


@pytest.fixture()
def root(tmp_path: Path, invoke) -> Path:
    path = tmp_path / "root"
    result = invoke("init-root", path, "--subject", "/C=US/O=Acme/CN=Acme Root", "--days", "3650")
    assert result.exit_code == 0, result.output
    return path


class TestInit:
    def test_init_root(self, root: Path) -> None:
        assert (root / "ca.crt").is_file()
        assert (root / "crl.pem").is_file()

    def test_init_root_twice_fails(self, root: Path, invoke) -> None:
        result = invoke("init-root", root, "--subject", "/CN=Again", "--days", "10")

        assert result.exit_code == 1
        assert "already exists" in result.output

    def test_init_root_without_days_fails(self, tmp_path: Path, invoke) -> None:
        result = invoke("init-root", tmp_path / "r", "--subject", "/CN=Root")

        assert result.exit_code == 1
        assert "error:" in result.output

    def test_init_root_from_prepared_config(self, tmp_path: Path, invoke) -> None:
        store = tmp_path / "prepared"
        store.mkdir()
        (store / "ca.cnf").write_text("[ca]\ndefault_days = 365\ndefault_bits = 2048\n[req_distinguished_name]\nCN = Prepared Root\n")

        result = invoke("init-root", store)

        assert result.exit_code == 0, result.output
        assert "Prepared Root" in result.output

    def test_init_intermediate(self, root: Path, tmp_path: Path, invoke) -> None:
        result = invoke(
            "init-intermediate", tmp_path / "issuing", "--parent", root,
            "--subject", "/C=US/O=Acme/CN=Acme Issuing", "--days", "1825",
        )

        assert result.exit_code == 0, result.output
        assert (tmp_path / "issuing" / "chain.pem").is_file()


class TestHostLifecycle:
    def test_onboard_sign_list_revoke(self, root: Path, invoke) -> None:
        """
        GIVEN an initialized root
        WHEN a host is onboarded, signed, listed and revoked through the CLI
        THEN every step exits 0 and list reflects the status change.
        """
        assert invoke("onboard", root, "api.example.com", "10.0.0.5").exit_code == 0

        signed = invoke("sign", root, "api.example.com")
        assert signed.exit_code == 0, signed.output
        assert "serial 02" in signed.output

        assert invoke("list", root).output.split() == ["api.example.com"]

        revoked = invoke("revoke", root, "api.example.com")
        assert revoked.exit_code == 0, revoked.output
        assert invoke("list", root, "--status", "revoked").output.split() == ["api.example.com"]
        assert invoke("list", root, "--status", "R").output.split() == ["api.example.com"]
        assert invoke("list", root).output.strip() == ""

    def test_revoke_unknown_host(self, root: Path, invoke) -> None:
        result = invoke("revoke", root, "ghost.example.com")

        assert result.exit_code == 1
        assert "No valid certificate" in result.output

    def test_revoke_intermediate_with_ca_prefix(self, root: Path, tmp_path: Path, invoke) -> None:
        invoke("init-intermediate", tmp_path / "issuing", "--parent", root, "--subject", "/CN=Issuing", "--days", "30")

        result = invoke("revoke", root, f"ca:{tmp_path / 'issuing'}")

        assert result.exit_code == 0, result.output
        assert "Issuing" in result.output

    def test_revoke_serial(self, root: Path, invoke) -> None:
        invoke("onboard", root, "api.example.com")
        invoke("sign", root, "api.example.com")

        result = invoke("revoke-serial", root, "2")

        assert result.exit_code == 0, result.output
        assert "revoked serial 02" in result.output

    def test_batch(self, root: Path, tmp_path: Path, invoke) -> None:
        host_list = tmp_path / "hosts.txt"
        host_list.write_text("a.example.com 10.0.0.1\nb.example.com\n")

        first = invoke("batch", root, host_list)
        second = invoke("batch", root, host_list)

        assert first.exit_code == 0, first.output
        assert "issued  a.example.com serial 02" in first.output
        assert second.output.split("\n")[:2] == ["skipped a.example.com", "skipped b.example.com"]


class TestMisc:
    def test_gen_crl(self, root: Path, invoke) -> None:
        result = invoke("gen-crl", root)

        assert result.exit_code == 0
        assert "published CRL #1" in result.output

    def test_info(self, root: Path, invoke) -> None:
        result = invoke("info", root)

        assert result.exit_code == 0
        assert "Acme Root" in result.output
        assert "kind:         root" in result.output

    def test_missing_store(self, tmp_path: Path, invoke) -> None:
        result = invoke("info", tmp_path / "nowhere")

        assert result.exit_code == 1
        assert "not found" in result.output
