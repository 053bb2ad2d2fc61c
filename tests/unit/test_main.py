"""
Unit tests for the main module — composition root.

Tests verify structlog configuration and the wiring logic without
touching real passphrase files.
"""

from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path

import pytest
import structlog
from railway import ErrorCode, ResultAssertions

from cactl.adapters.secrets import FileSecretSource, InMemorySecretSource
from cactl.config import AppSettings, SecretSettings
from cactl.main import _create_secret_source, configure_structlog, create_services, main


@pytest.fixture(autouse=True)
def _reset_structlog() -> Iterator[None]:
    yield
    structlog.reset_defaults()


class TestConfigureStructlog:
    def test_configure_structlog_sets_log_level(self) -> None:
        """
        GIVEN log_level="WARNING"
        WHEN configure_structlog is called
        THEN structlog is configured (no exception raised).
        """
        configure_structlog("WARNING")
        assert structlog.get_logger() is not None

    def test_configure_structlog_invalid_level_falls_back(self) -> None:
        """
        GIVEN an invalid log_level string
        WHEN configure_structlog is called
        THEN it falls back to INFO (no crash).
        """
        configure_structlog("NONEXISTENT")
        assert structlog.get_logger() is not None


class TestCreateServices:
    def test_env_backend_uses_configured_passphrase(self) -> None:
        settings = AppSettings(secrets=SecretSettings(backend="env", passphrase="pw"))

        source = _create_secret_source(settings, prompt=None)

        assert isinstance(source, InMemorySecretSource)
        assert ResultAssertions.assert_success(source.passphrase_for(Path("/any"))) == "pw"

    def test_file_backend(self, tmp_path: Path) -> None:
        settings = AppSettings(secrets=SecretSettings(backend="file", directory=tmp_path))
        assert isinstance(_create_secret_source(settings, prompt=None), FileSecretSource)

    def test_wires_all_services(self) -> None:
        services = ResultAssertions.assert_success(create_services(AppSettings()))

        assert services.batch is not None
        assert services.initializer is not None

    def test_unreadable_host_template(self, tmp_path: Path) -> None:
        settings = AppSettings(host_template=tmp_path / "missing.tmpl")
        ResultAssertions.assert_failure(create_services(settings), ErrorCode.CONFIGURATION_ERROR)


class TestMain:
    def test_invalid_environment_exits_with_fatal_message(
        self, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
    ) -> None:
        monkeypatch.setenv("CACTL_KEY_BITS", "512")

        with pytest.raises(SystemExit) as exit_info:
            main()

        assert exit_info.value.code == 1
        assert "FATAL: Configuration error" in capsys.readouterr().err
