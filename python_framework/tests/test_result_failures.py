"""Tests for ResultFailures convenience factories."""

from pathlib import Path

import pytest

from railway import ErrorCode
from railway.result_failures import ResultFailures, _map_exception_to_code


class TestConvenienceFactories:
    def test_validation_error(self):
        result = ResultFailures.validation_error("Invalid hostname")
        assert result.is_failure()
        assert result.error().code == ErrorCode.VALIDATION_ERROR
        assert result.error().message == "Invalid hostname"

    def test_configuration_error(self):
        result = ResultFailures.configuration_error("default_days is not set")
        assert result.error().code == ErrorCode.CONFIGURATION_ERROR

    def test_not_found(self):
        result = ResultFailures.not_found("host", "api.example.com")
        assert result.error().code == ErrorCode.NOT_FOUND
        assert result.error().message == "host not found with identifier: api.example.com"

    def test_already_exists(self):
        result = ResultFailures.already_exists("CA certificate", Path("/srv/ca/ca.crt"))
        assert result.error().code == ErrorCode.ALREADY_EXISTS
        assert "/srv/ca/ca.crt" in result.error().message

    def test_business_rule_error(self):
        result = ResultFailures.business_rule_error("only valid certificates can be revoked")
        assert result.error().code == ErrorCode.BUSINESS_RULE_ERROR

    def test_integrity_error(self):
        result = ResultFailures.integrity_error("Serial 02 is already recorded")
        assert result.error().code == ErrorCode.INTEGRITY_ERROR

    def test_external_tool_error(self):
        ex = RuntimeError("bad key")
        result = ResultFailures.external_tool_error("Signing failed", ex)
        assert result.error().code == ErrorCode.EXTERNAL_TOOL_ERROR
        assert result.error().exception is ex

    def test_storage_error(self):
        result = ResultFailures.storage_error("Cannot write serial")
        assert result.error().code == ErrorCode.STORAGE_ERROR
        assert result.error().exception is None

    def test_secret_error(self):
        result = ResultFailures.secret_error("No passphrase for /srv/ca")
        assert result.error().code == ErrorCode.SECRET_ERROR

    def test_timeout_error(self):
        result = ResultFailures.timeout_error("keytool exceeded 60s")
        assert result.error().code == ErrorCode.TIMEOUT_ERROR


class TestExceptionMapping:
    @pytest.mark.parametrize(
        "exception, expected",
        [
            (FileExistsError("x"), ErrorCode.ALREADY_EXISTS),
            (FileNotFoundError("x"), ErrorCode.NOT_FOUND),
            (KeyError("CN"), ErrorCode.NOT_FOUND),
            (TimeoutError("x"), ErrorCode.TIMEOUT_ERROR),
            (PermissionError("x"), ErrorCode.STORAGE_ERROR),
            (IsADirectoryError("x"), ErrorCode.STORAGE_ERROR),
            (ValueError("x"), ErrorCode.VALIDATION_ERROR),
            (TypeError("x"), ErrorCode.VALIDATION_ERROR),
            (RuntimeError("x"), ErrorCode.UNKNOWN_ERROR),
        ],
    )
    def test_exception_maps_to_code(self, exception, expected):
        assert _map_exception_to_code(exception) == expected

    def test_from_exception_keeps_message_and_exception(self):
        ex = FileNotFoundError("ca.crt")
        result = ResultFailures.from_exception("CA certificate missing", ex)
        assert result.error().code == ErrorCode.NOT_FOUND
        assert result.error().message == "CA certificate missing"
        assert result.error().exception is ex
