"""
Configuration — typed, validated settings.

Two layers:
  - AppSettings: process-wide knobs loaded by pydantic-settings from
    environment variables (prefix CACTL_) and an optional .env file.
    env_nested_delimiter="__" maps CACTL_SECRETS__BACKEND → secrets.backend.
  - AuthorityConfig: per-store configuration persisted as an
    OpenSSL-style ca.cnf inside every AuthorityStore directory.

A missing validity period is NOT rejected while loading ca.cnf: it is a
precondition of initialization and issuance, checked (and reported) there.
"""

from __future__ import annotations

import configparser
import io
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from railway import ErrorCode
from railway.result import Result

from cactl.domain.models import DistinguishedName, ExtensionProfile, PolicyRule

_ENV_FILE = Path(".env")


class SecretSettings(BaseModel):
    """
    Where CA key passphrases come from.

    backend="file": read <directory>/<store name>-<path digest>.pass, prompting when absent
    (an empty answer generates and persists a random passphrase).
    backend="env": use `passphrase` for every store (CI, scripted use).
    """

    backend: Literal["file", "env"] = Field(default="file")
    directory: Path = Field(
        default_factory=lambda: Path.home() / ".config" / "cactl" / "secrets",
        description="Directory holding one passphrase file per store",
    )
    passphrase: SecretStr | None = Field(default=None, description="Passphrase for backend=env")


class KeystoreSettings(BaseModel):
    """Optional Java keystore conversion via keytool."""

    enabled: bool = Field(default=True)
    binary: str = Field(default="keytool")
    timeout_seconds: int = Field(default=120, ge=1)


class AppSettings(BaseSettings):
    """
    Root application settings.

    Load order (highest priority first):
      1. Environment variables (CACTL_*)
      2. .env file in the working directory
      3. Default values
    """

    model_config = SettingsConfigDict(
        env_prefix="CACTL_",
        env_file=_ENV_FILE,
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
    )

    log_level: str = Field(default="INFO")
    key_bits: int = Field(default=4096, ge=2048)
    crl_days: int = Field(default=30, ge=1)
    host_template: Path | None = Field(default=None, description="Custom host.cnf template")
    secrets: SecretSettings = Field(default_factory=SecretSettings)
    keystore: KeystoreSettings = Field(default_factory=KeystoreSettings)


# ─────────────────────── Per-store configuration (ca.cnf) ───────────────────────


class AuthorityConfig(BaseModel):
    """
    Configuration of one certificate authority.

    `subject` keeps insertion order (it is the DN order of the certificate).
    `parent` is set for intermediate CAs only; None means root.
    """

    subject: dict[str, str]
    validity_days: int | None = Field(default=None, ge=1)
    crl_days: int = Field(default=30, ge=1)
    key_bits: int = Field(default=4096, ge=1024)
    policy: dict[str, PolicyRule] = Field(default_factory=lambda: {"CN": PolicyRule.SUPPLIED})
    ca_profile: ExtensionProfile = ExtensionProfile.V3_CA
    leaf_profile: ExtensionProfile = ExtensionProfile.USR_CERT
    parent: Path | None = None

    @field_validator("subject")
    @classmethod
    def require_common_name(cls, value: dict[str, str]) -> dict[str, str]:
        if not value.get("CN"):
            raise ValueError("subject must contain a common name (CN)")
        return value

    @property
    def distinguished_name(self) -> DistinguishedName:
        return DistinguishedName.from_mapping(self.subject)

    @property
    def common_name(self) -> str:
        return self.subject["CN"]

    @property
    def is_root(self) -> bool:
        return self.parent is None


def _new_parser() -> configparser.ConfigParser:
    parser = configparser.ConfigParser(interpolation=None)
    parser.optionxform = str  # type: ignore[assignment,method-assign]
    return parser


def parse_authority_config(text: str) -> AuthorityConfig:
    """Parse ca.cnf text. Raises ValueError / pydantic.ValidationError."""
    parser = _new_parser()
    parser.read_string(text)
    ca = parser["ca"] if parser.has_section("ca") else {}
    data: dict[str, object] = {
        "subject": dict(parser["req_distinguished_name"]) if parser.has_section("req_distinguished_name") else {},
        "policy": dict(parser["policy"]) if parser.has_section("policy") else {"CN": "supplied"},
    }
    for key, field_name in (
        ("default_days", "validity_days"),
        ("default_crl_days", "crl_days"),
        ("default_bits", "key_bits"),
        ("x509_extensions", "ca_profile"),
        ("leaf_extensions", "leaf_profile"),
        ("parent", "parent"),
    ):
        if key in ca and ca[key].strip():
            data[field_name] = ca[key].strip()
    return AuthorityConfig.model_validate(data)


def render_authority_config(config: AuthorityConfig) -> str:
    parser = _new_parser()
    ca: dict[str, str] = {}
    if config.validity_days is not None:
        ca["default_days"] = str(config.validity_days)
    ca["default_crl_days"] = str(config.crl_days)
    ca["default_bits"] = str(config.key_bits)
    ca["x509_extensions"] = config.ca_profile.value
    ca["leaf_extensions"] = config.leaf_profile.value
    if config.parent is not None:
        ca["parent"] = str(config.parent)
    parser["ca"] = ca
    parser["req_distinguished_name"] = dict(config.subject)
    parser["policy"] = {key: rule.value for key, rule in config.policy.items()}

    buffer = io.StringIO()
    parser.write(buffer)
    return buffer.getvalue()


def load_authority_config(path: Path) -> Result[AuthorityConfig]:
    if not path.is_file():
        return Result.failure(ErrorCode.NOT_FOUND, f"CA configuration not found: {path}")
    return Result.from_computation(
        lambda: parse_authority_config(path.read_text(encoding="utf-8")),
        ErrorCode.CONFIGURATION_ERROR,
        f"Invalid CA configuration in {path}",
    )
