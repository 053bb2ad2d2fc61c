"""
Host onboarding — create `<store>/<hostname>/host.cnf` from a template.

The rendered file is an OpenSSL request config, so an operator can also use
it with `openssl req -config host.cnf`. Issuance reads it back into a
HostProfile; nothing rewrites it after onboarding.

Alt names are tagged IP when they parse as an IP address, DNS otherwise.
The hostname itself is always present as the last DNS entry:

    onboard("api.example.com", ["10.0.0.5"])
    → subjectAltName = IP:10.0.0.5, DNS:api.example.com
"""

from __future__ import annotations

import configparser
import re
from collections.abc import Iterable
from dataclasses import replace
from pathlib import Path
from string import Template

import structlog
from railway import ErrorCode
from railway.result import Result

from cactl.domain.models import AltName, AltNameKind, DistinguishedName, HostProfile
from cactl.store import AuthorityStore, write_artifact

log = structlog.get_logger()

HOST_CONFIG_FILE = "host.cnf"

DEFAULT_TEMPLATE = """\
# Request configuration for ${hostname}
[req]
default_bits = ${key_bits}
prompt = no
distinguished_name = req_distinguished_name
req_extensions = v3_req

[req_distinguished_name]
${subject_lines}

[v3_req]
basicConstraints = CA:FALSE
keyUsage = digitalSignature, keyEncipherment
extendedKeyUsage = serverAuth, clientAuth
subjectAltName = ${alt_names}

[issuance]
default_days = ${days}
"""

_HOSTNAME = re.compile(r"^[A-Za-z0-9*_][A-Za-z0-9._*-]*$")


def validate_hostname(hostname: str) -> Result[str]:
    if not hostname or not _HOSTNAME.match(hostname) or hostname.endswith("."):
        return Result.failure(ErrorCode.VALIDATION_ERROR, f"Invalid hostname: {hostname!r}")
    return Result.success(hostname)


def tag_alt_names(hostname: str, raw_names: Iterable[str]) -> tuple[AltName, ...]:
    """Tag and de-duplicate alt names, then make sure the hostname is included."""
    names: list[AltName] = []
    for raw in raw_names:
        if not raw.strip():
            continue
        name = AltName.parse(raw)
        if name not in names:
            names.append(name)
    own = AltName(AltNameKind.DNS, hostname)
    if own not in names:
        names.append(own)
    return tuple(names)


def render_host_config(template: str, profile: HostProfile) -> str:
    return Template(template).substitute(
        hostname=profile.hostname,
        key_bits=profile.key_bits,
        subject_lines="\n".join(f"{k} = {v}" for k, v in profile.subject.attributes),
        alt_names=profile.subject_alt_name_line,
        days="" if profile.validity_days is None else profile.validity_days,
    )


def parse_host_config(hostname: str, text: str, path: Path | None = None) -> HostProfile:
    parser = configparser.ConfigParser(interpolation=None)
    parser.optionxform = str  # type: ignore[assignment,method-assign]
    parser.read_string(text)

    subject = DistinguishedName(tuple(parser["req_distinguished_name"].items()))
    san_line = parser.get("v3_req", "subjectAltName", fallback="")
    days = parser.get("issuance", "default_days", fallback="").strip()
    return HostProfile(
        hostname=hostname,
        subject=subject,
        alt_names=tuple(AltName.parse(part) for part in san_line.split(",") if part.strip()),
        validity_days=int(days) if days else None,
        key_bits=parser.getint("req", "default_bits", fallback=4096),
        config_path=path,
    )


def load_host_profile(store: AuthorityStore, hostname: str) -> Result[HostProfile]:
    path = store.host_dir(hostname) / HOST_CONFIG_FILE
    if not path.is_file():
        return Result.failure(
            ErrorCode.NOT_FOUND, f"Host {hostname} is not onboarded (no {path})"
        )
    return Result.from_computation(
        lambda: parse_host_config(hostname, path.read_text(encoding="utf-8"), path),
        ErrorCode.CONFIGURATION_ERROR,
        f"Invalid host configuration {path}",
    )


class HostOnboarder:
    """Creates host directories and their request configuration."""

    def __init__(self, template: str = DEFAULT_TEMPLATE) -> None:
        self._template = template

    @staticmethod
    def from_template_file(path: Path | None) -> Result[HostOnboarder]:
        if path is None:
            return Result.success(HostOnboarder())
        return Result.from_computation(
            lambda: HostOnboarder(path.read_text(encoding="utf-8")),
            ErrorCode.CONFIGURATION_ERROR,
            f"Cannot read host template {path}",
        )

    def onboard(
        self,
        store: AuthorityStore,
        hostname: str,
        alt_names: Iterable[str] = (),
    ) -> Result[HostProfile]:
        """Refuses a hostname whose directory already exists."""
        return (
            store.require_initialized()
            .flat_map(lambda _: validate_hostname(hostname))
            .ensure(
                lambda name: not store.host_dir(name).exists(),
                ErrorCode.ALREADY_EXISTS,
                f"Host {hostname} already exists in {store.path}",
            )
            .map(lambda name: self._profile(store, name, alt_names))
            .flat_map(lambda profile: self._write(store, profile))
        )

    def _profile(self, store: AuthorityStore, hostname: str, alt_names: Iterable[str]) -> HostProfile:
        return HostProfile(
            hostname=hostname,
            subject=store.config.distinguished_name.with_common_name(hostname),
            alt_names=tag_alt_names(hostname, alt_names),
            validity_days=store.config.validity_days,
            key_bits=store.config.key_bits,
        )

    def _write(self, store: AuthorityStore, profile: HostProfile) -> Result[HostProfile]:
        host_dir = store.host_dir(profile.hostname)

        def create_dir() -> Path:
            host_dir.mkdir(parents=False, exist_ok=False)
            return host_dir

        return (
            Result.from_computation(
                lambda: render_host_config(self._template, profile).encode("utf-8"),
                ErrorCode.CONFIGURATION_ERROR,
                "Host template cannot be rendered",
            )
            .then(lambda _: Result.from_computation(
                create_dir, ErrorCode.STORAGE_ERROR, f"Cannot create host directory {host_dir}"
            ))
            .flat_map(lambda body: write_artifact(host_dir / HOST_CONFIG_FILE, body))
            .map(lambda written: replace(profile, config_path=written))
            .peek(lambda p: log.info(
                "hosts.onboarded",
                hostname=p.hostname,
                alt_names=p.subject_alt_name_line,
                config=str(p.config_path),
            ))
        )
