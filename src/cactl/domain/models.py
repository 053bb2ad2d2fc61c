"""
Domain models — immutable value objects for the CA ledger and issuance.

Everything here is a frozen dataclass or an Enum: the state machine lives in
Ledger/AuthorityStore, these types only describe what is recorded.
"""

from __future__ import annotations

import ipaddress
import re
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from enum import Enum, StrEnum
from pathlib import Path
from typing import TypeAlias


class CertificateStatus(StrEnum):
    """Ledger status. The value is the flag used in index.txt."""

    VALID = "V"
    EXPIRED = "E"
    REVOKED = "R"

    @classmethod
    def from_name(cls, name: str) -> CertificateStatus:
        """Accept 'valid' / 'V' style spellings (command line input)."""
        normalized = name.strip()
        for member in cls:
            if normalized.upper() in (member.name, member.value):
                return member
        raise ValueError(f"Unknown certificate status: {name!r}")


class ExtensionProfile(StrEnum):
    """Named extension sets applied when signing."""

    V3_CA = "v3_ca"
    USR_CERT = "usr_cert"


class PolicyRule(StrEnum):
    """Distinguished-name policy for one attribute of a request."""

    MATCH = "match"
    SUPPLIED = "supplied"
    OPTIONAL = "optional"


class AltNameKind(Enum):
    IP = "IP"
    DNS = "DNS"


_CONTROL_CHARACTERS = re.compile(r"[\x00-\x1f\x7f]")


@dataclass(frozen=True, slots=True)
class DistinguishedName:
    """
    Ordered subject/issuer name, e.g. (("C", "US"), ("O", "Acme"), ("CN", "api")).

    Attribute keys are OpenSSL short names. The text form used in index.txt
    is `/C=US/O=Acme/CN=api`.
    """

    attributes: tuple[tuple[str, str], ...]

    @property
    def common_name(self) -> str | None:
        return self.get("CN")

    @property
    def has_control_characters(self) -> bool:
        """Tabs, newlines and other C0/DEL characters would break index.txt lines."""
        return any(
            _CONTROL_CHARACTERS.search(key) or _CONTROL_CHARACTERS.search(value)
            for key, value in self.attributes
        )

    def get(self, key: str) -> str | None:
        for attr, value in self.attributes:
            if attr == key:
                return value
        return None

    def with_common_name(self, common_name: str) -> DistinguishedName:
        """Copy with CN replaced (appended last when absent)."""
        kept = tuple((k, v) for k, v in self.attributes if k != "CN")
        return DistinguishedName(kept + (("CN", common_name),))

    def to_openssl(self) -> str:
        return "".join(f"/{k}={_escape(v)}" for k, v in self.attributes)

    def as_dict(self) -> dict[str, str]:
        return dict(self.attributes)

    @classmethod
    def from_mapping(cls, mapping: dict[str, str]) -> DistinguishedName:
        return cls(tuple((k, v) for k, v in mapping.items()))

    @classmethod
    def from_openssl(cls, text: str) -> DistinguishedName:
        """Parse `/C=US/O=Acme/CN=api`; `\\/` escapes a literal slash."""
        parts: list[str] = []
        current = ""
        escaped = False
        for char in text:
            if escaped:
                current += char
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == "/":
                if current:
                    parts.append(current)
                current = ""
            else:
                current += char
        if current:
            parts.append(current)

        attributes = []
        for part in parts:
            key, sep, value = part.partition("=")
            if not sep:
                raise ValueError(f"Malformed distinguished name component: {part!r}")
            attributes.append((key, value))
        return cls(tuple(attributes))

    def __str__(self) -> str:
        return self.to_openssl()


def _escape(value: str) -> str:
    return value.replace("\\", "\\\\").replace("/", "\\/")


@dataclass(frozen=True, slots=True)
class AltName:
    """One subjectAltName entry, tagged by literal IP-address syntax."""

    kind: AltNameKind
    value: str

    @classmethod
    def parse(cls, raw: str) -> AltName:
        """Accept 'IP:10.0.0.5', 'DNS:www', or an untagged value."""
        text = raw.strip()
        tag, sep, rest = text.partition(":")
        if sep and tag.upper() in ("IP", "DNS"):
            return cls(AltNameKind[tag.upper()], rest.strip())
        try:
            ipaddress.ip_address(text)
        except ValueError:
            return cls(AltNameKind.DNS, text)
        return cls(AltNameKind.IP, text)

    def __str__(self) -> str:
        return f"{self.kind.value}:{self.value}"


@dataclass(frozen=True, slots=True)
class CertificateRecord:
    """
    One ledger entry — a serial this CA has signed.

    `serial` is the upper-case, even-length hex string used in index.txt and
    as the `newcerts/<serial>.pem` file name.
    """

    serial: str
    subject: DistinguishedName
    not_after: datetime
    status: CertificateStatus = CertificateStatus.VALID
    revoked_at: datetime | None = None

    @property
    def common_name(self) -> str | None:
        return self.subject.common_name

    @property
    def serial_number(self) -> int:
        return int(self.serial, 16)


@dataclass(frozen=True, slots=True)
class HostProfile:
    """
    Everything needed to request a certificate for one onboarded host.

    Created by onboarding (rendered into host.cnf) and read back on every
    issuance; issuance never mutates it.
    """

    hostname: str
    subject: DistinguishedName
    alt_names: tuple[AltName, ...] = ()
    validity_days: int | None = None
    key_bits: int = 4096
    config_path: Path | None = None

    @property
    def subject_alt_name_line(self) -> str:
        return ", ".join(str(name) for name in self.alt_names)


@dataclass(frozen=True, slots=True)
class SigningRequest:
    """Input to one signing operation of the X.509 toolkit."""

    csr_pem: bytes = field(repr=False)
    serial: str
    validity_days: int
    profile: ExtensionProfile
    issued_at: datetime

    @property
    def not_after(self) -> datetime:
        return self.issued_at + timedelta(days=self.validity_days)


@dataclass(frozen=True, slots=True)
class IssuerCredentials:
    """The signing CA's key, certificate and key passphrase."""

    key_pem: bytes = field(repr=False)
    certificate_pem: bytes = field(repr=False)
    passphrase: str = field(repr=False)


@dataclass(frozen=True, slots=True)
class SignedCertificate:
    """A certificate just signed and recorded in the issuer's ledger."""

    certificate_pem: bytes = field(repr=False)
    record: CertificateRecord

    @property
    def serial(self) -> str:
        return self.record.serial


@dataclass(frozen=True, slots=True)
class IssuanceInstance:
    """
    One issuance event for one host: `<host dir>/<YYYY-MM-DD>-<index>/`.

    Directories are never reused; artifact names are derived from the hostname.
    """

    hostname: str
    issued_on: date
    index: int
    path: Path
    serial: str | None = None
    key_generated: bool = False

    @property
    def name(self) -> str:
        return f"{self.issued_on.isoformat()}-{self.index}"

    def artifact(self, suffix: str) -> Path:
        """Path of `<hostname>.<suffix>` inside the instance directory."""
        return self.path / f"{self.hostname}.{suffix}"


# ─────────────────────── Revocation targets ───────────────────────


@dataclass(frozen=True, slots=True)
class Host:
    """Revocation target: an onboarded host, identified by its hostname (= CN)."""

    name: str


@dataclass(frozen=True, slots=True)
class IntermediateCaPath:
    """Revocation target: an intermediate CA, identified by its store path."""

    path: Path


Target: TypeAlias = Host | IntermediateCaPath

INTERMEDIATE_PREFIX = "ca:"


def parse_target(raw: str) -> Target:
    """
    Resolve a command-line identity once: `ca:<path>` names an intermediate CA,
    anything else is a hostname.
    """
    if raw.startswith(INTERMEDIATE_PREFIX):
        return IntermediateCaPath(Path(raw[len(INTERMEDIATE_PREFIX):]))
    return Host(raw)
