"""
AuthorityStore — the on-disk representation of one certificate authority.

Directory layout:

    <store>/
      ca.cnf          configuration (AuthorityConfig)
      ca.key          AES-256 encrypted private key
      ca.csr          pending request (intermediate CAs, until signed)
      ca.crt          public certificate — its presence means "initialized"
      chain.pem       intermediates only: own cert + parent chain, root excluded
      index.txt       ledger            serial / crlnumber   counters
      crl.pem         current CRL       newcerts/<serial>.pem  signed archive
      <hostname>/     one directory per onboarded host

The key and certificate are write-once: nothing in this package overwrites
an existing ca.crt.
"""

from __future__ import annotations

import os
from pathlib import Path

import structlog
from railway import ErrorCode
from railway.result import Result

from cactl.config import AuthorityConfig, load_authority_config, render_authority_config
from cactl.domain.models import IssuerCredentials
from cactl.ledger import Ledger
from cactl.locking import StoreLock
from cactl.serials import SerialAllocator

log = structlog.get_logger()

CONFIG_FILE = "ca.cnf"
KEY_FILE = "ca.key"
CSR_FILE = "ca.csr"
CERT_FILE = "ca.crt"
CHAIN_FILE = "chain.pem"
CRL_FILE = "crl.pem"
NEWCERTS_DIR = "newcerts"
LOCK_FILE = ".lock"

_RESERVED_NAMES = frozenset(
    {CONFIG_FILE, KEY_FILE, CSR_FILE, CERT_FILE, CHAIN_FILE, CRL_FILE, NEWCERTS_DIR, LOCK_FILE}
)


def write_artifact(path: Path, data: bytes, private: bool = False) -> Result[Path]:
    """
    Write bytes to a new file. Private files are created 0600 from the start.

    Existing files are never overwritten (ALREADY_EXISTS).
    """
    if path.exists():
        return Result.failure(ErrorCode.ALREADY_EXISTS, f"Refusing to overwrite {path}")

    def write() -> Path:
        flags = os.O_WRONLY | os.O_CREAT | os.O_EXCL
        fd = os.open(path, flags, 0o600 if private else 0o644)
        with os.fdopen(fd, "wb") as handle:
            handle.write(data)
        return path

    return Result.from_computation(write, ErrorCode.STORAGE_ERROR, f"Cannot write {path}")


def read_artifact(path: Path, what: str) -> Result[bytes]:
    if not path.is_file():
        return Result.failure(ErrorCode.NOT_FOUND, f"{what} not found: {path}")
    return Result.from_computation(path.read_bytes, ErrorCode.STORAGE_ERROR, f"Cannot read {path}")


class AuthorityStore:
    """Handle on one CA directory. Obtain one via load() or create()."""

    def __init__(self, path: Path, config: AuthorityConfig) -> None:
        self.path = path
        self.config = config
        self.lock = StoreLock(path / LOCK_FILE)
        self.serials = SerialAllocator(path)

    # ─────────────────────── Construction ───────────────────────

    @staticmethod
    def exists(path: Path) -> bool:
        return path.is_dir()

    @staticmethod
    def load(path: Path) -> Result[AuthorityStore]:
        if not path.is_dir():
            return Result.failure(ErrorCode.NOT_FOUND, f"CA store not found: {path}")
        return load_authority_config(path / CONFIG_FILE).map(lambda config: AuthorityStore(path, config))

    @staticmethod
    def create(path: Path, config: AuthorityConfig) -> Result[AuthorityStore]:
        """
        Create the directory skeleton and write ca.cnf.

        An existing, not yet initialized store is accepted so that a failed
        initialization can be retried; an initialized one is refused.
        """
        if (path / CERT_FILE).exists():
            return Result.failure(ErrorCode.ALREADY_EXISTS, f"CA certificate already exists: {path / CERT_FILE}")

        def build() -> AuthorityStore:
            (path / NEWCERTS_DIR).mkdir(parents=True, exist_ok=True)
            (path / CONFIG_FILE).write_text(render_authority_config(config), encoding="utf-8")
            return AuthorityStore(path, config)

        return Result.from_computation(build, ErrorCode.STORAGE_ERROR, f"Cannot create CA store {path}")

    # ─────────────────────── Paths ───────────────────────

    @property
    def name(self) -> str:
        return self.path.name

    @property
    def key_path(self) -> Path:
        return self.path / KEY_FILE

    @property
    def csr_path(self) -> Path:
        return self.path / CSR_FILE

    @property
    def certificate_path(self) -> Path:
        return self.path / CERT_FILE

    @property
    def chain_path(self) -> Path:
        return self.path / CHAIN_FILE

    @property
    def crl_path(self) -> Path:
        return self.path / CRL_FILE

    @property
    def newcerts_dir(self) -> Path:
        return self.path / NEWCERTS_DIR

    def host_dir(self, hostname: str) -> Path:
        return self.path / hostname

    def hosts(self) -> list[str]:
        """Names of onboarded host directories."""
        return sorted(
            p.name for p in self.path.iterdir()
            if p.is_dir() and p.name not in _RESERVED_NAMES and not p.name.startswith(".")
        )

    # ─────────────────────── State ───────────────────────

    @property
    def is_root(self) -> bool:
        return self.config.is_root

    @property
    def is_initialized(self) -> bool:
        return self.certificate_path.is_file()

    @property
    def has_pending_csr(self) -> bool:
        return self.csr_path.is_file() and not self.is_initialized

    @property
    def has_chain(self) -> bool:
        return self.chain_path.is_file()

    def require_initialized(self) -> Result[AuthorityStore]:
        if not self.is_initialized:
            return Result.failure(
                ErrorCode.BUSINESS_RULE_ERROR,
                f"CA store {self.path} is not initialized (no {CERT_FILE})",
            )
        return Result.success(self)

    def ledger(self) -> Result[Ledger]:
        return Ledger.load(self.path)

    # ─────────────────────── Material ───────────────────────

    def certificate_pem(self) -> Result[bytes]:
        return read_artifact(self.certificate_path, "CA certificate")

    def chain_pem(self) -> Result[bytes]:
        return read_artifact(self.chain_path, "Chain file")

    def crl_pem(self) -> Result[bytes]:
        return read_artifact(self.crl_path, "CRL")

    def issuer_credentials(self, passphrase: str) -> Result[IssuerCredentials]:
        return read_artifact(self.key_path, "CA private key").flat_map(
            lambda key_pem: self.certificate_pem().map(
                lambda cert_pem: IssuerCredentials(
                    key_pem=key_pem, certificate_pem=cert_pem, passphrase=passphrase
                )
            )
        )

    def archive(self, serial: str, certificate_pem: bytes) -> Result[Path]:
        """Store a signed certificate as newcerts/<serial>.pem."""
        return write_artifact(self.newcerts_dir / f"{serial}.pem", certificate_pem)

    def archived_certificate(self, serial: str) -> Result[bytes]:
        return read_artifact(self.newcerts_dir / f"{serial.upper()}.pem", f"Certificate {serial}")

    def __repr__(self) -> str:
        kind = "root" if self.is_root else "intermediate"
        return f"AuthorityStore({str(self.path)!r}, {kind})"
