"""
Application entry point — wires dependencies and runs the command line.

Composition root: creates concrete adapters and injects them into the
services the commands call.

This is the ONLY place where concrete classes are instantiated.
Everything else depends on Protocol interfaces.

Responsibilities:
  1. Load and validate configuration from environment
  2. Configure structlog (to stderr; stdout carries command output)
  3. Create the adapters (cryptography toolkit, secret source, keytool)
  4. Wire the services and hand them to the click command group
"""

from __future__ import annotations

import logging
import sys
from dataclasses import dataclass

import click
import structlog
from railway.result import Result

from cactl import __version__
from cactl.adapters.keytool import KeytoolConverter
from cactl.adapters.secrets import FileSecretSource, InMemorySecretSource, Prompt
from cactl.adapters.x509_toolkit import CryptographyToolkit
from cactl.authority import AuthorityInitializer
from cactl.batch import BatchProcessor
from cactl.cli import cli
from cactl.config import AppSettings
from cactl.coordinator import IntermediateCoordinator
from cactl.domain.ports import SecretSource
from cactl.hosts import HostOnboarder
from cactl.issuer import CertificateIssuer
from cactl.revocation import RevocationManager


def configure_structlog(log_level: str = "INFO") -> None:
    """
    Configure structlog for human-readable console logging on stderr.

    Also routes the stdlib `logging` records of the railway execution
    contexts to stderr at the same level.
    """
    level = getattr(logging, log_level.upper(), logging.INFO)
    logging.basicConfig(level=level, stream=sys.stderr, format="%(message)s")
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )


@dataclass(frozen=True, slots=True)
class Services:
    """Everything a command needs, fully wired."""

    settings: AppSettings
    initializer: AuthorityInitializer
    onboarder: HostOnboarder
    issuer: CertificateIssuer
    revocation: RevocationManager
    coordinator: IntermediateCoordinator
    batch: BatchProcessor


def _create_secret_source(settings: AppSettings, prompt: Prompt | None) -> SecretSource:
    if settings.secrets.backend == "env":
        passphrase = settings.secrets.passphrase
        return InMemorySecretSource(default=passphrase.get_secret_value() if passphrase else None)
    return FileSecretSource(settings.secrets.directory, prompt=prompt)


def create_services(settings: AppSettings, prompt: Prompt | None = None) -> Result[Services]:
    """
    Instantiate all concrete adapters and services from application settings.

    Fails only when the configured host template cannot be read.
    """
    toolkit = CryptographyToolkit()
    secrets = _create_secret_source(settings, prompt)
    keystore = KeytoolConverter(
        binary=settings.keystore.binary,
        timeout=settings.keystore.timeout_seconds,
        enabled=settings.keystore.enabled,
    )
    issuer = CertificateIssuer(toolkit, secrets, keystore)
    revocation = RevocationManager(toolkit, secrets)
    coordinator = IntermediateCoordinator(toolkit, secrets, issuer)
    initializer = AuthorityInitializer(toolkit, secrets, coordinator, revocation)

    return HostOnboarder.from_template_file(settings.host_template).map(
        lambda onboarder: Services(
            settings=settings,
            initializer=initializer,
            onboarder=onboarder,
            issuer=issuer,
            revocation=revocation,
            coordinator=coordinator,
            batch=BatchProcessor(onboarder, issuer),
        )
    )


def _prompt(label: str) -> str:
    return click.prompt(label, default="", hide_input=True, show_default=False, err=True)


def main() -> None:
    """Load settings, wire services and dispatch the command line."""
    try:
        settings = AppSettings()
    except Exception as e:
        print(f"FATAL: Configuration error — {e}", file=sys.stderr)  # noqa: T201
        sys.exit(1)

    configure_structlog(settings.log_level)
    log = structlog.get_logger()
    log.debug("app.starting", version=__version__, log_level=settings.log_level)

    services = create_services(settings, prompt=_prompt)
    if services.is_failure():
        print(f"FATAL: {services.error().message}", file=sys.stderr)  # noqa: T201
        sys.exit(1)

    cli(obj=services.value(), prog_name="cactl")


if __name__ == "__main__":
    main()
