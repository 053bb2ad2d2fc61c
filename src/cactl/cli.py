"""
Command line — the only layer that turns Results into exit codes.

    cactl init-root ./root --subject "/C=US/O=Acme/CN=Acme Root" --days 3650
    cactl init-intermediate ./issuing --parent ./root --subject "/O=Acme/CN=Acme Issuing" --days 1825
    cactl onboard ./issuing api.example.com 10.0.0.5
    cactl sign ./issuing api.example.com
    cactl revoke ./issuing api.example.com
    cactl revoke ./root ca:./issuing

Success exits 0. Any failure prints `error: <message>` on stderr and exits 1.
"""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path
from typing import TYPE_CHECKING, Any, TypeVar

import click
from railway import ErrorCode, LoggingExecutionContext
from railway.result import Result

from cactl import __version__
from cactl.batch import parse_host_list
from cactl.config import AuthorityConfig, load_authority_config
from cactl.domain.models import CertificateStatus, DistinguishedName, parse_target
from cactl.store import CONFIG_FILE, AuthorityStore

if TYPE_CHECKING:
    from cactl.main import Services

T = TypeVar("T")

# names or index.txt flags: "revoked" and "R" both work
_STATUS_CHOICES = [s.name.lower() for s in CertificateStatus] + [s.value for s in CertificateStatus]


def _run(operation: str, computation: Callable[[], Result[T]], render: Callable[[T], Any]) -> None:
    result = LoggingExecutionContext(operation=operation).execute(computation)
    if result.is_failure():
        click.echo(f"error: {result.error().describe()}", err=True)
        raise SystemExit(1)
    output = render(result.value())
    if output:
        click.echo(output)


def _load(store_path: Path) -> Result[AuthorityStore]:
    return AuthorityStore.load(store_path)


def _authority_config(
    store_path: Path,
    subject: str | None,
    days: int | None,
    crl_days: int,
    key_bits: int,
) -> Result[AuthorityConfig]:
    """From command options, or from a ca.cnf the operator prepared in the store."""
    if subject is None:
        return load_authority_config(store_path / CONFIG_FILE).map(
            lambda config: config.model_copy(update={"validity_days": days}) if days else config
        )
    return Result.from_computation(
        lambda: AuthorityConfig(
            subject=DistinguishedName.from_openssl(subject).as_dict(),
            validity_days=days,
            crl_days=crl_days,
            key_bits=key_bits,
        ),
        ErrorCode.CONFIGURATION_ERROR,
        f"Invalid CA configuration for subject {subject!r}",
    )


_store_argument = click.argument("store", type=click.Path(file_okay=False, path_type=Path))


def _authority_options(func: Callable[..., Any]) -> Callable[..., Any]:
    func = click.option("--subject", help="Distinguished name, e.g. /O=Acme/CN=Acme Root.")(func)
    func = click.option("--days", type=click.IntRange(min=1), help="Validity period in days.")(func)
    func = click.option("--crl-days", type=click.IntRange(min=1), help="CRL validity in days.")(func)
    func = click.option("--key-bits", type=click.IntRange(min=2048), help="RSA key size.")(func)
    return func


@click.group()
@click.version_option(__version__, prog_name="cactl")
@click.pass_context
def cli(ctx: click.Context) -> None:
    """A small file-backed certificate authority."""
    if ctx.obj is None:
        raise click.UsageError("cactl must be started through its entry point")


# ─────────────────────── Authorities ───────────────────────


@cli.command("init-root")
@_store_argument
@_authority_options
@click.pass_obj
def init_root(
    services: Services,
    store: Path,
    subject: str | None,
    days: int | None,
    crl_days: int | None,
    key_bits: int | None,
) -> None:
    """Create a self-signed root CA in STORE."""
    settings = services.settings
    _run(
        "init-root",
        lambda: _authority_config(
            store, subject, days, crl_days or settings.crl_days, key_bits or settings.key_bits
        ).flat_map(lambda config: services.initializer.initialize_root(store, config)),
        lambda authority: f"root CA {authority.config.common_name} initialized in {authority.path}",
    )


@cli.command("init-intermediate")
@_store_argument
@click.option("--parent", required=True, type=click.Path(file_okay=False, path_type=Path))
@_authority_options
@click.pass_obj
def init_intermediate(
    services: Services,
    store: Path,
    parent: Path,
    subject: str | None,
    days: int | None,
    crl_days: int | None,
    key_bits: int | None,
) -> None:
    """Create an intermediate CA in STORE, signed by the CA in PARENT."""
    settings = services.settings
    _run(
        "init-intermediate",
        lambda: _load(parent).flat_map(
            lambda parent_store: _authority_config(
                store, subject, days, crl_days or settings.crl_days, key_bits or settings.key_bits
            ).flat_map(
                lambda config: services.initializer.initialize_intermediate(store, config, parent_store)
            )
        ),
        lambda authority: f"intermediate CA {authority.config.common_name} initialized in {authority.path}",
    )


@cli.command("info")
@_store_argument
@click.pass_obj
def info(services: Services, store: Path) -> None:
    """Summarize the CA in STORE."""
    _run("info", lambda: _load(store).flat_map(_describe), lambda text: text)


def _describe(store: AuthorityStore) -> Result[str]:
    lines = [
        f"store:        {store.path}",
        f"common name:  {store.config.common_name}",
        f"kind:         {'root' if store.is_root else f'intermediate (parent {store.config.parent})'}",
        f"initialized:  {'yes' if store.is_initialized else 'no'}",
    ]
    if not store.is_initialized:
        return Result.success("\n".join(lines))
    return store.ledger().map(lambda ledger: "\n".join([
        *lines,
        *(
            f"{status.name.lower() + ':':<14}{len(ledger.list_by_status(status))}"
            for status in CertificateStatus
        ),
        f"hosts:        {', '.join(store.hosts()) or '-'}",
    ]))


# ─────────────────────── Hosts ───────────────────────


@cli.command("onboard")
@_store_argument
@click.argument("hostname")
@click.argument("alt_names", nargs=-1)
@click.pass_obj
def onboard(services: Services, store: Path, hostname: str, alt_names: tuple[str, ...]) -> None:
    """Create HOSTNAME's configuration; ALT_NAMES are IP addresses or DNS names."""
    _run(
        "onboard",
        lambda: _load(store).flat_map(lambda s: services.onboarder.onboard(s, hostname, alt_names)),
        lambda profile: f"onboarded {profile.hostname} ({profile.subject_alt_name_line})",
    )


@cli.command("sign")
@_store_argument
@click.argument("hostname")
@click.pass_obj
def sign(services: Services, store: Path, hostname: str) -> None:
    """Issue a certificate for an onboarded HOSTNAME."""
    _run(
        "sign",
        lambda: _load(store).flat_map(lambda s: services.issuer.issue_for_host(s, hostname)),
        lambda instance: f"issued serial {instance.serial} for {instance.hostname} in {instance.path}",
    )


@cli.command("batch")
@_store_argument
@click.argument("host_list", type=click.File("r"))
@click.pass_obj
def batch(services: Services, store: Path, host_list: Any) -> None:
    """Onboard and sign every host in HOST_LIST, skipping existing ones."""
    entries = parse_host_list(host_list.read())
    _run(
        "batch",
        lambda: _load(store).flat_map(lambda s: services.batch.run(s, entries)),
        lambda report: "\n".join([
            *(f"issued  {i.hostname} serial {i.serial}" for i in report.issued),
            *(f"skipped {name}" for name in report.skipped),
        ]),
    )


# ─────────────────────── Revocation ───────────────────────


@cli.command("revoke")
@_store_argument
@click.argument("target")
@click.pass_obj
def revoke(services: Services, store: Path, target: str) -> None:
    """Revoke TARGET: a hostname, or ca:<path> for an intermediate CA."""
    parsed = parse_target(target)
    _run(
        "revoke",
        lambda: _load(store).flat_map(lambda s: services.revocation.revoke(s, parsed)),
        lambda record: f"revoked serial {record.serial} ({record.common_name})",
    )


@cli.command("revoke-serial")
@_store_argument
@click.argument("serial")
@click.pass_obj
def revoke_serial(services: Services, store: Path, serial: str) -> None:
    """Revoke the certificate with hexadecimal SERIAL."""
    _run(
        "revoke-serial",
        lambda: _load(store).flat_map(lambda s: services.revocation.revoke_serial(s, serial)),
        lambda record: f"revoked serial {record.serial} ({record.common_name})",
    )


@cli.command("gen-crl")
@_store_argument
@click.pass_obj
def gen_crl(services: Services, store: Path) -> None:
    """Regenerate the CRL of STORE."""
    _run(
        "gen-crl",
        lambda: _load(store).flat_map(lambda s: services.revocation.generate_crl(s)),
        lambda number: f"published CRL #{number}",
    )


@cli.command("list")
@_store_argument
@click.option(
    "--status",
    type=click.Choice(_STATUS_CHOICES, case_sensitive=False),
    default="valid",
    show_default=True,
)
@click.pass_obj
def list_certificates(services: Services, store: Path, status: str) -> None:
    """Common names of certificates with the given status."""
    _run(
        "list",
        lambda: _load(store).flat_map(lambda s: _listing(s, CertificateStatus.from_name(status))),
        lambda names: "\n".join(names),
    )


def _listing(store: AuthorityStore, status: CertificateStatus) -> Result[list[str]]:
    return store.lock.execute(
        lambda: store.require_initialized()
        .flat_map(lambda _: store.ledger())
        .then(lambda ledger: ledger.refresh_expiry())
        .map(lambda ledger: ledger.list_by_status(status))
    )
