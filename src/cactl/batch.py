"""
BatchProcessor — onboard and issue many hosts from one list.

Host list format, one host per line:

    # comment
    api.example.com  10.0.0.5  api.internal
    db.example.com

Hosts whose directory already exists are skipped, which makes a re-run
after a failure resume where it stopped. The first failing host ends the
run; hosts processed before it keep their artifacts.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field, replace
from datetime import datetime

import structlog
from railway import FailureDescription
from railway.result import Result

from cactl.domain.models import IssuanceInstance
from cactl.hosts import HostOnboarder
from cactl.issuer import CertificateIssuer
from cactl.store import AuthorityStore

log = structlog.get_logger()


@dataclass(frozen=True, slots=True)
class BatchEntry:
    hostname: str
    alt_names: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class BatchReport:
    """Outcome of a successful run, in processing order."""

    issued: tuple[IssuanceInstance, ...] = field(default_factory=tuple)
    skipped: tuple[str, ...] = field(default_factory=tuple)

    @property
    def provisioned(self) -> tuple[str, ...]:
        return tuple(instance.hostname for instance in self.issued)


def parse_host_list(text: str) -> list[BatchEntry]:
    entries = []
    for line in text.splitlines():
        fields = line.split("#", 1)[0].split()
        if fields:
            entries.append(BatchEntry(hostname=fields[0], alt_names=tuple(fields[1:])))
    return entries


class BatchProcessor:
    """Sequential onboarding + issuance over a host list."""

    def __init__(self, onboarder: HostOnboarder, issuer: CertificateIssuer) -> None:
        self._onboarder = onboarder
        self._issuer = issuer

    def run(
        self,
        store: AuthorityStore,
        entries: Iterable[BatchEntry],
        now: datetime | None = None,
    ) -> Result[BatchReport]:
        issued: list[IssuanceInstance] = []
        skipped: list[str] = []

        for entry in entries:
            if store.host_dir(entry.hostname).exists():
                log.info("batch.host_skipped", hostname=entry.hostname)
                skipped.append(entry.hostname)
                continue

            result = self._provision(store, entry, now)
            if result.is_failure():
                log.error(
                    "batch.aborted",
                    hostname=entry.hostname,
                    error=result.error().message,
                    completed=len(issued),
                )
                return result.map_failure(lambda error, host=entry.hostname: _for_host(host, error))
            issued.append(result.value())

        log.info("batch.completed", issued=len(issued), skipped=len(skipped))
        return Result.success(BatchReport(issued=tuple(issued), skipped=tuple(skipped)))

    def _provision(
        self,
        store: AuthorityStore,
        entry: BatchEntry,
        now: datetime | None,
    ) -> Result[IssuanceInstance]:
        return self._onboarder.onboard(store, entry.hostname, entry.alt_names).flat_map(
            lambda profile: self._issuer.issue_for_host(store, profile.hostname, now)
        )


def _for_host(hostname: str, error: FailureDescription) -> FailureDescription:
    return replace(error, message=f"{hostname}: {error.message}")
