"""
Secret sources — CA key passphrases.

Adapter layer — implements the SecretSource port:
  - InMemorySecretSource: fixed passphrases (env backend, tests)
  - FileSecretSource: one plaintext file per store, 0600, with an
    interactive fallback; an empty answer generates a random passphrase
    and persists it so later invocations find it.

Instances cache what they resolve for their own lifetime (one command).
"""

from __future__ import annotations

import hashlib
import os
import secrets
from collections.abc import Callable
from pathlib import Path
from typing import TypeAlias

import structlog
from railway import ErrorCode
from railway.result import Result

log = structlog.get_logger()

Prompt: TypeAlias = Callable[[str], str]

GENERATED_PASSPHRASE_BYTES = 32
PATH_DIGEST_CHARS = 12


def generate_passphrase() -> str:
    return secrets.token_urlsafe(GENERATED_PASSPHRASE_BYTES)


class InMemorySecretSource:
    """Passphrases held in memory: a per-store mapping with an optional default."""

    def __init__(self, default: str | None = None, per_store: dict[Path, str] | None = None) -> None:
        self._default = default
        self._per_store = {p.resolve(): v for p, v in (per_store or {}).items()}

    def passphrase_for(self, store_path: Path) -> Result[str]:
        value = self._per_store.get(store_path.resolve(), self._default)
        if not value:
            return Result.failure(ErrorCode.SECRET_ERROR, f"No passphrase configured for {store_path}")
        return Result.success(value)


class FileSecretSource:
    """
    `<directory>/<store name>-<path digest>.pass`, read if present, else prompted.

    The digest of the resolved store path keeps stores that share a
    directory name apart.

    The prompt receives a label and returns the operator's answer; an empty
    answer means "generate one for me", which is then written 0600.
    """

    def __init__(self, directory: Path, prompt: Prompt | None = None) -> None:
        self._directory = directory
        self._prompt = prompt
        self._cache: dict[Path, str] = {}

    def file_for(self, store_path: Path) -> Path:
        resolved = store_path.resolve()
        digest = hashlib.sha256(str(resolved).encode("utf-8")).hexdigest()[:PATH_DIGEST_CHARS]
        return self._directory / f"{resolved.name}-{digest}.pass"

    def passphrase_for(self, store_path: Path) -> Result[str]:
        key = store_path.resolve()
        if key in self._cache:
            return Result.success(self._cache[key])

        path = self.file_for(store_path)
        result = self._read(path) if path.is_file() else self._ask(store_path, path)
        return result.peek(lambda value: self._cache.__setitem__(key, value))

    def _read(self, path: Path) -> Result[str]:
        return Result.from_computation(
            lambda: path.read_text(encoding="utf-8").strip(),
            ErrorCode.SECRET_ERROR,
            f"Cannot read passphrase file {path}",
        ).ensure(bool, ErrorCode.SECRET_ERROR, f"Passphrase file {path} is empty")

    def _ask(self, store_path: Path, path: Path) -> Result[str]:
        if self._prompt is None:
            return Result.failure(
                ErrorCode.SECRET_ERROR,
                f"No passphrase file {path} and no interactive prompt available",
            )
        answer = self._prompt(f"Passphrase for {store_path} (empty to generate)")
        if answer:
            return Result.success(answer)
        return self._persist(path, generate_passphrase())

    def _persist(self, path: Path, value: str) -> Result[str]:
        def write() -> str:
            path.parent.mkdir(parents=True, exist_ok=True, mode=0o700)
            fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(value + "\n")
            log.info("secrets.generated", file=str(path))
            return value

        return Result.from_computation(write, ErrorCode.SECRET_ERROR, f"Cannot persist passphrase to {path}")
