"""
Keystore adapter — PKCS#12 → JKS conversion with the JDK's keytool.

Adapter layer — implements the KeystoreConverter port by running keytool
as a subprocess. When the binary is not on PATH the converter reports
itself unavailable and issuance simply skips the keystore. Each invocation
is bounded by a timeout.
"""

from __future__ import annotations

import shutil
import subprocess
from pathlib import Path

import structlog
from railway import ErrorCode
from railway.result import Result

log = structlog.get_logger()


class KeytoolConverter:
    """KeystoreConverter backed by `keytool -importkeystore`."""

    def __init__(self, binary: str = "keytool", timeout: int = 120, enabled: bool = True) -> None:
        self._binary = binary
        self._timeout = timeout
        self._enabled = enabled

    def available(self) -> bool:
        return self._enabled and shutil.which(self._binary) is not None

    def convert(self, pkcs12_path: Path, keystore_path: Path, passphrase: str) -> Result[Path]:
        command = [
            self._binary,
            "-importkeystore",
            "-noprompt",
            "-srckeystore", str(pkcs12_path),
            "-srcstoretype", "PKCS12",
            "-srcstorepass", passphrase,
            "-destkeystore", str(keystore_path),
            "-deststoretype", "JKS",
            "-deststorepass", passphrase,
        ]
        try:
            completed = subprocess.run(  # noqa: S603
                command, capture_output=True, text=True, timeout=self._timeout, check=False
            )
        except subprocess.TimeoutExpired:
            return Result.failure(
                ErrorCode.TIMEOUT_ERROR, f"keytool did not finish within {self._timeout}s"
            )
        except OSError as e:
            return Result.failure(ErrorCode.EXTERNAL_TOOL_ERROR, "Cannot run keytool", e)

        if completed.returncode != 0:
            return Result.failure(
                ErrorCode.EXTERNAL_TOOL_ERROR,
                f"keytool exited with {completed.returncode}: {completed.stderr.strip()}",
            )
        log.info("keytool.converted", keystore=str(keystore_path))
        return Result.success(keystore_path)
