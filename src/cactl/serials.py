"""
SerialAllocator — the two monotonic counters of an AuthorityStore.

  serial     next certificate serial (hex, OpenSSL `serial` file format)
  crlnumber  next CRL sequence number (hex, OpenSSL `crlnumber` format)

next_*() returns the current value and persists value + 1. Callers that must
only consume a number on success read it with peek_*() first and call
next_*() once the signed artifact exists. Counters never go backwards.
"""

from __future__ import annotations

import os
from pathlib import Path

import structlog
from railway import ErrorCode
from railway.result import Result

log = structlog.get_logger()

SERIAL_FILE = "serial"
CRL_NUMBER_FILE = "crlnumber"


def format_serial(value: int) -> str:
    """Upper-case hex padded to an even number of digits: 1 → '01', 256 → '0100'."""
    text = f"{value:X}"
    return text if len(text) % 2 == 0 else f"0{text}"


def parse_serial(text: str) -> Result[str]:
    """Normalize user input such as '2', '0x02' or 'a1' to the ledger's form."""
    cleaned = text.strip().lower().removeprefix("0x")
    return (
        Result.from_computation(
            lambda: int(cleaned, 16), ErrorCode.VALIDATION_ERROR, f"Not a hexadecimal serial: {text!r}"
        )
        .ensure(lambda value: value > 0, ErrorCode.VALIDATION_ERROR, f"Serial must be positive: {text!r}")
        .map(format_serial)
    )


def _write_atomically(path: Path, text: str) -> None:
    tmp = path.with_name(f".{path.name}.tmp")
    tmp.write_text(text, encoding="ascii")
    os.replace(tmp, path)


class SerialAllocator:
    """Counters persisted next to the ledger of one store."""

    def __init__(self, directory: Path) -> None:
        self._serial_path = directory / SERIAL_FILE
        self._crl_path = directory / CRL_NUMBER_FILE

    @staticmethod
    def initialize(directory: Path, serial: int = 1, crl_number: int = 0) -> Result[SerialAllocator]:
        """Write fresh counter files. Refuses to reset existing counters."""
        allocator = SerialAllocator(directory)
        for path in (allocator._serial_path, allocator._crl_path):
            if path.exists():
                return Result.failure(
                    ErrorCode.ALREADY_EXISTS, f"Counter file already exists: {path}"
                )
        return Result.from_computation(
            lambda: allocator._write_initial(serial, crl_number),
            ErrorCode.STORAGE_ERROR,
            f"Cannot initialize counters in {directory}",
        )

    def _write_initial(self, serial: int, crl_number: int) -> SerialAllocator:
        _write_atomically(self._serial_path, format_serial(serial) + "\n")
        _write_atomically(self._crl_path, format_serial(crl_number) + "\n")
        return self

    # ─────────────────────── Certificate serials ───────────────────────

    def peek_serial(self) -> Result[str]:
        return self._read(self._serial_path).map(format_serial)

    def next_serial(self) -> Result[str]:
        return self._advance(self._serial_path).map(format_serial)

    # ─────────────────────── CRL numbers ───────────────────────

    def peek_crl_number(self) -> Result[int]:
        return self._read(self._crl_path)

    def next_crl_number(self) -> Result[int]:
        return self._advance(self._crl_path)

    # ─────────────────────── File handling ───────────────────────

    def _read(self, path: Path) -> Result[int]:
        if not path.is_file():
            return Result.failure(ErrorCode.NOT_FOUND, f"Counter file missing: {path}")
        return Result.from_computation(
            lambda: int(path.read_text(encoding="ascii").strip(), 16),
            ErrorCode.INTEGRITY_ERROR,
            f"Counter file is not a hex number: {path}",
        )

    def _advance(self, path: Path) -> Result[int]:
        def write_next(current: int) -> Result[int]:
            def persist() -> int:
                _write_atomically(path, format_serial(current + 1) + "\n")
                return current

            return Result.from_computation(
                persist, ErrorCode.STORAGE_ERROR, f"Cannot persist counter {path}"
            )

        return (
            self._read(path)
            .flat_map(write_next)
            .peek(lambda current: log.debug("serials.advanced", counter=path.name, issued=current))
        )
