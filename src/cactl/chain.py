"""
ChainBuilder — the trust chain file of an intermediate CA.

A chain lists certificates leaf-most first and stops before the root, which
is distributed out of band:

    parent is root                 → [own]
    parent is intermediate [P, …]  → [own, P, …]
"""

from __future__ import annotations

import re

_PEM_CERTIFICATE = re.compile(
    rb"-----BEGIN CERTIFICATE-----\r?\n.*?-----END CERTIFICATE-----", re.DOTALL
)


def split_certificates(pem: bytes) -> list[bytes]:
    """Individual PEM certificate blocks, in file order, newline-terminated."""
    return [block + b"\n" for block in _PEM_CERTIFICATE.findall(pem)]


def build_chain(own_certificate: bytes, parent_chain: bytes | None) -> bytes:
    """Own certificate first, then the parent's chain when the parent has one."""
    blocks = split_certificates(own_certificate)
    if parent_chain:
        blocks.extend(split_certificates(parent_chain))
    return b"".join(blocks)


def concatenate(*parts: bytes) -> bytes:
    """Join PEM documents, making sure each ends with a newline."""
    return b"".join(part if part.endswith(b"\n") else part + b"\n" for part in parts if part)
