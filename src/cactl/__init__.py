"""
cactl — a small, file-backed certificate authority.

Keeps root and intermediate CAs as plain directories (OpenSSL-compatible
index.txt ledger, serial and crlnumber counters), onboards hosts, issues
and revokes their certificates and publishes CRLs.

Built on the Railway-Oriented Programming (ROP) framework for
explicit, composable, functional error handling.
"""

__version__ = "0.1.0"
