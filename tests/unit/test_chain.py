"""
Unit tests for chain assembly — leaf-most first, root never included.
"""

from __future__ import annotations

from cactl.chain import build_chain, concatenate, split_certificates


def _pem(tag: str) -> bytes:
    return f"-----BEGIN CERTIFICATE-----\n{tag}\n-----END CERTIFICATE-----\n".encode()


class TestSplitCertificates:
    def test_splits_blocks_in_order(self) -> None:
        bundle = _pem("A") + b"junk between\n" + _pem("B")
        assert split_certificates(bundle) == [_pem("A"), _pem("B")]

    def test_no_certificates(self) -> None:
        assert split_certificates(b"nothing here") == []


class TestBuildChain:
    def test_parent_is_root_gives_own_certificate_only(self) -> None:
        """
        GIVEN an intermediate signed directly by the root (no parent chain)
        WHEN its chain is built
        THEN the chain holds only its own certificate.
        """
        assert build_chain(_pem("OWN"), None) == _pem("OWN")

    def test_parent_chain_is_appended(self) -> None:
        """
        GIVEN a parent intermediate whose chain is [P]
        WHEN the child's chain is built
        THEN it is [child, P].
        """
        assert build_chain(_pem("CHILD"), _pem("P")) == _pem("CHILD") + _pem("P")

    def test_three_levels(self) -> None:
        parent_chain = build_chain(_pem("I2"), _pem("I1"))
        assert split_certificates(build_chain(_pem("I3"), parent_chain)) == [_pem("I3"), _pem("I2"), _pem("I1")]


class TestConcatenate:
    def test_adds_missing_newlines_and_skips_empty_parts(self) -> None:
        assert concatenate(b"key", b"", b"cert\n") == b"key\ncert\n"
