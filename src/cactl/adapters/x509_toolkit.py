"""
X.509 toolkit adapter — keys, requests, signing, CRLs and PKCS#12 bundles.

Adapter layer — implements the X509Toolkit port with cryptography (PyCA):
  - rsa.generate_private_key + PKCS#8 with BestAvailableEncryption (AES-256)
  - CertificateSigningRequestBuilder for requests (subject + subjectAltName)
  - CertificateBuilder for signing, with the v3_ca or usr_cert extension set
  - CertificateRevocationListBuilder with a CRLNumber extension
  - pkcs12.serialize_key_and_certificates for export bundles

All exceptions are caught at this boundary via Result.from_computation and
surface as EXTERNAL_TOOL_ERROR.
"""

from __future__ import annotations

import ipaddress
from collections.abc import Sequence
from datetime import datetime, timedelta

import structlog
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.hazmat.primitives.serialization import pkcs12
from cryptography.x509.oid import ExtendedKeyUsageOID, NameOID
from railway import ErrorCode
from railway.result import Result

from cactl.domain.models import (
    AltName,
    AltNameKind,
    CertificateRecord,
    DistinguishedName,
    ExtensionProfile,
    IssuerCredentials,
    SigningRequest,
)

log = structlog.get_logger()

# OpenSSL short names ↔ OIDs
_NAME_OIDS: dict[str, x509.ObjectIdentifier] = {
    "C": NameOID.COUNTRY_NAME,
    "ST": NameOID.STATE_OR_PROVINCE_NAME,
    "L": NameOID.LOCALITY_NAME,
    "O": NameOID.ORGANIZATION_NAME,
    "OU": NameOID.ORGANIZATIONAL_UNIT_NAME,
    "CN": NameOID.COMMON_NAME,
    "emailAddress": NameOID.EMAIL_ADDRESS,
    "serialNumber": NameOID.SERIAL_NUMBER,
    "DC": NameOID.DOMAIN_COMPONENT,
}
_SHORT_NAMES = {oid: short for short, oid in _NAME_OIDS.items()}


def to_x509_name(subject: DistinguishedName) -> x509.Name:
    attributes = []
    for key, value in subject.attributes:
        oid = _NAME_OIDS.get(key)
        if oid is None:
            raise ValueError(f"Unsupported distinguished name attribute: {key}")
        attributes.append(x509.NameAttribute(oid, value))
    return x509.Name(attributes)


def from_x509_name(name: x509.Name) -> DistinguishedName:
    return DistinguishedName(
        tuple(
            (_SHORT_NAMES.get(attr.oid, attr.oid.dotted_string), str(attr.value))
            for attr in name
        )
    )


def _general_name(alt: AltName) -> x509.GeneralName:
    if alt.kind is AltNameKind.IP:
        return x509.IPAddress(ipaddress.ip_address(alt.value))
    return x509.DNSName(alt.value)


def _password(passphrase: str | None) -> bytes | None:
    return passphrase.encode("utf-8") if passphrase else None


class CryptographyToolkit:
    """
    X509Toolkit implementation on top of the cryptography package.

    Every signature uses SHA-256.
    """

    def __init__(self) -> None:
        self._hash = hashes.SHA256()

    # ─────────────────────── Keys and requests ───────────────────────

    def generate_private_key(self, bits: int, passphrase: str | None) -> Result[bytes]:
        def generate() -> bytes:
            key = rsa.generate_private_key(public_exponent=65537, key_size=bits)
            encryption: serialization.KeySerializationEncryption = (
                serialization.BestAvailableEncryption(passphrase.encode("utf-8"))
                if passphrase
                else serialization.NoEncryption()
            )
            log.debug("toolkit.key_generated", bits=bits, encrypted=bool(passphrase))
            return key.private_bytes(
                serialization.Encoding.PEM, serialization.PrivateFormat.PKCS8, encryption
            )

        return Result.from_computation(
            generate, ErrorCode.EXTERNAL_TOOL_ERROR, f"RSA-{bits} key generation failed"
        )

    def build_csr(
        self,
        key_pem: bytes,
        passphrase: str | None,
        subject: DistinguishedName,
        alt_names: Sequence[AltName] = (),
    ) -> Result[bytes]:
        def build() -> bytes:
            key = serialization.load_pem_private_key(key_pem, password=_password(passphrase))
            builder = x509.CertificateSigningRequestBuilder().subject_name(to_x509_name(subject))
            if alt_names:
                builder = builder.add_extension(
                    x509.SubjectAlternativeName([_general_name(a) for a in alt_names]),
                    critical=False,
                )
            csr = builder.sign(key, self._hash)  # type: ignore[arg-type]
            return csr.public_bytes(serialization.Encoding.PEM)

        return Result.from_computation(
            build, ErrorCode.EXTERNAL_TOOL_ERROR, f"Cannot build CSR for {subject}"
        )

    def inspect_csr(self, csr_pem: bytes) -> Result[DistinguishedName]:
        def inspect() -> DistinguishedName:
            csr = x509.load_pem_x509_csr(csr_pem)
            if not csr.is_signature_valid:
                raise ValueError("CSR signature does not verify")
            return from_x509_name(csr.subject)

        return Result.from_computation(inspect, ErrorCode.EXTERNAL_TOOL_ERROR, "Unreadable CSR")

    # ─────────────────────── Signing ───────────────────────

    def self_sign(self, request: SigningRequest, key_pem: bytes, passphrase: str) -> Result[bytes]:
        def sign() -> bytes:
            key = serialization.load_pem_private_key(key_pem, password=_password(passphrase))
            csr = x509.load_pem_x509_csr(request.csr_pem)
            return self._issue(request, csr, csr.subject, key)

        return Result.from_computation(
            sign, ErrorCode.EXTERNAL_TOOL_ERROR, "Self-signing the CA certificate failed"
        )

    def sign(self, request: SigningRequest, issuer: IssuerCredentials) -> Result[bytes]:
        def sign() -> bytes:
            key = serialization.load_pem_private_key(issuer.key_pem, password=_password(issuer.passphrase))
            issuer_cert = x509.load_pem_x509_certificate(issuer.certificate_pem)
            csr = x509.load_pem_x509_csr(request.csr_pem)
            return self._issue(request, csr, issuer_cert.subject, key)

        return Result.from_computation(
            sign, ErrorCode.EXTERNAL_TOOL_ERROR, f"Signing serial {request.serial} failed"
        )

    def _issue(
        self,
        request: SigningRequest,
        csr: x509.CertificateSigningRequest,
        issuer_name: x509.Name,
        issuer_key: object,
    ) -> bytes:
        public_key = csr.public_key()
        builder = (
            x509.CertificateBuilder()
            .subject_name(csr.subject)
            .issuer_name(issuer_name)
            .public_key(public_key)
            .serial_number(int(request.serial, 16))
            .not_valid_before(request.issued_at)
            .not_valid_after(request.not_after)
            .add_extension(x509.SubjectKeyIdentifier.from_public_key(public_key), critical=False)
            .add_extension(
                x509.AuthorityKeyIdentifier.from_issuer_public_key(issuer_key.public_key()),  # type: ignore[attr-defined]
                critical=False,
            )
        )
        if request.profile is ExtensionProfile.V3_CA:
            builder = builder.add_extension(
                x509.BasicConstraints(ca=True, path_length=None), critical=True
            ).add_extension(
                x509.KeyUsage(
                    digital_signature=True,
                    content_commitment=False,
                    key_encipherment=False,
                    data_encipherment=False,
                    key_agreement=False,
                    key_cert_sign=True,
                    crl_sign=True,
                    encipher_only=False,
                    decipher_only=False,
                ),
                critical=True,
            )
        else:
            builder = builder.add_extension(
                x509.BasicConstraints(ca=False, path_length=None), critical=False
            ).add_extension(
                x509.KeyUsage(
                    digital_signature=True,
                    content_commitment=False,
                    key_encipherment=True,
                    data_encipherment=False,
                    key_agreement=False,
                    key_cert_sign=False,
                    crl_sign=False,
                    encipher_only=False,
                    decipher_only=False,
                ),
                critical=True,
            ).add_extension(
                x509.ExtendedKeyUsage([ExtendedKeyUsageOID.SERVER_AUTH, ExtendedKeyUsageOID.CLIENT_AUTH]),
                critical=False,
            )
            # copy_extensions = copy: the request's subjectAltName carries over
            try:
                san = csr.extensions.get_extension_for_class(x509.SubjectAlternativeName)
            except x509.ExtensionNotFound:
                san = None
            if san is not None:
                builder = builder.add_extension(san.value, critical=False)

        certificate = builder.sign(issuer_key, self._hash)  # type: ignore[arg-type]
        log.debug("toolkit.signed", serial=request.serial, profile=request.profile.value)
        return certificate.public_bytes(serialization.Encoding.PEM)

    # ─────────────────────── CRL ───────────────────────

    def export_crl(
        self,
        revoked: Sequence[CertificateRecord],
        issuer: IssuerCredentials,
        crl_number: int,
        days: int,
        issued_at: datetime,
    ) -> Result[bytes]:
        def export() -> bytes:
            key = serialization.load_pem_private_key(issuer.key_pem, password=_password(issuer.passphrase))
            issuer_cert = x509.load_pem_x509_certificate(issuer.certificate_pem)
            builder = (
                x509.CertificateRevocationListBuilder()
                .issuer_name(issuer_cert.subject)
                .last_update(issued_at)
                .next_update(issued_at + timedelta(days=days))
                .add_extension(x509.CRLNumber(crl_number), critical=False)
            )
            for record in revoked:
                entry = (
                    x509.RevokedCertificateBuilder()
                    .serial_number(record.serial_number)
                    .revocation_date(record.revoked_at or issued_at)
                    .build()
                )
                builder = builder.add_revoked_certificate(entry)
            crl = builder.sign(key, self._hash)  # type: ignore[arg-type]
            return crl.public_bytes(serialization.Encoding.PEM)

        return Result.from_computation(
            export, ErrorCode.EXTERNAL_TOOL_ERROR, f"Exporting CRL #{crl_number} failed"
        )

    # ─────────────────────── Bundles ───────────────────────

    def bundle_pkcs12(
        self,
        name: str,
        key_pem: bytes,
        certificate_pem: bytes,
        passphrase: str,
        extra_certificates_pem: bytes | None = None,
    ) -> Result[bytes]:
        def bundle() -> bytes:
            key = serialization.load_pem_private_key(key_pem, password=None)
            certificate = x509.load_pem_x509_certificate(certificate_pem)
            extras = (
                x509.load_pem_x509_certificates(extra_certificates_pem)
                if extra_certificates_pem
                else None
            )
            return pkcs12.serialize_key_and_certificates(
                name=name.encode("utf-8"),
                key=key,  # type: ignore[arg-type]
                cert=certificate,
                cas=extras,
                encryption_algorithm=serialization.BestAvailableEncryption(passphrase.encode("utf-8")),
            )

        return Result.from_computation(
            bundle, ErrorCode.EXTERNAL_TOOL_ERROR, f"PKCS#12 bundling for {name} failed"
        )
