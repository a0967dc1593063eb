"""
Certificate chain for IAM Roles Anywhere.

Produces a private CA (registered as the Roles Anywhere trust anchor) and
one end-entity client certificate signed by it. The end-entity certificate
and key are also written as single-line base64 files, which is the form
the ``ROLES_ANYWHERE_CERTIFICATE`` / ``ROLES_ANYWHERE_PRIVATE_KEY`` secrets
expect.

Files (under the certificates directory)::

    ca-cert.pem              0644
    ca-key.pem               0600
    end-entity-cert.pem      0644
    end-entity-key.pem       0600
    end-entity-cert.pem.b64  0644
    end-entity-key.pem.b64   0600
"""

from __future__ import annotations

import base64
import datetime
import logging
import os
from dataclasses import dataclass
from pathlib import Path

from cryptography import x509
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import ExtendedKeyUsageOID, NameOID

from devboot.core.exceptions import CertificateError

logger = logging.getLogger(__name__)

CA_CERT = "ca-cert.pem"
CA_KEY = "ca-key.pem"
LEAF_CERT = "end-entity-cert.pem"
LEAF_KEY = "end-entity-key.pem"
LEAF_CERT_B64 = "end-entity-cert.pem.b64"
LEAF_KEY_B64 = "end-entity-key.pem.b64"

_PUBLIC_EXPONENT = 65537


@dataclass(frozen=True)
class CertificateChain:
    directory: Path

    @property
    def ca_cert(self) -> Path:
        return self.directory / CA_CERT

    @property
    def ca_key(self) -> Path:
        return self.directory / CA_KEY

    @property
    def leaf_cert(self) -> Path:
        return self.directory / LEAF_CERT

    @property
    def leaf_key(self) -> Path:
        return self.directory / LEAF_KEY

    @property
    def leaf_cert_b64(self) -> Path:
        return self.directory / LEAF_CERT_B64

    @property
    def leaf_key_b64(self) -> Path:
        return self.directory / LEAF_KEY_B64


def existing_certificates(directory: Path) -> list[Path]:
    """Return the CA / end-entity certificates already present in ``directory``."""
    return [p for p in (directory / CA_CERT, directory / LEAF_CERT) if p.exists()]


def _name(common_name: str, organization: str, unit: str) -> x509.Name:
    return x509.Name(
        [
            x509.NameAttribute(NameOID.COMMON_NAME, common_name),
            x509.NameAttribute(NameOID.ORGANIZATION_NAME, organization),
            x509.NameAttribute(NameOID.ORGANIZATIONAL_UNIT_NAME, unit),
        ]
    )


def _key_pem(key: rsa.RSAPrivateKey) -> bytes:
    return key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    )


def _write(path: Path, data: bytes, mode: int) -> None:
    fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, mode)
    os.fchmod(fd, mode)
    with os.fdopen(fd, "wb") as fh:
        fh.write(data)


def build_ca(
    common_name: str, organization: str, validity_days: int, key_size: int
) -> tuple[rsa.RSAPrivateKey, x509.Certificate]:
    key = rsa.generate_private_key(public_exponent=_PUBLIC_EXPONENT, key_size=key_size)
    name = _name(f"{common_name}-ca", organization, "Development")
    now = datetime.datetime.now(datetime.timezone.utc)
    cert = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now)
        .not_valid_after(now + datetime.timedelta(days=validity_days))
        .add_extension(x509.BasicConstraints(ca=True, path_length=None), critical=True)
        .add_extension(
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
        .add_extension(x509.SubjectKeyIdentifier.from_public_key(key.public_key()), critical=False)
        .sign(key, hashes.SHA256())
    )
    return key, cert


def build_leaf(
    ca_key: rsa.RSAPrivateKey,
    ca_cert: x509.Certificate,
    common_name: str,
    organization: str,
    validity_days: int,
    key_size: int,
) -> tuple[rsa.RSAPrivateKey, x509.Certificate]:
    key = rsa.generate_private_key(public_exponent=_PUBLIC_EXPONENT, key_size=key_size)
    now = datetime.datetime.now(datetime.timezone.utc)
    cert = (
        x509.CertificateBuilder()
        .subject_name(_name(common_name, organization, "Devcontainer"))
        .issuer_name(ca_cert.subject)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now)
        .not_valid_after(now + datetime.timedelta(days=validity_days))
        .add_extension(x509.BasicConstraints(ca=False, path_length=None), critical=True)
        .add_extension(
            x509.KeyUsage(
                digital_signature=True,
                content_commitment=False,
                key_encipherment=False,
                data_encipherment=False,
                key_agreement=False,
                key_cert_sign=False,
                crl_sign=False,
                encipher_only=False,
                decipher_only=False,
            ),
            critical=True,
        )
        .add_extension(x509.ExtendedKeyUsage([ExtendedKeyUsageOID.CLIENT_AUTH]), critical=False)
        .add_extension(x509.SubjectKeyIdentifier.from_public_key(key.public_key()), critical=False)
        .add_extension(
            x509.AuthorityKeyIdentifier.from_issuer_public_key(ca_key.public_key()),
            critical=False,
        )
        .sign(ca_key, hashes.SHA256())
    )
    return key, cert


def verify_chain(ca_pem: bytes, leaf_pem: bytes) -> None:
    """Raise CertificateError unless ``leaf_pem`` was issued and signed by ``ca_pem``."""
    try:
        ca = x509.load_pem_x509_certificate(ca_pem)
        leaf = x509.load_pem_x509_certificate(leaf_pem)
    except ValueError as exc:
        raise CertificateError(f"Cannot parse certificate: {exc}") from exc
    try:
        leaf.verify_directly_issued_by(ca)
    except (ValueError, TypeError, InvalidSignature) as exc:
        raise CertificateError(f"Certificate chain verification failed: {exc}") from exc


def generate_chain(
    directory: Path,
    common_name: str,
    organization: str,
    validity_days: int,
    key_size: int,
) -> CertificateChain:
    """Generate, verify and write the CA + end-entity chain into ``directory``."""
    chain = CertificateChain(directory)
    ca_key, ca_cert = build_ca(common_name, organization, validity_days, key_size)
    leaf_key, leaf_cert = build_leaf(
        ca_key, ca_cert, common_name, organization, validity_days, key_size
    )

    ca_pem = ca_cert.public_bytes(serialization.Encoding.PEM)
    leaf_pem = leaf_cert.public_bytes(serialization.Encoding.PEM)
    leaf_key_pem = _key_pem(leaf_key)
    verify_chain(ca_pem, leaf_pem)

    try:
        directory.mkdir(parents=True, exist_ok=True)
        _write(chain.ca_key, _key_pem(ca_key), 0o600)
        _write(chain.ca_cert, ca_pem, 0o644)
        _write(chain.leaf_key, leaf_key_pem, 0o600)
        _write(chain.leaf_cert, leaf_pem, 0o644)
        _write(chain.leaf_cert_b64, base64.b64encode(leaf_pem), 0o644)
        _write(chain.leaf_key_b64, base64.b64encode(leaf_key_pem), 0o600)
    except OSError as exc:
        raise CertificateError(f"Cannot write certificates to {directory}: {exc}") from exc

    logger.info("Certificate chain written to %s", directory)
    return chain
