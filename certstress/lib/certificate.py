"""
Certificate request construction for certstress.

This module builds PKCS#10 certificate signing requests from a RequestSpec
and converts between the certificate formats the enrollment clients use.
The request is assembled with asn1crypto so the key usage extension and the
signature are fully under our control, then loaded back into a cryptography
object.
"""

from typing import Dict, Optional, Tuple, Type

from asn1crypto import csr as asn1csr
from asn1crypto import x509 as asn1x509
from cryptography import x509
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import padding, rsa
from cryptography.hazmat.primitives.serialization import Encoding, PublicFormat
from cryptography.x509.oid import NameOID

from certstress.lib.logger import logging
from certstress.lib.spec import RequestSpec

# =========================================================================
# Constants and mappings
# =========================================================================

# certreq hash names -> (cryptography hash, asn1crypto signature algorithm)
HASH_ALGORITHMS: Dict[str, Tuple[Type[hashes.HashAlgorithm], str]] = {
    "SHA1": (hashes.SHA1, "sha1_rsa"),
    "SHA256": (hashes.SHA256, "sha256_rsa"),
    "SHA384": (hashes.SHA384, "sha384_rsa"),
    "SHA512": (hashes.SHA512, "sha512_rsa"),
}

# Bit positions in the KeyUsage BIT STRING, keyed by the CERT_*_KEY_USAGE byte flag
KEY_USAGE_BITS = {
    0x80: "digital_signature",
    0x40: "non_repudiation",
    0x20: "key_encipherment",
    0x10: "data_encipherment",
    0x08: "key_agreement",
    0x04: "key_cert_sign",
    0x02: "crl_sign",
}


# =========================================================================
# Format conversion utilities
# =========================================================================


def csr_to_der(csr: x509.CertificateSigningRequest) -> bytes:
    """Convert CSR to DER format."""
    return csr.public_bytes(Encoding.DER)


def csr_to_pem(csr: x509.CertificateSigningRequest) -> bytes:
    """Convert CSR to PEM format."""
    return csr.public_bytes(Encoding.PEM)


def load_csr(data: bytes) -> x509.CertificateSigningRequest:
    """Load a CSR from PEM or DER bytes."""
    if b"-----BEGIN" in data:
        return x509.load_pem_x509_csr(data)
    return x509.load_der_x509_csr(data)


def der_to_cert(certificate: bytes) -> x509.Certificate:
    """Convert DER-encoded certificate to object."""
    return x509.load_der_x509_certificate(certificate)


def cert_to_pem(cert: x509.Certificate) -> bytes:
    """Convert certificate to PEM format."""
    return cert.public_bytes(Encoding.PEM)


# =========================================================================
# Key and request operations
# =========================================================================


def generate_rsa_key(key_size: int = 2048) -> rsa.RSAPrivateKey:
    """
    Generate a new RSA private key.

    Args:
        key_size: Key size in bits (default: 2048)

    Returns:
        RSA private key object
    """
    return rsa.generate_private_key(public_exponent=0x10001, key_size=key_size)


def rsa_pkcs1v15_sign(
    data: bytes,
    key: rsa.RSAPrivateKey,
    hash_algorithm: Type[hashes.HashAlgorithm] = hashes.SHA256,
) -> bytes:
    """Sign data using RSA PKCS#1 v1.5 padding."""
    return key.sign(data, padding.PKCS1v15(), hash_algorithm())


def key_usage_extension(key_usage: int) -> asn1x509.Extension:
    """
    Build a critical KeyUsage extension from CERT_*_KEY_USAGE flags.

    Raises:
        ValueError: If no known usage bit is set
    """
    usages = set(name for flag, name in KEY_USAGE_BITS.items() if key_usage & flag)
    if not usages:
        raise ValueError(f"Unsupported key usage 0x{key_usage:x}")

    return asn1x509.Extension(
        {
            "extn_id": "key_usage",
            "critical": True,
            "extn_value": asn1x509.KeyUsage(usages),
        }
    )


def create_csr(
    spec: RequestSpec,
    key: Optional[rsa.RSAPrivateKey] = None,
) -> Tuple[x509.CertificateSigningRequest, rsa.RSAPrivateKey]:
    """
    Create a certificate signing request for a RequestSpec.

    Args:
        spec: Request parameters (subject, key size, hash, key usage)
        key: RSA private key (generated if None)

    Returns:
        Tuple of (CSR, private_key)

    Raises:
        ValueError: If the hash algorithm or key usage is not supported
    """
    hash_name = spec.hash_algorithm.upper()
    if hash_name not in HASH_ALGORITHMS:
        raise ValueError(f"Unsupported hash algorithm {spec.hash_algorithm!r}")
    hash_algorithm, signature_algorithm = HASH_ALGORITHMS[hash_name]

    if key is None:
        logging.debug(f"Generating {spec.key_size}-bit RSA key for {spec.id}")
        key = generate_rsa_key(spec.key_size)

    certification_request_info = asn1csr.CertificationRequestInfo()
    certification_request_info["version"] = "v1"

    subject_name = x509.Name(
        [x509.NameAttribute(NameOID.COMMON_NAME, spec.common_name)]
    )
    certification_request_info["subject"] = asn1csr.Name.load(
        subject_name.public_bytes()
    )

    public_key = key.public_key().public_bytes(
        Encoding.DER, PublicFormat.SubjectPublicKeyInfo
    )
    certification_request_info["subject_pk_info"] = asn1csr.PublicKeyInfo.load(
        public_key
    )

    set_of_extensions = asn1csr.SetOfExtensions(
        [[key_usage_extension(spec.key_usage)]]
    )
    certification_request_info["attributes"] = [
        asn1csr.CRIAttribute(
            {"type": "extension_request", "values": set_of_extensions}
        )
    ]

    signature = rsa_pkcs1v15_sign(
        certification_request_info.dump(), key, hash_algorithm
    )

    csr = asn1csr.CertificationRequest(
        {
            "certification_request_info": certification_request_info,
            "signature_algorithm": asn1csr.SignedDigestAlgorithm(
                {"algorithm": signature_algorithm}
            ),
            "signature": signature,
        }
    )

    return (x509.load_der_x509_csr(csr.dump()), key)
