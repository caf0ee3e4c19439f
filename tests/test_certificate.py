"""Tests for CSR construction."""

import dataclasses

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import NameOID

from certstress.lib.certificate import (
    create_csr,
    csr_to_der,
    csr_to_pem,
    generate_rsa_key,
    key_usage_extension,
    load_csr,
)
from certstress.lib.spec import build_request_spec


@pytest.fixture(scope="module")
def rsa_key() -> rsa.RSAPrivateKey:
    """Generate one RSA key for the module."""
    return generate_rsa_key(2048)


class TestCreateCsr:
    """Tests for create_csr."""

    def test_subject(self, rsa_key: rsa.RSAPrivateKey) -> None:
        """CSR subject is the common name of the request."""
        csr, _ = create_csr(build_request_spec("User", "abc"), key=rsa_key)
        cn = csr.subject.get_attributes_for_oid(NameOID.COMMON_NAME)[0].value
        assert cn == "LoadTestCert-abc"

    def test_signature_is_valid(self, rsa_key: rsa.RSAPrivateKey) -> None:
        """CSR is self-signed with SHA256."""
        csr, _ = create_csr(build_request_spec("User", "abc"), key=rsa_key)
        assert csr.is_signature_valid
        assert isinstance(csr.signature_hash_algorithm, hashes.SHA256)

    def test_key_usage(self, rsa_key: rsa.RSAPrivateKey) -> None:
        """CSR requests a critical digital-signature key usage."""
        csr, _ = create_csr(build_request_spec("User", "abc"), key=rsa_key)
        extension = csr.extensions.get_extension_for_class(x509.KeyUsage)
        assert extension.critical
        assert extension.value.digital_signature
        assert not extension.value.key_encipherment

    def test_generates_key_of_requested_size(self) -> None:
        """Without a key, a new 2048-bit key is generated."""
        csr, key = create_csr(build_request_spec("User", "abc"))
        assert key.key_size == 2048
        assert csr.public_key().public_numbers() == key.public_key().public_numbers()

    def test_unsupported_hash(self, rsa_key: rsa.RSAPrivateKey) -> None:
        """Unknown hash names are rejected."""
        spec = dataclasses.replace(build_request_spec("User", "abc"), hash_algorithm="MD4")
        with pytest.raises(ValueError, match="hash"):
            create_csr(spec, key=rsa_key)


class TestCsrFormats:
    """Tests for CSR format helpers."""

    def test_load_pem_and_der(self, rsa_key: rsa.RSAPrivateKey) -> None:
        """load_csr accepts both encodings."""
        csr, _ = create_csr(build_request_spec("User", "abc"), key=rsa_key)
        assert load_csr(csr_to_pem(csr)) == csr
        assert load_csr(csr_to_der(csr)) == csr

    def test_key_usage_requires_known_bit(self) -> None:
        """A key usage with no known bit is rejected."""
        with pytest.raises(ValueError):
            key_usage_extension(0x01)
