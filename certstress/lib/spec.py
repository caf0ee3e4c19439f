"""
Logical content of a synthetic enrollment request.

A RequestSpec carries everything an enrollment client needs to produce a
PKCS#10 request: the subject, the key parameters and the template. It can be
rendered as a certreq policy file (INF) or as the attribute strings sent
alongside an RPC request.
"""

import uuid
from dataclasses import dataclass
from typing import List

# Subject names are "LoadTestCert-<id>"
COMMON_NAME_PREFIX = "LoadTestCert-"

DEFAULT_KEY_SIZE = 2048
DEFAULT_HASH_ALGORITHM = "SHA256"

# CERT_DIGITAL_SIGNATURE_KEY_USAGE
KEY_USAGE_DIGITAL_SIGNATURE = 0x80

# AT_KEYEXCHANGE
KEY_SPEC_KEYEXCHANGE = 1


@dataclass(frozen=True)
class RequestSpec:
    """
    Parameters of one enrollment request.
    """

    id: str
    common_name: str
    template: str
    key_size: int = DEFAULT_KEY_SIZE
    hash_algorithm: str = DEFAULT_HASH_ALGORITHM
    key_usage: int = KEY_USAGE_DIGITAL_SIGNATURE
    exportable: bool = True

    @property
    def subject(self) -> str:
        return f"CN={self.common_name}"

    def to_inf(self) -> str:
        """
        Render the request as a certreq policy (INF) file.

        Returns:
            INF file content with [NewRequest] and [RequestAttributes] sections
        """
        lines = [
            "[Version]",
            'Signature="$Windows NT$"',
            "",
            "[NewRequest]",
            f'Subject = "{self.subject}"',
            f"KeySpec = {KEY_SPEC_KEYEXCHANGE}",
            f"KeyLength = {self.key_size}",
            f"Exportable = {'TRUE' if self.exportable else 'FALSE'}",
            "MachineKeySet = FALSE",
            f"HashAlgorithm = {self.hash_algorithm}",
            f"KeyUsage = 0x{self.key_usage:x}",
            "RequestType = PKCS10",
            "",
            "[RequestAttributes]",
            f'CertificateTemplate = "{self.template}"',
            "",
        ]
        return "\r\n".join(lines)

    def attributes(self) -> List[str]:
        """
        Request attributes in the "Name:Value" form expected by AD CS.
        """
        return template_attributes(self.template)


def template_attributes(template: str) -> List[str]:
    """Attribute strings that request a certificate from `template`."""
    return [f"CertificateTemplate:{template}"]


def new_subject_id() -> str:
    """Return a fresh random identifier for one request."""
    return str(uuid.uuid4())


def build_request_spec(template: str, id: str) -> RequestSpec:
    """
    Build the request parameters for one synthetic certificate.

    Args:
        template: Certificate template name to request
        id: Unique identifier of the request, e.g. from new_subject_id()

    Returns:
        RequestSpec with subject "LoadTestCert-<id>", a 2048-bit key,
        SHA256 and digital-signature key usage

    Raises:
        ValueError: If the template name is empty
    """
    if not template or not template.strip():
        raise ValueError("Template name must not be empty")

    return RequestSpec(
        id=id,
        common_name=f"{COMMON_NAME_PREFIX}{id}",
        template=template.strip(),
    )
