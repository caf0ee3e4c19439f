"""
Enrollment clients for certstress.

An enrollment client performs the two protocol-level operations of a load
test run:

- create: turn a RequestSpec into a PKCS#10 request file
- submit: send a request file to a CA and save the issued certificate

Two clients are provided:

- CertreqEnrollmentClient: runs the Windows certreq.exe utility
- RPCEnrollmentClient: builds the CSR locally and submits it via MS-ICPR

Both are safe to call from several worker threads at once. Failures are
raised as CreationError or SubmissionError; anything else escaping a client
is treated as unexpected by the caller.
"""

import re
import subprocess
import threading
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Protocol

from impacket.dcerpc.v5 import rpcrt
from impacket.dcerpc.v5.dtypes import DWORD, LPWSTR, PBYTE, ULONG
from impacket.dcerpc.v5.ndr import NDRCALL, NDRSTRUCT
from impacket.dcerpc.v5.nrpc import checkNullString
from impacket.uuid import uuidtup_to_bin

from certstress.lib.certificate import (
    cert_to_pem,
    create_csr,
    csr_to_der,
    csr_to_pem,
    der_to_cert,
    load_csr,
)
from certstress.lib.errors import CreationError, SubmissionError, translate_error_code
from certstress.lib.files import save_file
from certstress.lib.formatting import trim
from certstress.lib.logger import logging
from certstress.lib.rpc import get_dce_rpc
from certstress.lib.spec import RequestSpec, template_attributes
from certstress.lib.target import Target

# =========================================================================
# Constants and protocol UUIDs
# =========================================================================

# MS-ICPR protocol UUID
MSRPC_UUID_ICPR = uuidtup_to_bin(("91ae6020-9e3c-11cf-8d7c-00aa00c091be", "0.0"))

# Certificate disposition codes
DISPOSITION_SUCCESS = 3
DISPOSITION_PENDING = 5

# Matches both 'RequestId: 42' and 'RequestId: "42"'
REQUEST_ID_PATTERN = re.compile(r"RequestId:\s*\"?(\d+)\"?", re.IGNORECASE)


@dataclass(frozen=True)
class Submission:
    """
    Result of a successful submit call.

    output is the response text of the enrollment tool; certificate holds the
    PEM bytes written to disk, or None when the CA did not return one
    (e.g. the request is pending).
    """

    output: str
    certificate: Optional[bytes] = None


class EnrollmentClient(Protocol):
    """
    Protocol implemented by every enrollment client.
    """

    def create(
        self, spec: RequestSpec, descriptor_path: str, request_path: str
    ) -> str:
        """
        Create a PKCS#10 request file.

        Args:
            spec: Request parameters
            descriptor_path: Path of the request descriptor (INF) written for this attempt
            request_path: Where to write the request

        Returns:
            Path of the request file

        Raises:
            CreationError: If the request could not be created
        """
        ...

    def submit(
        self,
        request_path: str,
        ca_server: str,
        ca_name: str,
        template: str,
        certificate_path: str,
    ) -> Submission:
        """
        Submit a request file to a CA.

        Args:
            request_path: Request file created by create()
            ca_server: Host name of the CA server
            ca_name: Name of the CA
            template: Certificate template to request
            certificate_path: Where to write the issued certificate

        Returns:
            Submission with the response text and the certificate, if any

        Raises:
            SubmissionError: If the CA rejected the request or could not be reached
        """
        ...

    def close(self) -> None:
        """Release any connection held by the client."""
        ...


def parse_request_id(output: str) -> Optional[str]:
    """
    Extract the CA-assigned request id from an enrollment response.

    Args:
        output: Response text

    Returns:
        The request id, or None if the response does not carry one
    """
    match = REQUEST_ID_PATTERN.search(output or "")
    if match is None:
        return None
    return match.group(1)


# =========================================================================
# certreq.exe
# =========================================================================


class CertreqEnrollmentClient:
    """
    Enrollment client backed by the certreq.exe command line utility.
    """

    def __init__(self, executable: str = "certreq.exe", timeout: Optional[int] = None):
        """
        Args:
            executable: Path or name of certreq.exe
            timeout: Seconds to wait for each certreq invocation (None waits forever)
        """
        self.executable = executable
        self.timeout = timeout

    def _run(self, args: List[str]) -> subprocess.CompletedProcess:
        cmd = [self.executable] + args
        logging.debug(f"Running {subprocess.list2cmdline(cmd)}")
        return subprocess.run(
            cmd,
            capture_output=True,
            text=True,
            timeout=self.timeout,
            check=False,
        )

    @staticmethod
    def _output(result: subprocess.CompletedProcess) -> str:
        return "\n".join(
            part.strip() for part in (result.stdout, result.stderr) if part and part.strip()
        )

    def create(
        self, spec: RequestSpec, descriptor_path: str, request_path: str
    ) -> str:
        try:
            result = self._run(["-new", "-q", descriptor_path, request_path])
        except subprocess.TimeoutExpired as e:
            raise CreationError(f"certreq -new timed out after {e.timeout} seconds") from e

        if result.returncode != 0:
            raise CreationError(
                f"certreq -new exited with code {result.returncode}: {trim(self._output(result))}"
            )

        return request_path

    def submit(
        self,
        request_path: str,
        ca_server: str,
        ca_name: str,
        template: str,
        certificate_path: str,
    ) -> Submission:
        args = [
            "-submit",
            "-q",
            "-config",
            f"{ca_server}\\{ca_name}",
            "-attrib",
            f"CertificateTemplate:{template}",
            request_path,
            certificate_path,
        ]

        try:
            result = self._run(args)
        except subprocess.TimeoutExpired as e:
            raise SubmissionError(
                f"certreq -submit timed out after {e.timeout} seconds"
            ) from e

        output = self._output(result)
        if result.returncode != 0:
            raise SubmissionError(
                f"certreq -submit exited with code {result.returncode}: {trim(output)}"
            )

        certificate = None
        try:
            with open(certificate_path, "rb") as f:
                certificate = f.read()
        except FileNotFoundError:
            # Pending requests leave no certificate behind
            logging.debug(f"No certificate written to {certificate_path!r}")

        return Submission(output=output, certificate=certificate)

    def close(self) -> None:
        # certreq keeps no state between calls
        pass


# =========================================================================
# MS-ICPR
# =========================================================================


class CERTTRANSBLOB(NDRSTRUCT):
    """
    Certificate data transfer blob.

    Defined in [MS-WCCE] section 2.2.2.2
    """

    structure = (
        ("cb", ULONG),
        ("pb", PBYTE),
    )


class CertServerRequest(NDRCALL):
    """
    Defined in [MS-ICPR] section 3.1.4.1
    """

    opnum = 0
    structure = (
        ("dwFlags", DWORD),
        ("pwszAuthority", LPWSTR),
        ("pdwRequestId", DWORD),
        ("pctbAttribs", CERTTRANSBLOB),
        ("pctbRequest", CERTTRANSBLOB),
    )


class CertServerRequestResponse(NDRCALL):
    """
    Defined in [MS-ICPR] section 3.1.4.1
    """

    structure = (
        ("pdwRequestId", DWORD),
        ("pdwDisposition", ULONG),
        ("pctbCert", CERTTRANSBLOB),
        ("pctbEncodedCert", CERTTRANSBLOB),
        ("pctbDispositionMessage", CERTTRANSBLOB),
    )


def _blob_bytes(blob: Dict[str, Any]) -> bytes:
    pb = blob["pb"]
    if not pb:
        return b""
    return b"".join(pb)


def handle_rpc_request_response(
    response: Dict[str, Any], certificate_path: str
) -> Submission:
    """
    Process a CertServerRequest response.

    Issued certificates are written to certificate_path as PEM. Pending
    requests succeed without a certificate.

    Args:
        response: The RPC response
        certificate_path: Where to write the issued certificate

    Returns:
        Submission with a certreq-style response text

    Raises:
        SubmissionError: If the CA denied the request
    """
    disposition = response["pdwDisposition"]
    request_id = response["pdwRequestId"]

    disposition_message = (
        _blob_bytes(response["pctbDispositionMessage"])
        .decode("utf-16le", errors="replace")
        .rstrip("\x00")
        .strip()
    )

    if disposition == DISPOSITION_SUCCESS:
        cert = der_to_cert(_blob_bytes(response["pctbEncodedCert"]))
        pem = cert_to_pem(cert)
        save_file(pem, certificate_path)
        return Submission(
            output=f"RequestId: {request_id}\nCertificate retrieved(Issued) {disposition_message}",
            certificate=pem,
        )

    if disposition == DISPOSITION_PENDING:
        logging.warning(f"Certificate request {request_id} is pending approval")
        return Submission(
            output=f"RequestId: {request_id}\nCertificate request is pending: {disposition_message}"
        )

    error_msg = translate_error_code(disposition)
    raise SubmissionError(
        f"Request {request_id} denied ({error_msg}): {disposition_message}"
    )


class RPCEnrollmentClient:
    """
    Enrollment client that builds requests locally and submits them via MS-ICPR.

    Each worker thread keeps its own DCE/RPC connection to the CA host
    described by the Target; the ca_server argument of submit() is only
    used for logging.
    """

    def __init__(self, target: Target, dynamic: bool = False):
        """
        Args:
            target: Connection details of the CA host
            dynamic: Prefer the dynamic TCP endpoint over the named pipe
        """
        self.target = target
        self.dynamic = dynamic
        self._local = threading.local()
        self._lock = threading.Lock()
        self._connections: List[rpcrt.DCERPC_v5] = []

    @property
    def dce(self) -> rpcrt.DCERPC_v5:
        """
        Get or establish this thread's RPC connection.

        Raises:
            SubmissionError: If the CA host cannot be reached
        """
        dce = getattr(self._local, "dce", None)
        if dce is not None:
            return dce

        dce = get_dce_rpc(
            MSRPC_UUID_ICPR,
            "\\pipe\\cert",
            self.target,
            timeout=self.target.timeout,
            dynamic=self.dynamic,
        )
        if dce is None:
            raise SubmissionError(
                f"Could not connect to certificate service on {self.target.remote_name!r}"
            )

        self._local.dce = dce
        with self._lock:
            self._connections.append(dce)
        return dce

    @staticmethod
    def _disconnect(dce: rpcrt.DCERPC_v5) -> None:
        try:
            dce.disconnect()
        except Exception as e:
            logging.debug(f"Error while disconnecting: {e}")

    def _reset(self) -> None:
        dce = getattr(self._local, "dce", None)
        self._local.dce = None
        if dce is None:
            return

        with self._lock:
            if dce in self._connections:
                self._connections.remove(dce)
        self._disconnect(dce)

    def create(
        self, spec: RequestSpec, descriptor_path: str, request_path: str
    ) -> str:
        try:
            csr, _ = create_csr(spec)
        except ValueError as e:
            raise CreationError(str(e)) from e

        save_file(csr_to_pem(csr), request_path)
        return request_path

    def submit(
        self,
        request_path: str,
        ca_server: str,
        ca_name: str,
        template: str,
        certificate_path: str,
    ) -> Submission:
        with open(request_path, "rb") as f:
            csr = csr_to_der(load_csr(f.read()))

        # MS-ICPR takes "Name:Value" pairs separated by newlines
        attributes = checkNullString("\n".join(template_attributes(template))).encode(
            "utf-16le"
        )

        pctb_attribs = CERTTRANSBLOB()
        pctb_attribs["cb"] = len(attributes)
        pctb_attribs["pb"] = attributes

        pctb_request = CERTTRANSBLOB()
        pctb_request["cb"] = len(csr)
        pctb_request["pb"] = csr

        request = CertServerRequest()
        request["dwFlags"] = 0
        request["pwszAuthority"] = checkNullString(ca_name)
        request["pdwRequestId"] = 0
        request["pctbAttribs"] = pctb_attribs
        request["pctbRequest"] = pctb_request

        logging.debug(f"Submitting {request_path!r} to {ca_server}\\{ca_name} via RPC")

        dce = self.dce
        try:
            response = dce.request(request, checkError=False)
        except Exception as e:
            # A broken connection must not be reused by this thread
            self._reset()
            raise SubmissionError(f"RPC request failed: {e}") from e

        return handle_rpc_request_response(response, certificate_path)

    def close(self) -> None:
        """Disconnect every connection opened by the worker threads."""
        with self._lock:
            connections = self._connections
            self._connections = []

        for dce in connections:
            self._disconnect(dce)
