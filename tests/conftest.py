"""Test fixtures for certstress tests."""

import itertools
import logging
import os
import threading
from pathlib import Path
from typing import Iterable, List, Optional

import pytest

from certstress.lib.enroll import Submission
from certstress.lib.errors import CreationError, SubmissionError
from certstress.lib.logger import set_verbose
from certstress.lib.spec import RequestSpec


class FakeEnrollmentClient:
    """
    Scripted enrollment client.

    Failures are keyed by subject id so they do not depend on the order in
    which worker threads pick up requests.
    """

    def __init__(
        self,
        create_failures: Iterable[str] = (),
        create_crashes: Iterable[str] = (),
        submit_failures: Iterable[str] = (),
        submit_crashes: Iterable[str] = (),
        without_request_id: Iterable[str] = (),
    ) -> None:
        self.create_failures = set(create_failures)
        self.create_crashes = set(create_crashes)
        self.submit_failures = set(submit_failures)
        self.submit_crashes = set(submit_crashes)
        self.without_request_id = set(without_request_id)

        self._lock = threading.Lock()
        self._request_ids = itertools.count(100)
        self.created: List[str] = []
        self.submitted: List[str] = []
        self.descriptors: List[str] = []
        self.descriptor_contents: List[str] = []
        self.descriptor_bytes: List[bytes] = []
        self.closed = False

    def create(self, spec: RequestSpec, descriptor_path: str, request_path: str) -> str:
        with open(descriptor_path, "rb") as f:
            raw = f.read()
        content = raw.decode("utf-8")

        with self._lock:
            self.created.append(spec.id)
            self.descriptors.append(descriptor_path)
            self.descriptor_contents.append(content)
            self.descriptor_bytes.append(raw)

        if spec.id in self.create_failures:
            raise CreationError("certreq -new exited with code 1: Template not found")
        if spec.id in self.create_crashes:
            raise OSError("No space left on device")

        with open(request_path, "w") as f:
            f.write(f"REQUEST {spec.common_name}")

        return request_path

    def submit(
        self,
        request_path: str,
        ca_server: str,
        ca_name: str,
        template: str,
        certificate_path: str,
    ) -> Submission:
        subject_id = os.path.splitext(os.path.basename(request_path))[0]

        with self._lock:
            self.submitted.append(subject_id)
            request_id = next(self._request_ids)

        if subject_id in self.submit_failures:
            raise SubmissionError("Denied by Policy Module")
        if subject_id in self.submit_crashes:
            raise RuntimeError("client crashed")

        with open(certificate_path, "wb") as f:
            f.write(b"CERTIFICATE")

        if subject_id in self.without_request_id:
            output = "Certificate retrieved(Issued) Issued"
        else:
            output = f'RequestId: {request_id}\nRequestId: "{request_id}"\nCertificate retrieved(Issued) Issued'

        return Submission(output=output, certificate=b"CERTIFICATE")

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def output_dir(tmp_path: Path) -> str:
    """Return a temporary directory for run artifacts."""
    path = tmp_path / "out"
    path.mkdir()
    return str(path)


@pytest.fixture
def fake_client() -> FakeEnrollmentClient:
    """Return an enrollment client on which every call succeeds."""
    return FakeEnrollmentClient()


@pytest.fixture
def sequential_ids(monkeypatch: pytest.MonkeyPatch) -> List[str]:
    """Make LoadTest draw the subject ids id-1, id-2, ... in order."""
    counter = itertools.count(1)
    drawn: List[str] = []

    def _next_id() -> str:
        subject_id = f"id-{next(counter)}"
        drawn.append(subject_id)
        return subject_id

    monkeypatch.setattr("certstress.lib.loadtest.new_subject_id", _next_id)
    return drawn


def artifacts(directory: str, suffix: Optional[str] = None) -> List[str]:
    """List the files in a directory, optionally filtered by suffix."""
    names = sorted(os.listdir(directory))
    if suffix is None:
        return names
    return [name for name in names if name.endswith(suffix)]


@pytest.fixture
def reset_logger():
    """Undo logger.init() so later tests do not write to a closed stream."""
    yield
    logger = logging.getLogger("certstress")
    logger.handlers.clear()
    logger.setLevel(logging.NOTSET)
    logger.propagate = True
    set_verbose(False)
