"""
Load test orchestration for certstress.

A LoadTest run has two strict phases separated by a barrier:

1. Generation - build N request specs and create a request file for each
2. Submission - submit every generated request to the CA

Both phases run on a bounded worker pool. Per-request failures are recorded
and reported; only a setup failure (invalid parameters, unusable output
directory) stops the run, and it does so before any request is generated.
"""

import threading
from typing import List, Optional

from certstress.lib.enroll import EnrollmentClient
from certstress.lib.errors import SetupError
from certstress.lib.files import ensure_output_dir
from certstress.lib.logger import logging
from certstress.lib.models import IssuedCertificate
from certstress.lib.report import RunReport, summarize
from certstress.lib.spec import RequestSpec, build_request_spec, new_subject_id
from certstress.lib.stages import GenerationStage, SubmissionStage
from certstress.lib.time import Stopwatch


class LoadTest:
    """
    One load test run against a CA.
    """

    def __init__(
        self,
        client: EnrollmentClient,
        ca_server: str,
        ca_name: str,
        template: str = "User",
        count: int = 1,
        out: str = ".",
        workers: int = 1,
        cancel: Optional[threading.Event] = None,
        **kwargs,  # type: ignore
    ):
        """
        Initialize a load test.

        Args:
            client: Enrollment client used by both phases
            ca_server: Host name of the CA server
            ca_name: Name of the CA
            template: Certificate template to request
            count: Number of requests to generate and submit
            out: Output directory for request and certificate files
            workers: Worker pool size of each phase
            cancel: Event that stops dispatching new requests when set
        """
        self.client = client
        self.ca_server = ca_server
        self.ca_name = ca_name
        self.template = template
        self.count = count
        self.out = out
        self.workers = workers
        self.cancel = cancel if cancel is not None else threading.Event()

        self.issued: List[IssuedCertificate] = []

    def build_specs(self) -> List[RequestSpec]:
        """
        Build one RequestSpec per request, each with a fresh subject id.

        Raises:
            SetupError: If the parameters are invalid
        """
        if self.count < 0:
            raise SetupError(f"Request count must not be negative, got {self.count}")

        if self.workers < 1:
            raise SetupError(f"Worker count must be at least 1, got {self.workers}")

        try:
            return [
                build_request_spec(self.template, new_subject_id())
                for _ in range(self.count)
            ]
        except ValueError as e:
            raise SetupError(str(e)) from e

    def run(self) -> RunReport:
        """
        Run both phases and summarize the outcome.

        Returns:
            RunReport over every request that was attempted

        Raises:
            SetupError: If the run could not be set up
        """
        specs = self.build_specs()
        output_dir = ensure_output_dir(self.out)

        total = Stopwatch()

        try:
            generation = GenerationStage(
                self.client, output_dir, workers=self.workers, cancel=self.cancel
            )
            generated, generation_errors = generation.run(specs)
            logging.info(f"Generated {len(generated)} of {len(specs)} request(s)")

            submission = SubmissionStage(
                self.client,
                self.ca_server,
                self.ca_name,
                output_dir,
                workers=self.workers,
                cancel=self.cancel,
            )
            issued, submission_errors = submission.run(generated)
            logging.info(f"Submitted {len(issued)} of {len(generated)} request(s)")
        finally:
            self.client.close()
            total.stop()

        if self.cancel.is_set():
            logging.warning("Run was cancelled; the report covers the completed requests")

        self.issued = issued

        return summarize(
            total=len(specs),
            generated=len(generated),
            submitted=len(issued),
            errors=generation_errors + submission_errors,
            elapsed=submission.elapsed,
            total_elapsed=total.elapsed,
        )
