"""
The two phases of a load test run.

GenerationStage turns RequestSpecs into request files; SubmissionStage sends
the generated files to the CA. Each stage runs its items on a bounded
thread pool. Items are independent: a failure is recorded as an ErrorRecord
and never stops the other items. Once the cancellation event is set, items
that have not started yet are recorded as cancelled without calling the
enrollment client.
"""

import threading
from concurrent.futures import FIRST_COMPLETED, ThreadPoolExecutor, wait
from typing import Callable, Generic, Iterable, List, Optional, Sequence, Tuple, TypeVar

from certstress.lib.enroll import EnrollmentClient, parse_request_id
from certstress.lib.errors import CreationError, SubmissionError, handle_error
from certstress.lib.files import (
    CERTIFICATE_SUFFIX,
    DESCRIPTOR_SUFFIX,
    REQUEST_SUFFIX,
    artifact_path,
    descriptor_file,
)
from certstress.lib.formatting import trim
from certstress.lib.logger import is_verbose, logging
from certstress.lib.models import (
    ErrorRecord,
    ErrorStage,
    IssuedCertificate,
    RequestRecord,
    RequestStage,
)
from certstress.lib.spec import RequestSpec
from certstress.lib.time import Stopwatch

T = TypeVar("T")
Item = TypeVar("Item")

# Seconds the dispatching thread waits for a worker before checking for signals
POLL_INTERVAL = 0.5


class Collector(Generic[T]):
    """
    Lock-protected accumulator shared by the workers of one stage.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._results: List[T] = []
        self._errors: List[ErrorRecord] = []

    def add(self, result: T) -> None:
        with self._lock:
            self._results.append(result)

    def fail(self, error: ErrorRecord) -> None:
        with self._lock:
            self._errors.append(error)

    @property
    def results(self) -> List[T]:
        with self._lock:
            return list(self._results)

    @property
    def errors(self) -> List[ErrorRecord]:
        with self._lock:
            return list(self._errors)


def run_workers(
    items: Sequence[Item], work: Callable[[Item], None], workers: int, name: str
) -> None:
    """
    Call work(item) for every item on a pool of at most `workers` threads.

    Items beyond the pool size wait in the executor queue.
    """
    if not items:
        return

    with ThreadPoolExecutor(
        max_workers=max(1, workers), thread_name_prefix=name
    ) as executor:
        pending = set(executor.submit(work, item) for item in items)
        while pending:
            done, pending = wait(
                pending, timeout=POLL_INTERVAL, return_when=FIRST_COMPLETED
            )
            for future in done:
                # Workers record their own failures; anything raised here is a bug
                future.result()


def _unexpected(subject_id: str, e: Exception) -> ErrorRecord:
    if is_verbose():
        handle_error(True)
    return ErrorRecord(subject_id, ErrorStage.UNEXPECTED, f"{type(e).__name__}: {e}")


class GenerationStage:
    """
    Phase 1: create one request file per RequestSpec.

    For every spec an ephemeral INF descriptor `<id>.inf` is written, the
    enrollment client creates `<id>.req`, and the descriptor is removed again
    whatever the outcome.
    """

    def __init__(
        self,
        client: EnrollmentClient,
        output_dir: str,
        workers: int = 1,
        cancel: Optional[threading.Event] = None,
    ):
        self.client = client
        self.output_dir = output_dir
        self.workers = workers
        self.cancel = cancel if cancel is not None else threading.Event()

    def run(
        self, specs: Iterable[RequestSpec]
    ) -> Tuple[List[RequestRecord], List[ErrorRecord]]:
        """
        Generate a request file for each spec.

        Args:
            specs: Request parameters, one per request

        Returns:
            Tuple of (generated records, generation errors)
        """
        specs = list(specs)
        collector: Collector[RequestRecord] = Collector()

        logging.info(
            f"Generating {len(specs)} request(s) with {self.workers} worker(s)"
        )
        run_workers(
            specs,
            lambda spec: self._generate(spec, collector),
            self.workers,
            "generate",
        )

        return collector.results, collector.errors

    def _generate(self, spec: RequestSpec, collector: Collector[RequestRecord]) -> None:
        record = RequestRecord(
            id=spec.id, common_name=spec.common_name, template=spec.template
        )

        if self.cancel.is_set():
            record.advance(RequestStage.FAILED)
            collector.fail(
                ErrorRecord(spec.id, ErrorStage.UNEXPECTED, "Cancelled before generation")
            )
            return

        descriptor_path = artifact_path(self.output_dir, spec.id, DESCRIPTOR_SUFFIX)
        request_path = artifact_path(self.output_dir, spec.id, REQUEST_SUFFIX)

        logging.debug(f"Generating request for {spec.common_name!r}")

        try:
            with descriptor_file(spec.to_inf(), descriptor_path):
                request_path = self.client.create(spec, descriptor_path, request_path)
        except CreationError as e:
            record.advance(RequestStage.FAILED)
            logging.warning(f"Failed to generate request {spec.id}: {trim(str(e), 200)}")
            collector.fail(ErrorRecord(spec.id, ErrorStage.GENERATION, str(e)))
            return
        except Exception as e:
            record.advance(RequestStage.FAILED)
            logging.warning(f"Unexpected error while generating request {spec.id}: {e}")
            collector.fail(_unexpected(spec.id, e))
            return

        record.request_path = request_path
        record.advance(RequestStage.GENERATED)
        collector.add(record)


class SubmissionStage:
    """
    Phase 2: submit every generated request to the CA.

    The elapsed time of the phase is measured from the moment run() is
    entered and is available as `elapsed` afterwards.
    """

    def __init__(
        self,
        client: EnrollmentClient,
        ca_server: str,
        ca_name: str,
        output_dir: str,
        workers: int = 1,
        cancel: Optional[threading.Event] = None,
    ):
        self.client = client
        self.ca_server = ca_server
        self.ca_name = ca_name
        self.output_dir = output_dir
        self.workers = workers
        self.cancel = cancel if cancel is not None else threading.Event()
        self._stopwatch: Optional[Stopwatch] = None

    @property
    def elapsed(self) -> float:
        """Seconds spent in run(), 0.0 before it was called."""
        if self._stopwatch is None:
            return 0.0
        return self._stopwatch.elapsed

    def run(
        self, records: Iterable[RequestRecord]
    ) -> Tuple[List[IssuedCertificate], List[ErrorRecord]]:
        """
        Submit each generated record.

        Args:
            records: Records in stage GENERATED

        Returns:
            Tuple of (issued certificates, submission errors)
        """
        self._stopwatch = Stopwatch()

        records = list(records)
        collector: Collector[IssuedCertificate] = Collector()

        logging.info(
            f"Submitting {len(records)} request(s) to {self.ca_server}\\{self.ca_name} "
            f"with {self.workers} worker(s)"
        )

        try:
            run_workers(
                records,
                lambda record: self._submit(record, collector),
                self.workers,
                "submit",
            )
        finally:
            self._stopwatch.stop()

        return collector.results, collector.errors

    def _submit(
        self, record: RequestRecord, collector: Collector[IssuedCertificate]
    ) -> None:
        if self.cancel.is_set():
            record.advance(RequestStage.FAILED)
            collector.fail(
                ErrorRecord(record.id, ErrorStage.UNEXPECTED, "Cancelled before submission")
            )
            return

        certificate_path = artifact_path(self.output_dir, record.id, CERTIFICATE_SUFFIX)

        logging.debug(f"Submitting request for {record.common_name!r}")

        try:
            if record.request_path is None:
                raise ValueError(f"Request {record.id} has no request file")

            submission = self.client.submit(
                record.request_path,
                self.ca_server,
                self.ca_name,
                record.template,
                certificate_path,
            )
        except SubmissionError as e:
            record.advance(RequestStage.FAILED)
            logging.warning(f"Failed to submit request {record.id}: {trim(str(e), 200)}")
            collector.fail(ErrorRecord(record.id, ErrorStage.SUBMISSION, str(e)))
            return
        except Exception as e:
            record.advance(RequestStage.FAILED)
            logging.warning(f"Unexpected error while submitting request {record.id}: {e}")
            collector.fail(_unexpected(record.id, e))
            return

        # The issuance succeeded even if the response carries no request id
        request_id = parse_request_id(submission.output)
        if request_id is None:
            logging.debug(f"No request ID in response for {record.id}")
        else:
            logging.debug(f"Request {record.id} has CA request ID {request_id}")

        record.advance(RequestStage.SUBMITTED)
        collector.add(
            IssuedCertificate(
                subject_id=record.id,
                ca_request_id=request_id or "",
                certificate=submission.certificate,
                certificate_path=(
                    certificate_path if submission.certificate is not None else None
                ),
            )
        )
