"""
Records produced while a load test runs.

RequestRecord follows one request through the two phases. ErrorRecord and
IssuedCertificate are immutable outcomes appended by the stages.
"""

import datetime
import enum
from dataclasses import dataclass, field
from typing import Optional

from certstress.lib.formatting import to_pascal_case


class RequestStage(enum.IntEnum):
    """Lifecycle of a request. Values only ever increase, except FAILED."""

    CREATED = 0
    GENERATED = 1
    SUBMITTED = 2
    FAILED = 3

    def __str__(self) -> str:
        return to_pascal_case(self.name.lower())


class ErrorStage(enum.Enum):
    """Where a request failed."""

    GENERATION = "generation"
    SUBMISSION = "submission"
    UNEXPECTED = "unexpected"

    def __str__(self) -> str:
        return to_pascal_case(self.value)


def utc_now() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


@dataclass
class RequestRecord:
    """
    One enrollment request and its current stage.

    Owned by whichever stage is currently processing it.
    """

    id: str
    common_name: str
    template: str
    stage: RequestStage = RequestStage.CREATED
    request_path: Optional[str] = None

    def advance(self, stage: RequestStage) -> None:
        """
        Move the record to a later stage.

        Raises:
            ValueError: If the transition would go backwards or leave a terminal stage
        """
        if self.stage in (RequestStage.SUBMITTED, RequestStage.FAILED):
            raise ValueError(f"Request {self.id} is already {self.stage}")

        if stage != RequestStage.FAILED and stage <= self.stage:
            raise ValueError(
                f"Cannot move request {self.id} from {self.stage} to {stage}"
            )

        self.stage = stage


@dataclass(frozen=True)
class ErrorRecord:
    """A failure of one request. Never mutated after creation."""

    subject_id: str
    stage: ErrorStage
    message: str
    timestamp: datetime.datetime = field(default_factory=utc_now)


@dataclass(frozen=True)
class IssuedCertificate:
    """A successful submission. ca_request_id is empty when the CA reported none."""

    subject_id: str
    ca_request_id: str = ""
    certificate: Optional[bytes] = None
    certificate_path: Optional[str] = None
