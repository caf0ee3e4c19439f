"""
Run report for certstress.

A RunReport is computed once, after both phases, and is read-only
thereafter. The throughput rate covers the submission phase only.
"""

from dataclasses import dataclass
from typing import Iterable, List, Optional, Tuple

from certstress.lib.formatting import pretty_format, trim
from certstress.lib.models import ErrorRecord
from certstress.lib.time import span_to_str

RATE_UNAVAILABLE = "unavailable"


@dataclass(frozen=True)
class RunReport:
    total_requested: int
    generated: int
    submitted: int
    failed: int
    errors: Tuple[ErrorRecord, ...]
    elapsed: float
    total_elapsed: Optional[float] = None

    @property
    def rate(self) -> Optional[float]:
        """Submitted requests per second, None when no time was measured."""
        if self.elapsed <= 0:
            return None
        return self.submitted / self.elapsed

    @property
    def generation_failures(self) -> int:
        return self.total_requested - self.generated

    @property
    def submission_failures(self) -> int:
        return self.generated - self.submitted

    def render(self) -> str:
        """
        Render the report as human-readable text.

        Returns:
            Header, per-phase counts, elapsed time, rate and one block per error
        """
        rate = self.rate
        summary = {
            "Requested": self.total_requested,
            "Generated": self.generated,
            "Submitted": self.submitted,
            "Failed": self.failed,
            "Failed at generation": self.generation_failures,
            "Failed at submission": self.submission_failures,
            "Submission time": span_to_str(self.elapsed),
            "Rate": (
                f"{rate:.2f} requests/second" if rate is not None else RATE_UNAVAILABLE
            ),
            "Total run time": (
                span_to_str(self.total_elapsed)
                if self.total_elapsed is not None
                else None
            ),
        }

        lines: List[str] = ["Load test summary"]
        lines.extend(pretty_format(summary, indent=1))

        if self.errors:
            lines.append("")
            lines.append(f"Errors ({len(self.errors)})")
            for error in self.errors:
                lines.extend(
                    pretty_format(
                        {
                            "Timestamp": error.timestamp,
                            "Subject ID": error.subject_id,
                            "Stage": str(error.stage),
                            "Message": trim(error.message),
                        },
                        indent=1,
                    )
                )
                lines.append("")
            lines.pop()

        return "\n".join(lines)


def summarize(
    total: int,
    generated: int,
    submitted: int,
    errors: Iterable[ErrorRecord],
    elapsed: float,
    total_elapsed: Optional[float] = None,
) -> RunReport:
    """
    Aggregate the outcome of a run.

    Args:
        total: Number of requests the run was asked to make
        generated: Number of request files created
        submitted: Number of requests the CA accepted
        errors: Every error recorded during the run
        elapsed: Seconds spent in the submission phase
        total_elapsed: Seconds spent in the whole run, if measured

    Returns:
        RunReport; `failed` counts the distinct requests with at least one error
    """
    errors = tuple(sorted(errors, key=lambda error: error.timestamp))
    failed = len(set(error.subject_id for error in errors))

    return RunReport(
        total_requested=total,
        generated=generated,
        submitted=submitted,
        failed=failed,
        errors=errors,
        elapsed=elapsed,
        total_elapsed=total_elapsed,
    )
