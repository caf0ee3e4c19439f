"""
Time span helpers for run reports.
"""

import time
from typing import Optional

SECONDS_PER_MINUTE = 60
SECONDS_PER_HOUR = 3600


class Stopwatch:
    """
    Monotonic elapsed-time clock.

    Started on construction; `elapsed` keeps growing until `stop()` is called.
    """

    def __init__(self) -> None:
        self._start = time.monotonic()
        self._end: Optional[float] = None

    def stop(self) -> float:
        if self._end is None:
            self._end = time.monotonic()
        return self.elapsed

    @property
    def elapsed(self) -> float:
        end = self._end if self._end is not None else time.monotonic()
        return end - self._start


def span_to_str(span: float) -> str:
    """
    Convert a time span in seconds to a human-readable string.

    Args:
        span: Time span in seconds

    Returns:
        e.g. "1.250 seconds", "2 minutes 5.000 seconds", "1 hour 0 minutes 3.000 seconds"
    """
    if span < 0:
        span = 0.0

    hours, rest = divmod(span, SECONDS_PER_HOUR)
    minutes, seconds = divmod(rest, SECONDS_PER_MINUTE)

    parts = []
    if hours:
        parts.append(f"{int(hours)} hour{'s' if hours != 1 else ''}")
    if hours or minutes:
        parts.append(f"{int(minutes)} minute{'s' if minutes != 1 else ''}")
    parts.append(f"{seconds:.3f} seconds")

    return " ".join(parts)
