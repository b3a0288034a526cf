"""
Error classes and counted warnings.

Configuration and distributed-consistency problems are fatal and are raised
as exceptions. Numerical problems found while updating a single cell are not
fatal: they are reported through an :class:`ErrorCounter`, which logs the
first few occurrences of each kind of problem and keeps counting after that
so the totals can be reported at the end of a run.
"""

from collections import Counter
from typing import Dict, Optional

from plasmaeq.core.logging_config import get_logger

logger = get_logger("core.errors")


class PlasmaEqError(Exception):
    """Base class for plasmaeq errors."""


class ConfigurationError(PlasmaEqError):
    """Invalid run configuration: unknown mode, missing backend, bad setting."""


class ReconciliationError(PlasmaEqError):
    """A collective round of the cell reconciliation failed or desynchronized."""


class NumericalError(PlasmaEqError):
    """A numerical contract was violated inside a computation."""


class SuperlevelError(NumericalError):
    """Sampling a level from a superlevel ran past the end of its level range."""


class ErrorCounter:
    """
    Rate-limited warning log with per-message counts.

    Parameters
    ----------
    max_repeats : int
        Number of times a given key is logged before further occurrences
        are only counted.
    """

    def __init__(self, max_repeats: int = 100):
        self.max_repeats = max_repeats
        self.counts: Counter = Counter()

    def record(self, key: str, message: str, *args) -> int:
        """
        Count one occurrence of ``key`` and log ``message`` if under the cap.

        Parameters
        ----------
        key : str
            Identifier of the kind of problem (usually the reporting function)
        message : str
            %-style log message
        *args
            Arguments for the message

        Returns
        -------
        int
            Number of occurrences of ``key`` so far
        """
        self.counts[key] += 1
        count = self.counts[key]
        if count <= self.max_repeats:
            logger.warning(message, *args)
            if count == self.max_repeats:
                logger.warning(f"{key}: suppressing further messages after {count} occurrences")
        return count

    def count(self, key: str) -> int:
        return self.counts[key]

    def total(self) -> int:
        return sum(self.counts.values())

    def summary(self) -> Dict[str, int]:
        """Return a copy of the per-key counts."""
        return dict(self.counts)

    def log_summary(self) -> None:
        for key, count in sorted(self.counts.items()):
            logger.info(f"Error summary: {count:8d} x {key}")

    def reset(self) -> None:
        self.counts.clear()


_error_counter: Optional[ErrorCounter] = None


def get_error_counter() -> ErrorCounter:
    """Get the process-wide error counter, creating it on first use."""
    global _error_counter
    if _error_counter is None:
        _error_counter = ErrorCounter()
    return _error_counter
