"""Solver result types.

Numerical failure of an integration is a value, not an exception: solvers
return a :class:`SolverFailure` which buckets pass through unchanged and the
calibration layer maps to a penalty loss.
"""

from typing import Any, Optional


class SolverFailure:
    """Sentinel returned when an integration did not succeed.

    Evaluates as False, so ``if not result:`` detects a failed run.

    Attributes:
        message: Human-readable reason
        result: Backend result code (e.g. a ``diffrax.RESULTS`` member)
    """

    def __init__(self, message: str, result: Optional[Any] = None):
        self.message = message
        self.result = result

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return f"SolverFailure({self.message!r})"


def is_failure(result: Any) -> bool:
    """True if ``result`` is a solver failure sentinel."""
    return isinstance(result, SolverFailure)
