"""Common labsched exceptions.

Every error here is fatal: the solver is a deterministic batch computation, so
retrying with the same inputs reproduces the same failure.
"""

from __future__ import annotations

from collections.abc import Sequence


class LabSchedError(RuntimeError):
    """Base class for labsched failures."""


class InvalidConfiguration(LabSchedError, ValueError):
    """Raised when user-provided inputs or solver settings are malformed."""


class InfeasibleInstance(LabSchedError):
    """Raised when no chamber/environment pairing can serve the demanded tests."""


class ConvergenceFailure(LabSchedError):
    """Raised when the dispatch loop exceeds its placement safety cap."""


class ValidationFailure(LabSchedError):
    """Raised when a committed schedule breaks a scheduling invariant."""

    def __init__(self, violations: Sequence[str], *, limit: int = 20) -> None:
        self.violations = list(violations)
        shown = self.violations[:limit]
        lines = [f"Schedule validation failed ({len(self.violations)} violations). First {len(shown)}:"]
        lines.extend(f"- {item}" for item in shown)
        super().__init__("\n".join(lines))


__all__ = [
    "LabSchedError",
    "InvalidConfiguration",
    "InfeasibleInstance",
    "ConvergenceFailure",
    "ValidationFailure",
]
