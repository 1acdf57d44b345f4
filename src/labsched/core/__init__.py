"""Core utilities shared across labsched modules."""

from .errors import (
    ConvergenceFailure,
    InfeasibleInstance,
    InvalidConfiguration,
    LabSchedError,
    ValidationFailure,
)
from .types import DispatchRule, PulldownGate, parse_enum

__all__ = [
    "ConvergenceFailure",
    "DispatchRule",
    "InfeasibleInstance",
    "InvalidConfiguration",
    "LabSchedError",
    "PulldownGate",
    "ValidationFailure",
    "parse_enum",
]
