"""labsched: chamber and sample scheduling for appliance certification tests."""

from labsched.core.errors import (
    ConvergenceFailure,
    InfeasibleInstance,
    InvalidConfiguration,
    LabSchedError,
    ValidationFailure,
)
from labsched.evaluation.utilization import compute_utilization
from labsched.evaluation.validation import ensure_valid, validate_schedule
from labsched.optimization.rooms import get_room_assigner
from labsched.planning.config import SolverConfig
from labsched.planning.solver import Solution, solve
from labsched.scenario.contract import Catalog, Project, Scenario
from labsched.scheduling import EvalResult, evaluate

__all__ = [
    "Catalog",
    "ConvergenceFailure",
    "EvalResult",
    "InfeasibleInstance",
    "InvalidConfiguration",
    "LabSchedError",
    "Project",
    "Scenario",
    "Solution",
    "SolverConfig",
    "ValidationFailure",
    "compute_utilization",
    "ensure_valid",
    "evaluate",
    "get_room_assigner",
    "solve",
    "validate_schedule",
]
