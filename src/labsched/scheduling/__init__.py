"""Job-based dispatch scheduler and its result types."""

from labsched.core.types import DispatchRule, PulldownGate

from .dispatch import Candidate, evaluate, score_job
from .models import EvalResult, ProjectResult, RoomAssignment, ScheduledJob
from .state import Placement, ProjectState, StationPool

__all__ = [
    "Candidate",
    "DispatchRule",
    "EvalResult",
    "Placement",
    "ProjectResult",
    "ProjectState",
    "PulldownGate",
    "RoomAssignment",
    "ScheduledJob",
    "StationPool",
    "evaluate",
    "score_job",
]
