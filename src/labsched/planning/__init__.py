"""Solver configuration, the iterated solver loop and the batch runner."""

from .batch import SUMMARY_COLUMNS, BatchReport, run_batch
from .config import ROOM_ASSIGNERS, SolverConfig
from .solver import Solution, SolveOutcome, solve, solve_scenario

__all__ = [
    "ROOM_ASSIGNERS",
    "SUMMARY_COLUMNS",
    "BatchReport",
    "Solution",
    "SolveOutcome",
    "SolverConfig",
    "run_batch",
    "solve",
    "solve_scenario",
]
