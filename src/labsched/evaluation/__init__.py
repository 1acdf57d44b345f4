"""Evaluation layer (validation, utilisation, exports)."""

from .exports import (
    project_results_dataframe,
    room_assignment_dataframe,
    schedule_dataframe,
    utilization_dataframes,
    write_solution_csvs,
)
from .utilization import ChamberUtilization, StationUtilization, UtilizationSummary, compute_utilization
from .validation import ensure_valid, validate_schedule

__all__ = [
    "ChamberUtilization",
    "StationUtilization",
    "UtilizationSummary",
    "compute_utilization",
    "ensure_valid",
    "project_results_dataframe",
    "room_assignment_dataframe",
    "schedule_dataframe",
    "utilization_dataframes",
    "validate_schedule",
    "write_solution_csvs",
]
