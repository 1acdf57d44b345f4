"""pandas tables and CSV exports for solutions."""

from __future__ import annotations

from collections.abc import Sequence
from pathlib import Path
from typing import TYPE_CHECKING

import pandas as pd

from labsched.scenario.contract.models import Catalog, Project
from labsched.scheduling.models import ProjectResult, RoomAssignment, ScheduledJob

from .utilization import UtilizationSummary, compute_utilization

if TYPE_CHECKING:
    from labsched.planning.solver import Solution

__all__ = [
    "SCHEDULE_COLUMNS",
    "project_results_dataframe",
    "room_assignment_dataframe",
    "schedule_dataframe",
    "utilization_dataframes",
    "write_solution_csvs",
]

SCHEDULE_COLUMNS = [
    "project_id",
    "test_id",
    "category",
    "environment",
    "chamber_id",
    "station",
    "sample",
    "start",
    "end",
    "duration",
]


def schedule_dataframe(jobs: Sequence[ScheduledJob]) -> pd.DataFrame:
    """Return jobs sorted by start, chamber and station."""
    rows = [
        {
            "project_id": job.project_id,
            "test_id": job.test_id,
            "category": job.category.value,
            "environment": str(job.environment),
            "chamber_id": job.chamber_id,
            "station": job.station,
            "sample": job.sample,
            "start": job.start,
            "end": job.end,
            "duration": job.duration,
        }
        for job in jobs
    ]
    frame = pd.DataFrame(rows, columns=SCHEDULE_COLUMNS)
    if frame.empty:
        return frame
    return frame.sort_values(["start", "chamber_id", "station"], kind="stable").reset_index(drop=True)


def project_results_dataframe(
    results: Sequence[ProjectResult],
    projects: Sequence[Project] | None = None,
) -> pd.DataFrame:
    """Return one row per project with completion, due date, lateness and (optionally) samples."""
    samples = {project.id: project.samples for project in projects or ()}
    rows = []
    for result in results:
        row: dict[str, object] = {
            "project_id": result.project_id,
            "completion": result.completion,
            "due_date": result.due_date,
            "lateness": result.lateness,
        }
        if samples:
            row["samples"] = samples.get(result.project_id)
        rows.append(row)
    return pd.DataFrame(rows)


def room_assignment_dataframe(catalog: Catalog, rooms: RoomAssignment) -> pd.DataFrame:
    """Return the chamber -> environment table in catalog order."""
    rows = []
    for chamber in catalog.chambers:
        env = rooms.get(chamber.id)
        rows.append(
            {
                "chamber_id": chamber.id,
                "stations": chamber.stations,
                "voltage_capable": chamber.voltage_capable,
                "humidity_adjustable": chamber.humidity_adjustable,
                "environment": str(env) if env is not None else None,
                "temperature_c": env.temperature_c if env is not None else None,
                "humidity": str(env.humidity) if env is not None else None,
            }
        )
    return pd.DataFrame(rows)


def utilization_dataframes(summary: UtilizationSummary) -> tuple[pd.DataFrame, pd.DataFrame]:
    """Return ``(station_table, chamber_table)`` for a utilisation summary."""
    stations = pd.DataFrame(
        [
            {
                "chamber_id": row.chamber_id,
                "station": row.station,
                "busy_days": row.busy_days,
                "horizon_days": summary.horizon,
                "utilization": row.utilization,
            }
            for row in summary.stations
        ]
    )
    chambers = pd.DataFrame(
        [
            {
                "chamber_id": row.chamber_id,
                "stations": row.stations,
                "busy_days": row.busy_days,
                "capacity_days": row.capacity_days,
                "utilization": row.utilization,
            }
            for row in summary.chambers
        ]
    )
    return stations, chambers


def write_solution_csvs(
    solution: Solution,
    catalog: Catalog,
    out_dir: str | Path,
    *,
    include_schedule: bool = True,
) -> list[Path]:
    """Write a solution's tables to ``out_dir`` and return the written paths.

    Files: ``schedule.csv`` (unless ``include_schedule`` is false), ``project_results.csv``,
    ``chamber_env.csv``, ``station_util.csv`` and ``chamber_util.csv``.
    """

    out = Path(out_dir)
    out.mkdir(parents=True, exist_ok=True)
    written: list[Path] = []

    def emit(frame: pd.DataFrame, name: str) -> None:
        path = out / name
        frame.to_csv(path, index=False)
        written.append(path)

    if include_schedule:
        emit(schedule_dataframe(solution.jobs), "schedule.csv")
    emit(project_results_dataframe(solution.results, solution.projects), "project_results.csv")
    emit(room_assignment_dataframe(catalog, solution.rooms), "chamber_env.csv")
    station_table, chamber_table = utilization_dataframes(compute_utilization(catalog, solution.jobs))
    emit(station_table, "station_util.csv")
    emit(chamber_table, "chamber_util.csv")
    return written
