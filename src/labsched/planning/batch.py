"""Batch runner: solve every instance of a batch CSV and tabulate the results."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from pathlib import Path

import pandas as pd

from labsched.evaluation.exports import (
    project_results_dataframe,
    room_assignment_dataframe,
    schedule_dataframe,
)
from labsched.evaluation.utilization import compute_utilization
from labsched.scenario.contract.models import Catalog
from labsched.scenario.io.loaders import BatchInstance
from labsched.telemetry import ProgressSink

from .config import SolverConfig
from .solver import solve

__all__ = ["SUMMARY_COLUMNS", "BatchReport", "run_batch"]

SUMMARY_COLUMNS = [
    "instance_id",
    "projects",
    "best_iteration",
    "total_lateness",
    "total_samples",
    "horizon_days",
    "avg_station_util",
    "max_station_util",
    "avg_chamber_util",
    "runtime_ms",
]


@dataclass(slots=True)
class BatchReport:
    """Summary row per instance plus detail tables keyed by ``instance_id``."""

    summary: pd.DataFrame
    project_results: pd.DataFrame
    chamber_env: pd.DataFrame
    schedules: pd.DataFrame | None = None
    configs: dict[str, SolverConfig] = field(default_factory=dict)

    def write(self, out: str | Path, details_dir: str | Path | None = None) -> list[Path]:
        """Write the summary CSV and, when ``details_dir`` is given, the detail CSVs."""
        written: list[Path] = []
        out_path = Path(out)
        out_path.parent.mkdir(parents=True, exist_ok=True)
        self.summary.to_csv(out_path, index=False)
        written.append(out_path)
        if details_dir is not None:
            root = Path(details_dir)
            root.mkdir(parents=True, exist_ok=True)
            tables = [("project_results.csv", self.project_results), ("chamber_env.csv", self.chamber_env)]
            if self.schedules is not None:
                tables.append(("schedule.csv", self.schedules))
            for name, frame in tables:
                path = root / name
                frame.to_csv(path, index=False)
                written.append(path)
        return written


def _tag(frame: pd.DataFrame, instance_id: str) -> pd.DataFrame:
    frame = frame.copy()
    frame.insert(0, "instance_id", instance_id)
    return frame


def run_batch(
    instances: Sequence[BatchInstance],
    catalog: Catalog,
    config: SolverConfig,
    *,
    include_schedule: bool = False,
    progress: ProgressSink | None = None,
) -> BatchReport:
    """Solve each instance with ``config`` plus its per-instance overrides.

    Errors are not caught: an infeasible or invalid instance stops the batch.
    """

    rows: list[dict[str, object]] = []
    results: list[pd.DataFrame] = []
    envs: list[pd.DataFrame] = []
    schedules: list[pd.DataFrame] = []
    configs: dict[str, SolverConfig] = {}
    for instance in instances:
        instance_config = config.with_overrides(**instance.overrides)
        configs[instance.instance_id] = instance_config
        outcome = solve(catalog, instance.projects, instance_config, scenario_name=instance.instance_id, progress=progress)
        best = outcome.best
        util = compute_utilization(catalog, best.jobs)
        rows.append(
            {
                "instance_id": instance.instance_id,
                "projects": len(instance.projects),
                "best_iteration": best.iteration,
                "total_lateness": best.total_lateness,
                "total_samples": best.total_samples,
                "horizon_days": best.horizon,
                "avg_station_util": util.avg_station,
                "max_station_util": util.max_station,
                "avg_chamber_util": util.avg_chamber,
                "runtime_ms": int(round(outcome.runtime_seconds * 1000)),
            }
        )
        results.append(_tag(project_results_dataframe(best.results, best.projects), instance.instance_id))
        envs.append(_tag(room_assignment_dataframe(catalog, best.rooms), instance.instance_id))
        if include_schedule:
            schedules.append(_tag(schedule_dataframe(best.jobs), instance.instance_id))

    def stack(frames: list[pd.DataFrame]) -> pd.DataFrame:
        return pd.concat(frames, ignore_index=True) if frames else pd.DataFrame()

    return BatchReport(
        summary=pd.DataFrame(rows, columns=SUMMARY_COLUMNS),
        project_results=stack(results),
        chamber_env=stack(envs),
        schedules=stack(schedules) if include_schedule else None,
        configs=configs,
    )
