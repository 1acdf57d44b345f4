"""Batch CLI command: solve every instance of a batch CSV."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.table import Table

from labsched.cli._utils import DISPATCH_CHOICE, build_config, cli_errors
from labsched.planning.batch import run_batch
from labsched.scenario.io import load_batch_instances, load_catalog

console = Console()


def batch_cmd(
    instances_csv: Annotated[
        Path, typer.Argument(exists=True, dir_okay=False, help="Batch CSV with an instance_id column.")
    ],
    catalog: Annotated[
        Path, typer.Option("--catalog", exists=True, dir_okay=False, help="Catalog YAML shared by all instances.")
    ],
    out: Annotated[Path, typer.Option("--out", help="Summary CSV path.")] = Path("batch_summary.csv"),
    details_dir: Annotated[
        Path | None, typer.Option("--details-dir", help="Directory for per-project and chamber CSVs.")
    ] = None,
    include_schedule: Annotated[
        bool, typer.Option("--include-schedule", help="Also write the job schedule to --details-dir.")
    ] = False,
    samples: Annotated[int | None, typer.Option("--samples", help="Default initial samples.")] = None,
    dispatch: Annotated[
        str | None,
        typer.Option("--dispatch", help="Default dispatch rule.", show_choices=True, click_type=DISPATCH_CHOICE),
    ] = None,
    max_iterations: Annotated[int | None, typer.Option("--max-iterations", help="Solver loop cap.")] = None,
):
    """Solve each instance of INSTANCES_CSV and write a summary table."""
    config = build_config(None, initial_samples=samples, dispatch_rule=dispatch, max_iterations=max_iterations)
    with cli_errors(console):
        cat = load_catalog(catalog)
        instances = load_batch_instances(instances_csv, cat, config.initial_samples)
        report = run_batch(instances, cat, config, include_schedule=include_schedule)
    written = report.write(out, details_dir)

    table = Table(title=f"Batch: {instances_csv.name}")
    for column in ("instance_id", "projects", "best_iteration", "total_lateness", "total_samples", "runtime_ms"):
        table.add_column(column)
    for row in report.summary.itertuples(index=False):
        table.add_row(
            str(row.instance_id),
            str(row.projects),
            str(row.best_iteration),
            str(row.total_lateness),
            str(row.total_samples),
            str(row.runtime_ms),
        )
    console.print(table)
    console.print(f"Wrote {len(written)} files (summary: {out})")


__all__ = ["batch_cmd"]
