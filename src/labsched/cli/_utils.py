"""CLI helper utilities for labsched."""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

import click
import typer
from rich.console import Console
from rich.table import Table

from labsched.core.errors import InvalidConfiguration, LabSchedError, ValidationFailure
from labsched.core.types import DispatchRule, PulldownGate
from labsched.evaluation.utilization import UtilizationSummary
from labsched.planning.config import ROOM_ASSIGNERS, SolverConfig
from labsched.planning.solver import Solution, SolveOutcome
from labsched.scenario.contract.models import Catalog
from labsched.scheduling.models import RoomAssignment
from labsched.telemetry import SolverEvent

DISPATCH_CHOICE = click.Choice([rule.value for rule in DispatchRule], case_sensitive=False)
GATE_CHOICE = click.Choice([gate.value for gate in PulldownGate], case_sensitive=False)
ASSIGNER_CHOICE = click.Choice(list(ROOM_ASSIGNERS), case_sensitive=False)


def build_config(solver_section: dict[str, Any] | None, **cli_overrides: Any) -> SolverConfig:
    """Merge a scenario ``solver:`` section with CLI flags (flags win, ``None`` means unset)."""
    try:
        return SolverConfig.from_mapping(solver_section, **cli_overrides)
    except InvalidConfiguration as exc:
        raise typer.BadParameter(str(exc)) from exc


@contextmanager
def cli_errors(console: Console) -> Iterator[None]:
    """Turn labsched errors into readable console output and a non-zero exit."""
    try:
        yield
    except InvalidConfiguration as exc:
        raise typer.BadParameter(str(exc)) from exc
    except ValidationFailure as exc:
        console.print(f"[red]Validation failed[/red] ({len(exc.violations)} violations)")
        for line in exc.violations[:20]:
            console.print(f"  - {line}")
        raise typer.Exit(1) from exc
    except LabSchedError as exc:
        console.print(f"[red]{type(exc).__name__}:[/red] {exc}")
        raise typer.Exit(1) from exc


def progress_printer(console: Console):
    """Return a progress sink that prints one line per solver stage."""

    def _print(event: SolverEvent) -> None:
        console.print(
            f"[dim]iter {event.iteration}/{event.max_iterations}[/] {event.stage:<13} "
            f"lateness={event.total_lateness} samples={event.total_samples} evals={event.evaluations}"
        )

    return _print


def rooms_table(catalog: Catalog, rooms: RoomAssignment, title: str = "Room assignment") -> Table:
    table = Table(title=title)
    table.add_column("Chamber")
    table.add_column("Stations", justify="right")
    table.add_column("Voltage")
    table.add_column("Humidity")
    table.add_column("Environment")
    for chamber in catalog.chambers:
        env = rooms.get(chamber.id)
        table.add_row(
            chamber.id,
            str(chamber.stations),
            "yes" if chamber.voltage_capable else "no",
            "yes" if chamber.humidity_adjustable else "no",
            str(env) if env is not None else "-",
        )
    return table


def summary_table(outcome: SolveOutcome, best: Solution, util: UtilizationSummary) -> Table:
    table = Table(title="Solver summary")
    table.add_column("Metric")
    table.add_column("Value", justify="right")
    table.add_row("Iterations", str(len(outcome.solutions)))
    table.add_row("Converged", "yes" if outcome.converged else "no")
    table.add_row("Best iteration", str(best.iteration))
    table.add_row("Total lateness", str(best.total_lateness))
    table.add_row("Late projects", str(sum(1 for result in best.results if result.lateness > 0)))
    table.add_row("Total samples", str(best.total_samples))
    table.add_row("Horizon (days)", str(best.horizon))
    table.add_row("Avg station util", f"{util.avg_station:.3f}")
    table.add_row("Max station util", f"{util.max_station:.3f}")
    table.add_row("Avg chamber util", f"{util.avg_chamber:.3f}")
    table.add_row("Evaluations", str(outcome.evaluations))
    table.add_row("Runtime (s)", f"{outcome.runtime_seconds:.2f}")
    return table


def late_projects_table(best: Solution, limit: int = 15) -> Table | None:
    late = sorted((result for result in best.results if result.lateness > 0), key=lambda r: -r.lateness)
    if not late:
        return None
    table = Table(title="Late projects")
    table.add_column("Project")
    table.add_column("Completion", justify="right")
    table.add_column("Due", justify="right")
    table.add_column("Lateness", justify="right")
    for result in late[:limit]:
        table.add_row(result.project_id, str(result.completion), str(result.due_date), str(result.lateness))
    return table


__all__ = [
    "ASSIGNER_CHOICE",
    "DISPATCH_CHOICE",
    "GATE_CHOICE",
    "build_config",
    "cli_errors",
    "late_projects_table",
    "progress_printer",
    "rooms_table",
    "summary_table",
]
