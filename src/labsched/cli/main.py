from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console

from labsched.cli._utils import (
    ASSIGNER_CHOICE,
    DISPATCH_CHOICE,
    GATE_CHOICE,
    build_config,
    cli_errors,
    late_projects_table,
    progress_printer,
    rooms_table,
    summary_table,
)
from labsched.cli.batch import batch_cmd
from labsched.evaluation.exports import write_solution_csvs
from labsched.evaluation.utilization import compute_utilization
from labsched.optimization.rooms import build_workload, get_room_assigner, room_objective
from labsched.planning.solver import solve
from labsched.scenario.io import load_scenario

app = typer.Typer(
    add_completion=False,
    no_args_is_help=True,
    help="Test chamber scheduling for appliance certification.",
)
app.command("batch")(batch_cmd)
console = Console()


@app.command("solve")
def solve_cmd(
    scenario: Annotated[Path, typer.Argument(exists=True, dir_okay=False, help="Scenario YAML file.")],
    dispatch: Annotated[
        str | None,
        typer.Option("--dispatch", help="Dispatch rule.", show_choices=True, click_type=DISPATCH_CHOICE),
    ] = None,
    atc_k: Annotated[float | None, typer.Option("--atc-k", help="ATC look-ahead parameter k.")] = None,
    gate: Annotated[
        str | None,
        typer.Option("--gate", help="Pulldown gate policy.", show_choices=True, click_type=GATE_CHOICE),
    ] = None,
    assigner: Annotated[
        str | None,
        typer.Option("--assigner", help="Room assigner.", show_choices=True, click_type=ASSIGNER_CHOICE),
    ] = None,
    samples: Annotated[int | None, typer.Option("--samples", help="Initial samples per project.")] = None,
    max_samples: Annotated[int | None, typer.Option("--max-samples", help="Upper sample bound.")] = None,
    room_ls: Annotated[bool | None, typer.Option("--room-ls/--no-room-ls", help="Room local search.")] = None,
    sample_ls: Annotated[
        bool | None, typer.Option("--sample-ls/--no-sample-ls", help="Sample-count local search.")
    ] = None,
    order_ls: Annotated[
        bool | None, typer.Option("--order-ls/--no-order-ls", help="Dispatch-order local search (EDD).")
    ] = None,
    validate: Annotated[
        bool | None, typer.Option("--validate/--no-validate", help="Validate committed schedules.")
    ] = None,
    max_iterations: Annotated[int | None, typer.Option("--max-iterations", help="Solver loop cap.")] = None,
    out_dir: Annotated[
        Path | None, typer.Option("--out-dir", help="Write schedule and utilisation CSVs here.")
    ] = None,
    telemetry_log: Annotated[
        Path | None, typer.Option("--telemetry-log", help="Append a JSONL run record to this file.")
    ] = None,
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Print progress per stage.")] = False,
):
    """Solve a scenario and print a summary."""
    with cli_errors(console):
        sc = load_scenario(scenario)
    config = build_config(
        sc.solver,
        dispatch_rule=dispatch,
        atc_k=atc_k,
        pulldown_gate=gate,
        room_assigner=assigner,
        initial_samples=samples,
        max_samples=max_samples,
        room_ls_enabled=room_ls,
        sample_ls_enabled=sample_ls,
        order_ls_enabled=order_ls,
        validate=validate,
        max_iterations=max_iterations,
    )
    projects = list(sc.projects)

    with cli_errors(console):
        if samples is not None:
            projects = [project.with_samples(samples) for project in projects]
        outcome = solve(
            sc.catalog,
            projects,
            config,
            scenario_name=sc.name,
            progress=progress_printer(console) if verbose else None,
            telemetry_log=telemetry_log,
            telemetry_context={"command": "solve", "scenario_path": str(scenario)},
        )
    best = outcome.best
    util = compute_utilization(sc.catalog, best.jobs)
    console.print(f"[bold]Scenario:[/] {sc.name}  projects={len(projects)}  rule={config.dispatch_rule.value}")
    console.print(summary_table(outcome, best, util))
    late = late_projects_table(best)
    if late is not None:
        console.print(late)
    if verbose:
        console.print(rooms_table(sc.catalog, best.rooms))
    if out_dir is not None:
        written = write_solution_csvs(best, sc.catalog, out_dir)
        console.print(f"Wrote {len(written)} files to {out_dir}")
    if outcome.telemetry:
        console.print(f"[dim]Telemetry run {outcome.telemetry['run_id']} -> {outcome.telemetry['log_path']}[/]")


@app.command("rooms")
def rooms_cmd(
    scenario: Annotated[Path, typer.Argument(exists=True, dir_okay=False, help="Scenario YAML file.")],
    assigner: Annotated[
        str, typer.Option("--assigner", help="Room assigner.", show_choices=True, click_type=ASSIGNER_CHOICE)
    ] = "greedy",
    samples: Annotated[int | None, typer.Option("--samples", help="Samples per project.")] = None,
):
    """Print the room assignment of a scenario and its balance objective."""
    with cli_errors(console):
        sc = load_scenario(scenario)
    config = build_config(sc.solver, room_assigner=assigner)
    projects = list(sc.projects)
    room_assigner = get_room_assigner(config.room_assigner)
    with cli_errors(console):
        if samples is not None:
            projects = [project.with_samples(samples) for project in projects]
        rooms = room_assigner.assign(sc.catalog, projects, config)
    profile = build_workload(sc.catalog, projects, config.voltage_weight)
    console.print(rooms_table(sc.catalog, rooms, title=f"Room assignment ({config.room_assigner})"))
    console.print(f"Objective: {room_objective(sc.catalog, profile, rooms):.3f}")
    if getattr(room_assigner, "last_proven_optimal", True) is False:
        console.print("[yellow]Node cap reached; assignment not proven optimal.[/]")


def main() -> None:
    app()


if __name__ == "__main__":
    main()
