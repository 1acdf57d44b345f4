"""Solver loop: rooms -> room search -> sample search -> order search -> validation.

Each iteration recomputes the room assignment from the current sample counts, so a
sample-count change can shift environment workloads and hence the rooms. The loop stops
when the room assignment repeats (a fixed point) or after ``config.max_iterations``.

Example
-------
>>> from labsched.scenario.io import load_scenario
>>> from labsched.planning import SolverConfig, solve_scenario
>>> scenario = load_scenario("examples/reference/scenario.yaml")
>>> outcome = solve_scenario(scenario, SolverConfig(max_iterations=2))
>>> outcome.best.total_lateness >= 0
True
"""

from __future__ import annotations

import time
from collections.abc import Mapping, Sequence
from contextlib import nullcontext
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from labsched.core.errors import InvalidConfiguration
from labsched.evaluation.validation import ensure_valid
from labsched.optimization.heuristics import improve_order, improve_rooms, improve_samples, total_samples
from labsched.optimization.rooms import get_room_assigner
from labsched.scenario.contract.models import Catalog, Project, Scenario
from labsched.scheduling.dispatch import evaluate
from labsched.scheduling.models import EvalResult, ProjectResult, RoomAssignment, ScheduledJob
from labsched.telemetry import ProgressSink, RunTelemetryLogger, SolverEvent

from .config import SolverConfig

__all__ = ["Solution", "SolveOutcome", "check_sample_bounds", "solve", "solve_scenario"]


@dataclass(frozen=True, slots=True)
class Solution:
    """Committed state of one solver iteration.

    Attributes
    ----------
    iteration:
        One-based iteration number.
    total_lateness:
        Sum of project lateness.
    projects:
        Project snapshot (sample counts as scheduled).
    rooms:
        Room assignment used by the schedule.
    results:
        Per-project results in project order.
    jobs:
        Scheduled jobs in commit order.
    priority:
        Dispatch order found by the order search, or ``None`` for plain rule dispatch.
    """

    iteration: int
    total_lateness: int
    projects: tuple[Project, ...]
    rooms: RoomAssignment
    results: tuple[ProjectResult, ...]
    jobs: tuple[ScheduledJob, ...]
    priority: tuple[str, ...] | None = None

    @property
    def total_samples(self) -> int:
        return total_samples(self.projects)

    @property
    def horizon(self) -> int:
        return max((job.end for job in self.jobs), default=0)


@dataclass(slots=True)
class SolveOutcome:
    """Every committed iteration plus the best one.

    ``converged`` is ``True`` when the loop stopped because the room assignment repeated.
    """

    solutions: list[Solution]
    converged: bool = False
    evaluations: int = 0
    runtime_seconds: float = 0.0
    telemetry: dict[str, str] = field(default_factory=dict)

    @property
    def best(self) -> Solution:
        if not self.solutions:
            raise ValueError("Solver produced no solutions")
        return min(self.solutions, key=lambda sol: (sol.total_lateness, sol.total_samples, sol.iteration))

    @property
    def best_iteration(self) -> int:
        return self.best.iteration


def solve(
    catalog: Catalog,
    projects: Sequence[Project],
    config: SolverConfig,
    *,
    scenario_name: str = "scenario",
    progress: ProgressSink | None = None,
    telemetry_log: str | Path | None = None,
    telemetry_context: Mapping[str, Any] | None = None,
) -> SolveOutcome:
    """Run the iterated room/schedule improvement loop.

    Parameters
    ----------
    catalog, projects:
        Inputs of the run. ``projects`` is never mutated.
    config:
        Solver settings.
    scenario_name:
        Label used in progress events and telemetry.
    progress:
        Optional callback receiving a :class:`SolverEvent` after every stage.
    telemetry_log:
        Optional JSONL path for a run record (plus per-stage step records).
    telemetry_context:
        Extra metadata merged into the telemetry run record.

    Returns
    -------
    SolveOutcome
        Committed solutions in iteration order; ``outcome.best`` is the lowest-lateness one.

    Raises
    ------
    InvalidConfiguration
        When a project starts outside ``[config.min_samples, config.max_samples]``.
    InfeasibleInstance
        When rooms cannot cover the demanded environments.
    ConvergenceFailure
        When a scheduler run exceeds its placement cap.
    ValidationFailure
        When ``config.validate`` is set and a committed schedule breaks an invariant.
    """

    check_sample_bounds(projects, config)
    started = time.perf_counter()
    telemetry_logger: RunTelemetryLogger | None = None
    if telemetry_log:
        telemetry_logger = RunTelemetryLogger(
            log_path=Path(telemetry_log),
            scenario=scenario_name,
            config=config.to_dict(),
            context=dict(telemetry_context or {}),
        )
    assigner = get_room_assigner(config.room_assigner)
    outcome = SolveOutcome(solutions=[])

    with telemetry_logger if telemetry_logger else nullcontext() as run_logger:
        current = list(projects)
        previous_rooms: RoomAssignment | None = None

        def emit(iteration: int, stage: str, result: EvalResult, evaluations: int) -> None:
            if progress is None and run_logger is None:
                return
            event = SolverEvent(
                scenario=scenario_name,
                iteration=iteration,
                max_iterations=config.max_iterations,
                stage=stage,
                total_lateness=result.total_lateness,
                total_samples=total_samples(current),
                evaluations=evaluations,
                elapsed_seconds=time.perf_counter() - started,
            )
            if progress is not None:
                progress(event)
            if run_logger is not None:
                run_logger.log_stage(event)

        for iteration in range(1, config.max_iterations + 1):
            rooms = assigner.assign(catalog, current, config)
            result = evaluate(catalog, current, rooms, config)
            outcome.evaluations += 1
            emit(iteration, "rooms", result, 1)

            if config.room_ls_enabled:
                searched = improve_rooms(catalog, current, rooms, config, baseline=result)
                outcome.evaluations += searched.evaluations
                if searched.result.total_lateness < result.total_lateness:
                    rooms, result, current = searched.rooms, searched.result, searched.projects
                emit(iteration, "room_search", result, searched.evaluations)

            if previous_rooms is not None and rooms == previous_rooms:
                outcome.converged = True
                emit(iteration, "converged", result, 0)
                break

            if config.sample_ls_enabled:
                searched = improve_samples(catalog, current, rooms, config, baseline=result)
                outcome.evaluations += searched.evaluations
                current, result = searched.projects, searched.result
                emit(iteration, "sample_search", result, searched.evaluations)

            priority: tuple[str, ...] | None = None
            if config.order_search_active:
                searched = improve_order(catalog, current, rooms, config, baseline=result)
                outcome.evaluations += searched.evaluations
                result = searched.result
                priority = tuple(searched.priority) if searched.priority else None
                emit(iteration, "order_search", result, searched.evaluations)

            if config.validate:
                ensure_valid(catalog, current, rooms, result.jobs, config.pulldown_gate)

            outcome.solutions.append(
                Solution(
                    iteration=iteration,
                    total_lateness=result.total_lateness,
                    projects=tuple(current),
                    rooms=rooms,
                    results=result.project_results,
                    jobs=result.jobs,
                    priority=priority,
                )
            )
            emit(iteration, "iteration", result, 0)
            previous_rooms = rooms

        outcome.runtime_seconds = time.perf_counter() - started
        if run_logger is not None and telemetry_logger is not None:
            best_solution = outcome.best
            run_logger.finalize(
                status="ok",
                metrics={
                    "total_lateness": best_solution.total_lateness,
                    "total_samples": best_solution.total_samples,
                    "horizon_days": best_solution.horizon,
                    "best_iteration": best_solution.iteration,
                },
                extra={
                    "iterations": len(outcome.solutions),
                    "converged": outcome.converged,
                    "evaluations": outcome.evaluations,
                    "projects": len(projects),
                },
            )
            outcome.telemetry["run_id"] = telemetry_logger.run_id
            outcome.telemetry["log_path"] = str(telemetry_logger.log_path)
            if telemetry_logger.steps_path:
                outcome.telemetry["steps_path"] = str(telemetry_logger.steps_path)

    return outcome


def check_sample_bounds(projects: Sequence[Project], config: SolverConfig) -> None:
    """Raise :class:`InvalidConfiguration` for sample counts outside the configured bounds."""
    outside = [
        f"{project.id}={project.samples}"
        for project in projects
        if not config.min_samples <= project.samples <= config.max_samples
    ]
    if outside:
        raise InvalidConfiguration(
            f"Sample counts outside [{config.min_samples}, {config.max_samples}]: {', '.join(outside)}"
        )


def solve_scenario(
    scenario: Scenario,
    config: SolverConfig | None = None,
    **kwargs: Any,
) -> SolveOutcome:
    """Solve a loaded scenario, using its ``solver`` section when ``config`` is omitted."""
    if config is None:
        config = SolverConfig.from_mapping(scenario.solver)
    kwargs.setdefault("scenario_name", scenario.name)
    return solve(scenario.catalog, scenario.projects, config, **kwargs)
