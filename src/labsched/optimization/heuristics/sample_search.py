"""Sample-count local search.

Each sweep visits projects in order and tries sample deltas of +1, +2, -1 and -2 within
``[min_samples, max_samples]``. The delta with the lowest total lateness wins (ties go to
fewer samples) and is kept when it lowers lateness, or keeps it while using fewer
samples. Sweeps repeat until one makes no change or the evaluation budget runs out.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING

from labsched.scenario.contract.models import Catalog, Project
from labsched.scheduling.dispatch import evaluate
from labsched.scheduling.models import EvalResult, RoomAssignment

from .common import EvaluationBudget, SearchResult

if TYPE_CHECKING:
    from labsched.planning.config import SolverConfig

SAMPLE_DELTAS = (1, 2, -1, -2)


def improve_samples(
    catalog: Catalog,
    projects: Sequence[Project],
    rooms: RoomAssignment,
    config: SolverConfig,
    *,
    priority: Sequence[str] | None = None,
    baseline: EvalResult | None = None,
    max_evals: int | None = None,
) -> SearchResult:
    """Adjust per-project sample counts to reduce total lateness.

    Parameters
    ----------
    catalog, projects, rooms:
        State to improve. ``projects`` is not mutated; the result carries new values.
    config:
        Supplies the sample bounds, the evaluation budget and the scheduler settings.
    priority:
        Optional dispatch order forwarded to every evaluation.
    baseline:
        Evaluation of the starting state, when the caller already has one.
    max_evals:
        Budget override (defaults to ``config.sample_ls_max_evals``).
    """

    budget = EvaluationBudget(max_evals if max_evals is not None else config.sample_ls_max_evals)
    current = list(projects)
    best = baseline
    if best is None:
        best = evaluate(catalog, current, rooms, config, priority)
        budget.spend()
    outcome = SearchResult(rooms=rooms, projects=current, result=best, priority=list(priority) if priority else None)

    changed = True
    while changed and not budget.exhausted:
        changed = False
        for idx, project in enumerate(current):
            if budget.exhausted:
                break
            chosen: tuple[int, EvalResult] | None = None
            for delta in SAMPLE_DELTAS:
                count = project.samples + delta
                if count < config.min_samples or count > config.max_samples:
                    continue
                if budget.exhausted:
                    break
                trial = list(current)
                trial[idx] = project.with_samples(count)
                result = evaluate(catalog, trial, rooms, config, priority)
                budget.spend()
                if (
                    chosen is None
                    or result.total_lateness < chosen[1].total_lateness
                    or (result.total_lateness == chosen[1].total_lateness and count < chosen[0])
                ):
                    chosen = (count, result)
            if chosen is None:
                continue
            count, result = chosen
            if result.total_lateness < best.total_lateness or (
                result.total_lateness == best.total_lateness and count < project.samples
            ):
                current[idx] = project.with_samples(count)
                best = result
                changed = True
                outcome.accepted += 1
                outcome.moves.append(f"{project.id}: samples {project.samples} -> {count}")

    outcome.projects = current
    outcome.result = best
    outcome.evaluations = budget.used
    return outcome


__all__ = ["SAMPLE_DELTAS", "improve_samples"]
