"""Room local search over SWAP and MOVE neighbourhoods.

SWAP exchanges the environments of two chambers; MOVE sends one chamber to another
demanded environment. Candidates that break humidity, coverage or voltage coverage are
skipped before the scheduler ever sees them. The first improving candidate of a pass is
accepted. Each round runs a SWAP pass and falls back to a MOVE pass only when SWAP found
nothing; rounds repeat until neither improves or the evaluation budget runs out.
"""

from __future__ import annotations

from collections.abc import Iterator, Sequence
from typing import TYPE_CHECKING

from labsched.optimization.rooms.workload import WorkloadProfile, build_workload, is_room_feasible
from labsched.scenario.contract.models import Catalog, Project
from labsched.scheduling.dispatch import evaluate
from labsched.scheduling.models import EvalResult, RoomAssignment

from .common import EvaluationBudget, SearchResult
from .sample_search import improve_samples

if TYPE_CHECKING:
    from labsched.planning.config import SolverConfig


def swap_neighbours(catalog: Catalog, rooms: RoomAssignment) -> Iterator[tuple[str, RoomAssignment]]:
    """Yield ``(label, candidate)`` for every pair of chambers holding different environments."""
    chamber_ids = catalog.chamber_ids()
    for i, first in enumerate(chamber_ids):
        for second in chamber_ids[i + 1 :]:
            env_a, env_b = rooms[first], rooms[second]
            if env_a == env_b:
                continue
            yield f"swap {first}<->{second}", rooms.replace({first: env_b, second: env_a})


def move_neighbours(
    catalog: Catalog, profile: WorkloadProfile, rooms: RoomAssignment
) -> Iterator[tuple[str, RoomAssignment]]:
    """Yield ``(label, candidate)`` moving one chamber to another demanded environment."""
    for chamber in catalog.chambers:
        for env in profile.environments:
            if env == rooms[chamber.id] or not chamber.can_host(env):
                continue
            yield f"move {chamber.id}->{env}", rooms.replace({chamber.id: env})


def improve_rooms(
    catalog: Catalog,
    projects: Sequence[Project],
    rooms: RoomAssignment,
    config: SolverConfig,
    *,
    priority: Sequence[str] | None = None,
    baseline: EvalResult | None = None,
) -> SearchResult:
    """Improve a room assignment by first-improvement SWAP/MOVE search.

    When ``config.room_ls_include_samples`` is set, the starting rooms and every candidate
    are scored after a sample-count search on them, and the accepted state carries the
    adjusted projects. ``baseline`` then only seeds the search on the starting rooms.
    Evaluations count room candidates scored, the baseline included when computed here.
    """

    profile = build_workload(catalog, projects, config.voltage_weight)
    budget = EvaluationBudget(config.room_ls_max_evals)
    current_projects = list(projects)
    best = baseline
    if config.room_ls_include_samples:
        start = improve_samples(catalog, projects, rooms, config, priority=priority, baseline=baseline)
        budget.spend()
        best, current_projects = start.result, start.projects
    elif best is None:
        best = evaluate(catalog, current_projects, rooms, config, priority)
        budget.spend()
    outcome = SearchResult(rooms=rooms, projects=current_projects, result=best)

    def score(candidate: RoomAssignment) -> tuple[EvalResult, list[Project]]:
        budget.spend()
        if config.room_ls_include_samples:
            searched = improve_samples(catalog, projects, candidate, config, priority=priority)
            return searched.result, searched.projects
        return evaluate(catalog, projects, candidate, config, priority), list(projects)

    def run_pass(neighbours: Iterator[tuple[str, RoomAssignment]]) -> bool:
        for label, candidate in neighbours:
            if budget.exhausted:
                return False
            if not is_room_feasible(catalog, profile, candidate):
                outcome.skipped += 1
                continue
            result, candidate_projects = score(candidate)
            if result.total_lateness < outcome.result.total_lateness:
                outcome.rooms = candidate
                outcome.result = result
                outcome.projects = candidate_projects
                outcome.accepted += 1
                outcome.moves.append(label)
                return True
        return False

    improved = True
    while improved and not budget.exhausted:
        improved = config.room_ls_swap and run_pass(swap_neighbours(catalog, outcome.rooms))
        if not improved and config.room_ls_move:
            improved = run_pass(move_neighbours(catalog, profile, outcome.rooms))

    outcome.evaluations = budget.used
    return outcome


__all__ = ["improve_rooms", "move_neighbours", "swap_neighbours"]
