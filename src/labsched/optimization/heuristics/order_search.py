"""Dispatch-order local search (EDD only).

The search perturbs an explicit project priority order, starting from EDD order, by
moving one project to another position at most ``order_ls_window`` places away. A pass
scans positions from the front and ends at the first improving move; the next pass
rescans from the front. Passes stop at the pass cap, at the evaluation budget, or when
a full scan finds nothing.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING

from labsched.core.types import DispatchRule
from labsched.scenario.contract.models import Catalog, Project
from labsched.scheduling.dispatch import evaluate
from labsched.scheduling.models import EvalResult, RoomAssignment

from .common import EvaluationBudget, SearchResult

if TYPE_CHECKING:
    from labsched.planning.config import SolverConfig


def edd_order(projects: Sequence[Project]) -> list[str]:
    """Project ids sorted by due date, input order breaking ties."""
    ranked = sorted(enumerate(projects), key=lambda item: (item[1].due_date, item[0]))
    return [project.id for _, project in ranked]


def insertion_moves(size: int, window: int) -> list[tuple[int, int]]:
    """``(source, target)`` index pairs with ``0 < |source - target| <= window``."""
    moves: list[tuple[int, int]] = []
    for source in range(size):
        for target in range(max(0, source - window), min(size - 1, source + window) + 1):
            if target != source:
                moves.append((source, target))
    return moves


def improve_order(
    catalog: Catalog,
    projects: Sequence[Project],
    rooms: RoomAssignment,
    config: SolverConfig,
    *,
    baseline: EvalResult | None = None,
) -> SearchResult:
    """Search project dispatch orders by windowed insertion moves.

    Under any rule other than EDD the search is a no-op that returns ``baseline`` (or a
    fresh evaluation) without a priority order.
    """

    if config.dispatch_rule is not DispatchRule.EDD:
        if baseline is None:
            return SearchResult(rooms, list(projects), evaluate(catalog, projects, rooms, config), evaluations=1)
        return SearchResult(rooms, list(projects), baseline)

    budget = EvaluationBudget(config.order_ls_max_evals)
    order = edd_order(projects)
    best = evaluate(catalog, projects, rooms, config, order)
    budget.spend()
    outcome = SearchResult(rooms=rooms, projects=list(projects), result=best, priority=order)

    moves = insertion_moves(len(order), config.order_ls_window)
    for _ in range(config.order_ls_max_passes):
        improved = False
        for source, target in moves:
            if budget.exhausted:
                break
            candidate = list(outcome.priority or order)
            candidate.insert(target, candidate.pop(source))
            result = evaluate(catalog, projects, rooms, config, candidate)
            budget.spend()
            if result.total_lateness < outcome.result.total_lateness:
                outcome.priority = candidate
                outcome.result = result
                outcome.accepted += 1
                outcome.moves.append(f"{candidate[target]}: {source} -> {target}")
                improved = True
                break
        if not improved or budget.exhausted:
            break

    if baseline is not None and baseline.total_lateness <= outcome.result.total_lateness:
        # the unordered EDD schedule is at least as good; keep it
        outcome.result = baseline
        outcome.priority = None
    outcome.evaluations = budget.used
    return outcome


__all__ = ["edd_order", "improve_order", "insertion_moves"]
