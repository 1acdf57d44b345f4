"""Shared result and budget helpers for the local searches."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field

from labsched.scenario.contract.models import Project
from labsched.scheduling.models import EvalResult, RoomAssignment


@dataclass(slots=True)
class EvaluationBudget:
    """Counts scheduler re-runs against a hard cap."""

    limit: int
    used: int = 0

    @property
    def exhausted(self) -> bool:
        return self.used >= self.limit

    def spend(self, amount: int = 1) -> None:
        self.used += amount


@dataclass(slots=True)
class SearchResult:
    """Best state found by a local search.

    Attributes
    ----------
    rooms:
        Room assignment of the best state.
    projects:
        Projects of the best state (sample counts may differ from the input).
    result:
        Scheduler evaluation of the best state.
    evaluations:
        Scheduler runs spent, the baseline included when the search computed it.
    accepted:
        Improving moves accepted.
    skipped:
        Candidates discarded by feasibility filters before scoring.
    priority:
        Project dispatch order of the best state, when the search works on one.
    """

    rooms: RoomAssignment
    projects: list[Project]
    result: EvalResult
    evaluations: int = 0
    accepted: int = 0
    skipped: int = 0
    priority: list[str] | None = None
    moves: list[str] = field(default_factory=list)

    @property
    def score(self) -> int:
        return self.result.total_lateness

    @property
    def total_samples(self) -> int:
        return total_samples(self.projects)


def total_samples(projects: Sequence[Project]) -> int:
    return sum(project.samples for project in projects)


__all__ = ["EvaluationBudget", "SearchResult", "total_samples"]
