"""Global job-pool dispatch scheduler.

Every project exposes the jobs its phase state machine currently allows (GAS, then
one PULLDOWN per sample, then OTHER tests behind the pulldown gate, then consumer-usage
tests once every OTHER test has started). Each step scores the best ready job of every
project, commits the single best one across all projects, and repeats until the pool
is empty. Interleaving projects this way lets them share idle station time.
"""

from __future__ import annotations

import math
from collections.abc import Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING

from labsched.core.errors import ConvergenceFailure, InfeasibleInstance, InvalidConfiguration
from labsched.core.types import DispatchRule
from labsched.scenario.contract.models import Catalog, Day, Environment, Project, TestDefinition
from labsched.scheduling.models import EvalResult, ProjectResult, RoomAssignment, ScheduledJob
from labsched.scheduling.state import Placement, ProjectState, StationPool

if TYPE_CHECKING:
    from labsched.planning.config import SolverConfig

__all__ = ["Candidate", "evaluate", "score_job"]

_KEY_SCALE = 1e6


@dataclass(frozen=True, slots=True)
class Candidate:
    """Best ready job of one project together with its resource placement."""

    project_index: int
    test: TestDefinition
    placement: Placement
    score: float
    due_date: Day

    def better_than(self, other: Candidate) -> bool:
        if self.score != other.score:
            return self.score > other.score
        if self.placement.start != other.placement.start:
            return self.placement.start < other.placement.start
        if self.due_date != other.due_date:
            return self.due_date < other.due_date
        return self.project_index < other.project_index


def score_job(
    rule: DispatchRule,
    *,
    key: float,
    due_date: Day,
    start: Day,
    duration: int,
    average_remaining: float,
    atc_k: float,
) -> float:
    """Score a ready job under ``rule`` (higher is better).

    Parameters
    ----------
    rule:
        Dispatch rule.
    key:
        EDD ordering key: the due date, or the project's rank in an explicit priority order.
    due_date:
        Project due date (slack reference for MIN_SLACK and ATC).
    start, duration:
        Planned start day and run length of the job.
    average_remaining:
        Mean duration of the project's uncommitted jobs (ATC look-ahead scale).
    atc_k:
        ATC look-ahead parameter.
    """

    if rule is DispatchRule.EDD:
        return -key * _KEY_SCALE - start
    slack = due_date - start - duration
    if rule is DispatchRule.MIN_SLACK:
        return -slack * _KEY_SCALE - start
    scale = atc_k * max(1.0, average_remaining)
    return (1.0 / max(1, duration)) * math.exp(-max(0, slack) / scale)


def _priority_keys(projects: Sequence[Project], priority: Sequence[str] | None) -> list[float]:
    if priority is None:
        return [float(project.due_date) for project in projects]
    rank = {project_id: pos for pos, project_id in enumerate(priority)}
    if len(rank) != len(priority) or set(rank) != {project.id for project in projects}:
        raise InvalidConfiguration("priority must be a permutation of the project ids")
    return [float(rank[project.id]) for project in projects]


class _Dispatcher:
    def __init__(
        self,
        catalog: Catalog,
        projects: Sequence[Project],
        rooms: RoomAssignment,
        config: SolverConfig,
        priority: Sequence[str] | None,
    ) -> None:
        self.config = config
        self.pool = StationPool(catalog, rooms)
        self.states = [ProjectState.build(idx, project, catalog) for idx, project in enumerate(projects)]
        self.keys = _priority_keys(projects, priority)
        self._cache: list[Candidate | None] = [None] * len(projects)
        self._envs: list[set[Environment]] = [set() for _ in projects]
        self._dirty = [True] * len(projects)

    def _ready_jobs(self, state: ProjectState) -> list[tuple[TestDefinition, Day, list[int]]]:
        gate_policy = self.config.pulldown_gate
        jobs: list[tuple[TestDefinition, Day, list[int]]] = []
        if state.gas is not None and state.gas_pending:
            jobs.append((state.gas, 0, list(range(len(state.sample_avail)))))
            return jobs
        if state.pulldown is not None:
            for sample in state.pulldown_pending:
                jobs.append((state.pulldown, state.gas_end, [sample]))
        gate = state.gate(gate_policy)
        if gate is not None:
            release, samples = gate
            jobs.extend((test, release, samples) for test in state.others)
            consumer_gate = state.consumer_gate()
            if consumer_gate is not None:
                cu_release, cu_samples = consumer_gate
                jobs.extend((test, cu_release, cu_samples) for test in state.consumer)
        return jobs

    def _candidate(self, state: ProjectState) -> Candidate | None:
        project = state.project
        best: Candidate | None = None
        envs: set[Environment] = set()
        for test, release, samples in self._ready_jobs(state):
            envs.add(test.environment)
            placement = self.pool.place(
                test.environment,
                project.needs_voltage,
                test.duration_days,
                release,
                state.sample_avail,
                samples,
            )
            if placement is None:
                voltage = " voltage-capable" if project.needs_voltage else ""
                raise InfeasibleInstance(
                    f"No{voltage} chamber assigned to {test.environment} for {test.id} of project {project.id}"
                )
            score = score_job(
                self.config.dispatch_rule,
                key=self.keys[state.index],
                due_date=project.due_date,
                start=placement.start,
                duration=test.duration_days,
                average_remaining=state.average_remaining_duration,
                atc_k=self.config.atc_k,
            )
            candidate = Candidate(state.index, test, placement, score, project.due_date)
            if best is None or candidate.better_than(best):
                best = candidate
        self._envs[state.index] = envs
        return best

    def run(self) -> list[ScheduledJob]:
        jobs: list[ScheduledJob] = []
        steps = 0
        while True:
            chosen: Candidate | None = None
            for state in self.states:
                if self._dirty[state.index]:
                    self._cache[state.index] = None if state.finished else self._candidate(state)
                    self._dirty[state.index] = False
                candidate = self._cache[state.index]
                if candidate is not None and (chosen is None or candidate.better_than(chosen)):
                    chosen = candidate
            if chosen is None:
                return jobs
            steps += 1
            if steps > self.config.max_dispatch_steps:
                raise ConvergenceFailure(
                    f"Dispatch exceeded {self.config.max_dispatch_steps} placement steps"
                )
            jobs.append(self._commit(chosen))

    def _commit(self, candidate: Candidate) -> ScheduledJob:
        state = self.states[candidate.project_index]
        test = candidate.test
        placement = candidate.placement
        self.pool.commit(placement)
        state.record(test, placement)
        # only the committed project and projects waiting on the same environment can change
        self._dirty[state.index] = True
        for idx, envs in enumerate(self._envs):
            if test.environment in envs:
                self._dirty[idx] = True
        return ScheduledJob(
            project_id=state.project.id,
            test_id=test.id,
            category=test.category,
            environment=test.environment,
            duration=test.duration_days,
            chamber_id=placement.chamber_id,
            station=placement.station,
            sample=placement.sample,
            start=placement.start,
            end=placement.end,
        )


def evaluate(
    catalog: Catalog,
    projects: Sequence[Project],
    rooms: RoomAssignment,
    config: SolverConfig,
    priority: Sequence[str] | None = None,
) -> EvalResult:
    """Schedule every required job of ``projects`` on the fixed room assignment.

    Parameters
    ----------
    catalog:
        Test and chamber catalog.
    projects:
        Projects to schedule; the list is never mutated.
    rooms:
        Chamber -> environment mapping with one entry per catalog chamber.
    config:
        Supplies the dispatch rule, ATC ``k``, pulldown gate and the placement safety cap.
    priority:
        Optional project-id order. Under EDD the rank in this order replaces the due date
        as the primary key.

    Returns
    -------
    EvalResult
        Jobs in commit order, per-project results in project order and total lateness.

    Raises
    ------
    InfeasibleInstance
        When the room assignment misses a chamber, puts an H85 environment in a chamber
        without humidity control, or leaves a required job without an eligible chamber.
    ConvergenceFailure
        When the dispatch loop exceeds ``config.max_dispatch_steps`` placements.
    """

    dispatcher = _Dispatcher(catalog, projects, rooms, config, priority)
    jobs = dispatcher.run()
    results = tuple(
        ProjectResult(project_id=state.project.id, completion=state.completion, due_date=state.project.due_date)
        for state in dispatcher.states
    )
    return EvalResult(
        total_lateness=sum(result.lateness for result in results),
        project_results=results,
        jobs=tuple(jobs),
    )
