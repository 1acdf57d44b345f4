"""Per-evaluation resource state: station availability and per-project phase progress."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field

from labsched.core.errors import InfeasibleInstance
from labsched.core.types import PulldownGate
from labsched.scenario.contract.models import Catalog, Day, Environment, Project, TestCategory, TestDefinition
from labsched.scheduling.models import RoomAssignment


@dataclass(frozen=True, slots=True)
class Placement:
    chamber_id: str
    chamber_pos: int
    station: int
    sample: int
    start: Day
    end: Day


class StationPool:
    """Station availability for one evaluation, grouped by assigned environment.

    A fresh pool is built for every evaluation; nothing here outlives the call that
    created it.
    """

    def __init__(self, catalog: Catalog, rooms: RoomAssignment) -> None:
        self._chambers = catalog.chambers
        self._avail: list[list[Day]] = []
        self._by_env: dict[Environment, list[int]] = {}
        for pos, chamber in enumerate(catalog.chambers):
            env = rooms.get(chamber.id)
            if env is None:
                raise InfeasibleInstance(f"Room assignment has no environment for chamber {chamber.id}")
            if not chamber.can_host(env):
                raise InfeasibleInstance(
                    f"Chamber {chamber.id} is not humidity-adjustable but is assigned {env}"
                )
            self._avail.append([0] * chamber.stations)
            self._by_env.setdefault(env, []).append(pos)

    def eligible(self, environment: Environment, needs_voltage: bool) -> list[int]:
        return [
            pos
            for pos in self._by_env.get(environment, ())
            if not needs_voltage or self._chambers[pos].voltage_capable
        ]

    def place(
        self,
        environment: Environment,
        needs_voltage: bool,
        duration: int,
        release: Day,
        sample_avail: Sequence[Day],
        samples: Sequence[int],
    ) -> Placement | None:
        """Return the earliest (chamber, station, sample) slot for a job, or ``None``.

        Chambers are scanned in catalog order, stations by index, then samples in the
        given order; the first slot reaching the minimum start wins.
        """

        chambers = self.eligible(environment, needs_voltage)
        if not chambers or not samples:
            return None
        best_station = min(max(release, avail) for pos in chambers for avail in self._avail[pos])
        best_sample = min(sample_avail[s] for s in samples)
        start = max(best_station, best_sample)
        for pos in chambers:
            for station, avail in enumerate(self._avail[pos]):
                if max(release, avail) <= start:
                    sample = next(s for s in samples if sample_avail[s] <= start)
                    return Placement(
                        chamber_id=self._chambers[pos].id,
                        chamber_pos=pos,
                        station=station,
                        sample=sample,
                        start=start,
                        end=start + duration,
                    )
        raise AssertionError("unreachable: minimum start has no matching station")

    def commit(self, placement: Placement) -> None:
        self._avail[placement.chamber_pos][placement.station] = placement.end


@dataclass(slots=True)
class ProjectState:
    """Phase bookkeeping of one project during a dispatch run.

    ``gas_pending`` and ``pulldown_pending`` track jobs not yet committed; the gate
    helpers answer which OTHER/CU jobs are ready and from which day.
    """

    index: int
    project: Project
    sample_avail: list[Day]
    gas: TestDefinition | None
    pulldown: TestDefinition | None
    others: list[TestDefinition]
    consumer: list[TestDefinition]
    gas_pending: bool = False
    gas_end: Day = 0
    pulldown_pending: list[int] = field(default_factory=list)
    pulldown_done: list[bool] = field(default_factory=list)
    pulldown_end: Day = 0
    others_required: int = 0
    others_started: int = 0
    other_start_max: Day = 0
    completion: Day = 0
    remaining_duration: int = 0
    remaining_jobs: int = 0

    @classmethod
    def build(cls, index: int, project: Project, catalog: Catalog) -> ProjectState:
        gas = pulldown = None
        others: list[TestDefinition] = []
        consumer: list[TestDefinition] = []
        for pos, test in enumerate(catalog.tests):
            if not project.requires(pos):
                continue
            if test.category is TestCategory.GAS:
                gas = test
            elif test.category is TestCategory.PULLDOWN:
                pulldown = test
            elif test.category is TestCategory.OTHER:
                others.append(test)
            else:
                consumer.append(test)
        samples = project.samples
        state = cls(
            index=index,
            project=project,
            sample_avail=[0] * samples,
            gas=gas,
            pulldown=pulldown,
            others=others,
            consumer=consumer,
            gas_pending=gas is not None,
            pulldown_pending=list(range(samples)) if pulldown is not None else [],
            pulldown_done=[pulldown is None] * samples,
            others_required=len(others),
        )
        jobs = [test.duration_days for test in others + consumer]
        if gas is not None:
            jobs.append(gas.duration_days)
        if pulldown is not None:
            jobs.extend([pulldown.duration_days] * samples)
        state.remaining_duration = sum(jobs)
        state.remaining_jobs = len(jobs)
        return state

    @property
    def finished(self) -> bool:
        return self.remaining_jobs == 0

    @property
    def gas_done(self) -> bool:
        return not self.gas_pending

    @property
    def average_remaining_duration(self) -> float:
        if self.remaining_jobs == 0:
            return 1.0
        return self.remaining_duration / self.remaining_jobs

    def gate(self, policy: PulldownGate) -> tuple[Day, list[int]] | None:
        """Return ``(release, samples)`` once OTHER jobs may start, else ``None``."""
        if not self.gas_done:
            return None
        all_samples = list(range(len(self.sample_avail)))
        if self.pulldown is None:
            return self.gas_end, all_samples
        if policy is PulldownGate.ALL_SAMPLES:
            if self.pulldown_pending:
                return None
            return self.pulldown_end, all_samples
        ready = [s for s in all_samples if self.pulldown_done[s]]
        if not ready:
            return None
        return self.gas_end, ready

    def consumer_gate(self) -> tuple[Day, list[int]] | None:
        """Return ``(release, samples)`` once CU jobs may start, else ``None``.

        CU waits for the whole pulldown phase under either gate policy.
        """
        if self.others_started < self.others_required:
            return None
        gate = self.gate(PulldownGate.ALL_SAMPLES)
        if gate is None:
            return None
        release, samples = gate
        return max(release, self.other_start_max), samples

    def record(self, test: TestDefinition, placement: Placement) -> None:
        """Apply a committed job to the phase counters and sample availability."""
        self.sample_avail[placement.sample] = placement.end
        self.completion = max(self.completion, placement.end)
        self.remaining_duration -= test.duration_days
        self.remaining_jobs -= 1
        category = test.category
        if category is TestCategory.GAS:
            self.gas_pending = False
            self.gas_end = placement.end
        elif category is TestCategory.PULLDOWN:
            self.pulldown_pending.remove(placement.sample)
            self.pulldown_done[placement.sample] = True
            self.pulldown_end = max(self.pulldown_end, placement.end)
        elif category is TestCategory.OTHER:
            self.others.remove(test)
            self.others_started += 1
            self.other_start_max = max(self.other_start_max, placement.start)
        else:
            self.consumer.remove(test)


__all__ = ["Placement", "ProjectState", "StationPool"]
