"""Independent re-check of a committed schedule.

The checks recompute everything from the job list itself and never reuse scheduler
state, so a scheduler defect surfaces here as a violation message.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable, Sequence

from labsched.core.errors import ValidationFailure
from labsched.core.types import PulldownGate
from labsched.scenario.contract.models import Catalog, Project, TestCategory
from labsched.scheduling.models import RoomAssignment, ScheduledJob


def _overlaps(label: str, intervals: Iterable[ScheduledJob]) -> list[str]:
    problems: list[str] = []
    ordered = sorted(intervals, key=lambda job: (job.start, job.end))
    for prev, job in zip(ordered, ordered[1:]):
        if job.start < prev.end:
            problems.append(
                f"{label} overlap: {prev.project_id}/{prev.test_id} [{prev.start},{prev.end}) "
                f"and {job.project_id}/{job.test_id} [{job.start},{job.end})"
            )
    return problems


def _check_job(
    catalog: Catalog,
    projects: dict[str, Project],
    rooms: RoomAssignment,
    job: ScheduledJob,
) -> list[str]:
    tag = f"{job.project_id}/{job.test_id}"
    project = projects.get(job.project_id)
    if project is None:
        return [f"{tag}: unknown project {job.project_id}"]
    if not catalog.has_test(job.test_id):
        return [f"{tag}: unknown test {job.test_id}"]
    if not catalog.has_chamber(job.chamber_id):
        return [f"{tag}: unknown chamber {job.chamber_id}"]
    test = catalog.test(job.test_id)
    chamber = catalog.chamber(job.chamber_id)
    problems: list[str] = []
    if not project.requires(catalog.index_of(job.test_id)):
        problems.append(f"{tag}: scheduled test not required")
    if job.category is not test.category:
        problems.append(f"{tag}: category {job.category.value} differs from catalog {test.category.value}")
    if job.environment != test.environment:
        problems.append(f"{tag}: job environment {job.environment} differs from test environment {test.environment}")
    assigned = rooms.get(job.chamber_id)
    if assigned != test.environment:
        problems.append(f"{tag}: chamber {job.chamber_id} holds {assigned}, test needs {test.environment}")
    if not chamber.can_host(test.environment):
        problems.append(f"{tag}: chamber {job.chamber_id} cannot hold humidity for {test.environment}")
    if project.needs_voltage and not chamber.voltage_capable:
        problems.append(f"{tag}: voltage project in non-voltage chamber {job.chamber_id}")
    if job.end <= job.start:
        problems.append(f"{tag}: non-positive interval [{job.start},{job.end})")
    if job.end - job.start != test.duration_days:
        problems.append(f"{tag}: interval length {job.end - job.start} differs from duration {test.duration_days}")
    if job.start < 0:
        problems.append(f"{tag}: negative start {job.start}")
    if not 0 <= job.sample < project.samples:
        problems.append(f"{tag}: invalid sample index {job.sample}")
    if not 0 <= job.station < chamber.stations:
        problems.append(f"{tag}: invalid station index {job.station} in {job.chamber_id}")
    return problems


def _check_precedence(
    catalog: Catalog,
    project: Project,
    jobs: Sequence[ScheduledJob],
    gate: PulldownGate,
) -> list[str]:
    problems: list[str] = []
    pid = project.id
    by_category: dict[TestCategory, list[ScheduledJob]] = defaultdict(list)
    for job in jobs:
        by_category[job.category].append(job)
    required = {
        category: [test for pos, test in enumerate(catalog.tests) if project.requires(pos) and test.category is category]
        for category in TestCategory
    }

    gas_jobs = by_category[TestCategory.GAS]
    gas_end = 0
    if required[TestCategory.GAS]:
        if len(gas_jobs) != 1:
            problems.append(f"{pid}: GAS count {len(gas_jobs)}, expected 1")
        gas_end = max((job.end for job in gas_jobs), default=0)
    elif gas_jobs:
        problems.append(f"{pid}: GAS scheduled but not required")

    pulldown_jobs = by_category[TestCategory.PULLDOWN]
    pulldown_end = gas_end
    pulldown_end_by_sample: dict[int, int] = {}
    pulldown_required = bool(required[TestCategory.PULLDOWN])
    if pulldown_required:
        if len(pulldown_jobs) != project.samples:
            problems.append(f"{pid}: PULLDOWN count {len(pulldown_jobs)}, expected {project.samples}")
        sampled = sorted(job.sample for job in pulldown_jobs)
        if len(set(sampled)) != len(sampled):
            problems.append(f"{pid}: more than one PULLDOWN on a sample")
        for job in pulldown_jobs:
            if job.start < gas_end:
                problems.append(f"{pid}: PULLDOWN on sample {job.sample} starts {job.start} before GAS end {gas_end}")
            pulldown_end_by_sample[job.sample] = max(pulldown_end_by_sample.get(job.sample, 0), job.end)
        pulldown_end = max((job.end for job in pulldown_jobs), default=gas_end)

    def gate_release(job: ScheduledJob) -> int:
        if not pulldown_required:
            return gas_end
        if gate is PulldownGate.ALL_SAMPLES:
            return pulldown_end
        if job.sample not in pulldown_end_by_sample:
            problems.append(f"{pid}/{job.test_id}: sample {job.sample} has no PULLDOWN before it")
            return gas_end
        return max(gas_end, pulldown_end_by_sample[job.sample])

    other_jobs = by_category[TestCategory.OTHER]
    for test in required[TestCategory.OTHER]:
        count = sum(1 for job in other_jobs if job.test_id == test.id)
        if count != 1:
            problems.append(f"{pid}: OTHER {test.id} count {count}, expected 1")
    for job in other_jobs:
        release = gate_release(job)
        if job.start < release:
            problems.append(f"{pid}/{job.test_id}: OTHER starts {job.start} before pulldown gate {release}")
    other_start_max = max((job.start for job in other_jobs), default=0)

    for test in required[TestCategory.CONSUMER_USAGE]:
        count = sum(1 for job in by_category[TestCategory.CONSUMER_USAGE] if job.test_id == test.id)
        if count != 1:
            problems.append(f"{pid}: CU {test.id} count {count}, expected 1")
    for job in by_category[TestCategory.CONSUMER_USAGE]:
        # CU waits for every pulldown under either gate policy
        release = max(pulldown_end, other_start_max)
        if job.start < release:
            problems.append(
                f"{pid}/{job.test_id}: CU starts {job.start} before max(pulldown end, latest OTHER start) {release}"
            )
    return problems


def validate_schedule(
    catalog: Catalog,
    projects: Sequence[Project],
    rooms: RoomAssignment,
    jobs: Sequence[ScheduledJob],
    gate: PulldownGate = PulldownGate.ALL_SAMPLES,
) -> list[str]:
    """Return every invariant violation of ``jobs`` (an empty list means valid).

    Parameters
    ----------
    catalog, projects, rooms:
        State the schedule was built from.
    jobs:
        Committed jobs.
    gate:
        Pulldown-gate policy the schedule must respect.
    """

    by_id = {project.id: project for project in projects}
    problems: list[str] = []
    for job in jobs:
        problems.extend(_check_job(catalog, by_id, rooms, job))

    stations: dict[tuple[str, int], list[ScheduledJob]] = defaultdict(list)
    samples: dict[tuple[str, int], list[ScheduledJob]] = defaultdict(list)
    per_project: dict[str, list[ScheduledJob]] = defaultdict(list)
    for job in jobs:
        stations[(job.chamber_id, job.station)].append(job)
        samples[(job.project_id, job.sample)].append(job)
        per_project[job.project_id].append(job)
    for (chamber_id, station), items in stations.items():
        problems.extend(_overlaps(f"station {chamber_id}#{station}", items))
    for (project_id, sample), items in samples.items():
        problems.extend(_overlaps(f"sample {project_id}#S{sample}", items))

    for project in projects:
        problems.extend(_check_precedence(catalog, project, per_project.get(project.id, []), gate))
    return problems


def ensure_valid(
    catalog: Catalog,
    projects: Sequence[Project],
    rooms: RoomAssignment,
    jobs: Sequence[ScheduledJob],
    gate: PulldownGate = PulldownGate.ALL_SAMPLES,
) -> None:
    """Raise :class:`ValidationFailure` when :func:`validate_schedule` finds violations."""
    problems = validate_schedule(catalog, projects, rooms, jobs, gate)
    if problems:
        raise ValidationFailure(problems)


__all__ = ["ensure_valid", "validate_schedule"]
