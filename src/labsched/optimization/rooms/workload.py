"""Environment workload, station targets and the room-balance objective.

Workload of an environment is the sum, over required (project, test) pairs in that
environment, of ``job_count * duration`` where ``job_count`` is the project's sample
count for PULLDOWN and 1 otherwise. Station targets split the catalog's stations in
proportion to workload; voltage targets split the voltage-capable stations in
proportion to the workload of voltage-needing projects.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass

from labsched.core.errors import InfeasibleInstance
from labsched.scenario.contract.models import Catalog, ChamberSpec, Environment, Project, TestCategory
from labsched.scheduling.models import RoomAssignment


@dataclass(frozen=True, slots=True)
class WorkloadProfile:
    """Demanded environments with their workloads and station targets.

    Attributes
    ----------
    environments:
        Demanded environments in catalog test order.
    workload, voltage_workload:
        Day-weighted job load per environment (all projects / voltage-needing projects).
    targets, voltage_targets:
        Workload-proportional station targets ``T_e`` and ``TV_e``.
    voltage_demanded:
        Environments required by at least one voltage-needing project.
    voltage_weight:
        Weight ``w`` of the voltage term in :func:`room_objective`.
    """

    environments: tuple[Environment, ...]
    workload: Mapping[Environment, float]
    voltage_workload: Mapping[Environment, float]
    targets: Mapping[Environment, float]
    voltage_targets: Mapping[Environment, float]
    voltage_demanded: frozenset[Environment]
    voltage_weight: float

    def is_demanded(self, environment: Environment) -> bool:
        return environment in self.targets

    def pressure(self, environment: Environment, stations: int) -> float:
        """Workload per station (``demand / (stations + 1)``) used to rank repair donors."""
        return self.workload.get(environment, 0.0) / (stations + 1)


def build_workload(
    catalog: Catalog,
    projects: Sequence[Project],
    voltage_weight: float = 2.0,
) -> WorkloadProfile:
    """Compute the workload profile of ``projects`` against ``catalog``.

    Raises
    ------
    InfeasibleInstance
        When no project requires any test.
    """

    order: list[Environment] = []
    workload: dict[Environment, float] = {}
    voltage_workload: dict[Environment, float] = {}
    for pos, test in enumerate(catalog.tests):
        env = test.environment
        for project in projects:
            if not project.requires(pos):
                continue
            jobs = project.samples if test.category is TestCategory.PULLDOWN else 1
            load = float(jobs * test.duration_days)
            if env not in workload:
                order.append(env)
                workload[env] = 0.0
            workload[env] += load
            if project.needs_voltage:
                voltage_workload[env] = voltage_workload.get(env, 0.0) + load
    if not order:
        raise InfeasibleInstance("Projects require no tests; nothing to assign rooms for")

    total = sum(workload.values())
    total_voltage = sum(voltage_workload.values())
    targets = {env: workload[env] / total * catalog.total_stations for env in order}
    voltage_targets = {
        env: (voltage_workload.get(env, 0.0) / total_voltage * catalog.voltage_stations if total_voltage else 0.0)
        for env in order
    }
    return WorkloadProfile(
        environments=tuple(order),
        workload=workload,
        voltage_workload=voltage_workload,
        targets=targets,
        voltage_targets=voltage_targets,
        voltage_demanded=frozenset(voltage_workload),
        voltage_weight=voltage_weight,
    )


def check_feasible(catalog: Catalog, profile: WorkloadProfile) -> None:
    """Raise :class:`InfeasibleInstance` when some demanded environment cannot be covered."""
    for env in profile.environments:
        hosts = [chamber for chamber in catalog.chambers if chamber.can_host(env)]
        if not hosts:
            raise InfeasibleInstance(f"No chamber can host demanded environment {env} (needs humidity control)")
        if env in profile.voltage_demanded and not any(chamber.voltage_capable for chamber in hosts):
            raise InfeasibleInstance(f"No voltage-capable chamber can host voltage-demanded environment {env}")


def objective_terms(
    profile: WorkloadProfile,
    stations: Mapping[Environment, float],
    voltage: Mapping[Environment, float],
) -> float:
    total = 0.0
    for env in profile.environments:
        total += (stations.get(env, 0) - profile.targets[env]) ** 2
        total += profile.voltage_weight * (voltage.get(env, 0) - profile.voltage_targets[env]) ** 2
    return total


def room_objective(catalog: Catalog, profile: WorkloadProfile, rooms: RoomAssignment) -> float:
    """Return ``sum_e (S_e - T_e)^2 + w * sum_e (V_e - TV_e)^2`` over demanded environments."""
    stations, voltage = rooms.station_totals(catalog)
    return objective_terms(profile, stations, voltage)


def marginal_cost(
    profile: WorkloadProfile,
    env: Environment,
    chamber: ChamberSpec,
    stations: Mapping[Environment, float],
    voltage: Mapping[Environment, float],
) -> float:
    """Objective increase of adding ``chamber`` to ``env`` given current station totals."""
    current = stations.get(env, 0)
    target = profile.targets[env]
    delta = (current + chamber.stations - target) ** 2 - (current - target) ** 2
    if chamber.voltage_capable:
        current_v = voltage.get(env, 0)
        target_v = profile.voltage_targets[env]
        delta += profile.voltage_weight * ((current_v + chamber.stations - target_v) ** 2 - (current_v - target_v) ** 2)
    return delta


def coverage_violations(catalog: Catalog, profile: WorkloadProfile, rooms: RoomAssignment) -> list[str]:
    """List broken room invariants (missing entries, humidity, coverage, voltage coverage)."""
    problems: list[str] = []
    covered: set[Environment] = set()
    voltage_covered: set[Environment] = set()
    for chamber in catalog.chambers:
        env = rooms.get(chamber.id)
        if env is None:
            problems.append(f"Chamber {chamber.id} has no environment")
            continue
        if not chamber.can_host(env):
            problems.append(f"Chamber {chamber.id} cannot hold humidity for {env}")
            continue
        covered.add(env)
        if chamber.voltage_capable:
            voltage_covered.add(env)
    for env in profile.environments:
        if env not in covered:
            problems.append(f"Demanded environment {env} has no chamber")
        if env in profile.voltage_demanded and env not in voltage_covered:
            problems.append(f"Voltage-demanded environment {env} has no voltage-capable chamber")
    return problems


def is_room_feasible(catalog: Catalog, profile: WorkloadProfile, rooms: RoomAssignment) -> bool:
    return not coverage_violations(catalog, profile, rooms)


__all__ = [
    "WorkloadProfile",
    "build_workload",
    "check_feasible",
    "coverage_violations",
    "is_room_feasible",
    "marginal_cost",
    "objective_terms",
    "room_objective",
]
