"""Largest-first greedy room assignment with coverage repair."""

from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING

from labsched.core.errors import InfeasibleInstance
from labsched.scenario.contract.models import Catalog, ChamberSpec, Environment, Project
from labsched.scheduling.models import RoomAssignment

from .workload import WorkloadProfile, build_workload, check_feasible, marginal_cost

if TYPE_CHECKING:
    from labsched.planning.config import SolverConfig


def _initial_pass(catalog: Catalog, profile: WorkloadProfile) -> dict[str, Environment]:
    stations: dict[Environment, int] = {}
    voltage: dict[Environment, int] = {}
    chosen: dict[str, Environment] = {}
    # stable sort keeps catalog order among equal station counts
    for chamber in sorted(catalog.chambers, key=lambda item: -item.stations):
        best_env: Environment | None = None
        best_delta = float("inf")
        for env in profile.environments:
            if not chamber.can_host(env):
                continue
            delta = marginal_cost(profile, env, chamber, stations, voltage)
            if delta < best_delta:
                best_env, best_delta = env, delta
        if best_env is None:
            # no demanded environment is humidity-compatible; park the chamber on the first
            # one it can hold so every chamber keeps exactly one environment
            best_env = next(
                (test.environment for test in catalog.tests if chamber.can_host(test.environment)),
                None,
            )
            if best_env is None:
                raise InfeasibleInstance(f"Chamber {chamber.id} cannot hold any catalog environment")
            chosen[chamber.id] = best_env
            continue
        chosen[chamber.id] = best_env
        stations[best_env] = stations.get(best_env, 0) + chamber.stations
        if chamber.voltage_capable:
            voltage[best_env] = voltage.get(best_env, 0) + chamber.stations
    return chosen


def _missing(
    catalog: Catalog, profile: WorkloadProfile, chosen: dict[str, Environment]
) -> tuple[Environment, bool] | None:
    """Return the next environment lacking coverage (voltage coverage first)."""
    for env in profile.environments:
        if env in profile.voltage_demanded and not any(
            chosen[chamber.id] == env and chamber.voltage_capable for chamber in catalog.chambers
        ):
            return env, True
    for env in profile.environments:
        if not any(chosen[chamber.id] == env for chamber in catalog.chambers):
            return env, False
    return None


def _donor_keeps_origin(
    catalog: Catalog, profile: WorkloadProfile, chosen: dict[str, Environment], donor: ChamberSpec
) -> bool:
    origin = chosen[donor.id]
    if not profile.is_demanded(origin):
        return True
    others = [chamber for chamber in catalog.chambers if chamber.id != donor.id and chosen[chamber.id] == origin]
    if not others:
        return False
    if donor.voltage_capable and origin in profile.voltage_demanded:
        return any(chamber.voltage_capable for chamber in others)
    return True


def _repair(catalog: Catalog, profile: WorkloadProfile, chosen: dict[str, Environment]) -> None:
    for _ in range(2 * len(profile.environments) + 1):
        gap = _missing(catalog, profile, chosen)
        if gap is None:
            return
        target, needs_voltage = gap
        best: ChamberSpec | None = None
        best_pressure = float("inf")
        for donor in catalog.chambers:
            if chosen[donor.id] == target or not donor.can_host(target):
                continue
            if needs_voltage and not donor.voltage_capable:
                continue
            if not _donor_keeps_origin(catalog, profile, chosen, donor):
                continue
            origin = chosen[donor.id]
            remaining = sum(
                chamber.stations
                for chamber in catalog.chambers
                if chamber.id != donor.id and chosen[chamber.id] == origin
            )
            pressure = profile.pressure(origin, remaining)
            if pressure < best_pressure:
                best, best_pressure = donor, pressure
        if best is None:
            kind = "voltage coverage" if needs_voltage else "coverage"
            raise InfeasibleInstance(f"Greedy repair found no donor chamber to restore {kind} of {target}")
        chosen[best.id] = target
    if _missing(catalog, profile, chosen) is not None:
        raise InfeasibleInstance("Greedy repair did not converge to a covering room assignment")


class GreedyRoomAssigner:
    """Assign chambers largest-first to the environment with the smallest objective increase.

    A repair phase then moves donor chambers toward environments that lack coverage
    (voltage coverage first). The donor is taken from the origin environment left with
    the least workload pressure, and only when the origin stays covered.
    """

    name = "greedy"

    def assign(self, catalog: Catalog, projects: Sequence[Project], config: SolverConfig) -> RoomAssignment:
        profile = build_workload(catalog, projects, config.voltage_weight)
        check_feasible(catalog, profile)
        chosen = _initial_pass(catalog, profile)
        _repair(catalog, profile, chosen)
        return RoomAssignment.for_catalog(catalog, chosen)


__all__ = ["GreedyRoomAssigner"]
