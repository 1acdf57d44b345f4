"""Exact room assignment by branch and bound over room-type allocations.

Chambers with the same (stations, voltage, humidity) signature are interchangeable, so
the search branches on how many chambers of each type go to each demanded environment
instead of on individual chambers. Nodes are pruned when the remaining chambers can no
longer cover every environment, or when a continuous relaxation of the remaining
capacity (water-filled onto the targets) cannot beat the incumbent. The same bound is
applied to partial allocations of a type, before every environment has its count.

The incumbent starts from the greedy assigner, so the result is never worse than greedy.
A node cap stops very large searches; the incumbent is then returned and
``last_proven_optimal`` is ``False``.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING

from labsched.core.errors import InfeasibleInstance
from labsched.scenario.contract.models import Catalog, ChamberSpec, Environment, Project
from labsched.scheduling.models import RoomAssignment

from .greedy import GreedyRoomAssigner
from .workload import WorkloadProfile, build_workload, check_feasible

if TYPE_CHECKING:
    from labsched.planning.config import SolverConfig

_TOLERANCE = 1e-9
_UNCOVERED_WEIGHT = 1000
_UNCOVERED_VOLTAGE_WEIGHT = 500


@dataclass(frozen=True, slots=True)
class RoomType:
    stations: int
    voltage_capable: bool
    humidity_adjustable: bool
    chamber_ids: tuple[str, ...]

    @property
    def count(self) -> int:
        return len(self.chamber_ids)


def group_room_types(chambers: Iterable[ChamberSpec]) -> list[RoomType]:
    """Group chambers by signature, largest total capacity first."""
    groups: dict[tuple[int, bool, bool], list[str]] = {}
    for chamber in chambers:
        key = (chamber.stations, chamber.voltage_capable, chamber.humidity_adjustable)
        groups.setdefault(key, []).append(chamber.id)
    types = [RoomType(key[0], key[1], key[2], tuple(ids)) for key, ids in groups.items()]
    types.sort(key=lambda t: (-t.stations * t.count, not t.voltage_capable, not t.humidity_adjustable))
    return types


def water_fill(lower: Sequence[float], targets: Sequence[float], capacity: float) -> float:
    """Minimum of ``sum (f_e - T_e)^2`` over ``f_e >= lower_e`` with ``sum (f_e - lower_e) = capacity``.

    The minimiser is ``f_e = max(lower_e, T_e - lam)``. With the gaps ``T_e - lower_e``
    sorted descending, ``lam`` is found in closed form on the first prefix whose level
    stays at or above the next gap.
    """

    if capacity <= 0:
        return sum((low - target) ** 2 for low, target in zip(lower, targets))
    gaps = sorted((target - low for low, target in zip(lower, targets)), reverse=True)
    running = 0.0
    lam = 0.0
    for j, gap in enumerate(gaps, start=1):
        running += gap
        lam = (running - capacity) / j
        if j == len(gaps) or lam >= gaps[j]:
            break
    return sum((max(low, target - lam) - target) ** 2 for low, target in zip(lower, targets))


class _Search:
    def __init__(self, profile: WorkloadProfile, types: list[RoomType], max_nodes: int) -> None:
        self.profile = profile
        self.envs = list(profile.environments)
        self.env_index = {env: e for e, env in enumerate(self.envs)}
        self.types = types
        self.weight = profile.voltage_weight
        self.targets = [profile.targets[env] for env in self.envs]
        self.voltage_targets = [profile.voltage_targets[env] for env in self.envs]
        self.needs_voltage = [env in profile.voltage_demanded for env in self.envs]
        self.feasible = [
            [t.humidity_adjustable or not env.needs_humidity_control for env in self.envs] for t in types
        ]
        n = len(types)
        m = len(self.envs)
        # suffix sums from type index k onwards
        self.rem_stations = [0] * (n + 1)
        self.rem_voltage_stations = [0] * (n + 1)
        self.rem_count = [0] * (n + 1)
        self.rem_voltage_count = [0] * (n + 1)
        self.rem_rooms = [[0] * m for _ in range(n + 1)]
        self.rem_voltage_rooms = [[0] * m for _ in range(n + 1)]
        for k in range(n - 1, -1, -1):
            t = types[k]
            self.rem_stations[k] = self.rem_stations[k + 1] + t.stations * t.count
            self.rem_voltage_stations[k] = self.rem_voltage_stations[k + 1] + (
                t.stations * t.count if t.voltage_capable else 0
            )
            self.rem_count[k] = self.rem_count[k + 1] + t.count
            self.rem_voltage_count[k] = self.rem_voltage_count[k + 1] + (t.count if t.voltage_capable else 0)
            for e in range(m):
                rooms = t.count if self.feasible[k][e] else 0
                self.rem_rooms[k][e] = self.rem_rooms[k + 1][e] + rooms
                self.rem_voltage_rooms[k][e] = self.rem_voltage_rooms[k + 1][e] + (rooms if t.voltage_capable else 0)
        self.max_nodes = max_nodes
        self.best_value = float("inf")
        self.best_alloc: list[list[int]] | None = None
        self.nodes = 0
        self.capped = False

    def visit(self) -> bool:
        """Count a node; ``False`` once the node cap is spent."""
        if self.nodes >= self.max_nodes:
            self.capped = True
            return False
        self.nodes += 1
        return True

    def objective(self, stations: Sequence[float], voltage: Sequence[float]) -> float:
        total = 0.0
        for e in range(len(self.envs)):
            total += (stations[e] - self.targets[e]) ** 2
            total += self.weight * (voltage[e] - self.voltage_targets[e]) ** 2
        return total

    def coverage_possible(self, k: int, rooms: Sequence[int], voltage_rooms: Sequence[int]) -> bool:
        uncovered = 0
        uncovered_voltage = 0
        for e in range(len(self.envs)):
            if rooms[e] == 0:
                if self.rem_rooms[k][e] == 0:
                    return False
                uncovered += 1
            if self.needs_voltage[e] and voltage_rooms[e] == 0:
                if self.rem_voltage_rooms[k][e] == 0:
                    return False
                uncovered_voltage += 1
        return uncovered <= self.rem_count[k] and uncovered_voltage <= self.rem_voltage_count[k]

    def bound(self, stations: Sequence[float], voltage: Sequence[float], capacity: float, voltage_capacity: float) -> float:
        total = water_fill(stations, self.targets, capacity)
        volt = water_fill(voltage, self.voltage_targets, voltage_capacity)
        return total + self.weight * volt

    def env_order(
        self,
        k: int,
        stations: Sequence[float],
        voltage: Sequence[float],
        rooms: Sequence[int],
        voltage_rooms: Sequence[int],
    ) -> list[int]:
        """Feasible environments of type ``k``, most in need first.

        Uncovered environments lead, then environments still missing voltage coverage;
        ties go to the largest current deviation from the targets.
        """

        def need(e: int) -> tuple[int, float]:
            weight = 0
            if rooms[e] == 0:
                weight += _UNCOVERED_WEIGHT
            if self.needs_voltage[e] and voltage_rooms[e] == 0:
                weight += _UNCOVERED_VOLTAGE_WEIGHT
            deviation = abs(stations[e] - self.targets[e]) + self.weight * abs(voltage[e] - self.voltage_targets[e])
            return weight, deviation

        feasible = [e for e in range(len(self.envs)) if self.feasible[k][e]]
        return sorted(feasible, key=need, reverse=True)

    def offer(self, alloc: Sequence[Sequence[int]], stations: Sequence[float], voltage: Sequence[float]) -> None:
        value = self.objective(stations, voltage)
        if value < self.best_value - _TOLERANCE:
            self.best_value = value
            self.best_alloc = [list(row) for row in alloc]

    def dfs(
        self,
        k: int,
        alloc: list[list[int]],
        stations: list[float],
        voltage: list[float],
        rooms: list[int],
        voltage_rooms: list[int],
    ) -> None:
        if not self.visit():
            return
        if not self.coverage_possible(k, rooms, voltage_rooms):
            return
        if k == len(self.types):
            self.offer(alloc, stations, voltage)
            return
        bound = self.bound(stations, voltage, self.rem_stations[k], self.rem_voltage_stations[k])
        if bound >= self.best_value - _TOLERANCE:
            return
        order = self.env_order(k, stations, voltage, rooms, voltage_rooms)
        if not order:
            return
        counts = [0] * len(self.envs)
        alloc.append(counts)
        self.compose(k, order, 0, self.types[k].count, alloc, stations, voltage, rooms, voltage_rooms)
        alloc.pop()

    def compose(
        self,
        k: int,
        order: list[int],
        pos: int,
        left: int,
        alloc: list[list[int]],
        stations: list[float],
        voltage: list[float],
        rooms: list[int],
        voltage_rooms: list[int],
    ) -> None:
        """Distribute ``left`` chambers of type ``k`` over ``order[pos:]``, larger counts first.

        The state lists are updated in place and restored before returning.
        """

        t = self.types[k]
        counts = alloc[-1]
        e = order[pos]
        last = pos == len(order) - 1
        amounts = [left] if last else range(left, -1, -1)
        for amount in amounts:
            if self.capped:
                return
            if amount == 0 and not last:
                # this environment gets nothing more from type k
                if rooms[e] == 0 and self.rem_rooms[k + 1][e] == 0:
                    continue
                if (
                    t.voltage_capable
                    and self.needs_voltage[e]
                    and voltage_rooms[e] == 0
                    and self.rem_voltage_rooms[k + 1][e] == 0
                ):
                    continue
            added = amount * t.stations
            counts[e] = amount
            stations[e] += added
            rooms[e] += amount
            if t.voltage_capable:
                voltage[e] += added
                voltage_rooms[e] += amount
            if last:
                self.dfs(k + 1, alloc, stations, voltage, rooms, voltage_rooms)
            elif self.visit():
                rest = (left - amount) * t.stations
                bound = self.bound(
                    stations,
                    voltage,
                    self.rem_stations[k + 1] + rest,
                    self.rem_voltage_stations[k + 1] + (rest if t.voltage_capable else 0),
                )
                if bound < self.best_value - _TOLERANCE:
                    self.compose(k, order, pos + 1, left - amount, alloc, stations, voltage, rooms, voltage_rooms)
            counts[e] = 0
            stations[e] -= added
            rooms[e] -= amount
            if t.voltage_capable:
                voltage[e] -= added
                voltage_rooms[e] -= amount

    def run(self) -> None:
        m = len(self.envs)
        self.dfs(0, [], [0.0] * m, [0.0] * m, [0] * m, [0] * m)

    def seed(self, chosen: dict[str, Environment]) -> None:
        """Offer an existing chamber-level assignment as the incumbent."""
        m = len(self.envs)
        alloc = [[0] * m for _ in self.types]
        stations = [0.0] * m
        voltage = [0.0] * m
        for k, t in enumerate(self.types):
            for chamber_id in t.chamber_ids:
                e = self.env_index.get(chosen[chamber_id])
                if e is None or not self.feasible[k][e]:
                    return
                alloc[k][e] += 1
                stations[e] += t.stations
                if t.voltage_capable:
                    voltage[e] += t.stations
        rooms = [sum(row[e] for row in alloc) for e in range(m)]
        voltage_rooms = [sum(row[e] for k, row in enumerate(alloc) if self.types[k].voltage_capable) for e in range(m)]
        if self.coverage_possible(len(self.types), rooms, voltage_rooms):
            self.offer(alloc, stations, voltage)

    def greedy_incumbent(self) -> None:
        """Seed the incumbent: cover voltage demand, cover every environment, then fill."""
        m = len(self.envs)
        left = [t.count for t in self.types]
        alloc = [[0] * m for _ in self.types]
        stations = [0.0] * m
        voltage = [0.0] * m

        def place(k: int, e: int) -> None:
            t = self.types[k]
            left[k] -= 1
            alloc[k][e] += 1
            stations[e] += t.stations
            if t.voltage_capable:
                voltage[e] += t.stations

        for e in range(m):
            if self.needs_voltage[e]:
                k = next(
                    (k for k, t in enumerate(self.types) if t.voltage_capable and left[k] and self.feasible[k][e]),
                    None,
                )
                if k is None:
                    return
                place(k, e)
        for e in range(m):
            if stations[e] == 0:
                k = next((k for k in range(len(self.types)) if left[k] and self.feasible[k][e]), None)
                if k is None:
                    return
                place(k, e)
        for k, t in enumerate(self.types):
            while left[k]:
                best_e, best_delta = -1, float("inf")
                for e in range(m):
                    if not self.feasible[k][e]:
                        continue
                    delta = (stations[e] + t.stations - self.targets[e]) ** 2 - (stations[e] - self.targets[e]) ** 2
                    if t.voltage_capable:
                        delta += self.weight * (
                            (voltage[e] + t.stations - self.voltage_targets[e]) ** 2
                            - (voltage[e] - self.voltage_targets[e]) ** 2
                        )
                    if delta < best_delta:
                        best_e, best_delta = e, delta
                if best_e < 0:
                    return
                place(k, best_e)
        self.offer(alloc, stations, voltage)


class BranchAndBoundRoomAssigner:
    """Room assignment minimising the workload-balance objective by branch and bound.

    Attributes
    ----------
    last_objective:
        Objective of the most recent assignment.
    last_nodes:
        Search nodes visited by the most recent call.
    last_proven_optimal:
        ``False`` when the most recent search stopped at ``config.exact_max_nodes`` and
        returned its incumbent without an optimality proof.
    """

    name = "exact"

    def __init__(self) -> None:
        self.last_objective: float | None = None
        self.last_nodes = 0
        self.last_proven_optimal = False

    def assign(self, catalog: Catalog, projects: Sequence[Project], config: SolverConfig) -> RoomAssignment:
        profile = build_workload(catalog, projects, config.voltage_weight)
        check_feasible(catalog, profile)

        # chambers that cannot hold any demanded environment stay out of the search
        hostable = [
            chamber
            for chamber in catalog.chambers
            if any(chamber.can_host(env) for env in profile.environments)
        ]
        hostable_ids = {chamber.id for chamber in hostable}
        parked: dict[str, Environment] = {}
        for chamber in catalog.chambers:
            if chamber.id in hostable_ids:
                continue
            env = next((test.environment for test in catalog.tests if chamber.can_host(test.environment)), None)
            if env is None:
                raise InfeasibleInstance(f"Chamber {chamber.id} cannot hold any catalog environment")
            parked[chamber.id] = env

        search = _Search(profile, group_room_types(hostable), config.exact_max_nodes)
        search.greedy_incumbent()
        try:
            greedy = GreedyRoomAssigner().assign(catalog, projects, config)
        except InfeasibleInstance:
            # greedy repair can fail where a covering allocation still exists
            greedy = None
        if greedy is not None:
            search.seed(dict(greedy.items()))
        search.run()
        if search.best_alloc is None:
            if search.capped:
                raise InfeasibleInstance(
                    f"No covering room assignment found within {config.exact_max_nodes} search nodes"
                )
            raise InfeasibleInstance("No room assignment covers every demanded environment")

        chosen = dict(parked)
        for t, counts in zip(search.types, search.best_alloc):
            ids = iter(t.chamber_ids)
            for e, amount in enumerate(counts):
                for _ in range(amount):
                    chosen[next(ids)] = search.envs[e]
        self.last_objective = search.best_value
        self.last_nodes = search.nodes
        self.last_proven_optimal = not search.capped
        return RoomAssignment.for_catalog(catalog, chosen)


__all__ = ["BranchAndBoundRoomAssigner", "RoomType", "group_room_types", "water_fill"]
