"""Room (chamber -> environment) assigners sharing one contract and objective."""

from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING, Protocol

from labsched.core.errors import InvalidConfiguration
from labsched.scenario.contract.models import Catalog, Project
from labsched.scheduling.models import RoomAssignment

from .exact import BranchAndBoundRoomAssigner, RoomType, group_room_types, water_fill
from .greedy import GreedyRoomAssigner
from .workload import (
    WorkloadProfile,
    build_workload,
    check_feasible,
    coverage_violations,
    is_room_feasible,
    marginal_cost,
    room_objective,
)

if TYPE_CHECKING:
    from labsched.planning.config import SolverConfig


class RoomAssigner(Protocol):
    """Interface shared by the room assigners."""

    name: str

    def assign(self, catalog: Catalog, projects: Sequence[Project], config: SolverConfig) -> RoomAssignment:
        """Return a covering assignment minimising the workload-balance objective."""


_ASSIGNERS: dict[str, type] = {
    GreedyRoomAssigner.name: GreedyRoomAssigner,
    BranchAndBoundRoomAssigner.name: BranchAndBoundRoomAssigner,
}


def get_room_assigner(name: str) -> RoomAssigner:
    """Return a fresh room assigner registered under ``name`` (``greedy`` or ``exact``)."""
    key = name.strip().lower()
    try:
        return _ASSIGNERS[key]()
    except KeyError as exc:
        options = ", ".join(sorted(_ASSIGNERS))
        raise InvalidConfiguration(f"Unknown room assigner {name!r}; expected one of: {options}") from exc


def available_room_assigners() -> list[str]:
    return list(_ASSIGNERS)


__all__ = [
    "BranchAndBoundRoomAssigner",
    "GreedyRoomAssigner",
    "RoomAssigner",
    "RoomType",
    "WorkloadProfile",
    "available_room_assigners",
    "build_workload",
    "check_feasible",
    "coverage_violations",
    "get_room_assigner",
    "group_room_types",
    "is_room_feasible",
    "marginal_cost",
    "room_objective",
    "water_fill",
]
