"""Value types produced by the room assigner and the dispatch scheduler."""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass

from labsched.scenario.contract.models import Catalog, Day, Environment, TestCategory


class RoomAssignment(Mapping[str, Environment]):
    """Immutable chamber-id -> environment mapping.

    Entries keep the order they were given in (room assigners emit catalog order), and
    equality is by content so the solver can detect a room fixed point.
    """

    __slots__ = ("_items", "_lookup")

    def __init__(self, entries: Mapping[str, Environment] | Iterable[tuple[str, Environment]] = ()) -> None:
        pairs = entries.items() if isinstance(entries, Mapping) else entries
        lookup: dict[str, Environment] = {}
        for chamber_id, environment in pairs:
            lookup[chamber_id] = environment
        self._lookup = lookup
        self._items = tuple(lookup.items())

    @classmethod
    def for_catalog(cls, catalog: Catalog, entries: Mapping[str, Environment]) -> RoomAssignment:
        """Order ``entries`` like ``catalog.chambers`` (chambers without an entry are skipped)."""
        return cls((chamber.id, entries[chamber.id]) for chamber in catalog.chambers if chamber.id in entries)

    def __getitem__(self, chamber_id: str) -> Environment:
        return self._lookup[chamber_id]

    def __iter__(self) -> Iterator[str]:
        return iter(self._lookup)

    def __len__(self) -> int:
        return len(self._items)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, RoomAssignment):
            return dict(self._items) == dict(other._items)
        if isinstance(other, Mapping):
            return dict(self._items) == dict(other.items())
        return NotImplemented

    def __hash__(self) -> int:
        return hash(frozenset(self._items))

    def __repr__(self) -> str:
        body = ", ".join(f"{chamber_id}={env}" for chamber_id, env in self._items)
        return f"RoomAssignment({body})"

    def replace(self, updates: Mapping[str, Environment]) -> RoomAssignment:
        """Return a copy with ``updates`` applied, keeping the entry order."""
        unknown = set(updates) - set(self._lookup)
        if unknown:
            raise KeyError(f"Unknown chamber ids: {sorted(unknown)}")
        return RoomAssignment((chamber_id, updates.get(chamber_id, env)) for chamber_id, env in self._items)

    def chambers_for(self, environment: Environment) -> list[str]:
        return [chamber_id for chamber_id, env in self._items if env == environment]

    def station_totals(self, catalog: Catalog) -> tuple[dict[Environment, int], dict[Environment, int]]:
        """Return total and voltage-capable station counts per assigned environment."""
        total: dict[Environment, int] = {}
        voltage: dict[Environment, int] = {}
        for chamber_id, env in self._items:
            chamber = catalog.chamber(chamber_id)
            total[env] = total.get(env, 0) + chamber.stations
            if chamber.voltage_capable:
                voltage[env] = voltage.get(env, 0) + chamber.stations
        return total, voltage


@dataclass(frozen=True, slots=True)
class ScheduledJob:
    """One committed execution of a test on a (chamber, station, sample) slot."""

    project_id: str
    test_id: str
    category: TestCategory
    environment: Environment
    duration: int
    chamber_id: str
    station: int
    sample: int
    start: Day
    end: Day


@dataclass(frozen=True, slots=True)
class ProjectResult:
    project_id: str
    completion: Day
    due_date: Day

    @property
    def lateness(self) -> int:
        return max(0, self.completion - self.due_date)


@dataclass(frozen=True, slots=True)
class EvalResult:
    """Outcome of one scheduler evaluation.

    Attributes
    ----------
    total_lateness:
        Sum of per-project lateness.
    project_results:
        One result per project, in project order.
    jobs:
        Scheduled jobs in commit order.
    """

    total_lateness: int
    project_results: tuple[ProjectResult, ...]
    jobs: tuple[ScheduledJob, ...]

    @property
    def horizon(self) -> Day:
        return max((job.end for job in self.jobs), default=0)

    def result_for(self, project_id: str) -> ProjectResult:
        for result in self.project_results:
            if result.project_id == project_id:
                return result
        raise KeyError(f"Unknown project id: {project_id}")


__all__ = ["RoomAssignment", "ScheduledJob", "ProjectResult", "EvalResult"]
