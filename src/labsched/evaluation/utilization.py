"""Station and chamber busy-fraction summary over the observed horizon."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

from labsched.scenario.contract.models import Catalog
from labsched.scheduling.models import ScheduledJob


@dataclass(frozen=True, slots=True)
class StationUtilization:
    chamber_id: str
    station: int
    busy_days: int
    utilization: float


@dataclass(frozen=True, slots=True)
class ChamberUtilization:
    chamber_id: str
    stations: int
    busy_days: int
    capacity_days: int
    utilization: float


@dataclass(frozen=True, slots=True)
class UtilizationSummary:
    """Busy fractions per station and chamber.

    Attributes
    ----------
    horizon:
        Latest job end (at least 1 so empty schedules do not divide by zero).
    stations, chambers:
        Per-station and per-chamber rows in catalog order.
    avg_station, max_station, avg_chamber:
        Aggregates over the rows above.
    """

    horizon: int
    stations: tuple[StationUtilization, ...]
    chambers: tuple[ChamberUtilization, ...]
    avg_station: float
    max_station: float
    avg_chamber: float


def compute_utilization(catalog: Catalog, jobs: Sequence[ScheduledJob]) -> UtilizationSummary:
    """Summarise how busy each station and chamber is over ``[0, horizon)``."""
    horizon = max(1, max((job.end for job in jobs), default=0))
    busy: dict[tuple[str, int], int] = {}
    for job in jobs:
        key = (job.chamber_id, job.station)
        busy[key] = busy.get(key, 0) + (job.end - job.start)

    station_rows: list[StationUtilization] = []
    chamber_rows: list[ChamberUtilization] = []
    for chamber in catalog.chambers:
        chamber_busy = 0
        for station in range(chamber.stations):
            days = busy.get((chamber.id, station), 0)
            chamber_busy += days
            station_rows.append(StationUtilization(chamber.id, station, days, days / horizon))
        capacity = chamber.stations * horizon
        chamber_rows.append(
            ChamberUtilization(chamber.id, chamber.stations, chamber_busy, capacity, chamber_busy / capacity)
        )

    station_fracs = [row.utilization for row in station_rows]
    chamber_fracs = [row.utilization for row in chamber_rows]
    return UtilizationSummary(
        horizon=horizon,
        stations=tuple(station_rows),
        chambers=tuple(chamber_rows),
        avg_station=sum(station_fracs) / len(station_fracs) if station_fracs else 0.0,
        max_station=max(station_fracs, default=0.0),
        avg_chamber=sum(chamber_fracs) / len(chamber_fracs) if chamber_fracs else 0.0,
    )


__all__ = ["ChamberUtilization", "StationUtilization", "UtilizationSummary", "compute_utilization"]
