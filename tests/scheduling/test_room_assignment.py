from __future__ import annotations

import pytest

from labsched.core.types import PulldownGate
from labsched.scheduling import ProjectState, RoomAssignment, StationPool
from tests.factories import HOT, WARM, make_catalog, make_chamber, make_project, make_test, phase_catalog, rooms_for


def test_room_assignment_equality_ignores_order_and_is_hashable():
    first = RoomAssignment([("A", HOT), ("B", WARM)])
    second = RoomAssignment([("B", WARM), ("A", HOT)])
    assert first == second
    assert hash(first) == hash(second)
    assert list(first) == ["A", "B"]
    assert first == {"A": HOT, "B": WARM}


def test_replace_keeps_order_and_rejects_unknown_chambers():
    rooms = RoomAssignment([("A", HOT), ("B", WARM)])
    swapped = rooms.replace({"A": WARM, "B": HOT})
    assert list(swapped.items()) == [("A", WARM), ("B", HOT)]
    assert rooms["A"] == HOT
    with pytest.raises(KeyError):
        rooms.replace({"C": HOT})


def test_station_totals_split_voltage_capacity():
    catalog = make_catalog(
        [make_test("EE", WARM, 3)],
        [make_chamber("V1", 6, voltage=True), make_chamber("N1", 8), make_chamber("N2", 4)],
    )
    rooms = rooms_for(catalog, V1=WARM, N1=WARM, N2=HOT)
    total, voltage = rooms.station_totals(catalog)
    assert total == {WARM: 14, HOT: 4}
    assert voltage == {WARM: 6}
    assert rooms.chambers_for(WARM) == ["V1", "N1"]


def test_station_pool_picks_earliest_slot_in_catalog_order():
    catalog = make_catalog(
        [make_test("EE", WARM, 3)],
        [make_chamber("N1", 1), make_chamber("V1", 2, voltage=True)],
    )
    pool = StationPool(catalog, rooms_for(catalog, N1=WARM, V1=WARM))
    first = pool.place(WARM, False, 3, 0, [0, 0], [0, 1])
    assert (first.chamber_id, first.station, first.sample, first.start) == ("N1", 0, 0, 0)
    pool.commit(first)
    second = pool.place(WARM, False, 3, 0, [3, 0], [0, 1])
    assert (second.chamber_id, second.station, second.sample, second.start) == ("V1", 0, 1, 0)
    voltage_only = pool.place(WARM, True, 3, 5, [0, 0], [0, 1])
    assert (voltage_only.chamber_id, voltage_only.start) == ("V1", 5)
    assert pool.place(HOT, False, 3, 0, [0], [0]) is None


def test_project_state_gates_follow_phases():
    catalog = phase_catalog()
    project = make_project(catalog, "P1", ["GAS", "PD", "EE"], samples=2)
    state = ProjectState.build(0, project, catalog)
    assert state.remaining_jobs == 1 + 2 + 1
    assert state.remaining_duration == 10 + 2 * 5 + 4
    assert state.gate(PulldownGate.ALL_SAMPLES) is None
    assert state.gate(PulldownGate.PER_SAMPLE) is None
