from __future__ import annotations

import pytest

from labsched.core.errors import InfeasibleInstance, InvalidConfiguration
from labsched.evaluation.validation import validate_schedule
from labsched.planning import SolverConfig, solve, solve_scenario
from labsched.scenario.contract.models import Scenario
from labsched.scheduling import evaluate
from labsched.telemetry import EventRecorder, read_jsonl
from tests.factories import (
    HOT,
    MILD,
    WARM,
    WARM_HUMID,
    make_catalog,
    make_chamber,
    make_project,
    make_test,
    phase_catalog,
    quiet_config,
    rooms_for,
)


def _projects(catalog):
    return [
        make_project(catalog, "P1", ["GAS", "PD", "EE"], due=20),
        make_project(catalog, "P2", ["GAS", "EE"], due=15),
    ]


def test_room_fixed_point_stops_the_loop():
    catalog = phase_catalog()
    projects = _projects(catalog)
    recorder = EventRecorder()
    outcome = solve(catalog, projects, quiet_config(max_iterations=5), progress=recorder)

    assert outcome.converged
    assert len(outcome.solutions) == 1
    assert recorder.stages() == ["rooms", "iteration", "rooms", "converged"]
    best = outcome.best
    assert best.rooms == rooms_for(catalog, H1=HOT, W1=WARM)
    direct = evaluate(catalog, projects, best.rooms, quiet_config())
    assert best.total_lateness == direct.total_lateness
    assert best.priority is None
    assert outcome.evaluations == 2


def test_full_loop_never_worse_than_plain_dispatch():
    catalog = phase_catalog()
    projects = _projects(catalog)
    plain = evaluate(catalog, projects, rooms_for(catalog, H1=HOT, W1=WARM), quiet_config())
    recorder = EventRecorder()
    outcome = solve(catalog, projects, SolverConfig(max_iterations=3), progress=recorder)

    assert outcome.best.total_lateness <= plain.total_lateness
    assert recorder.stages()[:2] == ["rooms", "room_search"]
    assert "sample_search" in recorder.stages()
    assert [project.samples for project in projects] == [3, 3]
    for solution in outcome.solutions:
        assert validate_schedule(catalog, solution.projects, solution.rooms, solution.jobs) == []
        assert all(3 <= project.samples <= 6 for project in solution.projects)


def test_iteration_cap_without_convergence():
    catalog = phase_catalog()
    outcome = solve(catalog, _projects(catalog), quiet_config(max_iterations=1))
    assert not outcome.converged
    assert [solution.iteration for solution in outcome.solutions] == [1]


def test_telemetry_log_records_run(tmp_path):
    catalog = phase_catalog()
    log_path = tmp_path / "telemetry" / "runs.jsonl"
    outcome = solve(
        catalog,
        _projects(catalog),
        quiet_config(),
        scenario_name="phase",
        telemetry_log=log_path,
        telemetry_context={"source": "test"},
    )
    run = read_jsonl(log_path)[-1]
    assert run["run_id"] == outcome.telemetry["run_id"]
    assert run["scenario"] == "phase"
    assert run["metrics"]["total_lateness"] == outcome.best.total_lateness
    assert run["extra"]["converged"] is True
    assert run["context"] == {"source": "test"}
    steps = read_jsonl(outcome.telemetry["steps_path"])
    assert [step["stage"] for step in steps] == ["rooms", "iteration", "rooms", "converged"]


def test_best_prefers_lower_lateness_then_fewer_samples():
    catalog = phase_catalog()
    outcome = solve(catalog, _projects(catalog), quiet_config(max_iterations=1))
    first = outcome.solutions[0]
    heavier = type(first)(
        iteration=2,
        total_lateness=first.total_lateness,
        projects=tuple(project.with_samples(4) for project in first.projects),
        rooms=first.rooms,
        results=first.results,
        jobs=first.jobs,
    )
    outcome.solutions.append(heavier)
    assert outcome.best is first


def test_solve_scenario_uses_solver_section():
    catalog = phase_catalog()
    scenario = Scenario(
        name="phase",
        catalog=catalog,
        projects=tuple(_projects(catalog)),
        solver={"room_ls_enabled": False, "sample_ls_enabled": False, "order_ls_enabled": False},
    )
    recorder = EventRecorder()
    outcome = solve_scenario(scenario, progress=recorder)
    assert outcome.converged
    assert {event.scenario for event in recorder.events} == {"phase"}


def test_infeasible_rooms_propagate():
    catalog = phase_catalog()
    humid = make_catalog([*catalog.tests, make_test("CU", WARM_HUMID, 3, "CU")], catalog.chambers)
    project = make_project(humid, "P1", ["GAS", "CU"], due=10)
    with pytest.raises(InfeasibleInstance):
        solve(humid, [project], quiet_config())


def test_sample_counts_outside_bounds_are_rejected():
    catalog = phase_catalog()
    projects = [make_project(catalog, "P1", ["GAS", "EE"], due=20, samples=1), *_projects(catalog)[1:]]
    with pytest.raises(InvalidConfiguration, match="P1=1"):
        solve(catalog, projects, SolverConfig(max_iterations=1))


def test_repeated_solves_produce_identical_schedules():
    catalog = phase_catalog()
    first = solve(catalog, _projects(catalog), SolverConfig(max_iterations=3))
    second = solve(catalog, _projects(catalog), SolverConfig(max_iterations=3))

    assert [sol.total_lateness for sol in first.solutions] == [sol.total_lateness for sol in second.solutions]
    assert first.best.jobs == second.best.jobs
    assert first.best.rooms == second.best.rooms
    assert first.best.projects == second.best.projects
    assert first.evaluations == second.evaluations


def test_raising_max_samples_never_raises_best_lateness():
    catalog = make_catalog(
        [make_test("EE", WARM, 10), make_test("PERF", MILD, 10)],
        [make_chamber("W1", 1), make_chamber("M1", 1)],
    )
    projects = [make_project(catalog, "P1", ["EE", "PERF"], due=10, samples=1)]
    lateness = []
    for max_samples in (1, 2, 3, 4):
        config = quiet_config(
            sample_ls_enabled=True, min_samples=1, initial_samples=1, max_samples=max_samples, max_iterations=2
        )
        lateness.append(solve(catalog, projects, config).best.total_lateness)

    assert lateness == sorted(lateness, reverse=True)
    assert lateness[0] == 10
    assert lateness[-1] == 0


def test_room_search_with_sample_scoring_in_the_loop():
    catalog = phase_catalog()
    projects = _projects(catalog)
    plain = evaluate(catalog, projects, rooms_for(catalog, H1=HOT, W1=WARM), quiet_config())
    recorder = EventRecorder()
    config = SolverConfig(room_ls_include_samples=True, max_iterations=2, sample_ls_max_evals=200)

    outcome = solve(catalog, projects, config, progress=recorder)

    assert "room_search" in recorder.stages()
    assert outcome.best.total_lateness <= plain.total_lateness
    for solution in outcome.solutions:
        assert validate_schedule(catalog, solution.projects, solution.rooms, solution.jobs) == []
        assert all(3 <= project.samples <= 6 for project in solution.projects)
