from __future__ import annotations

from pathlib import Path

import pytest

from labsched.evaluation.validation import validate_schedule
from labsched.optimization.rooms import (
    BranchAndBoundRoomAssigner,
    GreedyRoomAssigner,
    build_workload,
    coverage_violations,
    room_objective,
)
from labsched.planning import SolverConfig, solve_scenario
from labsched.scenario.io import load_scenario

REFERENCE = Path(__file__).resolve().parents[2] / "examples" / "reference" / "scenario.yaml"

# small budgets keep the full 50-project instance quick enough for every test run
REDUCED = {
    "max_iterations": 1,
    "room_ls_max_evals": 4,
    "sample_ls_max_evals": 40,
    "order_ls_max_evals": 40,
    "exact_max_nodes": 20_000,
}


@pytest.fixture(scope="module")
def scenario():
    return load_scenario(REFERENCE)


def test_exact_assigner_finishes_on_reference_catalog(scenario):
    config = SolverConfig.from_mapping(scenario.solver, exact_max_nodes=20_000)
    projects = list(scenario.projects)
    profile = build_workload(scenario.catalog, projects, config.voltage_weight)
    assigner = BranchAndBoundRoomAssigner()

    exact = assigner.assign(scenario.catalog, projects, config)
    greedy = GreedyRoomAssigner().assign(scenario.catalog, projects, config)

    assert len(exact) == len(scenario.catalog.chambers)
    assert coverage_violations(scenario.catalog, profile, exact) == []
    assert room_objective(scenario.catalog, profile, exact) <= room_objective(scenario.catalog, profile, greedy) + 1e-9
    assert 0 < assigner.last_nodes <= 20_000
    assert assigner.last_objective == pytest.approx(room_objective(scenario.catalog, profile, exact))


@pytest.mark.parametrize("assigner", ["greedy", "exact"])
def test_reference_instance_solves_on_reduced_budget(scenario, assigner):
    config = SolverConfig.from_mapping(scenario.solver, room_assigner=assigner, **REDUCED)
    outcome = solve_scenario(scenario, config)
    best = outcome.best

    assert len(best.projects) == 50
    assert best.total_lateness >= 0
    assert validate_schedule(scenario.catalog, best.projects, best.rooms, best.jobs) == []
    assert all(config.min_samples <= project.samples <= config.max_samples for project in best.projects)
