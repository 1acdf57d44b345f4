from __future__ import annotations

import math
from dataclasses import replace

import pytest

from labsched.core.errors import ConvergenceFailure, InfeasibleInstance, InvalidConfiguration
from labsched.core.types import DispatchRule, PulldownGate
from labsched.evaluation.validation import validate_schedule
from labsched.scheduling import evaluate, score_job
from labsched.scenario.contract.models import TestCategory
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


def _jobs_by(result, category):
    return [job for job in result.jobs if job.category is category]


def test_gas_then_pulldown_fills_stations_in_order():
    catalog = make_catalog(
        [make_test("GAS", HOT, 10, "GAS"), make_test("PD", HOT, 5, "PULLDOWN")],
        [make_chamber("H1", 2)],
    )
    project = make_project(catalog, "P1", ["GAS", "PD"], due=30)
    result = evaluate(catalog, [project], rooms_for(catalog, H1=HOT), quiet_config())

    gas = _jobs_by(result, TestCategory.GAS)
    assert [(job.station, job.sample, job.start, job.end) for job in gas] == [(0, 0, 0, 10)]
    pulldowns = [(job.station, job.sample, job.start, job.end) for job in _jobs_by(result, TestCategory.PULLDOWN)]
    assert pulldowns == [(0, 0, 10, 15), (1, 1, 10, 15), (0, 2, 15, 20)]
    assert result.result_for("P1").completion == 20
    assert result.total_lateness == 0
    assert result.horizon == 20


def test_all_samples_gate_waits_for_every_pulldown():
    catalog = phase_catalog()
    project = make_project(catalog, "P1", ["GAS", "PD", "EE"])
    rooms = rooms_for(catalog, H1=HOT, W1=WARM)
    config = quiet_config(pulldown_gate=PulldownGate.ALL_SAMPLES)

    result = evaluate(catalog, [project], rooms, config)

    (other,) = _jobs_by(result, TestCategory.OTHER)
    assert (other.start, other.end, other.sample) == (20, 24, 0)
    assert result.total_lateness == 24
    assert validate_schedule(catalog, [project], rooms, result.jobs, PulldownGate.ALL_SAMPLES) == []


def test_per_sample_gate_starts_after_own_pulldown():
    catalog = phase_catalog()
    project = make_project(catalog, "P1", ["GAS", "PD", "EE"])
    rooms = rooms_for(catalog, H1=HOT, W1=WARM)
    config = quiet_config(pulldown_gate="per_sample")

    result = evaluate(catalog, [project], rooms, config)

    (other,) = _jobs_by(result, TestCategory.OTHER)
    assert (other.start, other.end, other.sample) == (15, 19, 0)
    assert result.result_for("P1").completion == 20
    assert validate_schedule(catalog, [project], rooms, result.jobs, PulldownGate.PER_SAMPLE) == []
    violations = validate_schedule(catalog, [project], rooms, result.jobs, PulldownGate.ALL_SAMPLES)
    assert any("pulldown gate" in line for line in violations)


def test_consumer_usage_waits_for_latest_other_start():
    catalog = make_catalog(
        [
            make_test("EE", WARM, 4),
            make_test("PERF", WARM, 4),
            make_test("CU", MILD, 3, "CU"),
        ],
        [make_chamber("W1", 1), make_chamber("M1", 1)],
    )
    project = make_project(catalog, "P1", ["EE", "PERF", "CU"])
    rooms = rooms_for(catalog, W1=WARM, M1=MILD)

    result = evaluate(catalog, [project], rooms, quiet_config())

    others = _jobs_by(result, TestCategory.OTHER)
    (cu,) = _jobs_by(result, TestCategory.CONSUMER_USAGE)
    assert sorted(job.start for job in others) == [0, 4]
    assert cu.start == 4
    assert cu.sample == 1
    assert validate_schedule(catalog, [project], rooms, result.jobs) == []


def test_consumer_usage_waits_for_every_pulldown_under_per_sample_gate():
    catalog = make_catalog(
        [
            make_test("GAS", HOT, 10, "GAS"),
            make_test("PD", HOT, 5, "PULLDOWN"),
            make_test("EE", WARM, 4),
            make_test("CU", MILD, 3, "CU"),
        ],
        [make_chamber("H1", 2), make_chamber("W1", 1), make_chamber("M1", 1)],
    )
    project = make_project(catalog, "P1", ["GAS", "PD", "EE", "CU"], due=30)
    rooms = rooms_for(catalog, H1=HOT, W1=WARM, M1=MILD)

    result = evaluate(catalog, [project], rooms, quiet_config(pulldown_gate=PulldownGate.PER_SAMPLE))

    (other,) = _jobs_by(result, TestCategory.OTHER)
    (cu,) = _jobs_by(result, TestCategory.CONSUMER_USAGE)
    assert other.start == 15
    # the third pulldown ends at 20, so CU cannot use the sample free since 15
    assert max(job.end for job in _jobs_by(result, TestCategory.PULLDOWN)) == 20
    assert cu.start == 20
    assert validate_schedule(catalog, [project], rooms, result.jobs, PulldownGate.PER_SAMPLE) == []

    early = [replace(job, start=15, end=18) if job is cu else job for job in result.jobs]
    violations = validate_schedule(catalog, [project], rooms, early, PulldownGate.PER_SAMPLE)
    assert any("CU starts 15 before max(pulldown end" in line for line in violations)


def _single_station_catalog():
    return make_catalog(
        [make_test("LONG", WARM, 10), make_test("SHORT", WARM, 1)],
        [make_chamber("W1", 1)],
    )


def test_edd_uses_due_dates_and_priority_overrides_them():
    catalog = _single_station_catalog()
    projects = [
        make_project(catalog, "P1", ["SHORT"], due=10),
        make_project(catalog, "P2", ["SHORT"], due=5),
    ]
    rooms = rooms_for(catalog, W1=WARM)

    plain = evaluate(catalog, projects, rooms, quiet_config())
    assert [job.project_id for job in plain.jobs] == ["P2", "P1"]

    ranked = evaluate(catalog, projects, rooms, quiet_config(), priority=["P1", "P2"])
    assert [job.project_id for job in ranked.jobs] == ["P1", "P2"]
    assert ranked.result_for("P2").completion == 2


def test_priority_must_be_a_permutation():
    catalog = _single_station_catalog()
    projects = [make_project(catalog, "P1", ["SHORT"]), make_project(catalog, "P2", ["SHORT"])]
    with pytest.raises(InvalidConfiguration):
        evaluate(catalog, projects, rooms_for(catalog, W1=WARM), quiet_config(), priority=["P1"])


def test_min_slack_prefers_tighter_project():
    catalog = _single_station_catalog()
    projects = [
        make_project(catalog, "P1", ["LONG"], due=12),
        make_project(catalog, "P2", ["SHORT"], due=5),
    ]
    result = evaluate(
        catalog, projects, rooms_for(catalog, W1=WARM), quiet_config(dispatch_rule=DispatchRule.MIN_SLACK)
    )
    # slack P1 = 12 - 0 - 10 = 2, slack P2 = 5 - 0 - 1 = 4
    assert [job.project_id for job in result.jobs] == ["P1", "P2"]


def test_atc_score_matches_formula():
    tight = score_job(
        DispatchRule.ATC, key=0, due_date=4, start=0, duration=4, average_remaining=2.0, atc_k=3.0
    )
    assert tight == pytest.approx(0.25)
    loose = score_job(
        DispatchRule.ATC, key=0, due_date=10, start=0, duration=4, average_remaining=2.0, atc_k=3.0
    )
    assert loose == pytest.approx(0.25 * math.exp(-1.0))
    edd = score_job(DispatchRule.EDD, key=3, due_date=3, start=2, duration=1, average_remaining=1.0, atc_k=3.0)
    assert edd == pytest.approx(-3e6 - 2)


def test_voltage_project_without_voltage_chamber_is_infeasible():
    catalog = _single_station_catalog()
    project = make_project(catalog, "P1", ["SHORT"], voltage=True)
    with pytest.raises(InfeasibleInstance):
        evaluate(catalog, [project], rooms_for(catalog, W1=WARM), quiet_config())


def test_humid_environment_in_plain_chamber_is_rejected():
    catalog = make_catalog([make_test("CU", WARM_HUMID, 3, "CU")], [make_chamber("W1", 1)])
    project = make_project(catalog, "P1", ["CU"])
    with pytest.raises(InfeasibleInstance):
        evaluate(catalog, [project], rooms_for(catalog, W1=WARM_HUMID), quiet_config())


def test_missing_room_entry_is_rejected():
    catalog = make_catalog([make_test("EE", WARM, 3)], [make_chamber("W1", 1), make_chamber("W2", 1)])
    project = make_project(catalog, "P1", ["EE"])
    with pytest.raises(InfeasibleInstance):
        evaluate(catalog, [project], rooms_for(catalog, W1=WARM), quiet_config())


def test_dispatch_step_cap_raises():
    catalog = _single_station_catalog()
    projects = [make_project(catalog, f"P{i}", ["SHORT"]) for i in range(3)]
    with pytest.raises(ConvergenceFailure):
        evaluate(catalog, projects, rooms_for(catalog, W1=WARM), quiet_config(max_dispatch_steps=2))


def test_projects_are_not_mutated():
    catalog = phase_catalog()
    project = make_project(catalog, "P1", ["GAS", "PD", "EE"])
    before = project.model_dump()
    evaluate(catalog, [project], rooms_for(catalog, H1=HOT, W1=WARM), quiet_config())
    assert project.model_dump() == before
