from __future__ import annotations

from dataclasses import replace

import pytest

from labsched.core.errors import ValidationFailure
from labsched.evaluation.validation import ensure_valid, validate_schedule
from labsched.scheduling import evaluate
from tests.factories import HOT, WARM, make_project, phase_catalog, quiet_config, rooms_for


@pytest.fixture
def solved():
    catalog = phase_catalog()
    projects = [
        make_project(catalog, "P1", ["GAS", "PD", "EE"], due=20),
        make_project(catalog, "P2", ["GAS", "EE"], due=15, samples=2),
    ]
    rooms = rooms_for(catalog, H1=HOT, W1=WARM)
    result = evaluate(catalog, projects, rooms, quiet_config())
    return catalog, projects, rooms, list(result.jobs)


def test_scheduler_output_is_valid(solved):
    catalog, projects, rooms, jobs = solved
    assert validate_schedule(catalog, projects, rooms, jobs) == []
    ensure_valid(catalog, projects, rooms, jobs)


def test_station_overlap_detected(solved):
    catalog, projects, rooms, jobs = solved
    pulldowns = [idx for idx, job in enumerate(jobs) if job.test_id == "PD"]
    first, second = pulldowns[0], pulldowns[1]
    jobs[second] = replace(jobs[second], station=jobs[first].station, start=jobs[first].start, end=jobs[first].end)
    problems = validate_schedule(catalog, projects, rooms, jobs)
    assert any(line.startswith("station H1#") for line in problems)


def test_wrong_duration_and_missing_job_detected(solved):
    catalog, projects, rooms, jobs = solved
    gas = next(idx for idx, job in enumerate(jobs) if job.project_id == "P2" and job.test_id == "GAS")
    jobs[gas] = replace(jobs[gas], end=jobs[gas].end + 1)
    dropped = next(idx for idx, job in enumerate(jobs) if job.project_id == "P1" and job.test_id == "EE")
    del jobs[dropped]
    problems = validate_schedule(catalog, projects, rooms, jobs)
    assert any("P2/GAS: interval length 11 differs from duration 10" in line for line in problems)
    assert any("P1: OTHER EE count 0, expected 1" in line for line in problems)


def test_job_in_wrong_room_detected(solved):
    catalog, projects, rooms, jobs = solved
    other = next(idx for idx, job in enumerate(jobs) if job.test_id == "EE")
    jobs[other] = replace(jobs[other], chamber_id="H1", station=0, start=500, end=504)
    problems = validate_schedule(catalog, projects, rooms, jobs)
    assert any("chamber H1 holds 43C/NORMAL" in line for line in problems)


def test_ensure_valid_raises_with_violations(solved):
    catalog, projects, rooms, jobs = solved
    jobs.append(replace(jobs[0], sample=7, start=900, end=910))
    with pytest.raises(ValidationFailure) as excinfo:
        ensure_valid(catalog, projects, rooms, jobs)
    assert excinfo.value.violations
    assert "Schedule validation failed" in str(excinfo.value)
