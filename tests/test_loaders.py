from __future__ import annotations

from pathlib import Path

import pandas as pd
import pytest
from pydantic import ValidationError

from labsched.core.errors import InvalidConfiguration
from labsched.scenario.contract.models import Catalog, Environment, Humidity, TestCategory, build_projects
from labsched.scenario.io import (
    catalog_from_mapping,
    load_batch_instances,
    load_catalog,
    load_scenario,
    projects_from_frame,
)
from tests.factories import HOT, make_catalog, make_chamber, make_test

REFERENCE = Path(__file__).resolve().parents[1] / "examples" / "reference"

CATALOG = {
    "tests": [
        {"id": "GAS", "name": "Gas", "temperature_c": 43, "duration_days": 10, "category": "GAS"},
        {"id": "EE", "name": "Energy", "temperature_c": 25, "duration_days": 4, "category": "OTHER"},
        {
            "id": "CU",
            "name": "Consumer usage",
            "environment": {"temperature_c": 25, "humidity": "85%"},
            "duration_days": 3,
            "category": "CU",
        },
    ],
    "chambers": [
        {"id": "A", "stations": 2, "humidity_adjustable": True},
        {"id": "B", "stations": 3, "voltage_capable": True},
    ],
}


def test_reference_catalog_shape():
    catalog = load_catalog(REFERENCE / "catalog.yaml")
    assert len(catalog.tests) == 16
    assert len(catalog.chambers) == 28
    assert catalog.total_stations == 240
    assert catalog.test("CU_25").environment == Environment(temperature_c=25, humidity=Humidity.H85)
    assert catalog.test("CU_10").category is TestCategory.CONSUMER_USAGE
    assert catalog.chamber("T008").voltage_capable


def test_reference_scenario_loads_projects_and_solver_section():
    scenario = load_scenario(REFERENCE / "scenario.yaml")
    assert scenario.name == "reference-50"
    assert len(scenario.projects) == 50
    first = scenario.projects[0]
    assert (first.id, first.due_date, first.needs_voltage, first.samples) == ("P1", 60, True, 3)
    assert first.requires(scenario.catalog.index_of("FREEZE_25"))
    assert not scenario.projects[10].requires(scenario.catalog.index_of("FREEZE_25"))
    assert scenario.solver["dispatch_rule"] == "EDD"


def test_inline_scenario(tmp_path):
    import yaml

    path = tmp_path / "scenario.yaml"
    path.write_text(
        yaml.safe_dump(
            {
                "name": "inline",
                "catalog": CATALOG,
                "initial_samples": 2,
                "projects": {
                    "matrix": [[1, 1, 0], [0, 1, 1]],
                    "due_dates": [10, 20],
                    "needs_voltage": [0, 1],
                    "samples": {"P2": 4},
                },
            }
        )
    )
    scenario = load_scenario(path)
    assert scenario.project_ids() == ["P1", "P2"]
    assert [project.samples for project in scenario.projects] == [2, 4]
    assert scenario.projects[1].needs_voltage
    assert scenario.solver == {}


def test_scenario_without_catalog_is_rejected(tmp_path):
    path = tmp_path / "scenario.yaml"
    path.write_text("name: broken\nprojects: projects.csv\n")
    with pytest.raises(InvalidConfiguration):
        load_scenario(path)


def test_catalog_mapping_errors_are_wrapped():
    bad = {"tests": [{"id": "X", "temperature_c": 25, "duration_days": 0, "category": "OTHER"}], "chambers": []}
    with pytest.raises(InvalidConfiguration):
        catalog_from_mapping(bad)


def test_catalog_rejects_second_gas_test():
    with pytest.raises(ValidationError):
        Catalog(
            tests=(make_test("G1", HOT, 5, "GAS"), make_test("G2", HOT, 5, "GAS")),
            chambers=(make_chamber("A", 1),),
        )


def test_environment_labels_round_trip():
    env = Environment.parse("25C/85%")
    assert env.humidity is Humidity.H85
    assert str(env) == "25C/85%"
    assert str(Environment(temperature_c=43)) == "43C/NORMAL"


def test_projects_from_frame_validates_columns():
    catalog = catalog_from_mapping(CATALOG)
    frame = pd.DataFrame(
        {"project_id": ["P1"], "due_date": [5], "GAS": [1], "EE": [1], "CU": [0], "NOISE": [1]}
    )
    with pytest.raises(InvalidConfiguration, match="NOISE"):
        projects_from_frame(frame, catalog)
    with pytest.raises(InvalidConfiguration, match="missing"):
        projects_from_frame(frame.drop(columns=["EE", "NOISE"]), catalog)
    frame.loc[0, "EE"] = 2
    with pytest.raises(InvalidConfiguration):
        projects_from_frame(frame.drop(columns=["NOISE"]), catalog)


def test_fractional_requirement_flags_are_rejected():
    catalog = catalog_from_mapping(CATALOG)
    frame = pd.DataFrame(
        {"project_id": ["P1"], "due_date": [5], "GAS": [1.0], "EE": [0.7], "CU": [0.0], "needs_voltage": [0]}
    )
    with pytest.raises(InvalidConfiguration, match="0/1 flag"):
        projects_from_frame(frame, catalog)
    frame["EE"] = [1.0]
    assert projects_from_frame(frame, catalog)[0].required == (True, True, False)


def test_build_projects_shape_checks():
    catalog = make_catalog([make_test("EE", HOT, 3)], [make_chamber("A", 1)])
    assert [p.id for p in build_projects(catalog, [[1], [0]], [1, 2], [0, 0])] == ["P1", "P2"]
    with pytest.raises(InvalidConfiguration):
        build_projects(catalog, [[1, 0]], [1], [0])
    with pytest.raises(InvalidConfiguration):
        build_projects(catalog, [[1]], [1, 2], [0])
    with pytest.raises(InvalidConfiguration):
        build_projects(catalog, [[1]], [-1], [0])
    with pytest.raises(InvalidConfiguration):
        build_projects(catalog, [[1]], [1], [0], samples={"P9": 2})


def test_batch_instances_group_in_file_order():
    catalog = load_catalog(REFERENCE / "catalog.yaml")
    instances = load_batch_instances(REFERENCE / "batch.csv", catalog)
    assert [instance.instance_id for instance in instances] == ["small-edd", "small-atc", "mixed-4"]
    assert [len(instance.projects) for instance in instances] == [6, 6, 8]
    mixed = instances[2]
    assert mixed.overrides == {"initial_samples": 4, "dispatch_rule": "MIN_SLACK"}
    assert {project.samples for project in mixed.projects} == {4}
