"""Scenario contract models and loaders."""

from .contract import (
    Catalog,
    ChamberSpec,
    Environment,
    Humidity,
    Project,
    Scenario,
    TestCategory,
    TestDefinition,
    build_projects,
)
from .io import load_batch_instances, load_catalog, load_projects_csv, load_scenario

__all__ = [
    "Catalog",
    "ChamberSpec",
    "Environment",
    "Humidity",
    "Project",
    "Scenario",
    "TestCategory",
    "TestDefinition",
    "build_projects",
    "load_batch_instances",
    "load_catalog",
    "load_projects_csv",
    "load_scenario",
]
