"""Scenario contract models."""

from .models import (
    Catalog,
    ChamberSpec,
    Day,
    Environment,
    Humidity,
    Project,
    Scenario,
    TestCategory,
    TestDefinition,
    build_projects,
)

__all__ = [
    "Catalog",
    "ChamberSpec",
    "Day",
    "Environment",
    "Humidity",
    "Project",
    "Scenario",
    "TestCategory",
    "TestDefinition",
    "build_projects",
]
